from __future__ import annotations

import logging
from typing import Optional

import pybreaker

from config import API_CLIENT_SETTINGS
from core.exceptions import APIError

LOGGER = logging.getLogger("lm.api.circuit")


class _RecordedFailure(Exception):
    """Marker raised inside the breaker to count one downstream failure."""


class CircuitGate:
    """Bridges a synchronous pybreaker.CircuitBreaker to async request code.

    The remote call itself runs outside the breaker; its outcome is reported
    afterwards with ``record_success``/``record_failure``. ``check`` raises
    APIError while the circuit is open and lets the breaker move to
    half-open once the reset timeout has elapsed.
    """

    def __init__(
        self,
        name: str,
        *,
        fail_max: Optional[int] = None,
        reset_timeout: Optional[int] = None,
    ) -> None:
        cb_cfg = API_CLIENT_SETTINGS.get("CIRCUIT_BREAKER", {})
        self.name = name
        self.breaker = pybreaker.CircuitBreaker(
            fail_max=int(fail_max or cb_cfg.get("FAIL_MAX", 5)),
            reset_timeout=int(reset_timeout or cb_cfg.get("RESET_TIMEOUT", 60)),
            name=name,
        )

    @property
    def state(self) -> str:
        return self.breaker.current_state

    def check(self) -> None:
        if self.breaker.current_state != pybreaker.STATE_OPEN:
            return
        try:
            self.breaker.call(lambda: None)
        except pybreaker.CircuitBreakerError as exc:
            LOGGER.warning("Circuit breaker OPEN for %s: %s", self.name, exc)
            raise APIError(f"Circuit open for {self.name}") from exc

    def record_success(self) -> None:
        try:
            self.breaker.call(lambda: None)
        except pybreaker.CircuitBreakerError:
            # Opened concurrently by another task; the next check() reports it.
            return

    def record_failure(self, exc: BaseException) -> None:
        def _fail() -> None:
            raise _RecordedFailure(str(exc))

        try:
            self.breaker.call(_fail)
        except _RecordedFailure:
            return
        except pybreaker.CircuitBreakerError:
            LOGGER.warning(
                "Circuit breaker for %s tripped after %s failures",
                self.name,
                self.breaker.fail_counter,
            )
