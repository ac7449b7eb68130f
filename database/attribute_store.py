from __future__ import annotations

import functools
import logging
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, TypeVar

import pandas as pd
from sqlalchemy import func, insert, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine

from core.exceptions import DatabaseError
from database.models.base import Base
from database.models.project import Project, ProjectAttribute
from utils.typed_values import TypedValue, decode_value, encode_value

log = logging.getLogger("lm.attribute_store")

F = TypeVar("F", bound=Callable[..., Awaitable[Any]])

_UPSERT_DIALECTS = {
    "postgresql": pg_insert,
    "sqlite": sqlite_insert,
}


def _db_errors(fn: F) -> F:
    @functools.wraps(fn)
    async def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return await fn(*args, **kwargs)
        except SQLAlchemyError as exc:
            raise DatabaseError(f"{fn.__name__} failed: {exc}") from exc

    return wrapper  # type: ignore[return-value]


class AttributeStore:
    """Projects and their typed attribute bags on top of an AsyncEngine.

    Writes are idempotent upserts keyed by (project_id, key); the last write
    wins. Reads return decoded ``TypedValue`` instances.
    """

    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine
        self._attributes = ProjectAttribute.__table__
        self._projects = Project.__table__

    def _backend_name(self) -> Optional[str]:
        sync_eng = getattr(self._engine, "sync_engine", None) or self._engine
        url = getattr(sync_eng, "url", None)
        return url.get_backend_name() if url is not None else None

    def build_upsert(self, project_id: int, values: Mapping[str, Any]):
        """Build the INSERT ... ON CONFLICT DO UPDATE statement for ``values``."""
        backend = self._backend_name()
        dialect_insert = _UPSERT_DIALECTS.get(backend or "")
        if dialect_insert is None:
            raise DatabaseError(f"Attribute upsert is not supported on {backend!r}")

        records: List[Dict[str, Any]] = []
        for key, value in values.items():
            text, value_type = encode_value(value)
            records.append(
                {
                    "project_id": project_id,
                    "key": key,
                    "value": text,
                    "value_type": value_type,
                }
            )

        stmt = dialect_insert(self._attributes).values(records)
        return stmt.on_conflict_do_update(
            index_elements=["project_id", "key"],
            set_={
                "value": stmt.excluded.value,
                "value_type": stmt.excluded.value_type,
                "updated_at": func.now(),
            },
        )

    @_db_errors
    async def create_schema(self) -> None:
        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    @_db_errors
    async def create_project(
        self,
        name: str,
        token: str,
        *,
        category: Optional[str] = None,
        contract_address: Optional[str] = None,
        project_id: Optional[int] = None,
    ) -> int:
        values: Dict[str, Any] = {
            "name": name,
            "token": token,
            "category": category,
            "contract_address": contract_address,
        }
        if project_id is not None:
            values["id"] = project_id
        async with self._engine.begin() as conn:
            result = await conn.execute(insert(self._projects).values(**values))
            new_id = int(result.inserted_primary_key[0])
        log.info("Created project %s (%s)", new_id, name)
        return new_id

    @_db_errors
    async def get_project(self, project_id: int) -> Optional[Dict[str, Any]]:
        async with self._engine.begin() as conn:
            row = (
                await conn.execute(
                    select(self._projects).where(self._projects.c.id == project_id)
                )
            ).first()
        return dict(row._mapping) if row is not None else None

    @_db_errors
    async def get_project_by_address(
        self, contract_address: str
    ) -> Optional[Dict[str, Any]]:
        async with self._engine.begin() as conn:
            row = (
                await conn.execute(
                    select(self._projects)
                    .where(self._projects.c.contract_address == contract_address)
                    .order_by(self._projects.c.id)
                    .limit(1)
                )
            ).first()
        return dict(row._mapping) if row is not None else None

    @_db_errors
    async def get_attribute(self, project_id: int, key: str) -> Optional[TypedValue]:
        table = self._attributes
        async with self._engine.begin() as conn:
            row = (
                await conn.execute(
                    select(table.c.value, table.c.value_type).where(
                        table.c.project_id == project_id, table.c.key == key
                    )
                )
            ).first()
        if row is None:
            return None
        return decode_value(row.value, row.value_type)

    @_db_errors
    async def get_attributes(self, project_id: int) -> Dict[str, TypedValue]:
        table = self._attributes
        async with self._engine.begin() as conn:
            rows = (
                await conn.execute(
                    select(table.c.key, table.c.value, table.c.value_type)
                    .where(table.c.project_id == project_id)
                    .order_by(table.c.key)
                )
            ).all()
        return {row.key: decode_value(row.value, row.value_type) for row in rows}

    async def upsert_attribute(self, project_id: int, key: str, value: Any) -> None:
        await self.upsert_attributes(project_id, {key: value})

    @_db_errors
    async def upsert_attributes(
        self, project_id: int, values: Mapping[str, Any]
    ) -> int:
        """Insert or overwrite several attributes in one statement."""
        if not values:
            return 0
        stmt = self.build_upsert(project_id, values)
        async with self._engine.begin() as conn:
            await conn.execute(stmt)
        log.debug("Upserted %s attribute(s) for project %s", len(values), project_id)
        return len(values)

    async def attributes_frame(self, project_id: int) -> pd.DataFrame:
        """Return a project's attributes as a DataFrame (key, value, value_type)."""
        attributes = await self.get_attributes(project_id)
        records = [
            {
                "project_id": project_id,
                "key": key,
                "value": typed.value,
                "value_type": typed.value_type,
            }
            for key, typed in attributes.items()
        ]
        return pd.DataFrame(
            records, columns=["project_id", "key", "value", "value_type"]
        )
