"""Helpers for Move type strings and numeric payload fields."""

from __future__ import annotations

from typing import Any, List, Optional, Tuple

__all__ = [
    "generic_type_args",
    "pair_type_args",
    "parse_amount",
    "struct_tag",
]


def generic_type_args(type_str: str) -> List[str]:
    """Split the generic arguments of ``addr::module::Name<A, B<C, D>>``.

    Whitespace is removed and the split only happens on commas at bracket
    depth zero, so nested generics stay intact. A type without generic
    arguments yields an empty list.
    """
    compact = "".join(type_str.split())
    start = compact.find("<")
    if start == -1 or not compact.endswith(">"):
        return []
    inner = compact[start + 1 : -1]

    args: List[str] = []
    depth = 0
    current: List[str] = []
    for ch in inner:
        if ch == "<":
            depth += 1
        elif ch == ">":
            depth -= 1
        if ch == "," and depth == 0:
            args.append("".join(current))
            current = []
            continue
        current.append(ch)
    if current:
        args.append("".join(current))
    return args


def pair_type_args(type_str: str) -> Optional[Tuple[str, str]]:
    """Return ``(token_x, token_y)`` for a two-parameter generic type, else None."""
    args = generic_type_args(type_str)
    if len(args) != 2:
        return None
    return args[0], args[1]


def struct_tag(account: str, struct: str, *type_args: str) -> str:
    """Build ``<account>::<struct><A,B>``."""
    tag = f"{account}::{struct}"
    if type_args:
        tag += "<" + ",".join(type_args) + ">"
    return tag


def parse_amount(value: Any) -> int:
    """Parse an on-chain integer amount (usually a decimal string).

    Missing or malformed values count as 0.
    """
    if value is None or isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return value
    try:
        return int(str(value).strip())
    except ValueError:
        return 0
