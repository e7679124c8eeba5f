"""Sequence helpers for frozen value objects."""

from collections.abc import Iterable


def optional_list(values: Iterable[str] | None) -> list[str] | None:
    """Plain list for dict output, keeping None as None."""
    return list(values) if values is not None else None
