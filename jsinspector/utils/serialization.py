"""camelCase conversion used by the persisted and exported record layout."""

from __future__ import annotations


def snake_to_camel(name: str) -> str:
    """Convert a snake_case string to camelCase.

    Args:
        name: A snake_case identifier such as ``"suggested_fix"``.

    Returns:
        The camelCase equivalent, e.g. ``"suggestedFix"``.
    """
    head, *rest = name.split("_")
    return head + "".join(w.capitalize() for w in rest)
