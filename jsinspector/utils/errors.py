"""
Error types and message extraction shared across the inspector.
"""


class InspectorError(Exception):
    """Base class for inspector failures."""


class StoreError(InspectorError):
    """The persistent key-value store could not be read or written."""


def get_error_message(error: BaseException | object) -> str:
    """
    Safely extract an error message from an unknown error type.
    """
    if isinstance(error, Exception):
        return str(error) or type(error).__name__
    return "Unknown error"
