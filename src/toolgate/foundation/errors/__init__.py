"""Unified error handling for toolgate.

- ErrorCode: Standard error codes for registration and execution failures
- ToolError/ToolException/RegistrationError: Structured errors and exceptions
- Result/Ok/Err: Outcome type for non-raising operations
"""

from .errors import ErrorCode, RegistrationError, ToolError, ToolException
from .result import Err, Ok, Result
from .types import JsonDict, JsonPrimitive, JsonValue, to_jsonable

__all__ = [
    # Core errors
    "ErrorCode", "ToolError", "ToolException", "RegistrationError",
    # Outcome type
    "Result", "Ok", "Err",
    # JSON aliases
    "JsonDict", "JsonPrimitive", "JsonValue", "to_jsonable",
]
