"""Foundation layer: configuration, logging and the error taxonomy."""

from scriptwell.foundation.config import get_config, load_config, reset_config
from scriptwell.foundation.errors import (
    ApiError,
    ApiRequestError,
    BudgetExhaustedError,
    ErrorCode,
    ErrorKind,
    ScriptStructureError,
    ScriptwellError,
)
from scriptwell.foundation.types import ScriptwellConfig

__all__ = [
    "ApiError",
    "ApiRequestError",
    "BudgetExhaustedError",
    "ErrorCode",
    "ErrorKind",
    "ScriptStructureError",
    "ScriptwellConfig",
    "ScriptwellError",
    "get_config",
    "load_config",
    "reset_config",
]
