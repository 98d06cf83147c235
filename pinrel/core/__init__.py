"""Core types: results, exit codes, configuration."""

from .config import Config, ConfigError, apply_env, default_suffix, load_config
from .errors import ErrorCode
from .result import Err, Ok, Result

__all__ = [
    # config
    "Config",
    "ConfigError",
    "apply_env",
    "default_suffix",
    "load_config",
    # errors
    "ErrorCode",
    # result
    "Err",
    "Ok",
    "Result",
]
