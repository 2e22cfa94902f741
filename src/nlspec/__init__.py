"""nlspec package root."""

from nlspec.exceptions import ConfigError, MalformedStructure, NlspecError
from nlspec.validator import validate

__all__ = [
    "__version__",
    "ConfigError",
    "MalformedStructure",
    "NlspecError",
    "validate",
]

__version__ = "0.1.0"
