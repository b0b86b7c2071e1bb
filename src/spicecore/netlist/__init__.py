# src/spicecore/netlist/__init__.py
from .raw_data import ParsedDevice, ParsedModel, ParsedNetlist
from .loader import NetlistLoader
from .exceptions import NetlistLoadError, SchemaValidationError

__all__ = [
    # IR Data Structures
    "ParsedDevice",
    "ParsedModel",
    "ParsedNetlist",
    # Loader and Exceptions
    "NetlistLoader",
    "NetlistLoadError",
    "SchemaValidationError",
]
