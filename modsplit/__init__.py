"""modsplit - split System.register bundles into modules and undo control-flow obfuscation."""

__version__ = "0.1.0"
__author__ = "modsplit"

from modsplit.config import Config
from modsplit.core.extractor import extract_modules
from modsplit.core.parser import parse_javascript
from modsplit.core.pipeline import process_source

__all__ = [
    "__version__",
    "Config",
    "extract_modules",
    "parse_javascript",
    "process_source",
]
