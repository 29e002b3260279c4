"""gator - RSS/Atom feed aggregator.

Users follow feeds; a polling aggregator ingests new posts into a shared
SQL database.
"""

__version__ = "1.0.0"

from .logging import setup_logging, get_logger
from .errors import GatorError, NotFound, Conflict, FetchError, ValidationError, StoreError

__all__ = [
    "__version__",
    "setup_logging",
    "get_logger",
    "GatorError",
    "NotFound",
    "Conflict",
    "FetchError",
    "ValidationError",
    "StoreError",
]
