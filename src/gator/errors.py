"""Error taxonomy shared by the store, fetcher and command layer."""


class GatorError(Exception):
    """Base class for all gator errors."""
    pass


class NotFound(GatorError):
    """A referenced entity does not exist."""
    pass


class Conflict(GatorError):
    """A uniqueness constraint was violated."""
    pass


class ValidationError(GatorError):
    """Missing or malformed input."""
    pass


class ConfigError(ValidationError):
    """The config file could not be read."""
    pass


class StoreError(GatorError):
    """The backing store failed."""
    pass


class FetchError(GatorError):
    """A remote feed could not be fetched or parsed."""

    def __init__(self, url: str, cause):
        self.url = url
        self.cause = cause
        super().__init__(f"Failed to fetch feed {url}: {cause}")
