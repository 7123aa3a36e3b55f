class DatasetLoadError(ValueError):
    """Raised when one or more environmental datasets could not be loaded."""


class TransportError(IOError):
    """Raised when point observations could not be fetched from the broker."""
