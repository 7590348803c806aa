class SireliaError(Exception):
    """Base exception for Sirelia bridge errors."""
    pass

class ConfigurationError(SireliaError):
    """Configuration-related errors."""
    pass

class InvalidDiagramError(SireliaError):
    """Diagram source that does not declare a known diagram type."""
    pass

class RelayError(SireliaError):
    """Relay server errors: bind failures and failed publishes."""
    pass

class WatcherError(SireliaError):
    """Filesystem watch registration errors."""
    pass
