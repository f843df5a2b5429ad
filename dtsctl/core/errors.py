"""Domain-specific errors for dtsctl."""


class DtsctlError(Exception):
    """Base error for dtsctl."""


class ConfigValidationError(DtsctlError):
    """Raised when the config file does not conform to schema or semantics."""


class ConfigLoadError(DtsctlError):
    """Raised when reading or writing the config file fails."""


class DeviceSelectionError(DtsctlError):
    """Raised when the requested peripheral was never discovered."""


class CommandRejectedError(DtsctlError):
    """Raised when a command cannot be issued because another is in flight."""


class TransportError(DtsctlError):
    """Base transport error."""


class TransportConnectError(TransportError):
    """Raised on BLE connect failures."""


class TransportSendError(TransportError):
    """Raised when a GATT operation fails."""


class TransportTimeoutError(TransportError):
    """Raised when a transaction does not complete in time."""
