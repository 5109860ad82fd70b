"""Domain-specific errors for hsmsctl."""


class HsmsctlError(Exception):
    """Base error for hsmsctl."""

    kind = "error"


class TemplateValidationError(HsmsctlError):
    """Raised when a template or send request fails pre-flight validation."""

    kind = "validation"


class TemplateLoadError(HsmsctlError):
    """Raised when reading a template file fails."""

    kind = "validation"


class TemplateNotFoundError(HsmsctlError):
    """Raised when a named template does not resolve to a stored file."""

    kind = "not_found"


class TransportError(HsmsctlError):
    """Base transport error."""

    kind = "transport"


class TransportSendError(TransportError):
    """Raised when the connection rejects a message during send."""


class ReplyTimeoutError(TransportError):
    """Raised when no correlated reply arrives within the timeout."""

    kind = "timeout"
