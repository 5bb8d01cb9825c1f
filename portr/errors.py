"""Error taxonomy shared by the readers, the engine, termination and the CLI."""

ELEVATION_HINT = "Try running with sudo (or as Administrator on Windows)."


class PortrError(Exception):
    kind = "PortrError"

    def __init__(self, message, detail=None):
        super().__init__(message)
        self.message = message
        self.detail = detail

    def __str__(self):
        if self.detail:
            return f"{self.message}: {self.detail}"
        return self.message


class PermissionDenied(PortrError):
    """The socket table is unreadable or a signal was not allowed."""
    kind = "PermissionDenied"

    def __init__(self, message, detail=None, hint=ELEVATION_HINT):
        super().__init__(message, detail)
        self.hint = hint


class NotFound(PortrError):
    kind = "NotFound"


class ReadFailed(PortrError):
    kind = "ReadFailed"


class PlatformError(PortrError):
    kind = "PlatformError"


class RuntimeUnavailable(PortrError):
    """No container runtime is reachable."""
    kind = "RuntimeUnavailable"


class InvalidPort(PortrError):
    kind = "InvalidPort"

    def __init__(self, value):
        super().__init__(f"invalid port: {value}")
        self.value = value


class InvalidPortRange(PortrError):
    kind = "InvalidPortRange"

    def __init__(self, value):
        super().__init__(f"invalid port range: {value}")
        self.value = value


class ConfigError(PortrError):
    kind = "ConfigError"
