"""Error taxonomy for per-request file serving failures."""


class FileServingError(Exception):
    """Request-level failure carrying the HTTP status and a stable error label."""

    status_code: int = 500
    error: str = "Internal Server Error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class PathRejectedError(FileServingError):
    """The requested path escapes the content root."""

    status_code = 403
    error = "Forbidden"


class ExtensionNotAllowedError(FileServingError):
    status_code = 403
    error = "Forbidden"


class NotFoundError(FileServingError):
    """Missing path, or a path that is not a regular file."""

    status_code = 404
    error = "Not Found"


class FileTooLargeError(FileServingError):
    status_code = 413
    error = "Payload Too Large"


class RangeUnsatisfiableError(FileServingError):
    status_code = 416
    error = "Requested Range Not Satisfiable"

    def __init__(self, message: str, *, file_size: int) -> None:
        super().__init__(message)
        self.file_size = file_size


class InternalFailureError(FileServingError):
    """Unexpected I/O failure while stating or streaming a file."""

    status_code = 500
    error = "Internal Server Error"
