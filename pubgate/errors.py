"""
Failure categories of the Micropub endpoints and their wire representation.

Handlers and storage adapters raise the exceptions below; the application's
exception handler turns them into JSON error bodies through WIRE.
"""
import enum
import typing


class ErrorKind(enum.Enum):
    INVALID_TOKEN = "invalid_token"
    INSUFFICIENT_SCOPE = "insufficient_scope"
    URL_OWNERSHIP = "url_ownership"
    FORBIDDEN = "forbidden"
    INVALID_REQUEST = "invalid_request"
    NOT_FOUND = "not_found"
    FILE_TOO_LARGE = "file_too_large"
    UNSUPPORTED_MEDIA_TYPE = "unsupported_media_type"
    SERVER_ERROR = "server_error"


# kind -> (HTTP status, "error" member of the response body)
WIRE = {
    ErrorKind.INVALID_TOKEN: (401, "invalid_token"),
    ErrorKind.INSUFFICIENT_SCOPE: (403, "insufficient_scope"),
    ErrorKind.URL_OWNERSHIP: (403, "forbidden"),
    ErrorKind.FORBIDDEN: (403, "forbidden"),
    ErrorKind.INVALID_REQUEST: (400, "invalid_request"),
    ErrorKind.NOT_FOUND: (404, "not_found"),
    ErrorKind.FILE_TOO_LARGE: (413, "invalid_request"),
    ErrorKind.UNSUPPORTED_MEDIA_TYPE: (415, "invalid_request"),
    ErrorKind.SERVER_ERROR: (500, "server_error"),
}


class MicropubError(Exception):
    kind = ErrorKind.SERVER_ERROR
    default_description: typing.Optional[str] = None

    def __init__(self, description: typing.Optional[str] = None):
        self.description = description or self.default_description
        super().__init__(self.description or self.kind.value)

    @property
    def status_code(self) -> int:
        return WIRE[self.kind][0]

    def body(self) -> dict:
        obj = {"error": WIRE[self.kind][1]}
        if self.description:
            obj["error_description"] = self.description
        return obj


class InvalidToken(MicropubError):
    kind = ErrorKind.INVALID_TOKEN
    default_description = "Token is not valid"


class InsufficientScope(MicropubError):
    kind = ErrorKind.INSUFFICIENT_SCOPE

    def __init__(self, scope: str, description: typing.Optional[str] = None):
        self.scope = scope
        super().__init__(
            description or "The '{}' scope is required".format(scope)
        )


class UrlOwnership(MicropubError):
    kind = ErrorKind.URL_OWNERSHIP
    default_description = "URL does not belong to this site"


class Forbidden(MicropubError):
    kind = ErrorKind.FORBIDDEN


class InvalidRequest(MicropubError):
    kind = ErrorKind.INVALID_REQUEST
    default_description = "Invalid request"


class InvalidJson(InvalidRequest):
    default_description = "Invalid JSON"


class UnsupportedContentType(InvalidRequest):
    pass


class NotFound(MicropubError):
    kind = ErrorKind.NOT_FOUND
    default_description = "Post not found"


class FileTooLarge(MicropubError):
    kind = ErrorKind.FILE_TOO_LARGE


class UnsupportedMediaType(MicropubError):
    kind = ErrorKind.UNSUPPORTED_MEDIA_TYPE


class ServerError(MicropubError):
    kind = ErrorKind.SERVER_ERROR

    def __init__(self):
        # adapter details never reach the client
        super().__init__("Internal server error")
