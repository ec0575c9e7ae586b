import enum
import logging
import mimetypes
import typing
from dataclasses import dataclass, field
from python_multipart.multipart import MultipartParser, parse_options_header
from starlette.requests import Request
from pubgate.errors import (
    FileTooLarge,
    InvalidJson,
    InvalidRequest,
    UnsupportedContentType,
)

logger = logging.getLogger(__name__)


class BodyKind(enum.Enum):
    FORM = "application/x-www-form-urlencoded"
    JSON = "application/json"
    MULTIPART = "multipart/form-data"
    UNSUPPORTED = None


@dataclass
class UploadedFile:
    field: str
    filename: str
    content_type: str
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass
class ParsedBody:
    kind: BodyKind
    data: typing.Any
    files: typing.List[UploadedFile] = field(default_factory=list)


def body_kind(content_type: typing.Optional[str]) -> typing.Tuple[BodyKind, dict]:
    if not content_type:
        return BodyKind.UNSUPPORTED, {}
    ctype, options = parse_options_header(content_type)
    ctype = ctype.decode("latin-1").strip().lower()
    for kind in BodyKind:
        if kind.value == ctype:
            return kind, options
    return BodyKind.UNSUPPORTED, options


def accumulate(items: typing.Iterable[typing.Tuple[str, typing.Any]]) -> dict:
    """
    Fold form pairs into a dict. "key[]" always collects into a list under
    "key"; a plain key repeated is turned into a list on its second use.
    """
    result: typing.Dict[str, typing.Any] = {}
    for k, v in items:
        if k.endswith("[]"):
            k = k[:-2]
            if k not in result:
                result[k] = [v]
                continue
        elif k not in result:
            result[k] = v
            continue
        if isinstance(result[k], list):
            result[k].append(v)
        else:
            result[k] = [result[k], v]
    return result


async def parse_request(request: Request, max_file_size: int) -> ParsedBody:
    kind, options = body_kind(request.headers.get("content-type"))
    if kind is BodyKind.JSON:
        try:
            data = await request.json()
        except ValueError:
            raise InvalidJson()
        return ParsedBody(kind, data)
    elif kind is BodyKind.FORM:
        form = await request.form()
        return ParsedBody(kind, accumulate(form.multi_items()))
    elif kind is BodyKind.MULTIPART:
        boundary = options.get(b"boundary")
        if not boundary:
            raise InvalidRequest("multipart body without a boundary")
        collector = MultipartCollector(boundary, max_file_size)
        await collector.consume(request.stream())
        return ParsedBody(kind, accumulate(collector.fields), collector.files)
    elif kind is BodyKind.UNSUPPORTED:
        raise UnsupportedContentType(
            "Unsupported content type: {}".format(
                request.headers.get("content-type") or "(none)"
            )
        )
    raise AssertionError(kind)


class MultipartCollector(object):
    """
    Push-style multipart decoder. Every part, file or plain field, is buffered
    up to max_file_size; past that nothing more is collected and the rest of
    the body is drained without parsing before FileTooLarge is raised.
    """

    def __init__(self, boundary: bytes, max_file_size: int) -> None:
        self.max_file_size = max_file_size
        self.fields: typing.List[typing.Tuple[str, str]] = []
        self.files: typing.List[UploadedFile] = []
        self.oversized: typing.Optional[str] = None
        self._headers: typing.List[typing.Tuple[bytes, bytes]] = []
        self._header_field = b""
        self._header_value = b""
        self._name = ""
        self._filename: typing.Optional[str] = None
        self._content_type = ""
        self._chunks: typing.List[bytes] = []
        self._size = 0
        self.parser = MultipartParser(
            boundary,
            {
                "on_part_begin": self.on_part_begin,
                "on_part_data": self.on_part_data,
                "on_part_end": self.on_part_end,
                "on_header_field": self.on_header_field,
                "on_header_value": self.on_header_value,
                "on_header_end": self.on_header_end,
                "on_headers_finished": self.on_headers_finished,
            },
        )

    async def consume(self, stream: typing.AsyncIterator[bytes]) -> None:
        async for chunk in stream:
            if self.oversized is None:
                self.parser.write(chunk)
        if self.oversized is not None:
            raise FileTooLarge(
                "Part {!r} exceeds maximum size of {} bytes".format(
                    self.oversized, self.max_file_size
                )
            )
        self.parser.finalize()

    def on_part_begin(self) -> None:
        self._headers = []
        self._name = ""
        self._filename = None
        self._content_type = ""
        self._chunks = []
        self._size = 0

    def on_header_field(self, data: bytes, start: int, end: int) -> None:
        self._header_field += data[start:end]

    def on_header_value(self, data: bytes, start: int, end: int) -> None:
        self._header_value += data[start:end]

    def on_header_end(self) -> None:
        self._headers.append((self._header_field.lower(), self._header_value))
        self._header_field = b""
        self._header_value = b""

    def on_headers_finished(self) -> None:
        for name, value in self._headers:
            if name == b"content-disposition":
                _, disp = parse_options_header(value)
                self._name = disp.get(b"name", b"").decode("utf-8", "replace")
                if b"filename" in disp:
                    self._filename = disp[b"filename"].decode("utf-8", "replace")
            elif name == b"content-type":
                self._content_type = value.decode("latin-1").strip()

    def on_part_data(self, data: bytes, start: int, end: int) -> None:
        if self.oversized is not None:
            return
        self._size += end - start
        if self._size > self.max_file_size:
            self.oversized = self._filename if self._filename is not None else self._name
            self._chunks = []
            logger.info("dropping oversized part %r (%d+ bytes)", self.oversized, self._size)
            return
        self._chunks.append(data[start:end])

    def on_part_end(self) -> None:
        # parts after an oversized one are never collected
        if self.oversized is not None:
            return
        if self._filename is None:
            self.fields.append((self._name, b"".join(self._chunks).decode("utf-8", "replace")))
            return
        if not self._filename and self._size == 0:
            return
        content_type = self._content_type
        if not content_type:
            content_type = mimetypes.guess_type(self._filename)[0] or "application/octet-stream"
        self.files.append(
            UploadedFile(
                field=self._name,
                filename=self._filename,
                content_type=content_type,
                data=b"".join(self._chunks),
            )
        )
