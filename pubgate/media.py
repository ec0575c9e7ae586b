import re
import typing
from datetime import date
from hashlib import sha256
from pubgate.config import Config
from pubgate.errors import FileTooLarge, UnsupportedMediaType
from pubgate.parsers import UploadedFile

UNSAFE_CHARS_RE = re.compile(r"[^a-zA-Z0-9.-]")
DASHES_RE = re.compile(r"-+")
MAX_NAME_LENGTH = 64


def base_type(content_type: str) -> str:
    return content_type.split(";", 1)[0].strip().lower()


def check_upload(upload: UploadedFile, config: Config) -> None:
    if upload.size > config.max_upload_size:
        raise FileTooLarge(
            "File exceeds maximum size of {} bytes".format(config.max_upload_size)
        )
    if base_type(upload.content_type) not in config.allowed_mime_types:
        raise UnsupportedMediaType(
            "File type {} is not allowed".format(upload.content_type)
        )


def safe_filename(upload: UploadedFile, today: typing.Optional[date] = None) -> str:
    # YYYY/MM/<content hash>-<sanitized name>: same bytes, same month -> same file
    today = today or date.today()
    short_hash = sha256(upload.data).hexdigest()[:16]
    prefix = "{:04d}/{:02d}/".format(today.year, today.month)
    name = upload.filename.replace("\\", "/").rsplit("/", 1)[-1]
    if "." not in name.strip("."):
        return prefix + short_hash
    safe = DASHES_RE.sub("-", UNSAFE_CHARS_RE.sub("-", name)).lower()
    safe = safe[-MAX_NAME_LENGTH:].lstrip(".-")
    return "{}{}-{}".format(prefix, short_hash, safe)
