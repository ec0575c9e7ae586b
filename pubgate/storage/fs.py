import os
import logging
import typing
from urllib.parse import urljoin
import anyio
from pubgate.storage.documents import Document, DocumentStorage
from pubgate.storage.posts import PostLayout

logger = logging.getLogger(__name__)

SERVERLESS_ENV = ("AWS_LAMBDA_FUNCTION_NAME", "VERCEL", "NETLIFY", "FUNCTION_NAME")


class FileStorage(DocumentStorage):
    """Local directory storage for development. Not for serverless deployments."""

    def __init__(
        self,
        content_dir: typing.Union[str, os.PathLike],
        media_dir: typing.Union[str, os.PathLike],
        site_url: str,
        media_url: typing.Optional[str] = None,
    ) -> None:
        super().__init__(
            PostLayout(site_url, path_prefix=""),
            media_url or urljoin(site_url, "/media/"),
        )
        self.content_dir = anyio.Path(content_dir)
        self.media_dir = anyio.Path(media_dir)
        if any(os.environ.get(v) for v in SERVERLESS_ENV):
            logger.warning(
                "FileStorage is not suitable for serverless platforms, files will be lost"
            )

    async def read_document(self, path: str) -> typing.Optional[Document]:
        target = self.content_dir / path
        if not await target.is_file():
            return None
        return (await target.read_text(encoding="utf-8"), None)

    async def write_document(
        self, path: str, text: str, version: typing.Optional[str] = None
    ) -> None:
        target = self.content_dir / path
        await target.parent.mkdir(parents=True, exist_ok=True)
        await target.write_text(text, encoding="utf-8")

    async def write_media(self, path: str, data: bytes) -> None:
        target = self.media_dir / path
        await target.parent.mkdir(parents=True, exist_ok=True)
        await target.write_bytes(data)

    async def remove_media(self, path: str) -> None:
        await (self.media_dir / path).unlink(missing_ok=True)
