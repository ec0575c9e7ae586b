import abc
import logging
import posixpath
import typing
from datetime import datetime, timezone
from urllib.parse import urljoin
from pubgate.errors import NotFound
from pubgate.mf2 import Entry
from pubgate.parsers import UploadedFile
from pubgate.storage import MediaAdapter, PostMetadata, StorageAdapter
from pubgate.storage.posts import (
    Post,
    PostLayout,
    entry_to_post,
    is_deleted,
    parse_post,
    post_to_entry,
    render_post,
)
from pubgate.updates import UpdateOperation, apply_operations

logger = logging.getLogger(__name__)

# (document text, version token for optimistic writes)
Document = typing.Tuple[str, typing.Optional[str]]


def now() -> datetime:
    return datetime.now(timezone.utc).replace(microsecond=0)


def _published(entry: Entry, default: datetime) -> datetime:
    value = entry.first("published")
    if isinstance(value, datetime):
        return value
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value)
        except ValueError:
            pass
    return default


class DocumentStorage(StorageAdapter, MediaAdapter):
    """
    Post and media storage over a tree of text documents. Subclasses provide
    the raw reads and writes.
    """

    def __init__(self, layout: PostLayout, media_url: str) -> None:
        self.layout = layout
        self.media_url = media_url if media_url.endswith("/") else media_url + "/"

    @abc.abstractmethod
    async def read_document(self, path: str) -> typing.Optional[Document]:
        ...

    @abc.abstractmethod
    async def write_document(
        self, path: str, text: str, version: typing.Optional[str] = None
    ) -> None:
        ...

    @abc.abstractmethod
    async def write_media(self, path: str, data: bytes) -> None:
        ...

    @abc.abstractmethod
    async def remove_media(self, path: str) -> None:
        ...

    async def _load(
        self, url: str, include_deleted: bool = False
    ) -> typing.Tuple[str, Post, typing.Optional[str]]:
        path = self.layout.url_to_path(url)
        doc = await self.read_document(path) if path else None
        if doc is None:
            raise NotFound()
        (text, version) = doc
        post = parse_post(text)
        if is_deleted(post) and not include_deleted:
            raise NotFound()
        return path, post, version

    async def create_post(self, entry: Entry) -> PostMetadata:
        created_at = now()
        published = _published(entry, created_at)
        props = dict(entry.properties)
        if not props.get("published"):
            props["published"] = [published.isoformat()]
        entry = Entry(list(entry.type), props)
        for slug, path, url in self.layout.candidates(entry, published):
            if await self.read_document(path) is None:
                break
        else:
            raise RuntimeError("no free slug for {}".format(path))
        post = entry_to_post(entry, base={"slug": slug})
        await self.write_document(path, render_post(post))
        logger.debug("wrote %s", path)
        return PostMetadata(url=url, published=published)

    async def get_post(
        self, url: str, properties: typing.Optional[typing.Sequence[str]] = None
    ) -> typing.Optional[Entry]:
        try:
            (_, post, _) = await self._load(url)
        except NotFound:
            return None
        entry = post_to_entry(post)
        if properties:
            return entry.only(properties)
        return entry

    async def update_post(
        self, url: str, operations: typing.Sequence[UpdateOperation]
    ) -> PostMetadata:
        (path, post, version) = await self._load(url)
        entry = post_to_entry(post)
        entry.properties = apply_operations(entry.properties, operations)
        modified = now()
        entry.properties["updated"] = [modified.isoformat()]
        await self.write_document(path, render_post(entry_to_post(entry, base=post[0])), version)
        logger.debug("rewrote %s", path)
        return PostMetadata(url=url, published=_published(entry, modified), modified=modified)

    async def delete_post(self, url: str) -> None:
        await self._set_deleted(url, True)
        logger.debug("marked %s deleted", url)

    async def undelete_post(self, url: str) -> None:
        await self._set_deleted(url, False)
        logger.debug("cleared deleted mark on %s", url)

    async def _set_deleted(self, url: str, deleted: bool) -> None:
        (path, post, version) = await self._load(url, include_deleted=True)
        if is_deleted(post) == deleted:
            return
        updated = entry_to_post(post_to_entry(post), base=post[0], deleted=deleted)
        await self.write_document(path, render_post(updated), version)

    def media_path(self, url: str) -> typing.Optional[str]:
        if not url.startswith(self.media_url):
            return None
        path = posixpath.normpath(url[len(self.media_url):])
        if path in ("", ".") or path.startswith(".."):
            return None
        return path

    async def save_file(self, file: UploadedFile, filename: str) -> str:
        await self.write_media(filename, file.data)
        url = urljoin(self.media_url, filename)
        logger.debug("saved %s (%d bytes, %s)", url, file.size, file.content_type)
        return url

    async def delete_file(self, url: str) -> None:
        path = self.media_path(url)
        if path is None:
            raise NotFound("Media file not found")
        await self.remove_media(path)
