import os
import abc
import typing
from dataclasses import dataclass
from datetime import datetime
from pubgate.mf2 import Entry
from pubgate.parsers import UploadedFile
from pubgate.updates import UpdateOperation


@dataclass
class PostMetadata:
    url: str
    published: datetime
    modified: typing.Optional[datetime] = None
    deleted: bool = False


class StorageAdapter(abc.ABC):
    """
    Where posts live. URLs handed in and out are absolute; update, delete and
    undelete raise pubgate.errors.NotFound for unknown posts.
    """

    @abc.abstractmethod
    async def create_post(self, entry: Entry) -> PostMetadata:
        ...

    @abc.abstractmethod
    async def get_post(
        self, url: str, properties: typing.Optional[typing.Sequence[str]] = None
    ) -> typing.Optional[Entry]:
        ...

    @abc.abstractmethod
    async def update_post(
        self, url: str, operations: typing.Sequence[UpdateOperation]
    ) -> PostMetadata:
        ...

    @abc.abstractmethod
    async def delete_post(self, url: str) -> None:
        ...

    @abc.abstractmethod
    async def undelete_post(self, url: str) -> None:
        ...


class MediaAdapter(abc.ABC):
    @abc.abstractmethod
    async def save_file(self, file: UploadedFile, filename: str) -> str:
        ...

    @abc.abstractmethod
    async def delete_file(self, url: str) -> None:
        ...


def storage_from_env(
    site_url: str, environ: typing.Optional[typing.Mapping[str, str]] = None
) -> StorageAdapter:
    if environ is None:
        environ = os.environ
    kind = environ.get("STORAGE", "github")
    if kind == "github":
        from pubgate.storage.github import GitHubStorage

        return GitHubStorage(
            token=environ["GITHUB_TOKEN"],
            repo=environ["GITHUB_REPO"],
            branch=environ.get("GITHUB_BRANCH", "main"),
            site_url=site_url,
            path_prefix=environ.get("PATH_PREFIX", "content/"),
            media_prefix=environ.get("MEDIA_PREFIX", "static/media/"),
            media_url=environ.get("MEDIA_URL"),
        )
    if kind == "fs":
        from pubgate.storage.fs import FileStorage

        return FileStorage(
            content_dir=environ.get("CONTENT_DIR", "content"),
            media_dir=environ.get("MEDIA_DIR", "static/media"),
            site_url=site_url,
            media_url=environ.get("MEDIA_URL"),
        )
    raise ValueError("unknown STORAGE {!r}, expected 'github' or 'fs'".format(kind))
