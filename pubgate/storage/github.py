import typing
from base64 import b64encode
from hashlib import sha1
from urllib.parse import urljoin
from gidgethub import BadRequest
from gidgethub.httpx import GitHubAPI
from httpx import AsyncClient, AsyncBaseTransport
from pubgate.storage.documents import Document, DocumentStorage
from pubgate.storage.posts import PostLayout

CONTENTS = "/repos/{owner}/{repo}/contents/{+path}"
REQUESTER = "pubgate"


def blob_sha(raw: bytes) -> str:
    return sha1("blob {}\0".format(len(raw)).encode("utf-8") + raw).hexdigest()


class GitHubStorage(DocumentStorage):
    """Commits posts and media to a GitHub repository through the contents API."""

    def __init__(
        self,
        token: str,
        repo: str,
        site_url: str,
        branch: str = "main",
        path_prefix: str = "content/",
        media_prefix: str = "static/media/",
        media_url: typing.Optional[str] = None,
        transport: typing.Optional[AsyncBaseTransport] = None,
    ) -> None:
        super().__init__(
            PostLayout(site_url, path_prefix=path_prefix),
            media_url or urljoin(site_url, "/media/"),
        )
        self.token = token
        self.owner, self.repo = repo.split("/")
        self.branch = branch
        self.media_prefix = media_prefix
        self.transport = transport

    def _client(self) -> AsyncClient:
        return AsyncClient(transport=self.transport)

    def _api(self, h: AsyncClient) -> GitHubAPI:
        return GitHubAPI(h, REQUESTER, oauth_token=self.token)

    def _vars(self, path: str) -> dict:
        return {"owner": self.owner, "repo": self.repo, "path": path}

    async def read_document(self, path: str) -> typing.Optional[Document]:
        async with self._client() as h:
            try:
                raw_text = await self._api(h).getitem(
                    CONTENTS + "{?ref}",
                    url_vars={**self._vars(path), "ref": self.branch},
                    accept="application/vnd.github.v3.raw",
                )
            except BadRequest as err:
                if err.status_code == 404:
                    return None
                raise
        return (raw_text, blob_sha(raw_text.encode("utf-8")))

    async def write_document(
        self, path: str, text: str, version: typing.Optional[str] = None
    ) -> None:
        await self._put(path, text.encode("utf-8"), version)

    async def _put(self, path: str, raw: bytes, sha: typing.Optional[str] = None) -> None:
        data = {
            "branch": self.branch,
            "message": "[micropub] put " + path,
            "content": b64encode(raw).decode("ascii"),
        }
        if sha:
            data["sha"] = sha
        async with self._client() as h:
            await self._api(h).put(CONTENTS, url_vars=self._vars(path), data=data)

    async def _media_sha(self, h: AsyncClient, path: str) -> typing.Optional[str]:
        try:
            meta = await self._api(h).getitem(
                CONTENTS + "{?ref}",
                url_vars={**self._vars(path), "ref": self.branch},
            )
        except BadRequest as err:
            if err.status_code == 404:
                return None
            raise
        return meta["sha"]

    async def write_media(self, path: str, data: bytes) -> None:
        full_path = self.media_prefix + path
        async with self._client() as h:
            existing = await self._media_sha(h, full_path)
        # names are content-addressed, an existing file already holds these bytes
        if existing is None:
            await self._put(full_path, data)

    async def remove_media(self, path: str) -> None:
        full_path = self.media_prefix + path
        async with self._client() as h:
            sha = await self._media_sha(h, full_path)
            if sha is None:
                return
            await self._api(h).delete(
                CONTENTS,
                url_vars=self._vars(full_path),
                data={
                    "branch": self.branch,
                    "message": "[micropub] delete " + full_path,
                    "sha": sha,
                },
            )
