"""
Async client for the hub's JSON API: search, tree listing and model cards.
"""

import asyncio
import logging
import time
from typing import Any, Optional
from urllib.parse import quote

import aiohttp

from hfmd import __version__
from hfmd.exceptions import AuthenticationError, RepositoryNotFoundError
from hfmd.models.config import DEFAULT_ENDPOINT
from hfmd.models.entry import EntryKind, FileDescriptor, RepoInfo, RepoType

log = logging.getLogger(__name__)


def content_url(
    endpoint: str,
    repo_id: str,
    revision: str,
    path: str,
    repo_type: RepoType = RepoType.MODEL,
) -> str:
    """
    Builds the download URL of a repository file, e.g.
    `https://huggingface.co/datasets/org/name/resolve/main/data/train.parquet`.
    """
    return (
        f"{endpoint.rstrip('/')}/{repo_type.resolve_prefix}{repo_id}/resolve/"
        f"{quote(revision, safe='')}/{quote(path, safe='/')}"
    )


class HubClient:
    """
    Async client for the hub API.

    Only metadata goes through this client; file bodies are streamed by the
    transfer engine on its own session.
    """

    def __init__(
        self,
        endpoint: str = DEFAULT_ENDPOINT,
        token: str = "",
        max_concurrency: int = 8,
    ):
        """
        Initializes the API client.

        Args:
            endpoint: Base URL of the hub.
            token: Optional access token for gated or private repositories.
            max_concurrency: Cap on simultaneous API requests while walking trees.
        """
        self.endpoint = endpoint.rstrip("/")
        self.token = token
        self._session: Optional[aiohttp.ClientSession] = None
        self._request_slots = asyncio.Semaphore(max_concurrency)

    async def _initialize_session(self) -> None:
        """Ensures an active aiohttp session is available."""
        if self._session is None or self._session.closed:
            headers = {
                "User-Agent": f"hfmd/{__version__}",
                "Accept-Encoding": "gzip, deflate",
            }
            if self.token:
                headers["Authorization"] = f"Bearer {self.token}"
            self._session = aiohttp.ClientSession(
                headers=headers,
                timeout=aiohttp.ClientTimeout(total=60, connect=15, sock_read=30),
            )

    async def close(self) -> None:
        """Gracefully closes the aiohttp session."""
        if self._session and not self._session.closed:
            await self._session.close()

    async def __aenter__(self) -> "HubClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def _get(self, url: str, params: dict[str, Any] | None = None, as_json=True):
        """
        Performs a GET request and maps hub status codes onto app exceptions.
        """
        body, _ = await self._get_page(url, params, as_json)
        return body

    async def _get_page(
        self, url: str, params: dict[str, Any] | None = None, as_json=True
    ) -> tuple[Any, str | None]:
        """Like `_get`, also returning the `Link: rel="next"` URL if any."""
        await self._initialize_session()
        async with self._request_slots:
            start_time = time.monotonic()
            async with self._session.get(url, params=params) as r:
                duration_ms = (time.monotonic() - start_time) * 1000
                log.debug(f"GET {url} -> {r.status} ({duration_ms:.0f} ms)")

                if r.status in (401, 403):
                    raise AuthenticationError(
                        f"Access to '{url}' was denied (HTTP {r.status}). The "
                        "repository may be gated or private."
                    )
                if r.status == 404:
                    raise RepositoryNotFoundError(f"Not found on the hub: {url}")
                r.raise_for_status()
                next_link = r.links.get("next")
                next_url = str(next_link["url"]) if next_link else None
                body = await r.json() if as_json else await r.text()
                return body, next_url

    async def _get_all_pages(self, url: str) -> list[Any]:
        """Collects a paginated list endpoint by following its `next` links."""
        items: list[Any] = []
        next_url: str | None = url
        while next_url:
            page, next_url = await self._get_page(next_url)
            items.extend(page or [])
        return items

    async def search(
        self,
        repo_type: RepoType = RepoType.MODEL,
        search: str | None = None,
        author: str | None = None,
        sort: str | None = None,
        direction: str | None = None,
        limit: int | None = None,
        full: bool = False,
    ) -> list[RepoInfo]:
        """Searches models or datasets; unset filters are left out of the query."""
        params = {
            key: value
            for key, value in {
                "search": search,
                "author": author,
                "sort": sort,
                "direction": direction,
                "limit": limit,
                "full": "true" if full else None,
            }.items()
            if value not in (None, "")
        }
        data = await self._get(f"{self.endpoint}/api/{repo_type.api_segment}", params)
        return [RepoInfo.model_validate(item) for item in data or []]

    async def _list_entries(
        self, repo_id: str, revision: str, repo_type: RepoType, path: str = ""
    ) -> list[FileDescriptor]:
        url = (
            f"{self.endpoint}/api/{repo_type.api_segment}/{repo_id}/tree/"
            f"{quote(revision, safe='')}"
        )
        if path:
            url = f"{url}/{quote(path, safe='/')}"
        data = await self._get_all_pages(url)
        entries = [FileDescriptor.from_api(item) for item in data]

        files = [e for e in entries if e.kind is EntryKind.FILE]
        directories = [e for e in entries if e.kind is EntryKind.DIRECTORY]
        if directories:
            nested = await asyncio.gather(
                *(
                    self._list_entries(repo_id, revision, repo_type, d.path)
                    for d in directories
                )
            )
            for sub_files in nested:
                files.extend(sub_files)
        return files

    async def list_tree(
        self,
        repo_id: str,
        revision: str = "main",
        repo_type: RepoType = RepoType.MODEL,
    ) -> list[FileDescriptor]:
        """
        Lists every file of a repository revision, expanding directories
        recursively.

        Returns:
            File-kind descriptors only, sorted by path.
        """
        files = await self._list_entries(repo_id, revision, repo_type)
        log.debug(f"Listed {len(files)} files in '{repo_id}@{revision}'")
        return sorted(files, key=lambda f: f.path)

    def content_url(
        self,
        repo_id: str,
        revision: str,
        path: str,
        repo_type: RepoType = RepoType.MODEL,
    ) -> str:
        return content_url(self.endpoint, repo_id, revision, path, repo_type)

    async def fetch_card(
        self,
        repo_id: str,
        revision: str = "main",
        repo_type: RepoType = RepoType.MODEL,
    ) -> str | None:
        """Fetches the repository's README.md, or None if it cannot be retrieved."""
        url = self.content_url(repo_id, revision, "README.md", repo_type)
        try:
            return await self._get(url, as_json=False)
        except Exception as e:
            log.debug(f"Could not fetch card for '{repo_id}': {e}")
            return None
