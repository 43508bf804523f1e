"""Best-effort mirror of file commits/deletes to the external index service."""

import logging
import uuid

import httpx

from filedesk.config import get_settings
from filedesk.errors import IndexBridgeError
from filedesk.models import File

logger = logging.getLogger(__name__)

_COMMAND_PREFIXES = ("/search", "/find", "/lookup")
_SEARCH_PHRASES = (
    "search for",
    "find information about",
    "look up",
    "search the documents for",
    "search my documents for",
)
_QUESTION_WORDS = ("what", "where", "how", "when", "who")


def is_semantic_search_request(message: str) -> bool:
    """Whether a chat message looks like it wants a document search."""
    lower = message.lower()
    if lower.startswith(_COMMAND_PREFIXES):
        return True
    if any(phrase in lower for phrase in _SEARCH_PHRASES):
        return True
    return "document" in lower and any(w in lower for w in _QUESTION_WORDS)


class IndexBridge:
    """HTTP client for the index service.

    Notifications never raise: the metadata and object stores are the source
    of truth and the index is an eventually-consistent mirror. ``search`` is a
    direct request from a user, so its failures do propagate.
    """

    def __init__(
        self,
        base_url: str | None,
        api_key: str | None = None,
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ):
        self.base_url = base_url.rstrip("/") if base_url else None
        self.api_key = api_key
        self.timeout = timeout
        self._client = client

    @property
    def is_enabled(self) -> bool:
        return self.base_url is not None

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        url = f"{self.base_url}{path}"
        if self._client is not None:
            return await self._client.request(
                method, url, headers=self._headers(), timeout=self.timeout, **kwargs,
            )
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            return await client.request(method, url, headers=self._headers(), **kwargs)

    async def notify_upserted(self, record: File) -> bool:
        """Ask the index service to (re)process a file. Returns success."""
        if not self.is_enabled:
            return False
        payload = {
            "file_id": str(record.id),
            "storage_path": record.storage_path,
            "name": record.name,
            "type": record.mime_type,
            "size": record.size_bytes,
            "description": record.description,
            "user_id": str(record.owner_id),
        }
        try:
            resp = await self._request("POST", "/process", json=payload)
            resp.raise_for_status()
        except Exception:
            logger.exception("Index service process failed for file %s", record.id)
            return False
        logger.info("Index service processed file %s", record.id)
        return True

    async def notify_deleted(self, file_id: uuid.UUID) -> bool:
        """Ask the index service to drop a file. A 404 counts as success."""
        if not self.is_enabled:
            return False
        try:
            resp = await self._request("DELETE", f"/delete/{file_id}")
            if resp.status_code == 404:
                logger.info("File %s not found in index service, nothing to delete", file_id)
                return True
            resp.raise_for_status()
        except Exception:
            logger.exception("Index service delete failed for file %s", file_id)
            return False
        return True

    async def search(self, question: str) -> str:
        """Forward a question to the index service and return its answer."""
        if not self.is_enabled:
            raise IndexBridgeError("Index service is not configured")
        try:
            resp = await self._request("POST", "/query", json={"question": question})
            resp.raise_for_status()
            data = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error("Index service search failed: %s", e)
            raise IndexBridgeError(f"Error from index service: {e}") from e
        return data.get("answer", "")

    async def ping(self) -> bool:
        if not self.is_enabled:
            return False
        try:
            resp = await self._request("GET", "/")
        except httpx.HTTPError:
            return False
        return resp.status_code < 500


def get_index_bridge() -> IndexBridge:
    settings = get_settings()
    return IndexBridge(
        settings.index_service_url,
        api_key=settings.index_api_key,
        timeout=settings.index_timeout_seconds,
    )
