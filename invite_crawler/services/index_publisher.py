"""Full-replace publishing of the catalog into a MeiliSearch index.

Speaks the MeiliSearch REST API directly with httpx:

- GET    /indexes/{uid}                       index lookup
- POST   /indexes                             create (uid, primaryKey)
- DELETE /indexes/{uid}/documents             delete all documents
- POST   /indexes/{uid}/documents?primaryKey= bulk add

Write operations are enqueued as tasks by the server; publishing does not wait
for them. Each step fails with its own error type so logs tell an index that
is merely outdated (delete failed) from one left empty (insert failed).
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

import httpx

from invite_crawler.errors import (
    IndexDeleteError,
    IndexInsertError,
    IndexUnavailableError,
    PublishError,
)
from invite_crawler.models.entry import Entry

logger = logging.getLogger(__name__)


DEFAULT_HOST = "http://localhost:7700"
PRIMARY_KEY = "id"


class MeiliIndex:
    def __init__(self, client: "MeiliSearchPublisher", uid: str) -> None:
        self.client = client
        self.uid = uid

    def delete_all_documents(self) -> Dict[str, Any]:
        try:
            return self.client._request("DELETE", f"/indexes/{self.uid}/documents")
        except (httpx.HTTPError, httpx.InvalidURL, ValueError) as exc:
            raise IndexDeleteError(f"{self.uid}: {exc}") from exc

    def add_documents(self, documents: List[Dict[str, Any]], primary_key: str = PRIMARY_KEY) -> Dict[str, Any]:
        try:
            return self.client._request(
                "POST",
                f"/indexes/{self.uid}/documents",
                params={"primaryKey": primary_key},
                json=documents,
            )
        except (httpx.HTTPError, httpx.InvalidURL, ValueError) as exc:
            raise IndexInsertError(f"{self.uid}: {exc}") from exc


class MeiliSearchPublisher:
    def __init__(
        self,
        host: str = DEFAULT_HOST,
        key: Optional[str] = None,
        *,
        timeout: float = 30.0,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.host = host.rstrip("/")
        self.key = key or None
        self.timeout = float(timeout)
        self._transport = transport

    def _client(self) -> httpx.Client:
        headers = {"Content-Type": "application/json"}
        if self.key:
            headers["Authorization"] = f"Bearer {self.key}"
        return httpx.Client(base_url=self.host, timeout=self.timeout, headers=headers, transport=self._transport)

    def _request(self, method: str, path: str, **kwargs: Any) -> Dict[str, Any]:
        with self._client() as client:
            resp = client.request(method, path, **kwargs)
            resp.raise_for_status()
            return resp.json() if resp.content else {}

    def get_or_create(self, uid: str) -> MeiliIndex:
        try:
            with self._client() as client:
                resp = client.get(f"/indexes/{uid}")
                if resp.status_code == 404:
                    created = client.post("/indexes", json={"uid": uid, "primaryKey": PRIMARY_KEY})
                    created.raise_for_status()
                    logger.info("Created index %s", uid)
                else:
                    resp.raise_for_status()
        except (httpx.HTTPError, httpx.InvalidURL, ValueError) as exc:
            raise IndexUnavailableError(f"{uid}: {exc}") from exc
        return MeiliIndex(self, uid)


@dataclass
class PublishOutcome:
    ok: bool
    failed_step: Optional[str] = None
    error: Optional[str] = None
    documents: int = 0


def publish_catalog(publisher: MeiliSearchPublisher, index_name: str, entries: Sequence[Entry]) -> PublishOutcome:
    """Clear the index and reinsert the whole catalog. Never raises on index errors."""
    try:
        index = publisher.get_or_create(index_name)
        index.delete_all_documents()
        documents = [e.to_document() for e in entries]
        if documents:
            index.add_documents(documents, primary_key=PRIMARY_KEY)
    except PublishError as exc:
        logger.error(
            "ERROR: %s failed for index %s: %s. STATUS: %s",
            exc.step, index_name, exc, exc.status,
        )
        return PublishOutcome(ok=False, failed_step=exc.step, error=str(exc))
    logger.info("Published %d documents to index %s", len(documents), index_name)
    return PublishOutcome(ok=True, documents=len(documents))
