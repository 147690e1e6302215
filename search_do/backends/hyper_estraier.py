"""
Hyper Estraier node backend.

Talks to http://{host}:{port}/node/{node} with basic authentication.
Transport failures and rejected credentials raise BackendUnavailableError;
a search against a node that has no index yet is an empty result.
"""

import logging
import time
from typing import Dict, List, Optional

import httpx

from ..core.exceptions import BackendError, BackendUnavailableError
from ..schemas.index import IndexDocument, SearchCondition
from ..utils.estraier_protocol import condition_form, dump_draft, parse_search_result
from .base import IndexBackend

logger = logging.getLogger(__name__)

DRAFT_CONTENT_TYPE = "text/x-estraier-draft"
SEARCH_DEPTH = 1


class HyperEstraierBackend(IndexBackend):
    """Index backend for a remote Hyper Estraier node."""

    name = "hyper_estraier"

    def __init__(
        self,
        node_name: str,
        host: str = "localhost",
        port: int = 1978,
        user: str = "admin",
        password: str = "admin",
        connect_timeout: float = 5.0,
        read_timeout: float = 30.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        super().__init__(node_name)
        self.url = f"http://{host}:{port}/node/{node_name}"
        self.client = httpx.Client(
            base_url=self.url,
            auth=httpx.BasicAuth(user, password),
            timeout=httpx.Timeout(read_timeout, connect=connect_timeout),
            transport=transport,
        )

    def _post(self, action: str, *, data: Optional[Dict[str, str]] = None,
              content: Optional[bytes] = None, headers: Optional[Dict[str, str]] = None) -> httpx.Response:
        started = time.perf_counter()
        try:
            response = self.client.post(action, data=data, content=content, headers=headers)
        except httpx.TimeoutException as e:
            logger.error(f"Timed out calling {action} on {self.url}: {e}")
            raise BackendUnavailableError(f"Timed out calling {action} on {self.url}") from e
        except httpx.TransportError as e:
            logger.error(f"Failed to reach {self.url} for {action}: {e}")
            raise BackendUnavailableError(f"Index node {self.url} is unavailable: {e}") from e

        logger.debug(f"{action} on {self.url} -> {response.status_code} ({time.perf_counter() - started:f}s)")

        if response.status_code in (401, 403):
            logger.error(f"Index node {self.url} rejected credentials ({response.status_code})")
            raise BackendUnavailableError(
                f"Index node {self.url} rejected credentials", status_code=response.status_code
            )
        return response

    def _expect_ok(self, action: str, response: httpx.Response) -> None:
        if response.status_code != 200:
            logger.error(f"{action} on {self.url} failed with status {response.status_code}")
            raise BackendError(
                f"{action} on {self.url} failed with status {response.status_code}",
                status_code=response.status_code,
            )

    def add(self, document: IndexDocument) -> None:
        response = self._post(
            "put_doc",
            content=dump_draft(document).encode("utf-8"),
            headers={"Content-Type": DRAFT_CONTENT_TYPE},
        )
        self._expect_ok("put_doc", response)

    def delete(self, document: IndexDocument) -> None:
        if document.internal_id is not None:
            form = {"id": document.internal_id}
        else:
            form = {"uri": document.uri}
        self._expect_ok("out_doc", self._post("out_doc", data=form))

    def _search(self, condition: SearchCondition):
        response = self._post("search", data=condition_form(condition, depth=SEARCH_DEPTH))
        if response.status_code == 404:
            logger.info(f"Node {self.url} has no index yet, treating search as empty")
            return None
        self._expect_ok("search", response)

        result = parse_search_result(response.text)
        if result is None:
            logger.warning(f"Empty or truncated search response from {self.url}")
        return result

    def search(self, condition: SearchCondition) -> List[IndexDocument]:
        result = self._search(condition)
        if result is None:
            return []
        documents, _ = result
        return documents

    def count(self, condition: SearchCondition) -> int:
        probe = condition.model_copy(update={"max": 1, "skip": 0})
        result = self._search(probe)
        if result is None:
            return 0
        documents, hints = result
        try:
            return int(hints["HIT"])
        except (KeyError, ValueError):
            logger.warning(f"No HIT hint in search response from {self.url}")
            return len(documents)

    def close(self) -> None:
        self.client.close()
