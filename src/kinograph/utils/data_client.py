"""Backend client for the interaction JSON feeds.

Three feeds exist per structure: the atom-level graph, the residue-level graph
and the type/tier viewer JSON. ``fetch_all`` retrieves them concurrently with
httpx and joins the results before anything downstream sees them.

Every fetch takes a generation token; a result whose token has been
superseded by a newer ``fetch_all`` is discarded (returns None) so a slow
response for an old structure can never overwrite a newer one.

Failures never propagate: HTTP errors, network errors and non-JSON bodies are
logged and the feed degrades to ``None`` (normalized later to an empty graph).
"""
from __future__ import annotations
import asyncio
from dataclasses import dataclass, field
import threading
from typing import Any, Dict, Optional

import httpx
from loguru import logger

from kinograph.errors import DataFetchError
from kinograph.utils.config import FetchConfig

ATOM_GRAPH = "atom_graph"
RESIDUE_GRAPH = "res_graph"
VIEWER_JSON = "json"
FEEDS = (ATOM_GRAPH, RESIDUE_GRAPH, VIEWER_JSON)


@dataclass
class InteractionBundle:
    pdb_id: str
    generation: int
    atom_graph: Any = None
    residue_graph: Any = None
    viewer_json: Any = None
    errors: Dict[str, str] = field(default_factory=dict)

    def feed(self, name: str) -> Any:
        return {ATOM_GRAPH: self.atom_graph, RESIDUE_GRAPH: self.residue_graph, VIEWER_JSON: self.viewer_json}[name]


class InteractionDataClient:
    def __init__(self, config: Optional[FetchConfig] = None,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.config = config or FetchConfig()
        self._transport = transport
        self._generation = 0
        self._gen_lock = threading.Lock()

    @property
    def generation(self) -> int:
        return self._generation

    def _next_generation(self) -> int:
        with self._gen_lock:
            self._generation += 1
            return self._generation

    def url_for(self, feed: str, pdb_id: str) -> str:
        base = (self.config.backend_url or "").rstrip("/")
        if not base:
            raise DataFetchError("backend URL is not configured (KINOGRAPH_BACKEND_URL)")
        paths = {
            ATOM_GRAPH: self.config.atom_graph_path,
            RESIDUE_GRAPH: self.config.residue_graph_path,
            VIEWER_JSON: self.config.viewer_json_path,
        }
        if feed not in paths:
            raise DataFetchError(f"unknown feed {feed!r}")
        return f"{base}/{paths[feed].format(pdb=pdb_id)}"

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.config.timeout_seconds, transport=self._transport)

    async def _get_json(self, client: httpx.AsyncClient, feed: str, pdb_id: str) -> Any:
        url = self.url_for(feed, pdb_id)
        try:
            r = await client.get(url)
        except httpx.HTTPError as e:
            raise DataFetchError(f"{feed} request failed: {e}") from e
        if r.status_code != 200:
            raise DataFetchError(f"{feed} returned HTTP {r.status_code}")
        try:
            return r.json()
        except ValueError as e:
            raise DataFetchError(f"{feed} body is not JSON") from e

    async def get_json(self, feed: str, pdb_id: str) -> Any:
        """Single feed, raising DataFetchError on any failure."""
        async with self._client() as client:
            return await self._get_json(client, feed, pdb_id)

    async def fetch_feed(self, feed: str, pdb_id: str) -> Any:
        """Single feed; None when unavailable."""
        try:
            return await self.get_json(feed, pdb_id)
        except DataFetchError as e:
            logger.warning(f"data_client: {pdb_id}: {e}")
            return None

    async def fetch_all(self, pdb_id: str) -> Optional[InteractionBundle]:
        """All three feeds concurrently; None if a newer fetch started meanwhile."""
        token = self._next_generation()
        bundle = InteractionBundle(pdb_id=pdb_id, generation=token)

        async def _one(client: httpx.AsyncClient, feed: str):
            try:
                return feed, await self._get_json(client, feed, pdb_id), None
            except DataFetchError as e:
                return feed, None, str(e)

        async with self._client() as client:
            results = await asyncio.gather(*[_one(client, feed) for feed in FEEDS])

        if token != self._generation:
            logger.debug(f"data_client: discarding superseded fetch for {pdb_id} (gen {token} < {self._generation})")
            return None

        for feed, payload, error in results:
            if error:
                logger.warning(f"data_client: {pdb_id}: {error}")
                bundle.errors[feed] = error
            if feed == ATOM_GRAPH:
                bundle.atom_graph = payload
            elif feed == RESIDUE_GRAPH:
                bundle.residue_graph = payload
            else:
                bundle.viewer_json = payload
        logger.info(f"data_client: fetched {pdb_id} (gen {token}, failed feeds={sorted(bundle.errors)})")
        return bundle

    def fetch_all_sync(self, pdb_id: str) -> Optional[InteractionBundle]:
        return asyncio.run(self.fetch_all(pdb_id))
