"""Search backend implementations."""

from __future__ import annotations

from pathlib import Path
from typing import Iterable, Mapping, MutableMapping, Sequence

import chromadb
import httpx
from chromadb.api import ClientAPI

from groundrag.embeddings import EmbeddingBackend
from groundrag.errors import (
    SearchServiceError,
    SearchTimeoutError,
    SearchUnavailableError,
)
from groundrag.models import ChunkMetadata, EmbeddingVector, SearchCandidate


class ChromaSearchBackend:
    """Chroma-backed search index with server-side metadata filtering."""

    supports_filters = True

    def __init__(
        self,
        collection_name: str = "groundrag",
        *,
        client: ClientAPI | None = None,
        persist_directory: str | Path | None = None,
    ) -> None:
        if client is not None:
            self._client = client
        elif persist_directory is not None:
            self._client = chromadb.PersistentClient(path=str(persist_directory))
        else:
            self._client = chromadb.EphemeralClient()
        self._collection = self._client.get_or_create_collection(
            name=collection_name,
            metadata={"hnsw:space": "cosine"},
        )

    def upsert(self, passages: Sequence[SearchCandidate], embedder: EmbeddingBackend) -> Sequence[str]:
        """Seed the collection with passages; used by tests and the evaluation CLI."""

        if not passages:
            return []
        ids = [passage.id for passage in passages]
        self._collection.upsert(
            ids=ids,
            documents=[passage.content for passage in passages],
            embeddings=[list(embedder.embed(passage.content).values) for passage in passages],
            metadatas=[self._serialize_metadata(passage) for passage in passages],
        )
        return ids

    def query(
        self,
        vector: EmbeddingVector,
        *,
        k: int,
        filters: Mapping[str, str] | None = None,
        timeout: float | None = None,
    ) -> Sequence[SearchCandidate]:
        # chroma runs in-process or over its own client; the caller bounds the call
        if k <= 0:
            return []
        try:
            if self._collection.count() == 0:
                return []
            results = self._collection.query(
                query_embeddings=[list(vector.values)],
                n_results=k,
                where=self._where(filters),
            )
        except Exception as exc:
            raise SearchUnavailableError(f"Chroma query failed: {exc}") from exc
        return self._deserialize_results(results)

    def count(self) -> int:
        return int(self._collection.count())

    @staticmethod
    def _where(filters: Mapping[str, str] | None) -> dict | None:
        if not filters:
            return None
        clauses = [{key: value} for key, value in filters.items()]
        if len(clauses) == 1:
            return clauses[0]
        return {"$and": clauses}

    @staticmethod
    def _serialize_metadata(passage: SearchCandidate) -> MutableMapping[str, str]:
        # stored as strings so exact-match filters compare like for like;
        # chroma rejects empty metadata dicts
        return dict(passage.metadata.as_dict()) or {"source_id": passage.id}

    def _deserialize_results(self, results: Mapping[str, object]) -> Sequence[SearchCandidate]:
        ids = self._first(results.get("ids", []))
        documents = self._first(results.get("documents", []))
        metadatas = self._first(results.get("metadatas", []))
        distances = self._first(results.get("distances", []))
        candidates: list[SearchCandidate] = []
        if not ids:
            return candidates
        for index, candidate_id in enumerate(ids):
            document = documents[index] if index < len(documents) else ""
            metadata = metadatas[index] if index < len(metadatas) else None
            distance = distances[index] if index < len(distances) else None
            similarity = 1.0 - float(distance) if distance is not None else 0.0
            candidates.append(
                SearchCandidate(
                    id=str(candidate_id),
                    similarity=similarity,
                    content=document or "",
                    metadata=ChunkMetadata.from_mapping(metadata),
                ),
            )
        return candidates

    @staticmethod
    def _first(value: object) -> Sequence:
        if isinstance(value, list):
            return value[0] if value and value[0] is not None else []
        return []


class HttpSearchBackend:
    """Client for the external hybrid search service (``POST search``)."""

    def __init__(
        self,
        base_url: str,
        *,
        supports_filters: bool = False,
        client: httpx.Client | None = None,
    ) -> None:
        self.supports_filters = supports_filters
        self._client = client or httpx.Client()
        self._url = f"{base_url.rstrip('/')}/search"

    def query(
        self,
        vector: EmbeddingVector,
        *,
        k: int,
        filters: Mapping[str, str] | None = None,
        timeout: float | None = None,
    ) -> Sequence[SearchCandidate]:
        body = {"vector": list(vector.values), "filters": dict(filters or {}), "k": k}
        try:
            response = self._client.post(self._url, json=body, timeout=timeout)
        except httpx.TimeoutException as exc:
            raise SearchTimeoutError(f"Search request timed out: {exc}") from exc
        except httpx.TransportError as exc:
            raise SearchUnavailableError(f"Search service unreachable: {exc}") from exc
        if response.status_code == 503:
            raise SearchUnavailableError("Search service unavailable (503)")
        if response.status_code == 504:
            raise SearchTimeoutError("Search gateway timed out (504)")
        if response.status_code >= 500:
            raise SearchServiceError(f"Search service returned {response.status_code}")
        if response.status_code >= 400:
            raise SearchUnavailableError(f"Search service rejected request ({response.status_code})")
        try:
            return list(self._parse(response.json().get("results") or []))
        except (ValueError, KeyError, TypeError, AttributeError) as exc:
            raise SearchUnavailableError(f"Malformed search response: {exc}") from exc

    @staticmethod
    def _parse(results: Iterable[Mapping[str, object]]) -> Iterable[SearchCandidate]:
        for item in results:
            metadata = item.get("metadata") or {}
            content = item.get("content") or metadata.get("content") or metadata.get("text") or ""
            yield SearchCandidate(
                id=str(item["id"]),
                similarity=float(item.get("score", 0.0)),
                content=str(content),
                metadata=ChunkMetadata.from_mapping(
                    {k: v for k, v in metadata.items() if k not in ("content", "text")},
                ),
            )

    def close(self) -> None:
        self._client.close()
