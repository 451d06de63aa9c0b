"""Read-only access to the conversation session store."""

from __future__ import annotations

from typing import Mapping, Protocol
from urllib.parse import quote

import httpx

from groundrag.errors import FatalServiceError, TransientServiceError
from groundrag.models import Language, SessionContext


class SessionStore(Protocol):
    """Looks up conversation state; the pipeline never writes to it."""

    def get(self, session_id: str, *, timeout: float | None = None) -> SessionContext | None:
        """Return the session context, or ``None`` for an unknown session."""


class InMemorySessionStore:
    """Dictionary-backed store for tests and single-process deployments."""

    def __init__(self, sessions: Mapping[str, SessionContext] | None = None) -> None:
        self._sessions = dict(sessions or {})

    def get(self, session_id: str, *, timeout: float | None = None) -> SessionContext | None:
        return self._sessions.get(session_id)


class HttpSessionStore:
    """Client for the external session service (``GET session/{id}``)."""

    def __init__(self, base_url: str, *, client: httpx.Client | None = None) -> None:
        self._client = client or httpx.Client()
        self._base_url = base_url.rstrip("/")

    def get(self, session_id: str, *, timeout: float | None = None) -> SessionContext | None:
        try:
            response = self._client.get(f"{self._base_url}/session/{quote(session_id, safe='')}", timeout=timeout)
        except httpx.HTTPError as exc:
            raise TransientServiceError(f"Session lookup failed: {exc}", service="session") from exc
        if response.status_code == 404:
            return None
        if response.status_code >= 500:
            raise TransientServiceError(f"Session service returned {response.status_code}", service="session")
        if response.status_code >= 400:
            raise FatalServiceError(f"Session lookup rejected ({response.status_code})", service="session")
        try:
            payload = response.json()
            turns = payload.get("priorTurns") or []
        except (ValueError, AttributeError) as exc:
            raise FatalServiceError(f"Malformed session response: {exc}", service="session") from exc
        return SessionContext(
            language=Language.parse(payload.get("language")),
            prior_turns=tuple(str(turn.get("content", "")) if isinstance(turn, dict) else str(turn) for turn in turns),
        )

    def close(self) -> None:
        self._client.close()
