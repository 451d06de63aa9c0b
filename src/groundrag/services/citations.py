"""Citation formatting for retained context chunks."""

from __future__ import annotations

from dataclasses import dataclass

from groundrag.models import AssembledContext, Citation, SearchCandidate

UNKNOWN_URL = "about:blank"
UNKNOWN_TITLE = "Untitled source"


@dataclass(frozen=True)
class CitationConfig:
    excerpt_chars: int = 200
    ellipsis: str = "..."
    missing_url: str = UNKNOWN_URL
    missing_title: str = UNKNOWN_TITLE


class CitationFormatter:
    """Maps every retained chunk to exactly one citation, in ranking order."""

    def __init__(self, config: CitationConfig | None = None) -> None:
        self._config = config or CitationConfig()

    def format(self, context: AssembledContext) -> list[Citation]:
        return [self._cite(chunk) for chunk in context.chunks]

    def excerpt(self, content: str) -> str:
        text = " ".join(content.split())
        limit = self._config.excerpt_chars
        if len(text) <= limit:
            return text
        return text[:limit].rstrip() + self._config.ellipsis

    def _cite(self, chunk: SearchCandidate) -> Citation:
        # missing display metadata never drops a citation
        return Citation(
            source_id=chunk.id,
            url=chunk.metadata.url or self._config.missing_url,
            title=chunk.metadata.title or self._config.missing_title,
            excerpt=self.excerpt(chunk.content),
        )
