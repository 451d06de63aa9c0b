"""CLI for evaluating groundrag retrieval and answer quality offline."""

from __future__ import annotations

import argparse
import json
import statistics
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import List, Sequence
from uuid import uuid4

import chromadb

from groundrag.config import Settings, get_settings
from groundrag.embeddings import EmbeddingConfig, HashEmbeddingBackend
from groundrag.models import ChunkMetadata, Language, Query, SearchCandidate
from groundrag.retrieval import ChromaSearchBackend, HybridSearchClient, SearchConfig
from groundrag.services.generation import AnswerGenerator, TemplateGenerator
from groundrag.services.query import QueryPipeline


@dataclass(frozen=True)
class PassageFixture:
    id: str
    content: str
    title: str | None = None
    url: str | None = None
    language: str | None = None


@dataclass(frozen=True)
class QueryFixture:
    question: str
    relevant_ids: Sequence[str]
    language: str | None = None


@dataclass(frozen=True)
class EvaluationResult:
    total_queries: int
    hits: int
    recall_at_k: float
    mean_reciprocal_rank: float
    mean_confidence: float
    escalation_suggestion_rate: float
    degraded: int
    average_latency_ms: float
    details: List[dict]

    def to_dict(self) -> dict:
        return {
            "total_queries": self.total_queries,
            "hits": self.hits,
            "recall_at_k": self.recall_at_k,
            "mean_reciprocal_rank": self.mean_reciprocal_rank,
            "mean_confidence": self.mean_confidence,
            "escalation_suggestion_rate": self.escalation_suggestion_rate,
            "degraded": self.degraded,
            "average_latency_ms": self.average_latency_ms,
            "details": self.details,
        }


def load_dataset(path: Path) -> tuple[list[PassageFixture], list[QueryFixture]]:
    data = json.loads(path.read_text(encoding="utf-8"))
    passages = [
        PassageFixture(
            id=item["id"],
            content=item["content"],
            title=item.get("title"),
            url=item.get("url"),
            language=item.get("language"),
        )
        for item in data["passages"]
    ]
    queries = [
        QueryFixture(
            question=item["question"],
            relevant_ids=item.get("relevant_ids", []),
            language=item.get("language"),
        )
        for item in data["queries"]
    ]
    return passages, queries


def _as_candidates(fixtures: Sequence[PassageFixture]) -> list[SearchCandidate]:
    return [
        SearchCandidate(
            id=fixture.id,
            similarity=1.0,
            content=fixture.content,
            metadata=ChunkMetadata(url=fixture.url, title=fixture.title, language=fixture.language),
        )
        for fixture in fixtures
    ]


def run_evaluation(
    dataset_path: Path,
    *,
    top_k: int = 3,
    settings: Settings | None = None,
    json_out: Path | None = None,
    markdown_out: Path | None = None,
) -> EvaluationResult:
    settings = settings or get_settings()
    passages, queries = load_dataset(dataset_path)

    embedder = HashEmbeddingBackend(EmbeddingConfig(dim=settings.embedding_dim))
    backend = ChromaSearchBackend(f"evaluation-{uuid4().hex}", client=chromadb.EphemeralClient())
    backend.upsert(_as_candidates(passages), embedder)

    config = settings.pipeline_config()
    hits = 0
    reciprocal_ranks: list[float] = []
    latencies: list[float] = []
    confidences: list[float] = []
    suggested = 0
    degraded = 0
    details: list[dict] = []

    with QueryPipeline(
        embedder,
        HybridSearchClient(backend, SearchConfig(top_k=top_k, max_k=settings.search_max_k)),
        generator=AnswerGenerator(TemplateGenerator()),
        config=config,
    ) as pipeline:
        for index, fixture in enumerate(queries):
            result = pipeline.process_query(
                Query(
                    text=fixture.question,
                    session_id=f"evaluation-{index}",
                    language=Language.parse(fixture.language),
                ),
                top_k=top_k,
            )
            latencies.append(result.processing_time_ms)
            confidences.append(result.confidence)
            suggested += int(result.escalation_suggested)
            degraded += int(result.degraded)
            retrieved_ids = [citation.source_id for citation in result.sources]
            relevant_set = set(fixture.relevant_ids)
            rank = None
            for position, source_id in enumerate(retrieved_ids, start=1):
                if source_id in relevant_set:
                    rank = position
                    break
            if rank is not None:
                hits += 1
                reciprocal_ranks.append(1 / rank)
            else:
                reciprocal_ranks.append(0.0)
            details.append(
                {
                    "question": fixture.question,
                    "retrieved": retrieved_ids,
                    "relevant": list(fixture.relevant_ids),
                    "confidence": result.confidence,
                    "escalation_suggested": result.escalation_suggested,
                    "escalation_reason": result.escalation_reason,
                    "degraded": result.degraded,
                    "latency_ms": result.processing_time_ms,
                    "answer": result.response,
                },
            )

    total = len(queries)
    result = EvaluationResult(
        total_queries=total,
        hits=hits,
        recall_at_k=hits / total if total else 0.0,
        mean_reciprocal_rank=statistics.fmean(reciprocal_ranks) if reciprocal_ranks else 0.0,
        mean_confidence=statistics.fmean(confidences) if confidences else 0.0,
        escalation_suggestion_rate=suggested / total if total else 0.0,
        degraded=degraded,
        average_latency_ms=statistics.fmean(latencies) if latencies else 0.0,
        details=details,
    )

    if json_out:
        json_out.write_text(json.dumps(result.to_dict(), indent=2), encoding="utf-8")
    if markdown_out:
        markdown_out.write_text(_format_markdown(result), encoding="utf-8")
    return result


def _format_markdown(result: EvaluationResult) -> str:
    lines = [
        "# groundrag Evaluation Report",
        "",
        f"- Total queries: {result.total_queries}",
        f"- Hits: {result.hits}",
        f"- Recall@k: {result.recall_at_k:.2f}",
        f"- MRR: {result.mean_reciprocal_rank:.2f}",
        f"- Mean confidence: {result.mean_confidence:.2f}",
        f"- Escalation suggested: {result.escalation_suggestion_rate:.0%}",
        f"- Degraded results: {result.degraded}",
        f"- Avg latency (ms): {result.average_latency_ms:.2f}",
        "",
        "| Question | Retrieved | Relevant | Confidence |",
        "| --- | --- | --- | --- |",
    ]
    for item in result.details:
        retrieved = ", ".join(item["retrieved"]) if item["retrieved"] else "-"
        relevant = ", ".join(item["relevant"]) if item["relevant"] else "-"
        lines.append(f"| {item['question']} | {retrieved} | {relevant} | {item['confidence']:.2f} |")
    return "\n".join(lines)


def parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Evaluate groundrag retrieval and answer quality.")
    parser.add_argument(
        "--dataset",
        type=Path,
        default=Path("evaluations/fixtures/sample.json"),
        help="Path to evaluation dataset JSON file.",
    )
    parser.add_argument("--top-k", type=int, default=3, help="Number of chunks to retrieve per question")
    parser.add_argument("--json-out", type=Path, default=None, help="Optional path to write JSON report")
    parser.add_argument("--markdown-out", type=Path, default=None, help="Optional path to write Markdown report")
    parser.add_argument("--min-recall", type=float, default=None, help="Override recall threshold")
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    args = parse_args(argv if argv is not None else sys.argv[1:])
    settings = get_settings()
    min_recall = args.min_recall if args.min_recall is not None else settings.evaluation_min_recall

    result = run_evaluation(
        args.dataset,
        top_k=args.top_k,
        settings=settings,
        json_out=args.json_out,
        markdown_out=args.markdown_out,
    )
    print(json.dumps(result.to_dict(), indent=2))

    if result.recall_at_k < min_recall:
        print(
            f"Evaluation failed threshold (recall {result.recall_at_k:.2f} vs {min_recall})",
            file=sys.stderr,
        )
        return 1
    return 0


if __name__ == "__main__":  # pragma: no cover - CLI entrypoint
    sys.exit(main())
