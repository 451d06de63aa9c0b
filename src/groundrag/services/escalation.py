"""Escalation policy: decide when a conversation should reach a human."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Pattern, Sequence

from groundrag.models import EscalationDecision

HUMAN_REQUEST_PHRASES: tuple[str, ...] = (
    "speak to a human",
    "speak to human",
    "talk to a person",
    "talk to person",
    "talk to someone",
    "real person",
    "human help",
    "customer service",
    "support agent",
    "live chat",
    "representative",
    "hablar con una persona",
    "hablar con alguien",
    "persona real",
)

EMERGENCY_PHRASES: tuple[str, ...] = (
    "emergency",
    "crisis",
    "dying",
    "severe pain",
    "can't breathe",
    "cannot breathe",
    "chest pain",
    "stroke",
    "heart attack",
    "unconscious",
    "overdose",
    "suicide",
    "self harm",
    "emergencia",
    "dolor de pecho",
    "no puedo respirar",
    "sobredosis",
    "suicidio",
)

ADVISORY_PHRASES: tuple[str, ...] = (
    "should i take",
    "dosage",
    "treatment plan",
    "medical advice",
    "diagnosis",
    "symptoms getting worse",
    "urgent",
    "dosis",
    "diagnóstico",
    "debo tomar",
)


@dataclass(frozen=True)
class EscalationConfig:
    """Thresholds and trigger phrases for the escalation decision table."""

    low_confidence_threshold: float = 0.5
    hard_confidence_threshold: float = 0.2
    human_request_phrases: tuple[str, ...] = HUMAN_REQUEST_PHRASES
    emergency_phrases: tuple[str, ...] = EMERGENCY_PHRASES
    advisory_phrases: tuple[str, ...] = ADVISORY_PHRASES
    repeat_window: int = 5
    repeat_overlap: float = 0.5
    repeat_min_common_words: int = 3


def _compile(phrases: Sequence[str]) -> Pattern[str] | None:
    if not phrases:
        return None
    alternatives = "|".join(re.escape(phrase.lower()) for phrase in phrases)
    return re.compile(rf"(?<!\w)(?:{alternatives})(?!\w)")


def _content_words(text: str) -> list[str]:
    return [word for word in re.findall(r"\w+", text.lower()) if len(word) > 3]


class EscalationPolicy:
    """Pure decision table over confidence, query text and retrieval coverage.

    ``escalation_suggested`` flags an answer that a human should probably
    review. ``escalated`` additionally requires a hard trigger (explicit
    request for a person, an emergency, or very low confidence) and therefore
    never holds without ``escalation_suggested``.
    """

    def __init__(self, config: EscalationConfig | None = None) -> None:
        self._config = config or EscalationConfig()
        self._human = _compile(self._config.human_request_phrases)
        self._emergency = _compile(self._config.emergency_phrases)
        self._advisory = _compile(self._config.advisory_phrases)

    def decide(
        self,
        confidence: float,
        query: str,
        candidate_count: int,
        prior_turns: Sequence[str] = (),
    ) -> EscalationDecision:
        config = self._config
        text = query.lower()
        emergency = self._matches(self._emergency, text)
        human = self._matches(self._human, text)
        no_sources = candidate_count == 0
        low = confidence < config.low_confidence_threshold
        very_low = confidence < config.hard_confidence_threshold
        repeated = self.is_repeated(query, prior_turns)
        advisory = self._matches(self._advisory, text)

        if emergency:
            reason, priority = "emergency", "urgent"
        elif human:
            reason, priority = "human_requested", "high"
        elif no_sources:
            reason, priority = "no_sources", "medium"
        elif low:
            reason, priority = "low_confidence", "medium"
        elif repeated:
            reason, priority = "repeated_question", "medium"
        elif advisory:
            reason, priority = "advisory_topic", "low"
        else:
            return EscalationDecision(escalated=False, escalation_suggested=False)

        escalated = emergency or human or very_low
        return EscalationDecision(
            escalated=escalated,
            escalation_suggested=True,
            reason=reason,
            priority=priority,
        )

    def decide_degraded(self, query: str) -> EscalationDecision:
        """Decision for a failed pipeline run: always suggested, escalated on hard query triggers."""

        text = query.lower()
        if self._matches(self._emergency, text):
            return EscalationDecision(True, True, "emergency", "urgent")
        if self._matches(self._human, text):
            return EscalationDecision(True, True, "human_requested", "high")
        return EscalationDecision(False, True, "service_degraded", "medium")

    def is_repeated(self, query: str, prior_turns: Sequence[str]) -> bool:
        config = self._config
        current = _content_words(query)
        if not current or not prior_turns:
            return False
        for previous in list(prior_turns)[-config.repeat_window :]:
            earlier = set(_content_words(previous))
            common = [word for word in current if word in earlier]
            if len(common) > len(current) * config.repeat_overlap and len(common) >= config.repeat_min_common_words:
                return True
        return False

    @staticmethod
    def _matches(pattern: Pattern[str] | None, text: str) -> bool:
        return bool(pattern and pattern.search(text))
