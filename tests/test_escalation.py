from __future__ import annotations

import pytest

from groundrag.services.escalation import EscalationConfig, EscalationPolicy


@pytest.fixture
def policy() -> EscalationPolicy:
    return EscalationPolicy(EscalationConfig(low_confidence_threshold=0.5, hard_confidence_threshold=0.2))


def test_confident_answer_is_not_escalated(policy):
    decision = policy.decide(0.85, "What time does the clinic open?", 3)
    assert not decision.escalation_suggested
    assert not decision.escalated
    assert decision.reason is None
    assert decision.priority == "none"


def test_low_confidence_suggests_but_does_not_escalate(policy):
    decision = policy.decide(0.35, "What time does the clinic open?", 2)
    assert decision.escalation_suggested
    assert not decision.escalated
    assert decision.reason == "low_confidence"


def test_very_low_confidence_escalates(policy):
    decision = policy.decide(0.1, "What time does the clinic open?", 1)
    assert decision.escalated
    assert decision.escalation_suggested


def test_no_sources_is_reported(policy):
    decision = policy.decide(0.0, "Where is the pharmacy?", 0)
    assert decision.reason == "no_sources"
    assert decision.escalated


def test_human_request_escalates_regardless_of_confidence(policy):
    decision = policy.decide(0.95, "Can I talk to a person please?", 4)
    assert decision.escalated
    assert decision.reason == "human_requested"
    assert decision.priority == "high"


def test_emergency_wins_over_everything(policy):
    decision = policy.decide(0.95, "I have chest pain, I want to talk to a person", 4)
    assert decision.reason == "emergency"
    assert decision.priority == "urgent"
    assert decision.escalated


def test_spanish_triggers(policy):
    assert policy.decide(0.9, "Quiero hablar con una persona", 3).reason == "human_requested"
    assert policy.decide(0.9, "Es una emergencia", 3).reason == "emergency"


def test_phrases_match_on_word_boundaries(policy):
    # "representatives" should not match "representative" mid-word
    assert not policy.decide(0.9, "What do the state representatives say about clinics?", 3).escalation_suggested


def test_advisory_topics_suggest_only(policy):
    decision = policy.decide(0.9, "What dosage should I use?", 3)
    assert decision.escalation_suggested
    assert not decision.escalated
    assert decision.reason == "advisory_topic"
    assert decision.priority == "low"


def test_repeated_question_is_detected(policy):
    prior = ["How do I refill my insulin prescription online?"]
    decision = policy.decide(0.9, "How can I refill my insulin prescription?", 3, prior)
    assert decision.reason == "repeated_question"
    assert decision.escalation_suggested
    assert not decision.escalated
    assert not policy.is_repeated("How can I refill my insulin prescription?", [])


def test_degraded_decision_is_always_suggested(policy):
    plain = policy.decide_degraded("What time does the clinic open?")
    assert plain.escalation_suggested and not plain.escalated
    assert plain.reason == "service_degraded"
    urgent = policy.decide_degraded("I think this is an emergency")
    assert urgent.escalated


@pytest.mark.parametrize("confidence", [0.0, 0.1, 0.3, 0.6, 1.0])
@pytest.mark.parametrize("query", ["hours?", "talk to a person", "medical advice on dosage"])
def test_escalated_implies_suggested(policy, confidence, query):
    decision = policy.decide(confidence, query, 2)
    assert not decision.escalated or decision.escalation_suggested
