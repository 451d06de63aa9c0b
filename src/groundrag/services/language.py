"""Lightweight language detection for queries without an explicit language."""

from __future__ import annotations

import re

from groundrag.models import Language

_SPANISH_MARKERS = frozenset(
    {"qué", "que", "cómo", "como", "cuándo", "cuando", "dónde", "donde", "por", "para", "con", "sin",
     "azúcar", "insulina", "es", "el", "la", "los", "las", "puedo", "tengo", "debo"},
)
_ENGLISH_MARKERS = frozenset(
    {"what", "how", "when", "where", "with", "without", "sugar", "insulin", "is", "the", "can", "i",
     "should", "do", "does", "my"},
)


def estimate_language(text: str, default: Language = Language.EN) -> Language:
    """Guess between English and Spanish by counting common function words."""

    words = re.findall(r"\w+", text.lower())
    if "¿" in text or "ñ" in text.lower():
        return Language.ES
    spanish = sum(1 for word in words if word in _SPANISH_MARKERS)
    english = sum(1 for word in words if word in _ENGLISH_MARKERS)
    if spanish > english:
        return Language.ES
    if english > spanish:
        return Language.EN
    return default
