from __future__ import annotations

import httpx
import pytest

from groundrag.errors import FatalServiceError, TransientServiceError
from groundrag.models import Language, SessionContext
from groundrag.services.language import estimate_language
from groundrag.services.session import HttpSessionStore, InMemorySessionStore


def _store(handler) -> HttpSessionStore:
    return HttpSessionStore("http://session.local", client=httpx.Client(transport=httpx.MockTransport(handler)))


def test_in_memory_store_returns_known_sessions():
    store = InMemorySessionStore({"s1": SessionContext(language=Language.ES)})
    assert store.get("s1").language is Language.ES
    assert store.get("missing") is None


def test_http_store_parses_session():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/session/abc"
        return httpx.Response(
            200,
            json={"language": "es", "priorTurns": [{"content": "hola"}, "otra pregunta"]},
        )

    session = _store(handler).get("abc", timeout=0.2)
    assert session.language is Language.ES
    assert session.prior_turns == ("hola", "otra pregunta")


def test_http_store_unknown_session_is_none():
    assert _store(lambda request: httpx.Response(404)).get("abc") is None


@pytest.mark.parametrize(("status", "error"), [(500, TransientServiceError), (403, FatalServiceError)])
def test_http_store_errors(status, error):
    with pytest.raises(error) as excinfo:
        _store(lambda request: httpx.Response(status)).get("abc")
    assert excinfo.value.service == "session"


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("¿Cuándo abre la clínica?", Language.ES),
        ("Como puedo bajar el azúcar con insulina", Language.ES),
        ("What should I do when my sugar is low?", Language.EN),
    ],
)
def test_estimate_language(text, expected):
    assert estimate_language(text) is expected


def test_estimate_language_falls_back_to_default():
    assert estimate_language("12345", default=Language.ES) is Language.ES


def test_http_store_escapes_session_id_in_path():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request.url.raw_path)
        return httpx.Response(404)

    assert _store(handler).get("a/b?c#d") is None
    assert seen == [b"/session/a%2Fb%3Fc%23d"]
