"""
External Service Tests
======================

DEGRADATION VERIFIED:
=====================
Every HTTP collaborator returns None (never raises) on transport
errors, error statuses and unparseable payloads. Requests are served
by httpx.MockTransport; nothing leaves the process.
"""

import json

import httpx
import pytest

from beliefstream.contracts.beliefs import PoleAlignment
from beliefstream.services import (
    EmbeddingVector, OllamaEmbeddingService, OllamaStanceValidator,
    SentenceTransformerEmbeddingService, StanceQuery, StaticReputation, TrustGraph,
    create_embedding_service, parse_verdict, source_identity,
)


def client_for(handler):
    return httpx.Client(transport=httpx.MockTransport(handler))


def refuse(request):
    raise httpx.ConnectError("connection refused", request=request)


QUERY = StanceQuery(
    label="Monetary policy",
    left_pole="Dovish",
    right_pole="Hawkish",
    text="The bank raised rates by half a point",
    alignment=PoleAlignment.RIGHT,
)


class TestEmbeddingVector:

    def test_from_list(self):
        vector = EmbeddingVector.from_list([1, 2, 3], "m")
        assert vector.dimension == 3
        assert vector.to_list() == [1.0, 2.0, 3.0]

    def test_empty_rejected(self):
        with pytest.raises(ValueError):
            EmbeddingVector.from_list([], "m")


class TestOllamaEmbedding:

    def test_embeds_text(self):
        seen = {}

        def handler(request):
            seen['path'] = request.url.path
            seen['body'] = json.loads(request.content)
            return httpx.Response(200, json={'embedding': [0.1, 0.2]})

        service = OllamaEmbeddingService("http://ollama:11434/", "nomic", client=client_for(handler))
        vector = service.embed("x" * 5000)

        assert vector.to_list() == [0.1, 0.2]
        assert vector.model_id == "nomic"
        assert seen['path'] == "/api/embeddings"
        assert seen['body']['model'] == "nomic"
        assert len(seen['body']['prompt']) == 2048

    @pytest.mark.parametrize("handler", [
        refuse,
        lambda request: httpx.Response(500, text="oops"),
        lambda request: httpx.Response(200, text="not json"),
        lambda request: httpx.Response(200, json={'embedding': []}),
        lambda request: httpx.Response(200, json={'embedding': ["a", "b"]}),
        lambda request: httpx.Response(200, json=[1, 2]),
        lambda request: httpx.Response(200, json="embedding"),
    ])
    def test_failures_return_none(self, handler):
        service = OllamaEmbeddingService(client=client_for(handler))
        assert service.embed("some text") is None

    def test_blank_text_not_sent(self):
        calls = []
        service = OllamaEmbeddingService(client=client_for(lambda r: calls.append(r)))
        assert service.embed("   ") is None
        assert calls == []


class TestEmbeddingFactory:

    def test_backends(self):
        assert isinstance(create_embedding_service("ollama", "http://h", "m"),
                          OllamaEmbeddingService)
        local = create_embedding_service("sentence-transformers", "http://h", "all-MiniLM-L6-v2")
        assert isinstance(local, SentenceTransformerEmbeddingService)
        assert local.model_id == "all-MiniLM-L6-v2"

    def test_unknown_backend(self):
        with pytest.raises(ValueError):
            create_embedding_service("word2vec", "http://h", "m")


class TestParseVerdict:

    def test_plain_json(self):
        verdict = parse_verdict('{"confidence": 0.8, "reasoning": "fits"}')
        assert verdict.confidence == 0.8
        assert verdict.reasoning == "fits"

    def test_fenced_reply_with_chatter(self):
        reply = 'Sure!\n```json\n{"confidence": 0.25, "reasoning": "off topic"}\n```'
        assert parse_verdict(reply).confidence == 0.25

    def test_out_of_range_confidence_clamped(self):
        assert parse_verdict('{"confidence": 1.7}').confidence == 1.0

    @pytest.mark.parametrize("reply", [
        "", "no json here", '{"confidence": "high"}', '{"reasoning": "x"}',
        '{"confidence": true}', "{broken",
    ])
    def test_unusable_replies(self, reply):
        assert parse_verdict(reply) is None


class TestOllamaStanceValidator:

    def test_validates(self):
        seen = {}

        def handler(request):
            seen['path'] = request.url.path
            seen['body'] = json.loads(request.content)
            return httpx.Response(200, json={
                'response': '{"confidence": 0.9, "reasoning": "supports hawkish"}'
            })

        validator = OllamaStanceValidator(client=client_for(handler))
        verdict = validator.validate(QUERY)

        assert verdict.confidence == 0.9
        assert seen['path'] == "/api/generate"
        assert seen['body']['stream'] is False
        assert seen['body']['options']['temperature'] == 0.0
        assert '"Hawkish"' in seen['body']['prompt']
        assert "(Hawkish)" in seen['body']['prompt']

    @pytest.mark.parametrize("handler", [
        refuse,
        lambda request: httpx.Response(503),
        lambda request: httpx.Response(200, json={'response': 'I cannot say'}),
        lambda request: httpx.Response(200, text="<html>"),
        lambda request: httpx.Response(200, json=[1, 2]),
        lambda request: httpx.Response(200, content=b"null"),
    ])
    def test_unavailable_returns_none(self, handler):
        assert OllamaStanceValidator(client=client_for(handler)).validate(QUERY) is None


class TestReputation:

    @pytest.mark.parametrize("ref,identity", [
        ("https://x.com/Alice/status/123", "alice"),
        ("https://twitter.com/bob_1/status/9?s=20", "bob_1"),
        ("@Carol", "carol"),
        ("dave", "dave"),
        ("https://example.com/article", None),
        ("two words", None),
        ("", None),
        (None, None),
    ])
    def test_source_identity(self, ref, identity):
        assert source_identity(ref) == identity

    def test_static_lookup(self):
        reputation = StaticReputation({"Alice": 4})
        assert reputation.lookup("@alice") == 4.0
        assert reputation.lookup("nobody") is None

    def test_trust_graph_file(self, tmp_path):
        path = tmp_path / "trust_graph.json"
        path.write_text(json.dumps({'accounts': {
            'Alice': {'trust_score': 5},
            'bob': {'score': 2},
            'carol': {},
            'dave': 4,
            'eve': {'trust_score': 'high'},
        }}))
        graph = TrustGraph.load(path)
        assert len(graph) == 4
        assert graph.lookup("https://x.com/alice/status/1") == 5.0
        assert graph.lookup("bob") == 2.0
        assert graph.lookup("carol") == 3.0
        assert graph.lookup("dave") == 4.0
        assert graph.lookup("eve") is None

    def test_missing_or_corrupt_graph_is_empty(self, tmp_path):
        assert len(TrustGraph.load(tmp_path / "missing.json")) == 0
        bad = tmp_path / "bad.json"
        bad.write_text("{not json")
        assert len(TrustGraph.load(bad)) == 0

    @pytest.mark.parametrize("content", [
        '[1, 2, 3]',
        '"alice"',
        '{"accounts": ["alice", "bob"]}',
    ])
    def test_non_object_graph_is_empty(self, tmp_path, content):
        path = tmp_path / "trust_graph.json"
        path.write_text(content)
        graph = TrustGraph.load(path)
        assert len(graph) == 0
        assert graph.lookup("alice") is None
