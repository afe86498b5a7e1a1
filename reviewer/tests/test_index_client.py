"""Tests for VectorIndexClient initialization and querying."""

from types import SimpleNamespace
from unittest.mock import Mock, patch

import pytest

from reviewer.common import index_client
from reviewer.common.config import PineconeConfig
from reviewer.common.exceptions import ConfigurationError, TransientServiceError
from reviewer.common.index_client import (
    DEFAULT_INDEX_NAME,
    VectorIndexClient,
    get_index_client,
    resolve_index_name,
)


def match(match_id, score, text=None):
    metadata = {"text": text} if text is not None else {}
    return SimpleNamespace(id=match_id, score=score, metadata=metadata)


class TestResolveIndexName:
    def test_explicit_name_wins(self):
        assert resolve_index_name("my-index", "other-abc.svc.x.pinecone.io") == "my-index"

    def test_extracted_from_host(self):
        host = "sop-embeddings-2vib48a.svc.aped-4627-b74a.pinecone.io"
        assert resolve_index_name("", host) == "sop-embeddings-2vib48a"

    def test_host_without_delimiter_falls_back(self):
        assert resolve_index_name("", "localhost:5080") == DEFAULT_INDEX_NAME

    def test_default(self):
        assert resolve_index_name() == DEFAULT_INDEX_NAME


class TestEnsureInitialized:
    def test_missing_api_key_raises_before_any_call(self):
        factory = Mock()
        client = VectorIndexClient(api_key="", index_factory=factory)

        with pytest.raises(ConfigurationError, match="PINECONE_API_KEY"):
            client.ensure_initialized()

        factory.assert_not_called()
        assert not client.is_ready

    def test_idempotent(self):
        factory = Mock(return_value=Mock())
        client = VectorIndexClient(api_key="pk-test", host="sops-1.svc.x.pinecone.io", index_factory=factory)

        client.ensure_initialized()
        client.ensure_initialized()

        factory.assert_called_once_with("pk-test", "sops-1", "sops-1.svc.x.pinecone.io")
        assert client.is_ready

    def test_factory_failure_wrapped_and_retryable(self):
        factory = Mock(side_effect=[RuntimeError("connection refused"), Mock()])
        client = VectorIndexClient(api_key="pk-test", index_factory=factory)

        with pytest.raises(TransientServiceError) as exc_info:
            client.ensure_initialized()
        assert exc_info.value.service == "pinecone"
        assert not client.is_ready

        client.ensure_initialized()
        assert client.is_ready


class TestQuery:
    @pytest.fixture
    def index(self):
        index = Mock()
        index.query.return_value = SimpleNamespace(matches=[
            match("sop-2", 0.71, "Check for null"),
            match("sop-1", 0.93, "Always validate input"),
            match("sop-3", 0.42, "Log errors"),
        ])
        return index

    @pytest.fixture
    def client(self, index):
        return VectorIndexClient(api_key="pk-test", index_factory=Mock(return_value=index))

    @pytest.mark.asyncio
    async def test_query_sends_vector_and_top_k(self, client, index):
        await client.query([0.1] * 384, 3)

        index.query.assert_called_once_with(vector=[0.1] * 384, top_k=3, include_metadata=True)

    @pytest.mark.asyncio
    async def test_results_sorted_by_score_descending(self, client):
        matches = await client.query([0.1] * 384, 3)

        assert [m.id for m in matches] == ["sop-1", "sop-2", "sop-3"]
        assert matches[0].metadata == {"text": "Always validate input"}

    @pytest.mark.asyncio
    async def test_results_capped_at_top_k(self, client):
        matches = await client.query([0.1] * 384, 2)
        assert len(matches) == 2

    @pytest.mark.asyncio
    async def test_query_failure_wrapped(self, client, index):
        index.query.side_effect = TimeoutError("read timed out")

        with pytest.raises(TransientServiceError, match="read timed out"):
            await client.query([0.1] * 384, 3)

    def test_parse_matches_accepts_dict_response(self):
        response = {"matches": [
            {"id": "a", "score": 0.5, "metadata": {"text": "A"}},
            {"id": "b", "score": 0.9, "metadata": None},
        ]}

        matches = VectorIndexClient.parse_matches(response, 3)

        assert [m.id for m in matches] == ["b", "a"]
        assert matches[0].metadata == {}

    def test_parse_matches_empty(self):
        assert VectorIndexClient.parse_matches(SimpleNamespace(matches=None), 3) == []


class TestGetIndexClient:
    def test_returns_singleton_without_connecting(self):
        with patch.object(index_client, "_client_instance", None):
            config = PineconeConfig(api_key="pk-test", host="team-sops.svc.x.pinecone.io")
            first = get_index_client(config)
            second = get_index_client()
            assert first is second
            assert first.index_name == "team-sops"
            assert not first.is_ready
