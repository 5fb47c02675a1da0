"""Tests for the LiteLLM client wrapper."""

from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest

from marble.errors import ProviderError
from marble.rag.llm_client import (
    complete,
    embed,
    embed_query,
    normalize_embeddings,
    validate_api_key,
)


# ------------------------------------------------------------------
# validate_api_key
# ------------------------------------------------------------------


def test_validate_api_key_raises_if_missing(monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    with pytest.raises(EnvironmentError, match="OPENAI_API_KEY"):
        validate_api_key("openai/gpt-4.1-mini")


def test_validate_api_key_bare_model_is_openai(monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    with pytest.raises(EnvironmentError, match="OPENAI_API_KEY"):
        validate_api_key("text-embedding-3-small")


def test_validate_api_key_passes_if_set(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test-key")
    validate_api_key("gpt-4.1-mini")


def test_validate_api_key_unknown_provider_uses_provider_env(monkeypatch):
    monkeypatch.delenv("TOGETHER_API_KEY", raising=False)
    with pytest.raises(EnvironmentError, match="TOGETHER_API_KEY"):
        validate_api_key("together/some-model")


def test_validate_api_key_ollama_no_key_required():
    validate_api_key("ollama/nomic-embed-text")


# ------------------------------------------------------------------
# normalize_embeddings
# ------------------------------------------------------------------


def test_normalize_data_items_dicts():
    raw = {"data": [{"embedding": [0.1, 0.2]}, {"embedding": [0.3, 0.4]}]}
    assert normalize_embeddings(raw) == [[0.1, 0.2], [0.3, 0.4]]


def test_normalize_data_items_objects():
    raw = SimpleNamespace(data=[SimpleNamespace(embedding=[1.0, 2.0])])
    assert normalize_embeddings(raw) == [[1.0, 2.0]]


def test_normalize_list_of_lists():
    assert normalize_embeddings([[1, 2], [3, 4]]) == [[1, 2], [3, 4]]


def test_normalize_flat_list_is_single_vector():
    assert normalize_embeddings([0.5, 0.25]) == [[0.5, 0.25]]


def test_normalize_vectors_field():
    assert normalize_embeddings({"vectors": [[1.0], [2.0]]}) == [[1.0], [2.0]]


def test_normalize_empty_data_is_no_vectors():
    assert normalize_embeddings({"data": []}) == []


@pytest.mark.parametrize("raw", [None, "nope", {"foo": 1}, [["a", "b"]], {"data": [{"x": 1}]}])
def test_normalize_unknown_shape_raises(raw):
    with pytest.raises(ProviderError, match="known format"):
        normalize_embeddings(raw)


def test_normalize_rejects_boolean_values():
    with pytest.raises(ProviderError):
        normalize_embeddings([[True, False]])


# ------------------------------------------------------------------
# embed / embed_query
# ------------------------------------------------------------------


def test_embed_empty_input_skips_call():
    with patch("marble.rag.llm_client.litellm.embedding") as mock_embed:
        assert embed("text-embedding-3-small", []) == []
    mock_embed.assert_not_called()


def test_embed_batches_all_texts_in_one_call():
    response = {"data": [{"embedding": [0.1]}, {"embedding": [0.2]}]}
    with patch("marble.rag.llm_client.litellm.embedding", return_value=response) as mock_embed:
        vectors = embed("text-embedding-3-small", ["a", "b"], timeout=5.0)

    assert vectors == [[0.1], [0.2]]
    mock_embed.assert_called_once()
    kwargs = mock_embed.call_args.kwargs
    assert kwargs["input"] == ["a", "b"]
    assert kwargs["model"] == "text-embedding-3-small"
    assert kwargs["timeout"] == 5.0


def test_embed_wraps_provider_failure():
    with patch(
        "marble.rag.llm_client.litellm.embedding", side_effect=TimeoutError("timed out")
    ):
        with pytest.raises(ProviderError, match="Embedding request failed"):
            embed("text-embedding-3-small", ["a"])


def test_embed_zero_vectors_raises():
    with patch("marble.rag.llm_client.litellm.embedding", return_value={"data": []}):
        with pytest.raises(ProviderError, match="no vectors"):
            embed("text-embedding-3-small", ["a"])


def test_embed_query_returns_single_vector():
    with patch("marble.rag.llm_client.litellm.embedding", return_value=[[0.1, 0.9]]):
        assert embed_query("text-embedding-3-small", "q") == [0.1, 0.9]


# ------------------------------------------------------------------
# complete()
# ------------------------------------------------------------------


def test_complete_returns_first_message():
    mock_response = MagicMock()
    mock_response.choices[0].message.content = '{"answer": "hi", "citations": []}'

    with patch("marble.rag.llm_client.litellm.completion", return_value=mock_response):
        message = complete("gpt-4.1-mini", [{"role": "user", "content": "Hi"}])

    assert message.content == '{"answer": "hi", "citations": []}'


def test_complete_passes_params_to_litellm():
    mock_response = MagicMock()
    fmt = {"type": "json_schema", "json_schema": {"name": "x", "schema": {}}}

    with patch(
        "marble.rag.llm_client.litellm.completion", return_value=mock_response
    ) as mock_complete:
        complete(
            "gpt-4.1-mini",
            [{"role": "user", "content": "Q"}],
            response_format=fmt,
            max_tokens=50,
            timeout=12.0,
        )

    kwargs = mock_complete.call_args.kwargs
    assert kwargs["model"] == "gpt-4.1-mini"
    assert kwargs["max_tokens"] == 50
    assert kwargs["timeout"] == 12.0
    assert kwargs["response_format"] == fmt
    assert kwargs["num_retries"] == 3


def test_complete_omits_response_format_when_none():
    with patch(
        "marble.rag.llm_client.litellm.completion", return_value=MagicMock()
    ) as mock_complete:
        complete("gpt-4.1-mini", [])
    assert "response_format" not in mock_complete.call_args.kwargs


def test_complete_wraps_provider_failure():
    with patch("marble.rag.llm_client.litellm.completion", side_effect=RuntimeError("503")):
        with pytest.raises(ProviderError, match="Chat request failed"):
            complete("gpt-4.1-mini", [])


def test_complete_no_choices_raises():
    with patch(
        "marble.rag.llm_client.litellm.completion", return_value=SimpleNamespace(choices=[])
    ):
        with pytest.raises(ProviderError, match="no choices"):
            complete("gpt-4.1-mini", [])
