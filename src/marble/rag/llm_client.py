"""LiteLLM client wrapper: embeddings, chat completions, API key validation.

All embedding and LLM calls in the ingest/chat pipeline route through this
module. LiteLLM's built-in retry is used (``num_retries``) and every call
carries a request-level ``timeout``; any upstream failure, timeouts included,
is raised as ProviderError.

Embedding responses are normalized by an ordered list of extraction
strategies (see ``normalize_embeddings``) because the same logical call is
reached through wrappers that shape the payload differently.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Callable, Mapping
from typing import Any

import litellm

from marble.errors import ProviderError

# Disable LiteLLM verbose logging unless explicitly enabled
litellm.suppress_debug_info = True
litellm.set_verbose = False  # type: ignore[assignment]

logger = logging.getLogger(__name__)


# ------------------------------------------------------------------
# Provider → env var mapping for API key validation
# ------------------------------------------------------------------

_PROVIDER_ENV: dict[str, str | None] = {
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
    "azure": "AZURE_API_KEY",
    "cohere": "COHERE_API_KEY",
    "gemini": "GEMINI_API_KEY",
    "mistral": "MISTRAL_API_KEY",
    "groq": "GROQ_API_KEY",
    "ollama": None,  # Local, no key required
    "ollama_chat": None,
}


def validate_api_key(model: str) -> None:
    """Check that the required API key env var is set for *model*.

    Args:
        model: LiteLLM model string; bare names (no 'provider/') are OpenAI.

    Raises:
        EnvironmentError: If the required key is missing from environment.
    """
    provider = model.split("/")[0].lower() if "/" in model else "openai"
    env_var = _PROVIDER_ENV.get(provider, f"{provider.upper()}_API_KEY")

    if env_var is None:
        return  # No key required (e.g. ollama)

    if not os.getenv(env_var):
        raise EnvironmentError(
            f"API key not found for provider '{provider}'. "
            f"Set the {env_var} environment variable."
        )


# ------------------------------------------------------------------
# Embedding response normalization
# ------------------------------------------------------------------

Vectors = list[list[float]]


def _field(obj: Any, name: str) -> Any:
    if isinstance(obj, Mapping):
        return obj.get(name)
    return getattr(obj, name, None)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _is_vector(value: Any) -> bool:
    return isinstance(value, (list, tuple)) and all(_is_number(x) for x in value)


def _from_data_items(raw: Any) -> Vectors | None:
    """``{"data": [{"embedding": [...]}, ...]}``: OpenAI / LiteLLM shape."""
    data = _field(raw, "data")
    if not isinstance(data, list):
        return None
    vectors = [_field(item, "embedding") for item in data]
    if not all(_is_vector(v) for v in vectors):
        return None
    return [list(v) for v in vectors]


def _from_list_of_lists(raw: Any) -> Vectors | None:
    """``[[...], [...]]``: already one vector per input."""
    if not isinstance(raw, list) or not all(isinstance(v, (list, tuple)) for v in raw):
        return None
    if not all(_is_vector(v) for v in raw):
        return None
    return [list(v) for v in raw]


def _from_flat_list(raw: Any) -> Vectors | None:
    """``[0.1, 0.2, ...]``: a single bare vector."""
    if isinstance(raw, list) and raw and _is_vector(raw):
        return [list(raw)]
    return None


def _from_vectors_field(raw: Any) -> Vectors | None:
    """``{"vectors": [[...], ...]}``: wrapper shape."""
    vectors = _field(raw, "vectors")
    if not isinstance(vectors, list):
        return None
    return _from_list_of_lists(vectors)


# Tried in order; the first strategy that returns a value wins.
EMBEDDING_STRATEGIES: list[tuple[str, Callable[[Any], Vectors | None]]] = [
    ("data_items", _from_data_items),
    ("list_of_lists", _from_list_of_lists),
    ("flat_list", _from_flat_list),
    ("vectors_field", _from_vectors_field),
]


def normalize_embeddings(raw: Any) -> Vectors:
    """Return one vector per input from any known provider response shape.

    Raises:
        ProviderError: If no strategy recognises *raw*.
    """
    for name, strategy in EMBEDDING_STRATEGIES:
        vectors = strategy(raw)
        if vectors is not None:
            logger.debug("Embedding response matched strategy %r (%d vectors)", name, len(vectors))
            return vectors
    raise ProviderError("Embedding response not in a known format")


# ------------------------------------------------------------------
# Calls
# ------------------------------------------------------------------


def embed(
    model: str,
    texts: list[str],
    *,
    timeout: float | None = None,
    num_retries: int = 3,
) -> Vectors:
    """Embed *texts* in one batched call. Returns vectors in input order.

    Raises:
        ProviderError: If the call fails or yields no vectors.
    """
    if not texts:
        return []
    try:
        response = litellm.embedding(
            model=model,
            input=list(texts),
            timeout=timeout,
            num_retries=num_retries,
        )
    except Exception as exc:
        raise ProviderError(f"Embedding request failed: {exc}") from exc

    vectors = normalize_embeddings(response)
    if not vectors:
        raise ProviderError("Embedding provider returned no vectors")
    return vectors


def embed_query(
    model: str,
    text: str,
    *,
    timeout: float | None = None,
    num_retries: int = 3,
) -> list[float]:
    """Embed a single query string and return its vector."""
    return embed(model, [text], timeout=timeout, num_retries=num_retries)[0]


def complete(
    model: str,
    messages: list[dict],
    *,
    response_format: dict | None = None,
    max_tokens: int = 1024,
    temperature: float = 0.0,
    timeout: float | None = None,
    num_retries: int = 3,
) -> Any:
    """Call litellm.completion() and return the first choice's message.

    The message is returned unparsed; its content may be a string, a list of
    content blocks, or (for some providers) an already-parsed object.

    Raises:
        ProviderError: On API failure after retries, or an empty choice list.
    """
    kwargs: dict[str, Any] = {
        "model": model,
        "messages": messages,
        "max_tokens": max_tokens,
        "temperature": temperature,
        "timeout": timeout,
        "num_retries": num_retries,
    }
    if response_format is not None:
        kwargs["response_format"] = response_format
    try:
        response = litellm.completion(**kwargs)
    except Exception as exc:
        raise ProviderError(f"Chat request failed: {exc}") from exc

    choices = _field(response, "choices")
    if not choices:
        raise ProviderError("Chat response contained no choices")
    return choices[0].message
