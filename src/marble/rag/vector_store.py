"""Vector store adapter over two incompatible index API generations.

Generation A (NAMESPACED) takes an explicit namespace on every call:
    upsert(namespace, vectors) / query(namespace, vector, top_k) / delete(namespace, ids)

Generation B (FILTERED) has one global space; isolation is carried by
``visibility`` / ``owner_id`` metadata and a filter at query time:
    upsert(vectors) / query(vector, top_k, filter=None) / remove(ids) / describe()

The generation is resolved once, when the VectorStore is built, and reused
for every call.

Namespaces: ``"public"`` for shared files, ``"user:{owner_id}"`` for private.

VectorMetadata is a materialized copy of chunk/file/folder fields, written at
ingestion time so citations render without a join.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import asdict, dataclass
from typing import Any

from marble.db.models import Visibility

logger = logging.getLogger(__name__)

PUBLIC_NAMESPACE = "public"
PRIVATE_PREFIX = "user:"

# Multiplier on top_k for the unfiltered legacy retry.
LEGACY_OVERFETCH = 10


class IndexGeneration(enum.Enum):
    NAMESPACED = "namespaced"  # generation A
    FILTERED = "filtered"      # generation B


@dataclass
class VectorMetadata:
    chunk_id: str
    file_id: str
    folder_id: str
    folder_name: str
    file_name: str
    start_line: int
    end_line: int
    visibility: Visibility
    owner_id: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class VectorMatch(VectorMetadata):
    score: float = 0.0


# ------------------------------------------------------------------
# Namespaces
# ------------------------------------------------------------------


def private_namespace(owner_id: str) -> str:
    """Return the private namespace of *owner_id*.

    The ``user:`` prefix keeps every private namespace distinct from
    ``public`` whatever the owner id is.
    """
    if not owner_id:
        raise ValueError("owner_id must be non-empty")
    return f"{PRIVATE_PREFIX}{owner_id}"


def namespace_for(visibility: Visibility, owner_id: str) -> str:
    return PUBLIC_NAMESPACE if visibility == "public" else private_namespace(owner_id)


def filter_for_namespace(namespace: str) -> dict[str, str]:
    """Translate a namespace into a generation-B metadata filter."""
    if namespace == PUBLIC_NAMESPACE:
        return {"visibility": "public"}
    if namespace.startswith(PRIVATE_PREFIX):
        return {"visibility": "private", "owner_id": namespace[len(PRIVATE_PREFIX):]}
    return {}


# ------------------------------------------------------------------
# Generation resolution
# ------------------------------------------------------------------


def detect_generation(index: Any) -> IndexGeneration:
    """Probe *index* once: bulk ``remove`` or ``describe`` means generation B."""
    if callable(getattr(index, "remove", None)) or callable(getattr(index, "describe", None)):
        return IndexGeneration.FILTERED
    return IndexGeneration.NAMESPACED


def resolve_generation(index: Any, configured: str = "auto") -> IndexGeneration:
    """Return the configured generation, or probe *index* when 'auto'."""
    if configured == "auto":
        return detect_generation(index)
    return IndexGeneration(configured)


# ------------------------------------------------------------------
# Adapter
# ------------------------------------------------------------------


class VectorStore:
    """Generation-agnostic upsert / query / delete over a bound index.

    Args:
        index: A generation A or generation B index object.
        generation: Explicit generation; probed from *index* when None.
    """

    def __init__(self, index: Any, generation: IndexGeneration | None = None) -> None:
        self._index = index
        self.generation = generation or detect_generation(index)
        logger.debug("Vector store bound to %s index", self.generation.value)

    def upsert(self, chunk_id: str, vector: list[float], metadata: VectorMetadata) -> None:
        """Store *vector* under *chunk_id* with its citation metadata."""
        item = {"id": chunk_id, "values": vector, "metadata": metadata.to_dict()}
        if self.generation is IndexGeneration.FILTERED:
            self._index.upsert([item])
        else:
            namespace = namespace_for(metadata.visibility, metadata.owner_id)
            self._index.upsert(namespace, [item])

    def query(self, namespace: str, vector: list[float], top_k: int) -> list[VectorMatch]:
        """Return up to *top_k* matches visible in *namespace*, best first."""
        if self.generation is IndexGeneration.NAMESPACED:
            raw = self._index.query(namespace, vector, top_k)
            return self._build_matches(raw, namespace)

        flt = filter_for_namespace(namespace)
        matches = self._build_matches(self._index.query(vector, top_k, filter=flt), namespace)
        if matches or not flt:
            return matches

        # Vectors written before metadata existed cannot match the filter.
        # Retry once unfiltered, over-fetching so tagged vectors that score
        # higher do not crowd the legacy ones out, then keep only legacy.
        logger.info("Filtered query for %r returned nothing; retrying without filter", namespace)
        raw = self._index.query(vector, top_k * LEGACY_OVERFETCH, filter=None)
        legacy = [r for r in raw or [] if _is_legacy(r)]
        return self._build_matches(legacy[:top_k], namespace)

    def delete_by_ids(self, ids: list[str], visibility: Visibility, owner_id: str) -> None:
        """Delete *ids*; generation B ignores *visibility* / *owner_id*."""
        if not ids:
            return
        if self.generation is IndexGeneration.FILTERED:
            self._index.remove(ids)
        else:
            self._index.delete(namespace_for(visibility, owner_id), ids)

    def _build_matches(self, raw_matches: list[Any], namespace: str) -> list[VectorMatch]:
        matches = []
        for raw in raw_matches or []:
            match = _build_match(raw, namespace)
            if match is not None:
                matches.append(match)
        return matches


def _get(obj: Any, name: str) -> Any:
    if isinstance(obj, dict):
        return obj.get(name)
    return getattr(obj, name, None)


def _is_legacy(raw: Any) -> bool:
    metadata = _get(raw, "metadata") or {}
    return not metadata.get("visibility") and not metadata.get("owner_id")


def _build_match(raw: Any, namespace: str) -> VectorMatch | None:
    """Convert one raw index match; None (logged) if it has no chunk id."""
    if not raw:
        return None
    metadata = _get(raw, "metadata") or {}
    chunk_id = metadata.get("chunk_id") or _get(raw, "chunk_id") or _get(raw, "id")
    if not chunk_id:
        logger.warning("Vector match missing chunk id in namespace %r: %r", namespace, raw)
        return None

    visibility = metadata.get("visibility") or (
        "public" if namespace == PUBLIC_NAMESPACE else "private"
    )
    owner_id = metadata.get("owner_id") or (
        namespace[len(PRIVATE_PREFIX):]
        if visibility == "private" and namespace.startswith(PRIVATE_PREFIX)
        else ""
    )
    return VectorMatch(
        chunk_id=str(chunk_id),
        file_id=metadata.get("file_id", ""),
        folder_id=metadata.get("folder_id", ""),
        folder_name=metadata.get("folder_name", ""),
        file_name=metadata.get("file_name", ""),
        start_line=int(metadata.get("start_line", 0)),
        end_line=int(metadata.get("end_line", 0)),
        visibility=visibility,
        owner_id=owner_id,
        score=float(_get(raw, "score") or 0.0),
    )
