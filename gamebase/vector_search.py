"""Chunk-level vector search helpers: configuration, indexes, schema checks and hit handling."""

from __future__ import annotations

import json
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

FIELD_CHUNK_ID = "chunk_id"
FIELD_POST_ID = "post_id"
FIELD_CHUNK_INDEX = "chunk_index"
FIELD_CHUNK_TEXT = "chunk_text"
FIELD_EMBEDDING = "embedding"
FIELD_SPARSE_EMBEDDING = "sparse_embedding"

BM25_FUNCTION_NAME = "chunk_text_bm25"

DEFAULT_TOP_K = 5
MIN_SEARCH_LIMIT = 10
SEARCH_LIMIT_FACTOR = 4
IVF_NLIST = 1024
IVF_NPROBE = 1024
DEFAULT_HNSW_M = 16
DEFAULT_HNSW_EF_CONSTRUCTION = 200
DEFAULT_SEARCH_EF = 64


class SchemaError(Exception):
    """Raised when an existing collection does not match the hybrid schema."""


class MetricType(str, Enum):
    """Distance metric of the dense index."""

    COSINE = "COSINE"
    IP = "IP"
    L2 = "L2"


class FieldType(Enum):
    """Data types of collection fields."""

    VARCHAR = "VarChar"
    INT64 = "Int64"
    FLOAT_VECTOR = "FloatVector"
    SPARSE_FLOAT_VECTOR = "SparseFloatVector"


REQUIRED_FIELDS: dict[str, FieldType] = {
    FIELD_CHUNK_ID: FieldType.VARCHAR,
    FIELD_POST_ID: FieldType.INT64,
    FIELD_CHUNK_INDEX: FieldType.INT64,
    FIELD_CHUNK_TEXT: FieldType.VARCHAR,
    FIELD_EMBEDDING: FieldType.FLOAT_VECTOR,
    FIELD_SPARSE_EMBEDDING: FieldType.SPARSE_FLOAT_VECTOR,
}


@dataclass
class MilvusConfig:
    """Settings of the vector collection and its indexes."""

    enabled: bool = False
    address: str = ""
    collection: str = ""
    dimension: int = 0
    top_k: int = 0
    index_type: str = ""
    metric_type: str = ""
    hnsw_m: int = 0
    hnsw_ef_construction: int = 0
    search_ef: int = 0


@dataclass(frozen=True)
class IndexSpec:
    """An index (or search parameter) description: type, metric and parameters."""

    index_type: str
    metric: MetricType | None = None
    params: dict[str, int] = field(default_factory=dict)


@dataclass(frozen=True)
class SearchHit:
    """One chunk-level search result."""

    chunk_id: str = ""
    post_id: int = 0
    chunk_index: int = 0
    chunk_text: str = ""
    score: float = 0.0


def validate_config(config: MilvusConfig | None) -> bool:
    """Return False when search is disabled, True when enabled and valid; raise otherwise."""
    if config is None or not config.enabled:
        return False
    if not config.address or not config.collection or config.dimension <= 0:
        raise ValueError("invalid milvus config")
    return True


def build_chunk_id(post_id: int, chunk_index: int) -> str:
    """Build the string primary key of a chunk."""
    return f"{post_id}_{chunk_index}"


def chunk_delete_expr(post_id: int) -> str:
    """Filter expression selecting every chunk of a post."""
    return f"{FIELD_POST_ID} == {post_id}"


def deduplicate_hits_by_post(hits: Iterable[SearchHit], top_k: int) -> list[SearchHit]:
    """Keep the first hit of each post, at most top_k of them when top_k is positive."""
    result: list[SearchHit] = []
    seen: set[int] = set()
    for hit in hits:
        if hit.post_id in seen:
            continue
        seen.add(hit.post_id)
        result.append(hit)
        if top_k > 0 and len(result) >= top_k:
            break
    return result


def parse_metric_type(metric: str) -> MetricType:
    """Map a configured metric name to a metric type; COSINE by default."""
    upper = (metric or "").upper()
    if upper == "IP":
        return MetricType.IP
    if upper == "L2":
        return MetricType.L2
    return MetricType.COSINE


def _positive_or(value: int, default: int) -> int:
    return value if value > 0 else default


def build_dense_index(config: MilvusConfig) -> IndexSpec:
    """Describe the dense vector index: IVF_FLAT when configured, else HNSW."""
    metric = parse_metric_type(config.metric_type)
    if (config.index_type or "").upper() == "IVF_FLAT":
        return IndexSpec("IVF_FLAT", metric, {"nlist": IVF_NLIST})
    return IndexSpec(
        "HNSW",
        metric,
        {
            "M": _positive_or(config.hnsw_m, DEFAULT_HNSW_M),
            "efConstruction": _positive_or(config.hnsw_ef_construction, DEFAULT_HNSW_EF_CONSTRUCTION),
        },
    )


def build_search_param(config: MilvusConfig) -> IndexSpec:
    """Describe the dense search parameters matching the configured index."""
    if (config.index_type or "").upper() == "IVF_FLAT":
        return IndexSpec("IVF_FLAT", None, {"nprobe": IVF_NPROBE})
    return IndexSpec("HNSW", None, {"ef": _positive_or(config.search_ef, DEFAULT_SEARCH_EF)})


def resolve_top_k(top_k: int, config: MilvusConfig | None) -> int:
    """Use top_k, else the configured one, else 5."""
    if top_k <= 0 and config is not None:
        top_k = config.top_k
    return top_k if top_k > 0 else DEFAULT_TOP_K


def search_limit(top_k: int) -> int:
    """Number of chunk candidates to fetch so that several chunks of one post do not fill top_k."""
    return max(top_k * SEARCH_LIMIT_FACTOR, MIN_SEARCH_LIMIT)


def validate_schema(collection: str, fields: Mapping[str, FieldType] | None) -> None:
    """Check that a collection's fields carry the hybrid schema; raise SchemaError if not."""
    if not fields:
        raise SchemaError("milvus collection schema is empty")
    for name, want in REQUIRED_FIELDS.items():
        got = fields.get(name)
        if got is None:
            raise SchemaError(
                f"milvus collection {collection} schema is incompatible with hybrid RAG mode, "
                f"missing field {name}; use a new collection name or rebuild collection"
            )
        if got is not want:
            raise SchemaError(
                f"milvus collection {collection} field {name} type={got.value}, expected={want.value}"
            )


def preview(text: str, max_runes: int) -> str:
    """Trim text and cut it to max_runes characters, marking the cut with '...'."""
    text = text.strip()
    if max_runes <= 0 or len(text) <= max_runes:
        return text
    return text[:max_runes] + "..."


def _quote(text: str) -> str:
    return json.dumps(text, ensure_ascii=False)


def format_hits(label: str, hits: Sequence[SearchHit]) -> str:
    """Render a labelled, numbered listing of hits for diagnostics."""
    lines = [f"{label}: {len(hits)}"]
    lines.extend(
        f"[{number}] chunk_id={hit.chunk_id} post_id={hit.post_id} "
        f"chunk_index={hit.chunk_index} score={hit.score:.6f} text={_quote(preview(hit.chunk_text, 120))}"
        for number, hit in enumerate(hits, start=1)
    )
    return "\n".join(lines)


def _as_dict(hit: SearchHit) -> dict[str, Any]:
    return {
        "chunk_id": hit.chunk_id,
        "post_id": hit.post_id,
        "chunk_index": hit.chunk_index,
        "chunk_text": hit.chunk_text,
        "score": hit.score,
    }