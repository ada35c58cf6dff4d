"""Versioned namespace keys and vector ids for stored embeddings.

A namespace scopes stored vectors by provider, model, schema version and
embedding dimension::

    {provider}:{model}:v{schema}:{dimension}

Provider and model segments are escaped (``%`` -> ``%25``, then ``:`` -> ``%3A``)
so they round-trip through ``parse_namespace``. Namespaces written before
escaping existed may carry raw colons inside the model; those are recovered by
a right-anchored fallback parse.
"""

import re
from dataclasses import dataclass
from typing import Optional, Tuple

from core.types import ChunkIndex, FilePath, Namespace, VectorId

EMBEDDING_SCHEMA_VERSION = 2
DEFAULT_EMBEDDING_DIMENSION = 1536

FIRST_PARTY_PROVIDER_ID = "systemsculpt"
CANONICAL_FIRST_PARTY_MODEL = "openrouter/openai/text-embedding-3-small"

# Alternate spellings of the first-party model that must not trigger a re-embed.
_FIRST_PARTY_MODEL_ALIASES = {
    "openrouter/openai/text-embedding-3-small": CANONICAL_FIRST_PARTY_MODEL,
    "openai/text-embedding-3-small": CANONICAL_FIRST_PARTY_MODEL,
    "text-embedding-3-small": CANONICAL_FIRST_PARTY_MODEL,
}

_SCHEMA_SEGMENT_RE = re.compile(r"^v(\d+)$")
_DIMENSION_RE = re.compile(r"^\d+$")
_LEGACY_NAMESPACE_RE = re.compile(r"^(?P<provider>[^:]*):(?P<model>.+):v(?P<schema>\d+)(?::(?P<dimension>[^:]*))?$")
_UNESCAPE_RE = re.compile(r"%(25|3[Aa])")

VECTOR_ID_SEPARATOR = "::"
CHUNK_SEPARATOR = "#"


@dataclass(frozen=True)
class ParsedNamespace:
    """Decoded namespace components.

    Attributes:
        provider: Provider id (unescaped)
        model: Model id (unescaped)
        schema: Schema version (>= 0)
        dimension: Positive dimension, or None when missing/invalid
    """

    provider: str
    model: str
    schema: int
    dimension: Optional[int] = None


def _escape_segment(value: str) -> str:
    return value.replace("%", "%25").replace(":", "%3A")


def _unescape_segment(value: str) -> str:
    return _UNESCAPE_RE.sub(lambda m: "%" if m.group(1) == "25" else ":", value)


def _parse_dimension(raw: Optional[str]) -> Optional[int]:
    if raw is None or not _DIMENSION_RE.match(raw):
        return None
    value = int(raw)
    return value if value > 0 else None


def normalize_model_for_namespace(provider_id: str, model: str) -> str:
    """Map alternate spellings of the first-party model to one canonical id.

    Only the first-party provider is normalized; every other provider's model
    is returned unchanged.
    """
    if provider_id != FIRST_PARTY_PROVIDER_ID or not model:
        return model

    key = model.strip().lower()
    return _FIRST_PARTY_MODEL_ALIASES.get(key, model)


def build_namespace(
    provider_id: str,
    model: str,
    dimension: Optional[int],
    schema_version: int = EMBEDDING_SCHEMA_VERSION,
) -> Namespace:
    """Encode a namespace string.

    Args:
        provider_id: Provider id
        model: Model id (alias-normalized before escaping)
        dimension: Embedding dimension (non-positive or None encodes as 0)
        schema_version: Schema version (negative encodes as 0)

    Returns:
        ``{provider}:{model}:v{schema}:{dimension}``
    """
    normalized_model = normalize_model_for_namespace(provider_id, model)
    schema = schema_version if isinstance(schema_version, int) and schema_version >= 0 else 0
    dim = dimension if isinstance(dimension, int) and dimension > 0 else 0
    return Namespace(f"{_escape_segment(provider_id)}:{_escape_segment(normalized_model)}:v{schema}:{dim}")


def parse_namespace(namespace: Optional[str]) -> Optional[ParsedNamespace]:
    """Decode a namespace string; None when it cannot be parsed.

    Tries the escaped fast path first, then the legacy right-anchored pattern
    for namespaces whose model contains raw colons.
    """
    if not namespace or not isinstance(namespace, str):
        return None

    parts = namespace.split(":")
    if len(parts) in (3, 4):
        schema_match = _SCHEMA_SEGMENT_RE.match(parts[2])
        if schema_match:
            return ParsedNamespace(
                provider=_unescape_segment(parts[0]),
                model=_unescape_segment(parts[1]),
                schema=int(schema_match.group(1)),
                dimension=_parse_dimension(parts[3]) if len(parts) == 4 else None,
            )

    legacy = _LEGACY_NAMESPACE_RE.match(namespace)
    if not legacy:
        return None

    return ParsedNamespace(
        provider=_unescape_segment(legacy.group("provider")),
        model=_unescape_segment(legacy.group("model")),
        schema=int(legacy.group("schema")),
        dimension=_parse_dimension(legacy.group("dimension")),
    )


def parse_namespace_dimension(namespace: Optional[str]) -> Optional[int]:
    """Return the dimension encoded in ``namespace``, or None."""
    parsed = parse_namespace(namespace)
    return parsed.dimension if parsed else None


def build_namespace_prefix(
    provider_id: str,
    model: str,
    schema_version: int = EMBEDDING_SCHEMA_VERSION,
) -> str:
    """Prefix shared by every dimension of ``provider:model:v{schema}:``."""
    normalized_model = normalize_model_for_namespace(provider_id, model)
    schema = schema_version if schema_version >= 0 else 0
    return f"{_escape_segment(provider_id)}:{_escape_segment(normalized_model)}:v{schema}:"


def namespace_matches_current_version(
    namespace: Optional[str],
    provider_id: str,
    model: str,
    expected_dimension: Optional[int] = None,
) -> bool:
    """Check whether a stored namespace belongs to the current provider/model/schema.

    Args:
        namespace: Stored namespace
        provider_id: Currently configured provider
        model: Currently configured model
        expected_dimension: When given, the encoded dimension must equal it

    Returns:
        True if the namespace is current
    """
    if not namespace:
        return False

    if namespace.startswith(build_namespace_prefix(provider_id, model)):
        if not expected_dimension:
            return True
        return parse_namespace_dimension(namespace) == expected_dimension

    # Legacy namespaces with raw colons in the model never share the escaped prefix.
    parsed = parse_namespace(namespace)
    if parsed is None or parsed.schema != EMBEDDING_SCHEMA_VERSION:
        return False
    if parsed.provider != provider_id:
        return False
    if normalize_model_for_namespace(parsed.provider, parsed.model) != normalize_model_for_namespace(provider_id, model):
        return False
    if expected_dimension:
        return parsed.dimension == expected_dimension
    return True


def is_stale_namespace(
    namespace: Optional[str],
    provider_id: str,
    model: str,
    expected_dimension: Optional[int] = None,
) -> bool:
    """Vectors under a stale namespace must eventually be replaced."""
    return not namespace_matches_current_version(namespace, provider_id, model, expected_dimension)


def build_vector_id(namespace: str, path: str, chunk_index: int) -> VectorId:
    """Deterministic vector id: ``{namespace}::{path}#{chunk_index}``."""
    return VectorId(f"{namespace}{VECTOR_ID_SEPARATOR}{path}{CHUNK_SEPARATOR}{chunk_index}")


def build_vector_id_prefix(namespace: str, path: str) -> str:
    """Prefix shared by every chunk id of ``path`` within ``namespace``."""
    return f"{namespace}{VECTOR_ID_SEPARATOR}{path}{CHUNK_SEPARATOR}"


def parse_vector_id(vector_id: str) -> Optional[Tuple[Namespace, FilePath, ChunkIndex]]:
    """Split a vector id into ``(namespace, path, chunk_index)``; None if malformed."""
    namespace, separator, remainder = vector_id.partition(VECTOR_ID_SEPARATOR)
    if not separator:
        return None

    path, separator, index = remainder.rpartition(CHUNK_SEPARATOR)
    if not separator or not path or not _DIMENSION_RE.match(index):
        return None

    return Namespace(namespace), FilePath(path), ChunkIndex(int(index))
