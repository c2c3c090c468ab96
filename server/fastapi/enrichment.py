"""
Response Enrichment

Turns Gemini's Google Maps grounding metadata into a flat list of source
URIs and appends them to a reply as markdown links.
"""

import logging
from typing import Any, Sequence

from pydantic import BaseModel, ConfigDict, ValidationError
from pydantic.alias_generators import to_camel

from models import GroundingSource

logger = logging.getLogger(__name__)

STATUS_SOURCES_HEADER = "**More Info:**"
STATUS_LINK_LABEL = "View on Google Maps"
SUMMARY_SOURCES_HEADER = "**Sources from Google Maps:**"
SUMMARY_LINK_LABEL = "View related area"


# --- Grounding metadata shape ---
# Every level is optional. Keys arrive in snake_case from the Python SDK and in
# camelCase from raw REST payloads, so both are accepted.


class _GroundingNode(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class ReviewSnippet(_GroundingNode):
    uri: str | None = None
    google_maps_uri: str | None = None


# Nested levels stay untyped here and are validated one at a time, so a
# malformed snippet never discards the chunk's own uri.
class PlaceAnswerSources(_GroundingNode):
    review_snippets: list[Any] | None = None


class MapsChunk(_GroundingNode):
    uri: str | None = None
    place_answer_sources: Any = None


class GroundingChunk(_GroundingNode):
    maps: MapsChunk | None = None


def _as_dict(value: Any) -> dict | None:
    if value is None:
        return None
    if hasattr(value, "model_dump"):
        value = value.model_dump(exclude_none=True)
    return value if isinstance(value, dict) else None


def _review_snippet_uris(raw_sources: Any):
    data = _as_dict(raw_sources)
    if data is None:
        return
    try:
        place_sources = PlaceAnswerSources.model_validate(data)
    except ValidationError:
        return

    for raw_snippet in place_sources.review_snippets or []:
        snippet_data = _as_dict(raw_snippet)
        if snippet_data is None:
            continue
        try:
            snippet = ReviewSnippet.model_validate(snippet_data)
        except ValidationError:
            continue
        uri = snippet.uri or snippet.google_maps_uri
        if uri:
            yield uri


def _chunk_uris(chunk: GroundingChunk, include_place_sources: bool):
    if chunk.maps is None:
        return
    if chunk.maps.uri:
        yield chunk.maps.uri
    if include_place_sources:
        yield from _review_snippet_uris(chunk.maps.place_answer_sources)


def grounding_sources(metadata: Any, include_place_sources: bool = False) -> list[GroundingSource]:
    """Extract Maps source URIs from grounding metadata.

    Chunks that are missing or do not match the expected shape contribute nothing.
    """
    data = _as_dict(metadata)
    if not data:
        return []

    raw_chunks = data.get("grounding_chunks", data.get("groundingChunks"))
    if not isinstance(raw_chunks, list):
        return []

    sources = []
    for raw_chunk in raw_chunks:
        raw_chunk = _as_dict(raw_chunk)
        if raw_chunk is None:
            continue
        try:
            chunk = GroundingChunk.model_validate(raw_chunk)
        except ValidationError:
            logger.debug("Skipping malformed grounding chunk", extra={"chunk": str(raw_chunk)[:200]})
            continue
        sources.extend(GroundingSource(uri=uri) for uri in _chunk_uris(chunk, include_place_sources))
    return sources


def enrich(
    raw_text: str,
    sources: Sequence[GroundingSource],
    gate: bool,
    *,
    header: str = STATUS_SOURCES_HEADER,
    label: str = STATUS_LINK_LABEL,
) -> str:
    """Append one markdown link per unique source URI when `gate` holds."""
    uris = list(dict.fromkeys(source.uri for source in sources))
    if not uris or not gate:
        return raw_text

    lines = [f"\n\n{header}\n"]
    for uri in uris:
        lines.append(f"- [{label}]({uri})\n")
    return raw_text + "".join(lines)
