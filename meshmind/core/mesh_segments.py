"""Mesh Segments — lenient, self-healing decoder for the multiplexed agent stream.

Invariants:
    - decode_segments is pure: same buffer in, same segments out, no state kept
    - Never raises — malformed markers are skipped, never reported
    - Exactly one segment per agent index; a later occurrence replaces an earlier one
    - Scanning is strictly forward: O(len(buffer)) per call
    - Unterminated segment = agent still streaming: content runs to buffer end
    - Output sorted by agent index

Design Decisions:
    - Whole-buffer rescans over an incremental parser: callers pass the full text
      received so far, so no parser state has to survive between chunks
    - index/agentIndex both accepted on decode; the encoder only writes index
    - Legacy "--- Agent N (provider model):" headers parsed only when no marker
      segment is present
"""

import json
import math
import re
from typing import Any

from meshmind.core.mesh_markers import (
    START_PREFIX, START_SUFFIX, end_marker,
    sanitize_content, strip_completion_banners,
)
from meshmind.core.mesh_types import MeshAgentSegment


UNKNOWN_PROVIDER = "unknown"

LEGACY_HEADER_TOKEN = "--- Agent "
LEGACY_HEADER_PATTERN = re.compile(r"--- Agent (\d+) \(([^)]+)\):\s*")


# === Public API ===============================================================

def decode_segments(buffer: str) -> list[MeshAgentSegment]:
    """Demultiplex every agent segment visible in the buffer so far."""
    if not buffer:
        return []

    found = _scan_marker_segments(buffer)
    if not found and LEGACY_HEADER_TOKEN in buffer:
        found = _scan_legacy_segments(buffer)
    return [found[index] for index in sorted(found)]


# === Marker format ============================================================

def _scan_marker_segments(text: str) -> dict[int, MeshAgentSegment]:
    found: dict[int, MeshAgentSegment] = {}
    cursor = 0
    length = len(text)

    while cursor < length:
        start = text.find(START_PREFIX, cursor)
        if start == -1:
            break

        meta_start = start + len(START_PREFIX)
        meta_end = text.find(START_SUFFIX, meta_start)
        if meta_end == -1:
            break  # start marker still arriving
        content_start = meta_end + len(START_SUFFIX)

        metadata = _parse_metadata(text[meta_start:meta_end])
        index = _agent_index(metadata) if metadata is not None else None
        if index is None:
            cursor = content_start
            continue

        marker = end_marker(index)
        end = text.find(marker, content_start)
        content_end = end if end != -1 else length

        found[index] = MeshAgentSegment(
            agent_index=index,
            provider=_provider(metadata),
            model_id=_model_id(metadata),
            content=sanitize_content(text[content_start:content_end]),
        )
        cursor = end + len(marker) if end != -1 else content_end

    return found


def _parse_metadata(raw: str) -> dict | None:
    try:
        parsed = json.loads(raw)
    except (ValueError, RecursionError):
        return None
    return parsed if isinstance(parsed, dict) else None


def _agent_index(metadata: dict) -> int | None:
    """Positive integral index from `index` (or `agentIndex`), else None."""
    raw = metadata.get("index")
    if raw is None:
        raw = metadata.get("agentIndex")
    value = _as_number(raw)
    if isinstance(value, int):
        return value if value > 0 else None
    if value is None or not math.isfinite(value) or value <= 0:
        return None
    if not value.is_integer():
        return None
    return int(value)


def _as_number(raw: Any) -> float | None:
    if isinstance(raw, bool):
        return None
    if isinstance(raw, (int, float)):
        return raw
    if isinstance(raw, str):
        try:
            return float(raw.strip())
        except ValueError:
            return None
    return None


def _provider(metadata: dict) -> str:
    value = metadata.get("provider")
    if value is None:
        return UNKNOWN_PROVIDER
    return value if isinstance(value, str) else str(value)


def _model_id(metadata: dict) -> str | None:
    value = metadata.get("modelId")
    if value is None:
        return None
    return value if isinstance(value, str) else str(value)


# === Legacy header format =====================================================

def _scan_legacy_segments(text: str) -> dict[int, MeshAgentSegment]:
    parts = LEGACY_HEADER_PATTERN.split(text)
    found: dict[int, MeshAgentSegment] = {}

    # split() with two groups yields [preamble, index, label, content, ...]
    for i in range(1, len(parts) - 2, 3):
        index = int(parts[i])
        if index <= 0:
            continue
        provider, model_id = _parse_provider_label(parts[i + 1])
        found[index] = MeshAgentSegment(
            agent_index=index,
            provider=provider,
            model_id=model_id,
            content=strip_completion_banners(parts[i + 2]),
        )
    return found


def _parse_provider_label(label: str) -> tuple[str, str | None]:
    words = label.split()
    if not words:
        return UNKNOWN_PROVIDER, None
    model_id = " ".join(words[1:]) or None
    return words[0], model_id
