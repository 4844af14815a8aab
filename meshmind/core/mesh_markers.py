"""Mesh Markers — in-band wire grammar for multiplexing agent output on one stream.

Invariants:
    - Segment shape: [[mesh-agent:<json>]]<content>[[mesh-agent-end:<index>]]
    - Start metadata is compact JSON with keys index, provider, modelId
    - End marker index is the decimal form of the same agent's index
    - Every marker is followed by a newline; decoders trim it with the content
    - Pure functions only (no IO)

Design Decisions:
    - Plain-text markers over length-prefixed framing: content length is unknown
      until the upstream model finishes, and the stream stays readable as text
    - Compact separators match JSON.stringify output byte-for-byte; "]" inside
      values is written as a JSON unicode escape so "]]" only ever closes the marker
"""

import json
import re

from meshmind.core.mesh_types import AgentStreamMetadata


START_PREFIX = "[[mesh-agent:"
START_SUFFIX = "]]"
END_PREFIX = "[[mesh-agent-end:"
END_SUFFIX = "]]"

# Stray markers inside extracted content (model echoing the protocol, nesting)
NESTED_START_PATTERN = re.compile(r"\[\[mesh-agent:[^\]]*\]\]")
NESTED_END_PATTERN = re.compile(r"\[\[mesh-agent-end:\d+\]\]")

# Banners written by the plain-text format that preceded the markers
COMPLETION_PATTERN = re.compile(
    r"--- (?:All agents completed|Completed with errors)\.", re.IGNORECASE,
)

ERROR_CONTENT_PREFIX = "Error: "


def encode_metadata(metadata: AgentStreamMetadata) -> str:
    """Compact JSON with every "]" escaped, so a value can never close the marker."""
    encoded = json.dumps(
        metadata.to_wire(), ensure_ascii=False, separators=(",", ":"),
    )
    # No arrays in the object: every "]" sits inside a string value
    return encoded.replace("]", "\\u005d")


def encode_agent_start(metadata: AgentStreamMetadata) -> str:
    """Start marker, emitted before the agent's call completes."""
    return f"{START_PREFIX}{encode_metadata(metadata)}{START_SUFFIX}\n"


def end_marker(index: int) -> str:
    """Bare end marker (no trailing newline) — what the decoder searches for."""
    return f"{END_PREFIX}{index}{END_SUFFIX}"


def encode_agent_end(index: int) -> str:
    return f"{end_marker(index)}\n"


def encode_agent_result(index: int, body: str) -> str:
    """Agent body followed immediately by its end marker."""
    return f"{body}{encode_agent_end(index)}"


def frame_agent_segment(metadata: AgentStreamMetadata, body: str) -> str:
    """Whole start/body/end triple as one write — used when agents run concurrently."""
    return encode_agent_start(metadata) + encode_agent_result(metadata.index, body)


def error_content(reason: str) -> str:
    """Human-readable error text that stands in for an agent's output."""
    return f"{ERROR_CONTENT_PREFIX}{reason}"


def sanitize_content(raw: str) -> str:
    """Strip nested markers and legacy banners, then trim whitespace."""
    if not raw:
        return ""
    cleaned = NESTED_START_PATTERN.sub("", raw)
    cleaned = NESTED_END_PATTERN.sub("", cleaned)
    return strip_completion_banners(cleaned)


def strip_completion_banners(text: str) -> str:
    if not text:
        return ""
    return COMPLETION_PATTERN.sub("", text).strip()
