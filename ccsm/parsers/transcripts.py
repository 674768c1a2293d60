"""Parse JSONL session transcripts into SessionMessage models.

Transcripts are append-only: one JSON value per line. Lines that fail to decode
are dropped without affecting the rest of the file. Field names vary between
transcript generations (``tool_name`` vs ``toolName``, top-level vs nested under
``message``), so optional fields are resolved through ``_FIELD_ALIASES``.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Iterator, Optional

from pydantic import ValidationError

from ccsm.models import ContentBlock, MessageContent, SessionMessage, TokenUsage

logger = logging.getLogger("ccsm.parser")

PREVIEW_CHARS = 200
SUMMARY_MAX_LINES = 10

_ROLES = {"user", "assistant", "system", "tool"}
_MISSING = object()

# Logical field -> candidate key paths, first defined value wins.
_FIELD_ALIASES: dict[str, tuple[tuple[str, ...], ...]] = {
    "toolName": (("tool_name",), ("toolName",)),
    "toolInput": (("tool_input",), ("toolInput",)),
    "toolResult": (("tool_result",), ("toolResult",)),
    "model": (("model",), ("message", "model")),
    "thinking": (("thinking",),),
    "timestamp": (("timestamp",),),
    "usage": (("usage",), ("message", "usage")),
    "stopReason": (("stop_reason",), ("stopReason",), ("message", "stop_reason"), ("message", "stopReason")),
    "durationMs": (("duration_ms",), ("durationMs",)),
    "costUsd": (("cost_usd",), ("costUsd",)),
}

_CWD_ALIASES: tuple[tuple[str, ...], ...] = (("cwd",), ("message", "cwd"))


@dataclass
class TranscriptSummary:
    """Listing metadata derived from a partial parse."""

    message_count: int = 0
    preview: Optional[str] = None
    model: Optional[str] = None
    cwd: Optional[str] = None


def first_defined(record: Any, paths: tuple[tuple[str, ...], ...]) -> Any:
    """Return the value at the first key path that is present and not null."""
    for path in paths:
        node = record
        for key in path:
            if not isinstance(node, dict) or key not in node:
                node = _MISSING
                break
            node = node[key]
        if node is not _MISSING and node is not None:
            return node
    return _MISSING


def iter_lines(text: str) -> Iterator[str]:
    """Yield non-empty lines in file order."""
    # Only "\n" separates records; JSON strings may carry raw U+2028 and friends.
    for line in text.split("\n"):
        if line.strip():
            yield line


def decode_line(line: str) -> Any:
    """Decode one transcript line, returning ``_MISSING`` when it is not JSON."""
    try:
        return json.loads(line)
    except (ValueError, RecursionError):
        # Pathologically nested arrays exhaust the decoder's recursion limit.
        logger.debug("Skipping malformed transcript line: %.80s", line)
        return _MISSING


def _coerce_block(raw: Any) -> Optional[ContentBlock]:
    if not isinstance(raw, dict):
        return None
    data = dict(raw)
    nested = data.get("content")
    if isinstance(nested, list):
        data["content"] = _coerce_blocks(nested)
    try:
        return ContentBlock.model_validate(data)
    except ValidationError as exc:
        # Wrongly typed fields are dropped; the block itself is kept.
        invalid = {error["loc"][0] for error in exc.errors() if error["loc"]}
        return ContentBlock.model_validate({k: v for k, v in data.items() if k not in invalid})


def _coerce_blocks(raw: list[Any]) -> list[ContentBlock]:
    blocks = []
    for item in raw:
        block = _coerce_block(item)
        if block is not None:
            blocks.append(block)
    return blocks


def _coerce_content(raw: Any) -> Optional[MessageContent]:
    if isinstance(raw, str):
        return raw
    if isinstance(raw, list):
        return _coerce_blocks(raw)
    return None


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _coerce_field(name: str, value: Any) -> Any:
    """Type-check one optional field; ``_MISSING`` drops it."""
    if name == "toolResult":
        return value
    if name == "toolInput":
        return value if isinstance(value, dict) else _MISSING
    if name in ("durationMs", "costUsd"):
        return value if _is_number(value) else _MISSING
    if name == "usage":
        if not isinstance(value, dict):
            return _MISSING
        try:
            return TokenUsage.model_validate(value)
        except ValidationError:
            return _MISSING
    return value if isinstance(value, str) else _MISSING


def _resolve_role(record: dict[str, Any]) -> str:
    nested = record.get("message")
    role = None
    if isinstance(nested, dict) and isinstance(nested.get("role"), str):
        role = nested["role"]
    elif isinstance(record.get("role"), str):
        role = record["role"]
    return role if role in _ROLES else "system"


def _resolve_content(record: dict[str, Any]) -> Optional[MessageContent]:
    content = record.get("content")
    if isinstance(content, (str, list)):
        return _coerce_content(content)
    nested = record.get("message")
    if isinstance(nested, dict):
        return _coerce_content(nested.get("content"))
    return None


def parse_record(record: Any) -> SessionMessage:
    """Normalize one decoded transcript record into a SessionMessage."""
    if not isinstance(record, dict):
        return SessionMessage(role="system")

    fields: dict[str, Any] = {"role": _resolve_role(record)}
    content = _resolve_content(record)
    if content is not None:
        fields["content"] = content

    for name, paths in _FIELD_ALIASES.items():
        value = first_defined(record, paths)
        if value is _MISSING:
            continue
        value = _coerce_field(name, value)
        if value is not _MISSING:
            fields[name] = value

    return SessionMessage(**fields)


def parse_transcript(text: str) -> list[SessionMessage]:
    """Parse a whole transcript; malformed lines are skipped, order is kept."""
    messages: list[SessionMessage] = []
    for line in iter_lines(text):
        record = decode_line(line)
        if record is _MISSING:
            continue
        messages.append(parse_record(record))
    return messages


def message_text(content: Optional[MessageContent]) -> Optional[str]:
    """First non-empty text carried by a message's content, if any."""
    if isinstance(content, str):
        return content or None
    if isinstance(content, list):
        for block in content:
            if block.type == "text" and isinstance(block.text, str) and block.text:
                return block.text
    return None


def _record_cwd(record: Any) -> Optional[str]:
    value = first_defined(record, _CWD_ALIASES)
    return value if isinstance(value, str) and value else None


def summarize_transcript(text: str, max_lines: int = SUMMARY_MAX_LINES) -> TranscriptSummary:
    """Cheap listing metadata: line count plus preview/model/cwd from the head."""
    lines = list(iter_lines(text))
    summary = TranscriptSummary(message_count=len(lines))

    for line in lines[:max_lines]:
        record = decode_line(line)
        if record is _MISSING:
            continue
        message = parse_record(record)

        if summary.preview is None and message.role == "user":
            preview = message_text(message.content)
            if preview:
                summary.preview = preview[:PREVIEW_CHARS]
        if summary.model is None and message.model:
            summary.model = message.model
        if summary.cwd is None:
            summary.cwd = _record_cwd(record)

    return summary
