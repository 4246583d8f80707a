"""Utilities to recover a JSON object from raw model output."""

from __future__ import annotations

import json
import re
from typing import Any, Dict, Optional

import yaml
from json_repair import repair_json

_THOUGHT_BLOCK_RE = re.compile(r"<(think|reflection)>.*?</\1>", re.IGNORECASE | re.DOTALL)
_WRAPPING_FENCE_RE = re.compile(r"\A```[\w-]*[ \t]*\n?(.*?)\n?[ \t]*```\Z", re.DOTALL)
_TRAILING_COMMA_RE = re.compile(r",(?=\s*[}\]])")


def strip_reasoning_artifacts(text: str) -> str:
    """Remove `<think>` style blocks and a markdown fence wrapping the whole response.

    Backticks inside the payload are left untouched.
    """
    if not text:
        return text

    cleaned = _THOUGHT_BLOCK_RE.sub("", text).strip()
    fenced = _WRAPPING_FENCE_RE.match(cleaned)
    if fenced:
        cleaned = fenced.group(1)
    return cleaned.strip()


def _attempt_json_load(candidate: str) -> Optional[Dict[str, Any]]:
    try:
        payload = json.loads(candidate)
    except json.JSONDecodeError:
        return None
    return payload if isinstance(payload, dict) else None


def _attempt_yaml_load(candidate: str) -> Optional[Dict[str, Any]]:
    try:
        payload = yaml.safe_load(candidate)
    except yaml.YAMLError:
        return None
    if not isinstance(payload, dict):
        return None
    # YAML happily yields dates and other non-JSON scalars; only keep JSON-safe payloads.
    try:
        return json.loads(json.dumps(payload))
    except (TypeError, ValueError):
        return None


def _attempt_repair(candidate: str) -> Optional[Dict[str, Any]]:
    try:
        payload = repair_json(candidate, return_objects=True)
    except Exception:  # json_repair raises assorted internal errors on hopeless input
        return None
    return payload if isinstance(payload, dict) and payload else None


def extract_json_object(text: str) -> Optional[Dict[str, Any]]:
    """Return the outermost JSON object found after cleaning reasoning artefacts."""
    cleaned = strip_reasoning_artifacts(text or "")
    start = cleaned.find("{")
    end = cleaned.rfind("}")
    if start == -1 or end == -1 or end <= start:
        return None
    candidate = cleaned[start : end + 1]

    # Fast path: already valid JSON.
    payload = _attempt_json_load(candidate)
    if payload is not None:
        return payload

    # Remove trailing commas that the Python JSON parser rejects.
    no_trailing = _TRAILING_COMMA_RE.sub("", candidate)
    if no_trailing != candidate:
        payload = _attempt_json_load(no_trailing)
        if payload is not None:
            return payload

    # YAML is more permissive (single quotes, unquoted keys).
    payload = _attempt_yaml_load(candidate)
    if payload is not None:
        return payload

    return _attempt_repair(candidate)


__all__ = ["strip_reasoning_artifacts", "extract_json_object"]
