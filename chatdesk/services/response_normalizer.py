"""
services/response_normalizer.py
-------------------------------
Turns whatever the external AI workflow returned into a canonical reply.

The workflow has shipped several response shapes over time and they all
still arrive in production:

  "plain text"                                       → StringPayload
  [{"output": "..."}]                                → ArrayPayload
  {"response": {"body": {"RESPONSE FROM WEBHOOK SUCCEEDED": [...]}}}
                                                     → LegacyWebhookWrapper
  {"message": "..."}                                 → PlainObjectPayload

classify_payload() resolves the shape once; each shape then has its own
extractor. Text fields may embed a structured component, either in a
```json fence or as a bare {...} object after some prose:

  Here are the specs you asked for:
  ```json
  {"component": "ProductSpecs", "props": {"introduction": "...", "specs": [...]}}
  ```

The normaliser never raises and never invents filler text. An empty result
is a legitimate outcome; deciding what the user sees in that case belongs to
the chat service and the fallback policy.
"""

import json
import re
from dataclasses import dataclass, field
from typing import Any

from chatdesk.core.errors import FormatFailure
from chatdesk.core.logging import get_logger

logger = get_logger(__name__)

MAX_ITERATIONS_SENTINEL = "Agent stopped due to max iterations."
MAX_ITERATIONS_MESSAGE = (
    "I apologize, but I wasn't able to complete processing your request due to "
    "its complexity. Could you please try rephrasing your question or breaking "
    "it down into smaller parts?"
)

LEGACY_WRAPPER_KEY = "RESPONSE FROM WEBHOOK SUCCEEDED"

# Array items and wrapper entries: the workflow's own field first
NESTED_FIELDS = ("output", "response", "message", "content")
# Top-level plain objects come from hand-built responses and favour message
PLAIN_OBJECT_FIELDS = ("message", "content", "response", "output")

MAX_TEXT_LENGTH = 100_000
MAX_JSON_LENGTH = 50_000
MAX_DEPTH = 5

_JSON_FENCE = re.compile(r"```json\s*(.*?)```", re.DOTALL | re.IGNORECASE)


# ── Result types ──────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class ComponentData:
    component: str
    props: dict[str, Any]

    def as_dict(self) -> dict[str, Any]:
        return {"component": self.component, "props": self.props}


@dataclass(frozen=True)
class NormalizedResponse:
    content: str
    component_data: ComponentData | None = None
    is_fallback_mode: bool = False

    @property
    def is_empty(self) -> bool:
        return not self.content and self.component_data is None


EMPTY = NormalizedResponse(content="")


# ── Payload variants ──────────────────────────────────────────────────────────

@dataclass(frozen=True)
class StringPayload:
    text: str


@dataclass(frozen=True)
class ArrayPayload:
    items: list[Any]


@dataclass(frozen=True)
class LegacyWebhookWrapper:
    items: list[Any]


@dataclass(frozen=True)
class PlainObjectPayload:
    data: dict[str, Any]


@dataclass(frozen=True)
class EmptyPayload:
    raw: Any = field(default=None)


Payload = StringPayload | ArrayPayload | LegacyWebhookWrapper | PlainObjectPayload | EmptyPayload


def _find_legacy_wrapper(data: dict[str, Any]) -> list[Any] | None:
    candidates = [data]
    body = data.get("body")
    if isinstance(body, dict):
        candidates.append(body)
    response = data.get("response")
    if isinstance(response, dict) and isinstance(response.get("body"), dict):
        candidates.append(response["body"])
    for candidate in candidates:
        wrapped = candidate.get(LEGACY_WRAPPER_KEY)
        if isinstance(wrapped, list) and wrapped:
            return wrapped
    return None


def classify_payload(raw: Any) -> Payload:
    """Resolve the upstream response into exactly one known shape."""
    if isinstance(raw, str):
        return StringPayload(raw) if raw.strip() else EmptyPayload(raw)
    if isinstance(raw, list):
        return ArrayPayload(raw) if raw else EmptyPayload(raw)
    if isinstance(raw, dict):
        wrapped = _find_legacy_wrapper(raw)
        if wrapped is not None:
            return LegacyWebhookWrapper(wrapped)
        return PlainObjectPayload(raw)
    return EmptyPayload(raw)


# ── JSON region detection ─────────────────────────────────────────────────────

@dataclass(frozen=True)
class _JsonRegion:
    start: int
    body: str


def _balanced_object_end(text: str, start: int) -> int | None:
    """
    Index just past the '}' that closes the '{' at start, or None.

    Braces inside quoted strings are skipped, so citation text such as
    "see {figure 3}" does not throw the depth count off.
    """
    depth = 0
    in_string = False
    escaped = False
    limit = min(len(text), start + MAX_JSON_LENGTH)
    for index in range(start, limit):
        char = text[index]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return index + 1
    return None


def _locate_json(text: str) -> _JsonRegion | None:
    fence = _JSON_FENCE.search(text)
    if fence is not None:
        body = fence.group(1)
        if len(body) > MAX_JSON_LENGTH:
            return None
        return _JsonRegion(start=fence.start(), body=body)

    start = text.find("{")
    if start == -1:
        return None
    end = _balanced_object_end(text, start)
    if end is None:
        return None
    return _JsonRegion(start=start, body=text[start:end])


def _parse_json(body: str) -> Any:
    try:
        return json.loads(body)
    except ValueError as exc:
        raise FormatFailure(f"Embedded JSON could not be parsed: {exc}") from exc


# ── Components ────────────────────────────────────────────────────────────────

def _is_component(value: Any) -> bool:
    return isinstance(value, dict) and "component" in value and "props" in value


def _hoist_citations(props: dict[str, Any]) -> dict[str, Any]:
    specs = props.get("specs")
    if not isinstance(specs, list):
        return props
    citations: list[Any] = []
    for spec in specs:
        if isinstance(spec, dict) and isinstance(spec.get("citations"), list):
            citations.extend(spec["citations"])
    return {**props, "citations": citations}


def _product_specs_text(props: dict[str, Any]) -> str:
    lines = []
    for spec in props.get("specs") or []:
        if isinstance(spec, dict):
            lines.append(f"{spec.get('key', '')}: {spec.get('value', '')}")
    sections = [
        str(props.get("introduction") or "").strip(),
        "\n".join(lines),
        str(props.get("note") or "").strip(),
    ]
    return "\n\n".join(section for section in sections if section)


def build_component(value: dict[str, Any]) -> tuple[ComponentData, str]:
    """Return the component payload and the plain-text rendering of it."""
    name = str(value["component"])
    props = value["props"] if isinstance(value["props"], dict) else {"value": value["props"]}
    props = _hoist_citations(props)

    if name == "SimpleText":
        display = str(props.get("text") or "")
    elif name == "ProductSpecs":
        display = _product_specs_text(props)
    elif props.get("text"):
        display = str(props["text"])
    else:
        display = json.dumps(props, ensure_ascii=False)
    return ComponentData(component=name, props=props), display.strip()


# ── Extraction ────────────────────────────────────────────────────────────────

def parse_text(text: str) -> NormalizedResponse:
    """Split a text answer into display text and an optional component."""
    if len(text) > MAX_TEXT_LENGTH:
        logger.warning("Workflow text too large for JSON scan", length=len(text))
        return NormalizedResponse(content=text.strip())

    region = _locate_json(text)
    if region is None:
        return NormalizedResponse(content=text.strip())

    prefix = text[: region.start].strip()
    try:
        parsed = _parse_json(region.body)
    except FormatFailure as exc:
        logger.warning("Embedded JSON ignored", error=exc.detail)
        return NormalizedResponse(content=prefix or text.strip())

    if not _is_component(parsed):
        return NormalizedResponse(content=prefix or text.strip())

    component, display = build_component(parsed)
    return NormalizedResponse(content=prefix or display, component_data=component)


def _extract_value(value: Any, fields: tuple[str, ...], depth: int) -> NormalizedResponse:
    if depth > MAX_DEPTH:
        return EMPTY
    if isinstance(value, str):
        return parse_text(value) if value.strip() else EMPTY
    if isinstance(value, list):
        return _extract_items(value, depth + 1)
    if isinstance(value, dict):
        if _is_component(value):
            component, display = build_component(value)
            return NormalizedResponse(content=display, component_data=component)
        wrapped = _find_legacy_wrapper(value)
        if wrapped is not None:
            return _extract_items(wrapped, depth + 1)
        for name in fields:
            if value.get(name):
                result = _extract_value(value[name], NESTED_FIELDS, depth + 1)
                if not result.is_empty:
                    return result
    return EMPTY


def _extract_items(items: list[Any], depth: int) -> NormalizedResponse:
    for item in items:
        result = _extract_value(item, NESTED_FIELDS, depth)
        if not result.is_empty:
            return result
    return EMPTY


def _output_fields(value: Any, depth: int = 0):
    """Yield every string reachable through an `output` key."""
    if depth > MAX_DEPTH:
        return
    if isinstance(value, list):
        for item in value:
            yield from _output_fields(item, depth + 1)
    elif isinstance(value, dict):
        output = value.get("output")
        if isinstance(output, str):
            yield output
        for nested in value.values():
            if isinstance(nested, (dict, list)):
                yield from _output_fields(nested, depth + 1)


def hit_max_iterations(raw: Any) -> bool:
    return any(MAX_ITERATIONS_SENTINEL in output for output in _output_fields(raw))


def normalize_response(raw: Any) -> NormalizedResponse:
    """Canonicalise an untyped workflow payload. Never raises."""
    if hit_max_iterations(raw):
        logger.warning("Workflow agent hit its iteration limit")
        return NormalizedResponse(content=MAX_ITERATIONS_MESSAGE, is_fallback_mode=True)

    payload = classify_payload(raw)
    if isinstance(payload, StringPayload):
        result = parse_text(payload.text)
    elif isinstance(payload, (ArrayPayload, LegacyWebhookWrapper)):
        result = _extract_items(payload.items, depth=0)
    elif isinstance(payload, PlainObjectPayload):
        result = _extract_value(payload.data, PLAIN_OBJECT_FIELDS, depth=0)
    else:
        result = EMPTY

    if result.is_empty:
        logger.warning(
            "No content extracted from workflow response",
            payload_type=type(payload).__name__,
        )
    return result
