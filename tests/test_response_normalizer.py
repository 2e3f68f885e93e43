from __future__ import annotations

import json

import pytest

from chatdesk.services.response_normalizer import (
    LEGACY_WRAPPER_KEY,
    MAX_ITERATIONS_MESSAGE,
    MAX_ITERATIONS_SENTINEL,
    MAX_TEXT_LENGTH,
    ArrayPayload,
    EmptyPayload,
    LegacyWebhookWrapper,
    PlainObjectPayload,
    StringPayload,
    classify_payload,
    normalize_response,
)


def _component(name: str, props: dict) -> str:
    # Serialise a component the way the workflow embeds it in text.
    return json.dumps({"component": name, "props": props})


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("hello", StringPayload),
        ("   ", EmptyPayload),
        ([{"output": "x"}], ArrayPayload),
        ([], EmptyPayload),
        ({LEGACY_WRAPPER_KEY: [{"output": "x"}]}, LegacyWebhookWrapper),
        ({"body": {LEGACY_WRAPPER_KEY: [{"output": "x"}]}}, LegacyWebhookWrapper),
        ({"response": {"body": {LEGACY_WRAPPER_KEY: [{"output": "x"}]}}}, LegacyWebhookWrapper),
        ({"message": "x"}, PlainObjectPayload),
        (None, EmptyPayload),
        (42, EmptyPayload),
    ],
)
def test_classify_payload_picks_one_shape(raw, expected) -> None:
    assert isinstance(classify_payload(raw), expected)


def test_plain_string_is_trimmed() -> None:
    result = normalize_response("  The filter is in stock.  ")

    assert result.content == "The filter is in stock."
    assert result.component_data is None
    assert result.is_fallback_mode is False


def test_array_reads_output_field() -> None:
    result = normalize_response([{"output": "From the array."}])

    assert result.content == "From the array."


def test_array_skips_empty_items() -> None:
    result = normalize_response([{"output": ""}, {"response": {"output": "Second item."}}])

    assert result.content == "Second item."


def test_legacy_wrapper_under_response_body() -> None:
    raw = {"response": {"body": {LEGACY_WRAPPER_KEY: [{"output": "Wrapped answer."}]}}}

    assert normalize_response(raw).content == "Wrapped answer."


def test_plain_object_prefers_message_over_output() -> None:
    result = normalize_response({"output": "from output", "message": "from message"})

    assert result.content == "from message"


def test_fenced_component_keeps_prose_prefix() -> None:
    text = "Here is what I found:\n```json\n" + _component("SimpleText", {"text": "Body"}) + "\n```"

    result = normalize_response([{"output": text}])

    assert result.content == "Here is what I found:"
    assert result.component_data is not None
    assert result.component_data.component == "SimpleText"
    assert result.component_data.props["text"] == "Body"


def test_bare_component_without_prefix_uses_display_text() -> None:
    result = normalize_response(_component("SimpleText", {"text": "Only the component."}))

    assert result.content == "Only the component."
    assert result.component_data.component == "SimpleText"


def test_product_specs_display_and_citation_hoisting() -> None:
    props = {
        "introduction": "Specs for the AT123456 filter.",
        "specs": [
            {"key": "Weight", "value": "1.2 kg", "citations": [{"documentId": "doc-1", "page": 4}]},
            {"key": "Thread", "value": "M20", "citations": [{"documentId": "doc-2", "page": 9}]},
            {"key": "Colour", "value": "Yellow"},
        ],
        "note": "Check fitment before ordering.",
    }

    result = normalize_response({"output": _component("ProductSpecs", props)})

    assert result.content == (
        "Specs for the AT123456 filter.\n\n"
        "Weight: 1.2 kg\nThread: M20\nColour: Yellow\n\n"
        "Check fitment before ordering."
    )
    assert result.component_data.props["citations"] == [
        {"documentId": "doc-1", "page": 4},
        {"documentId": "doc-2", "page": 9},
    ]


def test_braces_inside_strings_do_not_break_detection() -> None:
    text = "Answer: " + _component("SimpleText", {"text": "see {figure 3}"}) + " trailing words"

    result = normalize_response(text)

    assert result.content == "Answer:"
    assert result.component_data.props["text"] == "see {figure 3}"


def test_unknown_component_without_text_dumps_props() -> None:
    result = normalize_response(_component("PartsTable", {"rows": [1, 2]}))

    assert result.component_data.component == "PartsTable"
    assert json.loads(result.content) == {"rows": [1, 2]}


def test_component_object_inside_array_item() -> None:
    raw = [{"output": {"component": "SimpleText", "props": {"text": "Structured."}}}]

    result = normalize_response(raw)

    assert result.content == "Structured."
    assert result.component_data.component == "SimpleText"


def test_invalid_embedded_json_falls_back_to_prose() -> None:
    result = normalize_response("Look here {not: valid json}")

    assert result.content == "Look here"
    assert result.component_data is None


def test_json_without_component_is_not_structured() -> None:
    result = normalize_response('Result follows {"a": 1}')

    assert result.content == "Result follows"
    assert result.component_data is None


def test_unbalanced_brace_keeps_whole_text() -> None:
    result = normalize_response("Torque spec is {pending")

    assert result.content == "Torque spec is {pending"


def test_oversized_text_is_returned_without_scanning() -> None:
    text = "x" * (MAX_TEXT_LENGTH + 1) + _component("SimpleText", {"text": "hidden"})

    result = normalize_response(text)

    assert result.component_data is None
    assert result.content == text


@pytest.mark.parametrize(
    "raw",
    [
        [{"output": MAX_ITERATIONS_SENTINEL}],
        {"response": {"body": {LEGACY_WRAPPER_KEY: [{"output": "x " + MAX_ITERATIONS_SENTINEL}]}}},
        {"output": MAX_ITERATIONS_SENTINEL},
    ],
)
def test_max_iterations_sentinel_short_circuits(raw) -> None:
    result = normalize_response(raw)

    assert result.content == MAX_ITERATIONS_MESSAGE
    assert result.is_fallback_mode is True


@pytest.mark.parametrize("raw", [None, "", "   ", [], {}, [{"output": ""}], {"unrelated": 1}])
def test_nothing_extractable_is_empty_not_filler(raw) -> None:
    result = normalize_response(raw)

    assert result.is_empty
    assert result.content == ""
    assert result.is_fallback_mode is False
