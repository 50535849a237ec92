from __future__ import annotations

import copy
import json

import pytest

from content_portal.errors import NormalizationError
from content_portal.normalization import (
    describe_result,
    image_data_uri,
    normalize_result,
    unwrap_result_payload,
)
from content_portal.normalization.result_normalizer import MAX_OUTPUT_DEPTH

B64 = "iVBORw0KGgoAAAANSUhEUgAA" * 8  # 192 chars, base64 alphabet only
B64_OTHER = "R0lGODlhAQABAIAAAAAAAP" * 8


def test_none_stays_none():
    assert normalize_result(None) is None
    assert describe_result(None) is None
    assert image_data_uri(None) is None


def test_plain_text_result_passes_through():
    assert normalize_result({"text": "hello", "extra": 1}) == {"text": "hello", "extra": 1}


def test_string_payload_becomes_output():
    assert normalize_result("just words") == {"output": "just words"}


def test_nested_output_is_flattened_and_nested_keys_win():
    payload = {"text": "outer", "keep": 1, "output": {"text": "inner", "output": {"score": 0.9}}}
    assert normalize_result(payload) == {"text": "inner", "keep": 1, "score": 0.9}


def test_input_is_not_mutated():
    payload = {"output": {"binary": {"data": B64, "mimeType": "image/jpeg"}}}
    snapshot = copy.deepcopy(payload)
    normalize_result(payload)
    assert payload == snapshot


def test_output_depth_limit_raises():
    payload: dict = {"text": "deep"}
    for _ in range(MAX_OUTPUT_DEPTH + 5):
        payload = {"output": payload}
    with pytest.raises(NormalizationError):
        normalize_result(payload)


def _nested(levels: int) -> dict:
    payload: dict = {"text": "deep"}
    for _ in range(levels):
        payload = {"output": payload}
    return payload


def test_output_depth_boundary():
    assert normalize_result(_nested(MAX_OUTPUT_DEPTH)) == {"text": "deep"}
    with pytest.raises(NormalizationError):
        normalize_result(_nested(MAX_OUTPUT_DEPTH + 1))


def test_cyclic_output_raises():
    payload: dict = {"keep": 1}
    payload["output"] = payload
    with pytest.raises(NormalizationError):
        normalize_result(payload)


def test_output_within_depth_limit_flattens():
    payload: dict = {"text": "deep"}
    for _ in range(5):
        payload = {"output": payload}
    assert normalize_result(payload) == {"text": "deep"}


def test_image_like_output_string_copied_to_image_data():
    result = normalize_result({"output": B64})
    assert result["imageData"] == B64
    assert result["output"] == B64


def test_string_candidates_follow_priority_order():
    result = normalize_result({"data": B64_OTHER, "image": B64})
    assert result["imageData"] == B64
    result = normalize_result({"imageBase64": B64_OTHER, "file": B64})
    assert result["imageData"] == B64_OTHER


def test_short_strings_are_not_images():
    result = normalize_result({"image": "cat.png", "data": "positive"})
    assert "imageData" not in result


def test_object_candidate_supplies_data_and_mime():
    result = normalize_result({"binary": {"data": B64, "mimeType": "image/jpeg"}})
    assert result["imageData"] == B64
    assert result["imageMimeType"] == "image/jpeg"


def test_object_candidate_prefers_result_level_mime():
    result = normalize_result(
        {"imageType": "image/webp", "file": {"data": B64, "contentType": "image/gif"}}
    )
    assert result["imageData"] == B64
    assert result["imageMimeType"] == "image/webp"


def test_object_candidate_ignored_when_image_data_already_set():
    result = normalize_result({"imageData": B64, "binary": {"data": B64_OTHER, "mimeType": "image/gif"}})
    assert result["imageData"] == B64
    assert "imageMimeType" not in result


def test_mime_falls_back_to_content_type():
    result = normalize_result({"imageData": B64, "contentType": "image/jpeg"})
    assert result["imageMimeType"] == "image/jpeg"


@pytest.mark.parametrize(
    "payload",
    [
        {"text": "hello"},
        {"output": B64},
        {"output": {"output": {"summary": "s"}}, "x": 1},
        {"binary": {"data": B64, "mimeType": "image/png"}},
        {"data": {"data": B64}},
        {"imageData": B64, "imageType": "image/webp"},
        "free text",
        [{"output": {"category": "positive"}}],
    ],
)
def test_normalization_is_idempotent(payload):
    once = normalize_result(payload)
    assert normalize_result(once) == once


def test_unwrap_result_payload_shapes():
    assert unwrap_result_payload([]) == {"items": []}
    assert unwrap_result_payload([{"output": {"text": "a"}}]) == {"text": "a"}
    assert unwrap_result_payload([{"output": "txt"}, {"output": "ignored"}]) == {"output": "txt"}
    assert unwrap_result_payload([1, 2]) == {"items": [1, 2]}
    assert unwrap_result_payload({"k": "v"}) == {"k": "v"}
    assert unwrap_result_payload("hello") == {"output": "hello"}
    assert unwrap_result_payload(B64) == {"imageData": B64}
    assert unwrap_result_payload(5) == {"value": 5}


def test_describe_sentiment_category():
    text = describe_result({"category": "positive", "feelings": "joy", "text": "Great launch"})
    assert text == "Sentiment: positive (joy)\nGreat launch"


def test_describe_sentiment_score():
    assert describe_result({"sentiment": "negative", "score": 0.85}) == (
        "Sentiment: negative (confidence 85%)"
    )


def test_describe_image_uses_caption_only():
    assert describe_result({"imageData": B64, "text": "A sunset"}) == "A sunset"
    assert describe_result({"imageData": B64}) is None


def test_describe_text_channels_and_json_fallback():
    assert describe_result({"output": {"text": "hi"}}) == "hi"
    assert describe_result({"summary": "short"}) == "short"
    assert describe_result({"output": "plain output"}) == "plain output"
    dumped = describe_result({"foo": 1})
    assert json.loads(dumped) == {"foo": 1}


def test_image_data_uri_resolution():
    assert image_data_uri({"imageBase64": B64}) == f"data:image/png;base64,{B64}"
    assert image_data_uri({"imageData": B64, "imageType": "image/webp"}) == (
        f"data:image/webp;base64,{B64}"
    )
    uri = "data:image/jpeg;base64,abc"
    assert image_data_uri({"imageData": uri}) == uri
    assert image_data_uri({"imageUrl": "https://cdn.example.com/a.png"}) == (
        "https://cdn.example.com/a.png"
    )
    assert image_data_uri({"text": "no image"}) is None
