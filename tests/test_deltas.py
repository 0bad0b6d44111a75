"""Tests for delta extraction."""

from coder_chat.streaming.deltas import (
    ContentDelta,
    Malformed,
    Skipped,
    StreamDone,
    extract,
    frame_payload,
    iter_deltas,
    iter_events,
)


def test_content_delta_is_extracted():
    """Test the normal incremental-text frame."""
    event = extract('data: {"choices":[{"delta":{"content":"4"}}]}')
    assert event == ContentDelta("4")


def test_done_sentinel():
    """Test that the bare [DONE] payload ends the stream."""
    assert extract("data: [DONE]") == StreamDone()


def test_non_data_frames_are_skipped():
    """Test that comments and keep-alives are ignored."""
    assert isinstance(extract(": ping"), Skipped)
    assert isinstance(extract("event: heartbeat"), Skipped)


def test_empty_or_missing_content_is_skipped():
    """Test role-only and empty-content chunks produce no delta."""
    assert isinstance(extract('data: {"choices":[{"delta":{"role":"assistant"}}]}'), Skipped)
    assert isinstance(extract('data: {"choices":[{"delta":{"content":""}}]}'), Skipped)
    assert isinstance(extract('data: {"choices":[{}]}'), Skipped)


def test_invalid_json_is_malformed():
    """Test that an unparsable payload becomes a Malformed outcome."""
    event = extract("data: {not json")
    assert isinstance(event, Malformed)
    assert event.payload == "{not json"


def test_wrong_shape_is_malformed():
    """Test payloads that parse but do not match the chunk schema."""
    assert isinstance(extract('data: {"foo": 1}'), Malformed)
    assert isinstance(extract('data: {"choices": []}'), Malformed)
    assert isinstance(extract('data: {"choices":[{"delta":{"content":5}}]}'), Malformed)
    assert isinstance(extract('data: "just a string"'), Malformed)


def test_multiple_data_lines_are_joined():
    """Test that a payload split over several data lines is reassembled."""
    frame = 'event: chunk\ndata: {"choices":[{"delta":\ndata: {"content":"hi"}}]}'
    assert frame_payload(frame) == '{"choices":[{"delta":\n{"content":"hi"}}]}'
    assert extract(frame) == ContentDelta("hi")


def test_malformed_frame_does_not_block_neighbours():
    """Test isolation: a bad frame between two good ones is simply dropped."""
    frames = [
        'data: {"choices":[{"delta":{"content":"a"}}]}',
        "data: {broken",
        'data: {"choices":[{"delta":{"content":"b"}}]}',
    ]
    assert list(iter_deltas(frames)) == ["a", "b"]


def test_nothing_is_extracted_after_done():
    """Test that frames after [DONE] are never looked at."""
    frames = [
        'data: {"choices":[{"delta":{"content":"a"}}]}',
        "data: [DONE]",
        'data: {"choices":[{"delta":{"content":"b"}}]}',
    ]
    events = list(iter_events(frames))
    assert events[-1] == StreamDone()
    assert list(iter_deltas(frames)) == ["a"]
