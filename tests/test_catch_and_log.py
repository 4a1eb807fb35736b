"""Tests for ResponseWrapper.catch_and_log()."""

import pytest

from fluent_rest.errors import StatusAssertionError
from tests.conftest import make_request_spec, make_wrapper


class TestCatchAndLog:
    def test_returns_block_value(self, sink):
        wrapper = make_wrapper(body={"id": 7}, sink=sink)

        assert wrapper.catch_and_log(lambda: wrapper.then_extract("$.id")) == 7
        assert sink.records == []

    def test_reraises_same_exception(self, sink):
        wrapper = make_wrapper(sink=sink)
        error = KeyError("items")

        def block():
            raise error

        with pytest.raises(KeyError) as exc_info:
            wrapper.catch_and_log(block)

        assert exc_info.value is error

    def test_arbitrary_failure_snapshotted(self, sink):
        wrapper = make_wrapper(status_code=200, body={"items": []}, sink=sink)

        with pytest.raises(IndexError):
            wrapper.catch_and_log(lambda: wrapper.body["items"][0])

        snapshot = wrapper.diagnostics.last_snapshot
        assert snapshot.reason == "catch_and_log"
        assert snapshot.error_type == "IndexError"
        assert snapshot.status_code == 200
        assert sink.events() == ["failure.snapshot"]

    def test_assertion_inside_block_snapshotted_once(self, sink):
        wrapper = make_wrapper(status_code=500, sink=sink)

        with pytest.raises(StatusAssertionError) as exc_info:
            wrapper.catch_and_log(lambda: wrapper.then_expect_status(200))

        assert len(wrapper.diagnostics.snapshots) == 1
        assert exc_info.value.snapshot is wrapper.diagnostics.last_snapshot
        assert sink.events() == ["failure.snapshot"]

    def test_note_carries_correlation_id(self, sink):
        wrapper = make_wrapper(status_code=200, sink=sink)

        def block():
            raise ValueError("unexpected shape")

        with pytest.raises(ValueError) as exc_info:
            wrapper.catch_and_log(block)

        notes = exc_info.value.__notes__
        assert len(notes) == 1
        assert "correlation_id=corr-123" in notes[0]
        assert "GET http://api.test/widgets/1 -> 200" in notes[0]

    def test_snapshot_redacts_authorization_keeps_correlation_id(self, sink):
        request = make_request_spec(authorization="super-secret-token", correlation_id="corr-xyz")
        wrapper = make_wrapper(request=request, sink=sink)

        def block():
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            wrapper.catch_and_log(block)

        snapshot = wrapper.diagnostics.last_snapshot
        assert snapshot.correlation_id == "corr-xyz"
        assert snapshot.request_headers["Authorization"] == "[REDACTED]"
        assert "super-secret-token" not in str(sink.records)

    def test_plain_assert_in_block(self, sink):
        wrapper = make_wrapper(body={"name": "gizmo"}, sink=sink)

        with pytest.raises(AssertionError):
            wrapper.catch_and_log(lambda: _check(wrapper.then_extract("$.name") == "widget"))

        assert wrapper.diagnostics.last_snapshot.error_type == "AssertionError"


def _check(condition: bool) -> None:
    assert condition
