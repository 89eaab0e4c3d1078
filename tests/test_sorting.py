"""Tests for pst_viewer.sorting."""

from __future__ import annotations

from datetime import UTC, datetime

from pst_viewer.models import MessageSummary
from pst_viewer.sorting import SortOrder, sort_messages


def _msg(fp: int, **kwargs) -> MessageSummary:
    return MessageSummary(fingerprint=bytes([fp]), **kwargs)


class TestSortMessages:
    def test_default_is_newest_first_with_undated_last(self):
        messages = [
            _msg(1, date=datetime(2025, 1, 1, tzinfo=UTC)),
            _msg(2),
            _msg(3, date=datetime(2025, 6, 1, tzinfo=UTC)),
        ]
        assert [m.fingerprint for m in sort_messages(messages)] == [b"\x03", b"\x01", b"\x02"]

    def test_naive_and_aware_dates_compare(self):
        messages = [
            _msg(1, date=datetime(2025, 1, 2)),
            _msg(2, date=datetime(2025, 1, 1, tzinfo=UTC)),
        ]
        assert [m.fingerprint for m in sort_messages(messages, SortOrder.DATE_ASC)] == [b"\x02", b"\x01"]

    def test_subject_with_missing_first(self):
        messages = [_msg(1, subject="beta"), _msg(2), _msg(3, subject="alpha")]
        ordered = sort_messages(messages, SortOrder.SUBJECT_ASC)
        assert [m.subject for m in ordered] == [None, "alpha", "beta"]

    def test_sender_uses_display_value(self):
        messages = [
            _msg(1, sender_name="Zed"),
            _msg(2, sender_address="adam@example.com"),
        ]
        ordered = sort_messages(messages, SortOrder.SENDER_DESC)
        assert [m.fingerprint for m in ordered] == [b"\x01", b"\x02"]

    def test_size(self):
        messages = [_msg(1, size=10), _msg(2), _msg(3, size=5)]
        assert [m.size for m in sort_messages(messages, SortOrder.SIZE_ASC)] == [None, 5, 10]

    def test_stable_for_equal_keys(self):
        messages = [_msg(i, subject="same") for i in range(5)]
        assert sort_messages(messages, SortOrder.SUBJECT_ASC) == messages

    def test_returns_new_list(self):
        messages = [_msg(1, size=2), _msg(2, size=1)]
        sort_messages(messages, SortOrder.SIZE_ASC)
        assert [m.size for m in messages] == [2, 1]

    def test_descending_property(self):
        assert SortOrder.DATE_DESC.descending
        assert not SortOrder.SIZE_ASC.descending
        assert SortOrder("subject-desc") is SortOrder.SUBJECT_DESC
