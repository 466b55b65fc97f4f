"""Tests for mailroom.normalizer."""

from __future__ import annotations

import itertools

import pytest

from mailroom import imap_client, normalizer
from mailroom.models import RawRecord
from mailroom.normalizer import normalize

FULL_HEADERS = {
    "from": "alice@example.com",
    "to": "bob@example.com",
    "subject": "Quarterly report",
    "date": "Tue, 03 Jun 2025 09:30:00 +0000",
}

FALLBACKS = {
    "from": ("from_", "Unknown"),
    "to": ("to", "Unknown"),
    "subject": ("subject", "No Subject"),
    "date": ("date", "Unknown Date"),
}


class TestFallbacks:
    def test_complete_record(self):
        msg = normalize(RawRecord(record_id="7", headers=FULL_HEADERS, body="Hi Bob"))
        assert msg.id == "7"
        assert msg.from_ == "alice@example.com"
        assert msg.to == "bob@example.com"
        assert msg.subject == "Quarterly report"
        assert msg.date == "Tue, 03 Jun 2025 09:30:00 +0000"
        assert msg.body == "Hi Bob"

    def test_everything_missing(self):
        msg = normalize(RawRecord(record_id="1"))
        assert msg.from_ == "Unknown"
        assert msg.to == "Unknown"
        assert msg.subject == "No Subject"
        assert msg.date == "Unknown Date"
        assert msg.body == "No Content"

    @pytest.mark.parametrize(
        "missing",
        [combo for r in range(1, 5) for combo in itertools.combinations(FULL_HEADERS, r)],
    )
    def test_any_subset_of_headers_missing(self, missing):
        headers = {k: v for k, v in FULL_HEADERS.items() if k not in missing}
        msg = normalize(RawRecord(record_id="2", headers=headers, body="x"))
        for header in FULL_HEADERS:
            attr, fallback = FALLBACKS[header]
            expected = fallback if header in missing else FULL_HEADERS[header]
            assert getattr(msg, attr) == expected

    def test_empty_values_count_as_missing(self):
        headers = {"from": "", "to": "", "subject": "", "date": ""}
        msg = normalize(RawRecord(record_id="3", headers=headers, body=""))
        assert msg.from_ == "Unknown"
        assert msg.subject == "No Subject"
        assert msg.body == "No Content"

    def test_serializes_with_wire_names(self):
        msg = normalize(RawRecord(record_id="4", headers=FULL_HEADERS, body="b"))
        data = msg.model_dump(by_alias=True)
        assert set(data) == {"id", "from", "to", "subject", "date", "body", "isRead"}
        assert all(value is not None for value in data.values())


class TestIsRead:
    def test_uses_imap_seen_flag(self):
        assert normalizer.SEEN_FLAG is imap_client.SEEN_FLAG
        msg = normalize(RawRecord(record_id="7", flags=frozenset({imap_client.SEEN_FLAG})))
        assert msg.is_read is False

    def test_seen_flag_means_not_read(self):
        msg = normalize(RawRecord(record_id="5", flags=frozenset({"\\Seen"})))
        assert msg.is_read is False

    def test_no_seen_flag_means_read(self):
        msg = normalize(RawRecord(record_id="6", flags=frozenset({"\\Flagged"})))
        assert msg.is_read is True

    def test_no_flags_means_read(self):
        assert normalize(RawRecord(record_id="8")).is_read is True
