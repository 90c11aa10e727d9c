"""
Unit tests for change_detector.

Run with:
    pytest tests/test_change_detector.py -v
"""

import logging

from change_detector import detect_change, extract_transaction_ids
from tests.conftest import transfers_payload


class TestExtractTransactionIds:
    """Flattening nested transfer groups."""

    def test_nested_groups(self):
        response = {"transactions": [
            {"transactions": [{"transaction": {"txId": "a"}}, {"transaction": {"txId": "b"}}]},
            {"transactions": [{"transaction": {"txId": "c"}}]},
        ]}
        assert extract_transaction_ids(response) == ["a", "b", "c"]

    def test_malformed_entries_skipped(self):
        response = {"transactions": [
            None,
            "group",
            {"transactions": None},
            {"transactions": [
                None,
                {},
                {"transaction": None},
                {"transaction": {"amount": "5"}},
                {"transaction": {"txId": ""}},
                {"transaction": {"txId": "ok"}},
            ]},
        ]}
        assert extract_transaction_ids(response) == ["ok"]

    def test_non_list_transactions(self):
        assert extract_transaction_ids({"transactions": "nope"}) == []
        assert extract_transaction_ids(None) == []


class TestDetectChange:
    """New-transaction detection between two responses."""

    def test_first_observation_is_not_a_change(self):
        assert detect_change(None, transfers_payload("a", "b")) is False
        assert detect_change(None, {"transactions": None}) is False

    def test_identical_sets_any_order_or_duplicates(self):
        previous = transfers_payload("a", "b", "c")
        current = transfers_payload("c", "a", "b", "a")
        assert detect_change(previous, current) is False

    def test_new_id_is_a_change(self):
        assert detect_change(transfers_payload("a"), transfers_payload("a", "b")) is True

    def test_removed_id_is_not_a_change(self):
        assert detect_change(transfers_payload("a", "b"), transfers_payload("a")) is False

    def test_empty_after_empty(self):
        assert detect_change({"transactions": []}, {"transactions": []}) is False

    def test_current_transactions_not_a_list(self):
        previous = transfers_payload("a")
        assert detect_change(previous, {"transactions": None}) is True
        assert detect_change(previous, {"transactions": "a"}) is True
        assert detect_change(previous, {}) is True

    def test_previous_transactions_not_a_list(self):
        assert detect_change({"transactions": None}, transfers_payload("a")) is True

    def test_non_dict_payload_is_shape_drift(self):
        assert detect_change(transfers_payload("a"), ["a"]) is True

    def test_extraction_failure_reports_change(self, caplog):
        """Unhashable ids break the set diff; that is absorbed as a change and logged."""
        previous = transfers_payload("a")
        current = {"transactions": [{"transactions": [{"transaction": {"txId": {"weird": 1}}}]}]}
        with caplog.at_level(logging.ERROR, logger="qubic_trigger"):
            assert detect_change(previous, current) is True
        assert "Error comparing responses" in caplog.text
