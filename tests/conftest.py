# tests/conftest.py
import json
import pytest

IDENTITY = "A" * 60
OTHER_IDENTITY = "B" * 60


def status_payload(epoch=150, entries=None):
    if entries is None:
        entries = [
            {"epoch": epoch - 1, "intervals": [{"initialProcessedTick": 1, "lastProcessedTick": 9}]},
            {"epoch": epoch, "intervals": [
                {"initialProcessedTick": 10, "lastProcessedTick": 20},
                {"initialProcessedTick": 21, "lastProcessedTick": 35},
            ]},
        ]
    return {
        "lastProcessedTick": {"tickNumber": 35, "epoch": epoch},
        "processedTickIntervalsPerEpoch": entries,
    }


def transfers_payload(*tx_ids):
    return {
        "transactions": [
            {"tickNumber": 12, "identity": IDENTITY, "transactions": [
                {"transaction": {"txId": tx_id, "amount": "1"}, "moneyFlew": True} for tx_id in tx_ids
            ]}
        ]
    }


class FakeRPC:
    """Routes (method, url) calls to canned status/transfer payloads."""

    def __init__(self, status=None, transfers=None):
        self.status = status_payload() if status is None else status
        self.transfers = {} if transfers is None else transfers
        self.calls = []
        self.fail_with = None

    def __call__(self, method, url):
        self.calls.append((method, url))
        if self.fail_with is not None:
            raise self.fail_with
        if url.endswith("/v1/status"):
            return json.dumps(self.status)
        for identity, payload in self.transfers.items():
            if f"/v2/identities/{identity}/transfers" in url:
                return payload
        return {"transactions": []}


@pytest.fixture
def fake_rpc():
    return FakeRPC()
