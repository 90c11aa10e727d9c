# change_detector.py - "new transaction since last poll" check for transfer responses

import logging
from typing import Any, List, Optional, Set

logger = logging.getLogger("qubic_trigger")


class ComparisonError(Exception):
    """Raised while extracting/diffing transaction ids. Never leaves detect_change."""


def extract_transaction_ids(response: Any) -> List[Any]:
    """
    Flattens transactions[].transactions[].transaction.txId.
    Groups or entries that don't have that shape are skipped.
    """
    tx_ids: List[Any] = []

    if not _has_transaction_list(response):
        return tx_ids

    for tx_group in response["transactions"]:
        inner = tx_group.get("transactions") if isinstance(tx_group, dict) else None
        if not isinstance(inner, list):
            continue
        for entry in inner:
            tx = entry.get("transaction") if isinstance(entry, dict) else None
            if isinstance(tx, dict) and tx.get("txId"):
                tx_ids.append(tx["txId"])

    return tx_ids


def _has_transaction_list(response: Any) -> bool:
    return isinstance(response, dict) and isinstance(response.get("transactions"), list)


def _id_set(response: Any) -> Set[Any]:
    try:
        return set(extract_transaction_ids(response))
    except Exception as e:
        raise ComparisonError(f"could not extract transaction ids: {e}") from e


def detect_change(previous: Optional[Any], current: Any) -> bool:
    # first observation: nothing to compare against
    if previous is None:
        return False

    # shape drift counts as a change
    if not _has_transaction_list(current) or not _has_transaction_list(previous):
        return True

    try:
        current_ids = _id_set(current)
        previous_ids = _id_set(previous)
    except ComparisonError as e:
        logger.error(f"Error comparing responses: {e}")
        return True

    return not current_ids.issubset(previous_ids)
