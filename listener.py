# listener.py - Qubic transfer trigger (one instance per watched identity)
# - Resolves the current epoch tick range from /v1/status
# - Fetches page 1 of transfers for the identity in that range
# - Emits [[{"hasChanged": bool}]] against the instance's own snapshot
# - Scheduled polls swallow errors (None); manual polls re-raise

import re
import logging
import threading
from typing import Any, Dict, List, Optional

from qubic_rpc import (
    BASE_URL,
    RequestFn,
    http_request,
    resolve_current_epoch_ticks,
    fetch_transfers,
)
from change_detector import detect_change

logger = logging.getLogger("qubic_trigger")

# Host-facing options (value in seconds -> label)
POLL_INTERVAL_OPTIONS: Dict[int, str] = {
    15: "Every 15 Seconds",
    30: "Every 30 Seconds",
    60: "Every Minute",
    300: "Every 5 Minutes",
    900: "Every 15 Minutes",
}
DEFAULT_POLL_INTERVAL = 60

IDENTITY_PATTERN = re.compile(r"^[A-Z0-9]{60}$")

MODE_TRIGGER = "trigger"
MODE_MANUAL = "manual"

PollOutput = Optional[List[List[Dict[str, Any]]]]


def is_valid_identity(identity: str) -> bool:
    return isinstance(identity, str) and IDENTITY_PATTERN.match(identity) is not None


class PollState:
    """Last transfer response seen by one trigger instance."""

    def __init__(self):
        self.previous_response: Optional[Any] = None


class QubicTrigger:
    def __init__(
        self,
        identity: str,
        poll_interval: int = DEFAULT_POLL_INTERVAL,
        request: Optional[RequestFn] = None,
        base_url: Optional[str] = None,
    ):
        self.identity = identity
        self.poll_interval = poll_interval  # read by the host, not by poll()
        self.request = request or http_request
        self.base_url = base_url or BASE_URL
        self.state = PollState()
        self._lock = threading.Lock()

    def poll(self, mode: str = MODE_TRIGGER) -> PollOutput:
        # one cycle at a time per instance: read, diff and store the snapshot together
        with self._lock:
            return self._poll_locked(mode)

    def _poll_locked(self, mode: str) -> PollOutput:
        try:
            tick_range = resolve_current_epoch_ticks(self.request, self.base_url)
            current = fetch_transfers(self.identity, tick_range, self.request, self.base_url)
        except Exception as e:
            if mode == MODE_MANUAL:
                raise
            logger.warning(f"Poll skipped for {self.identity}: {e}")
            return None

        has_changed = detect_change(self.state.previous_response, current)
        self.state.previous_response = current

        logger.info(
            f"Polled {self.identity} ticks {tick_range.startTick}-{tick_range.endTick}: hasChanged={has_changed}"
        )
        return [[{"hasChanged": has_changed}]]


if __name__ == "__main__":
    import os
    import time
    from dotenv import load_dotenv

    load_dotenv()
    logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s")

    identity = os.getenv("QUBIC_IDENTITY", "").strip()
    interval = int(os.getenv("QUBIC_POLL_INTERVAL", str(DEFAULT_POLL_INTERVAL)))
    if not is_valid_identity(identity):
        raise SystemExit("QUBIC_IDENTITY must be 60 uppercase letters/digits")

    trigger = QubicTrigger(identity, interval)
    print(f"🚀 Watching {identity} every {interval}s")
    while True:
        result = trigger.poll()
        if result is not None:
            print("📨", result[0][0])
        time.sleep(interval)
