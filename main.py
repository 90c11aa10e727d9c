# main.py - Qubic Trigger local host (register identities, manual polls, dev poll loop)

import os
import time
import logging
import asyncio
from collections import deque
from typing import Optional, List, Dict, Any, Deque

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel
from dotenv import load_dotenv

# =========================================================
# Load env first
# =========================================================
load_dotenv()

DEFAULT_IDENTITY = os.getenv("QUBIC_IDENTITY", "").strip()
LOOP_SECONDS = float(os.getenv("HOST_LOOP_SECONDS", "1"))
EVENT_HISTORY = int(os.getenv("EVENT_HISTORY", "50"))
LOG_FILE = os.getenv("QUBIC_LOG_FILE", "").strip()

from listener import (
    QubicTrigger,
    POLL_INTERVAL_OPTIONS,
    DEFAULT_POLL_INTERVAL,
    MODE_TRIGGER,
    MODE_MANUAL,
    is_valid_identity,
)
from qubic_rpc import QubicRPCError

DEFAULT_POLL_SECONDS = int(os.getenv("QUBIC_POLL_INTERVAL", str(DEFAULT_POLL_INTERVAL)))

# =========================================================
# App + Logging
# =========================================================
app = FastAPI(
    title="Qubic Trigger Host",
    description="Local host for the Qubic transfer trigger",
    version="1.0.0",
)

logging.basicConfig(
    filename=LOG_FILE or None,
    level=logging.INFO,
    format="%(asctime)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger("qubic_trigger")

# =========================================================
# Registry (one trigger, one snapshot per identity)
# =========================================================
TRIGGERS: Dict[str, QubicTrigger] = {}
EVENTS: Dict[str, Deque[Dict[str, Any]]] = {}
NEXT_DUE: Dict[str, float] = {}


def register_trigger(identity: str, poll_interval: int = DEFAULT_POLL_INTERVAL) -> QubicTrigger:
    trigger = TRIGGERS.get(identity)
    if trigger is not None:
        # keep the last poll time, move the next one onto the new cadence
        if NEXT_DUE.get(identity, 0.0) > 0.0:
            NEXT_DUE[identity] += poll_interval - trigger.poll_interval
        trigger.poll_interval = poll_interval
        return trigger
    trigger = QubicTrigger(identity, poll_interval)
    TRIGGERS[identity] = trigger
    EVENTS[identity] = deque(maxlen=EVENT_HISTORY)
    NEXT_DUE[identity] = 0.0
    logger.info(f"Registered trigger for {identity} every {poll_interval}s")
    return trigger


def unregister_trigger(identity: str) -> bool:
    if TRIGGERS.pop(identity, None) is None:
        return False
    EVENTS.pop(identity, None)
    NEXT_DUE.pop(identity, None)
    logger.info(f"Removed trigger for {identity}")
    return True


def record_output(identity: str, output: Optional[List[List[Dict[str, Any]]]], mode: str):
    events = EVENTS.get(identity)
    if output is None or events is None:
        return
    for batch in output:
        events.append({"ts": int(time.time()), "mode": mode, "items": batch})


def run_due_polls(now: Optional[float] = None) -> int:
    """Scheduled-mode poll of every trigger whose interval has elapsed."""
    now = time.monotonic() if now is None else now
    polled = 0
    for identity, trigger in list(TRIGGERS.items()):
        if NEXT_DUE.get(identity, 0.0) > now:
            continue
        NEXT_DUE[identity] = now + trigger.poll_interval
        record_output(identity, trigger.poll(MODE_TRIGGER), MODE_TRIGGER)
        polled += 1
    return polled


# =========================================================
# Models
# =========================================================
class RegisterTriggerBody(BaseModel):
    identity: str
    poll_interval: int = DEFAULT_POLL_INTERVAL


# =========================================================
# Helpers
# =========================================================
def success_response(data: Any, message: str = "Success") -> dict:
    return {"status": "ok", "message": message, "data": data}


def get_trigger_or_404(identity: str) -> QubicTrigger:
    trigger = TRIGGERS.get(identity)
    if trigger is None:
        raise HTTPException(status_code=404, detail=f"No trigger registered for {identity}")
    return trigger


# =========================================================
# Routes
# =========================================================
@app.get("/")
def root():
    return {"message": "Qubic Trigger host running"}


@app.get("/poll_intervals")
def poll_intervals():
    options = [{"name": name, "value": value} for value, name in POLL_INTERVAL_OPTIONS.items()]
    return success_response({"options": options, "default": DEFAULT_POLL_INTERVAL})


@app.post("/triggers")
def api_register_trigger(body: RegisterTriggerBody):
    if not is_valid_identity(body.identity):
        raise HTTPException(status_code=400, detail="Identity must be 60 uppercase letters or digits")
    if body.poll_interval not in POLL_INTERVAL_OPTIONS:
        raise HTTPException(status_code=400, detail=f"Unsupported poll interval: {body.poll_interval}")
    trigger = register_trigger(body.identity, body.poll_interval)
    return success_response(
        {"identity": trigger.identity, "poll_interval": trigger.poll_interval},
        "Trigger registered",
    )


@app.get("/triggers")
def api_list_triggers():
    return success_response(
        [{"identity": t.identity, "poll_interval": t.poll_interval} for t in TRIGGERS.values()]
    )


@app.delete("/triggers/{identity}")
def api_delete_trigger(identity: str):
    if not unregister_trigger(identity):
        raise HTTPException(status_code=404, detail=f"No trigger registered for {identity}")
    return success_response({"identity": identity}, "Trigger removed")


@app.post("/triggers/{identity}/poll")
def api_manual_poll(identity: str):
    trigger = get_trigger_or_404(identity)
    try:
        output = trigger.poll(MODE_MANUAL)
    except QubicRPCError as e:
        logger.warning(f"Manual poll failed for {identity}: {e}")
        raise HTTPException(status_code=502, detail=str(e))
    except Exception as e:
        logger.exception("manual poll error")
        raise HTTPException(status_code=500, detail=str(e))
    record_output(identity, output, MODE_MANUAL)
    return success_response(output, "Poll complete")


@app.get("/triggers/{identity}/events")
def api_events(identity: str):
    get_trigger_or_404(identity)
    return success_response(list(EVENTS.get(identity, [])))


# =========================================================
# Dev poll loop
# =========================================================
async def _poll_loop():
    while True:
        try:
            await asyncio.to_thread(run_due_polls)
        except Exception as e:
            logger.error(f"poll loop error: {e}")
        await asyncio.sleep(LOOP_SECONDS)


@app.on_event("startup")
async def startup_event():
    if DEFAULT_IDENTITY:
        if is_valid_identity(DEFAULT_IDENTITY):
            register_trigger(DEFAULT_IDENTITY, DEFAULT_POLL_SECONDS)
        else:
            logger.warning("QUBIC_IDENTITY is set but is not a valid identity; skipping")
    asyncio.create_task(_poll_loop())


# =========================================================
# Dev entrypoint
# =========================================================
if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=False)
