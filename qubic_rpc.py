# qubic_rpc.py - Qubic RPC access for the transfer trigger
# - /v1/status -> current epoch tick range
# - /v2/identities/{id}/transfers -> transfer groups for a tick range
# - request capability is injectable (method + url), defaults to requests

import os
import json
from typing import Any, Callable, List, Optional

import requests
from dotenv import load_dotenv
from pydantic import BaseModel, ValidationError

load_dotenv()

# ---------------------------------
# CONFIG / CONSTANTS
# ---------------------------------
BASE_URL = os.getenv("QUBIC_RPC_URL", "https://rpc.qubic.org").strip().rstrip("/")
REQUEST_TIMEOUT = float(os.getenv("QUBIC_RPC_TIMEOUT", "20"))

TRANSFERS_PAGE = 1
TRANSFERS_PAGE_SIZE = 10

# (method, url) -> raw body (str) or an already-parsed object
RequestFn = Callable[[str, str], Any]


# ---------------------------------
# Errors
# ---------------------------------
class QubicRPCError(Exception):
    """Base class for failures talking to the Qubic RPC."""


class NetworkError(QubicRPCError):
    """Transport failure or non-2xx answer from an RPC endpoint."""


class ParseError(QubicRPCError):
    """Response body is not JSON or not the expected shape."""


# ---------------------------------
# Models
# ---------------------------------
class TickInterval(BaseModel):
    initialProcessedTick: int
    lastProcessedTick: int


class EpochIntervals(BaseModel):
    epoch: int
    intervals: List[TickInterval]


class LastProcessedTick(BaseModel):
    epoch: int


class RPCStatus(BaseModel):
    lastProcessedTick: LastProcessedTick
    processedTickIntervalsPerEpoch: List[EpochIntervals]


class TickRange(BaseModel):
    startTick: int = 0
    endTick: int = 0


# ---------------------------------
# Transport helpers
# ---------------------------------
def http_request(method: str, url: str) -> str:
    try:
        r = requests.request(method, url, timeout=REQUEST_TIMEOUT)
        r.raise_for_status()
    except requests.RequestException as e:
        raise NetworkError(f"{method} {url} failed: {e}") from e
    return r.text


def decode_payload(raw: Any) -> Any:
    """Accepts a raw body (str/bytes) or an already-parsed object."""
    # json.loads sniffs the encoding of bytes; bad UTF-8 is a ValueError too
    if isinstance(raw, (str, bytes, bytearray)):
        try:
            return json.loads(raw)
        except ValueError as e:
            raise ParseError(f"Invalid JSON from RPC: {e}") from e
    return raw


def _base(base_url: Optional[str]) -> str:
    return (base_url or BASE_URL).rstrip("/")


# ---------------------------------
# Status / tick range
# ---------------------------------
def get_rpc_status(request: Optional[RequestFn] = None, base_url: Optional[str] = None) -> RPCStatus:
    request = request or http_request
    data = decode_payload(request("GET", f"{_base(base_url)}/v1/status"))
    try:
        return RPCStatus.model_validate(data)
    except ValidationError as e:
        raise ParseError(f"Unexpected /v1/status payload: {e}") from e


def ticks_for_epoch(status: RPCStatus) -> TickRange:
    """
    Tick range of the epoch named by lastProcessedTick.

    Entries and intervals are walked in array order. The first interval seen
    sets startTick, the last one sets endTick. startTick == 0 means "unset",
    so an interval that genuinely starts at tick 0 gets replaced by the
    next interval's start. No matching epoch -> (0, 0).
    """
    current_epoch = status.lastProcessedTick.epoch
    start_tick = 0
    end_tick = 0

    for entry in status.processedTickIntervalsPerEpoch:
        if entry.epoch != current_epoch:
            continue
        for interval in entry.intervals:
            if start_tick == 0:
                start_tick = interval.initialProcessedTick
            end_tick = interval.lastProcessedTick

    return TickRange(startTick=start_tick, endTick=end_tick)


def resolve_current_epoch_ticks(request: Optional[RequestFn] = None, base_url: Optional[str] = None) -> TickRange:
    return ticks_for_epoch(get_rpc_status(request, base_url))


# ---------------------------------
# Transfers
# ---------------------------------
def transfers_url(
    identity: str,
    tick_range: TickRange,
    base_url: Optional[str] = None,
    page: int = TRANSFERS_PAGE,
    page_size: int = TRANSFERS_PAGE_SIZE,
) -> str:
    return (
        f"{_base(base_url)}/v2/identities/{identity}/transfers"
        f"?startTick={tick_range.startTick}&endTick={tick_range.endTick}"
        f"&page={page}&pageSize={page_size}"
    )


def fetch_transfers(
    identity: str,
    tick_range: TickRange,
    request: Optional[RequestFn] = None,
    base_url: Optional[str] = None,
) -> Any:
    request = request or http_request
    data = decode_payload(request("GET", transfers_url(identity, tick_range, base_url)))
    # null would read as "no snapshot yet" downstream
    if data is None:
        raise ParseError(f"Empty transfers payload for {identity}")
    return data
