"""Stateless request surface for running the solver off the caller's thread.

Requests and responses are plain dicts, e.g.
``{"type": "solve", "gameState": {...}, "maxDepth": 200, "maxTimeMillis": 10000}``
answered by ``{"success": True, "data": {...}}`` or ``{"success": False, "error": "..."}``.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from solver.analyzer import analyze_state, hint
from solver.codec import state_from_payload
from solver.evaluator import analyze_stock, position_insights, win_probability
from solver.moves import IllegalMoveError
from solver.search import MAX_SEARCH_DEPTH, SearchLimits, solve_state
from solver.settings import PROFILE_ORDER, profile_policy
from solver.state import InvalidStateError

logger = logging.getLogger(__name__)

REQUEST_TYPES = ("solve", "hint", "analyze", "probability", "test")


class SearchOptions(BaseModel):
    model_config = ConfigDict(extra="ignore")

    maxDepth: int = Field(default=200, ge=1, le=MAX_SEARCH_DEPTH)
    maxTimeMillis: int = Field(default=10_000, ge=1, le=600_000)
    maxNodes: int = Field(default=2_000_000, ge=1)
    profile: Optional[str] = None

    def limits(self) -> SearchLimits:
        return SearchLimits(max_depth=self.maxDepth, max_seconds=self.maxTimeMillis / 1000.0, max_nodes=self.maxNodes)


def _options(request: dict) -> SearchOptions:
    try:
        options = SearchOptions.model_validate(request)
    except ValidationError as exc:
        raise InvalidStateError(f"bad search options: {exc.errors()[0]['msg']}") from exc
    if options.profile is not None and options.profile not in PROFILE_ORDER:
        raise InvalidStateError(f"unknown search profile: {options.profile}")
    return options


def _solve(request: dict, should_stop: Optional[Callable[[], bool]]) -> dict:
    state = state_from_payload(request.get("gameState"))
    options = _options(request)
    result = solve_state(state, options.limits(), profile_policy(options.profile), should_stop=should_stop)
    return result.to_dict()


def _hint(request: dict, should_stop: Optional[Callable[[], bool]]) -> dict:
    return hint(state_from_payload(request.get("gameState"))).to_dict()


def _analyze(request: dict, should_stop: Optional[Callable[[], bool]]) -> dict:
    state = state_from_payload(request.get("gameState"))
    options = _options(request)
    if options.profile is None:
        result = analyze_state(state, limits=options.limits(), staged=True, should_stop=should_stop)
    else:
        result = analyze_state(
            state,
            limits=options.limits(),
            policy=profile_policy(options.profile),
            staged=False,
            should_stop=should_stop,
        )
    return result.to_dict()


def _probability(request: dict, should_stop: Optional[Callable[[], bool]]) -> dict:
    state = state_from_payload(request.get("gameState"))
    return {
        "probability": round(win_probability(state), 1),
        "insights": list(position_insights(state)),
        "stock": analyze_stock(state).to_dict(),
    }


def _test(request: dict, should_stop: Optional[Callable[[], bool]]) -> dict:
    return {"status": "ok", "message": "Solver worker is ready", "types": list(REQUEST_TYPES)}


_HANDLERS = {
    "solve": _solve,
    "hint": _hint,
    "analyze": _analyze,
    "probability": _probability,
    "test": _test,
}


def _failure(message: str) -> dict:
    return {"success": False, "error": message}


def handle_request(request: Any, should_stop: Optional[Callable[[], bool]] = None) -> dict:
    """Answer one request; malformed input becomes a failure response, never an exception."""

    if not isinstance(request, dict):
        logger.warning("rejected request: not an object")
        return _failure("request must be an object")
    kind = request.get("type")
    handler = _HANDLERS.get(kind) if isinstance(kind, str) else None
    if handler is None:
        logger.warning("rejected request: unknown type %r", kind)
        return _failure(f"unknown request type: {kind!r}")
    try:
        data = handler(request, should_stop)
    except (InvalidStateError, IllegalMoveError) as exc:
        logger.warning("rejected %s request: %s", kind, exc)
        return _failure(str(exc))
    return {"success": True, "data": data}


class SolverWorker:
    """Runs requests on a thread pool; each request searches with its own context."""

    def __init__(self, max_workers: int = 1):
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="klondike-solver")
        self._lock = threading.Lock()
        self._pending: dict[Future, threading.Event] = {}

    def submit(self, request: dict) -> Future:
        cancelled = threading.Event()
        future = self._executor.submit(handle_request, request, cancelled.is_set)
        with self._lock:
            self._pending[future] = cancelled
        future.add_done_callback(self._forget)
        return future

    def _forget(self, future: Future) -> None:
        with self._lock:
            self._pending.pop(future, None)

    def cancel_all(self) -> None:
        """Stop every queued or running search; running ones finish as `cancelled`."""
        with self._lock:
            pending = list(self._pending.items())
        for future, cancelled in pending:
            cancelled.set()
            future.cancel()

    def shutdown(self, wait: bool = True, cancel: bool = False) -> None:
        if cancel:
            self.cancel_all()
        self._executor.shutdown(wait=wait)

    def __enter__(self) -> "SolverWorker":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.shutdown(wait=True, cancel=exc_type is not None)
