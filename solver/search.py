"""Depth- and time-bounded backtracking search over Klondike positions.

A result that is not ``solved`` means "no solution found within the given
bounds". Branch limiting and the move-skipping heuristics make the search
incomplete, so only a run that cut nothing off may report
``proven_unsolvable``.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional

from solver.evaluator import game_progress, progress_score
from solver.moves import Move, apply_move, generate_moves, is_foundation_move
from solver.ranker import DEFAULT_WEIGHTS, RankWeights, best_ranked, is_probably_bad, rank_moves
from solver.state import KlondikeState, StateKey, canonical_state_key, is_won, validate_state

logger = logging.getLogger(__name__)

# One interpreter frame per ply; keep well below the default recursion limit.
MAX_SEARCH_DEPTH = 600
STOP_POLL_MASK = 0xFF


@dataclass(frozen=True, slots=True)
class SearchLimits:
    max_depth: int = 200
    max_seconds: float = 10.0
    max_nodes: int = 2_000_000


@dataclass(frozen=True, slots=True)
class SearchPolicy:
    # Only the top-ranked moves are tried at each node; foundation moves always are.
    limit_branching: bool = True
    branching_narrow: int = 5
    branching_medium: int = 8
    branching_wide: int = 12
    # Remaining depth above which the narrow / medium caps apply: branching is
    # tightest near the root, where the budget is largest, and widens as it runs out.
    narrow_depth: int = 100
    medium_depth: int = 50
    # Widen once the position is far along (see evaluator.game_progress).
    endgame_progress: float = 0.5
    endgame_extra_branches: int = 4
    # Skip counterproductive and run-splitting moves early in the search.
    skip_probably_bad: bool = True
    probably_bad_depth: int = 75
    # Skip moves whose one-step progress falls below the floor while depth is ample.
    skip_regressive: bool = True
    regress_floor: int = -10
    regress_depth: int = 50
    recycle_progress_penalty: int = 8
    # Waste turnovers allowed on one line of play; None is unbounded.
    max_recycles: Optional[int] = 3
    # Branch attempts between cooperative yields; 0 disables yielding.
    yield_every: int = 16
    weights: RankWeights = DEFAULT_WEIGHTS


DEFAULT_POLICY = SearchPolicy()


@dataclass(slots=True)
class SolveResult:
    status: str
    stop_reason: str
    solution: tuple[Move, ...]
    expanded_nodes: int
    generated_nodes: int
    cycles_skipped: int
    pruned_moves: int
    depth_cutoffs: int
    max_depth: int
    elapsed_ms: float

    @property
    def solvable(self) -> bool:
        return self.status == "solved"

    @property
    def move_count(self) -> int:
        return len(self.solution)

    def to_dict(self) -> dict:
        return {
            "solvable": self.solvable,
            "status": self.status,
            "reason": self.stop_reason,
            "moves": [move.to_dict() for move in self.solution],
            "moveCount": self.move_count,
            "metrics": {
                "expanded_nodes": self.expanded_nodes,
                "generated_nodes": self.generated_nodes,
                "cycles_skipped": self.cycles_skipped,
                "pruned_moves": self.pruned_moves,
                "depth_cutoffs": self.depth_cutoffs,
                "max_depth": self.max_depth,
                "elapsed_ms": round(self.elapsed_ms, 3),
            },
        }


class SearchAborted(Exception):
    """Raised inside a search when its time or node budget runs out, or it is cancelled."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


def _cooperative_yield() -> None:
    time.sleep(0)


class _SearchContext:
    """Mutable bookkeeping for exactly one solve call."""

    def __init__(
        self,
        limits: SearchLimits,
        policy: SearchPolicy,
        should_stop: Optional[Callable[[], bool]],
        yield_hook: Optional[Callable[[], None]],
    ) -> None:
        self.limits = limits
        self.policy = policy
        self.should_stop = should_stop
        self.yield_hook = yield_hook if yield_hook is not None else _cooperative_yield
        self.deadline = time.perf_counter() + max(0.0, limits.max_seconds)
        self.on_path: set[StateKey] = set()
        self.path: list[Move] = []
        self.expanded = 0
        self.generated = 0
        self.cycles = 0
        self.pruned = 0
        self.depth_cutoffs = 0
        self.max_depth = 0
        self.attempts = 0

    def check_budget(self) -> None:
        if time.perf_counter() >= self.deadline:
            raise SearchAborted("time_limit")
        if self.expanded >= self.limits.max_nodes:
            raise SearchAborted("node_limit")
        if self.should_stop is not None and (self.expanded & STOP_POLL_MASK) == 0 and self.should_stop():
            raise SearchAborted("cancelled")

    def branch_limit(self, state: KlondikeState, depth_left: int) -> int:
        policy = self.policy
        if depth_left > policy.narrow_depth:
            limit = policy.branching_narrow
        elif depth_left > policy.medium_depth:
            limit = policy.branching_medium
        else:
            limit = policy.branching_wide
        if game_progress(state) > policy.endgame_progress:
            limit += policy.endgame_extra_branches
        return max(1, limit)

    def candidates(self, state: KlondikeState, ranked: list[Move], depth_left: int) -> list[Move]:
        if not self.policy.limit_branching:
            return ranked
        limit = self.branch_limit(state, depth_left)
        kept = ranked[:limit]
        kept.extend(move for move in ranked[limit:] if is_foundation_move(move))
        self.pruned += len(ranked) - len(kept)
        return kept

    def skip_before_apply(self, move: Move, state: KlondikeState, depth_left: int) -> bool:
        policy = self.policy
        if move.recycle and policy.max_recycles is not None and state.recycles >= policy.max_recycles:
            return True
        if policy.skip_probably_bad and depth_left > policy.probably_bad_depth:
            return is_probably_bad(move, state)
        return False

    def skip_after_apply(self, state: KlondikeState, child: KlondikeState, depth_left: int) -> bool:
        policy = self.policy
        if not policy.skip_regressive or depth_left <= policy.regress_depth:
            return False
        return progress_score(state, child, policy.recycle_progress_penalty) < policy.regress_floor

    def dfs(self, state: KlondikeState, depth_left: int) -> bool:
        self.check_budget()
        if is_won(state):
            return True
        if depth_left <= 0:
            self.depth_cutoffs += 1
            return False

        key = canonical_state_key(state)
        if key in self.on_path:
            self.cycles += 1
            return False
        self.on_path.add(key)
        self.expanded += 1
        self.max_depth = max(self.max_depth, len(self.path))

        ranked = rank_moves(generate_moves(state), state, self.policy.weights)
        for move in self.candidates(state, ranked, depth_left):
            if self.skip_before_apply(move, state, depth_left):
                self.pruned += 1
                continue
            child = apply_move(state, move)
            self.generated += 1
            if self.skip_after_apply(state, child, depth_left):
                self.pruned += 1
                continue

            self.path.append(move)
            if self.dfs(child, depth_left - 1):
                return True
            self.path.pop()

            self.attempts += 1
            if self.policy.yield_every > 0 and self.attempts % self.policy.yield_every == 0:
                self.yield_hook()

        self.on_path.discard(key)
        return False


def solve_state(
    initial_state: KlondikeState,
    limits: SearchLimits = SearchLimits(),
    policy: SearchPolicy = DEFAULT_POLICY,
    should_stop: Optional[Callable[[], bool]] = None,
    yield_hook: Optional[Callable[[], None]] = None,
) -> SolveResult:
    """Search for a winning move sequence; raises InvalidStateError on a corrupt position."""

    validate_state(initial_state)
    max_depth = limits.max_depth
    if max_depth > MAX_SEARCH_DEPTH:
        logger.warning("max_depth %d clamped to %d", max_depth, MAX_SEARCH_DEPTH)
        max_depth = MAX_SEARCH_DEPTH

    start = time.perf_counter()
    ctx = _SearchContext(limits, policy, should_stop, yield_hook)
    logger.debug("solve started: depth=%d seconds=%.3f", max_depth, limits.max_seconds)

    try:
        found = ctx.dfs(initial_state, max(0, max_depth))
        if found:
            status, stop_reason = "solved", "goal_reached"
        elif ctx.pruned > 0 or ctx.depth_cutoffs > 0:
            status, stop_reason = "unknown", "limits_reached"
        else:
            status, stop_reason = "proven_unsolvable", "search_space_exhausted"
    except SearchAborted as exc:
        found = False
        status, stop_reason = "unknown", exc.reason
        logger.info("solve aborted: %s after %d nodes", exc.reason, ctx.expanded)

    elapsed_ms = (time.perf_counter() - start) * 1000.0
    result = SolveResult(
        status=status,
        stop_reason=stop_reason,
        solution=tuple(ctx.path) if found else (),
        expanded_nodes=ctx.expanded,
        generated_nodes=ctx.generated,
        cycles_skipped=ctx.cycles,
        pruned_moves=ctx.pruned,
        depth_cutoffs=ctx.depth_cutoffs,
        max_depth=ctx.max_depth,
        elapsed_ms=elapsed_ms,
    )
    logger.debug("solve finished: %s (%s) moves=%d nodes=%d", status, stop_reason, result.move_count, ctx.expanded)
    return result


def solve(state: KlondikeState, max_depth: int = 200, max_time_millis: int = 10_000) -> SolveResult:
    return solve_state(state, limits=SearchLimits(max_depth=max_depth, max_seconds=max_time_millis / 1000.0))


def best_move(state: KlondikeState, weights: RankWeights = DEFAULT_WEIGHTS) -> Optional[Move]:
    """Single top-ranked legal move for a hint, or None when nothing is legal."""
    return best_ranked(generate_moves(state), state, weights)
