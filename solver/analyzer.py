from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Callable, Iterable, Optional

from klondike.Cards import GameConfig, cardNum
from solver.codec import state_from_payload
from solver.evaluator import StockAdvice, analyze_stock, path_confidence, position_insights, win_probability
from solver.moves import KING_NUM, STOCK_DRAW, TABLEAU_TO_TABLEAU, WASTE_TO_TABLEAU, Move, apply_move, is_foundation_move
from solver.ranker import DEFAULT_WEIGHTS, RankWeights, is_counterproductive, reveals_hidden_card
from solver.search import DEFAULT_POLICY, SearchLimits, SearchPolicy, SolveResult, best_move, solve_state
from solver.settings import PROFILES, PROFILE_ORDER, load_search_settings
from solver.state import InvalidStateError, KlondikeState, build_initial_state

logger = logging.getLogger(__name__)

PLAN_LOOKAHEAD = 2


@dataclass(frozen=True, slots=True)
class SearchStage:
    name: str
    policy: SearchPolicy
    time_share: float
    node_share: float


@dataclass(slots=True)
class Hint:
    move: Optional[Move]
    reasoning: tuple[str, ...]
    win_probability: float
    stock: StockAdvice
    plan: tuple[Move, ...] = ()

    def to_dict(self) -> dict:
        return {
            "move": self.move.to_dict() if self.move is not None else None,
            "reasoning": list(self.reasoning),
            "winProbability": round(self.win_probability, 1),
            "stock": self.stock.to_dict(),
            "plan": [move.to_notation() for move in self.plan],
        }


@dataclass(slots=True)
class AnalyzeResult:
    status: str
    solvable: Optional[bool]
    proven: bool
    win_probability: float
    insights: tuple[str, ...]
    best_move: Optional[str]
    metrics: dict
    seed: Optional[int] = None
    draw_mode: Optional[int] = None
    solution: tuple[str, ...] = ()
    confidence: Optional[int] = None

    def to_dict(self) -> dict:
        return {
            "seed": self.seed,
            "draw_mode": self.draw_mode,
            "status": self.status,
            "solvable": self.solvable,
            "proven": self.proven,
            "win_probability": round(self.win_probability, 1),
            "insights": list(self.insights),
            "best_move": self.best_move,
            "confidence": self.confidence,
            "metrics": self.metrics,
            "solution": list(self.solution),
        }


def _build_stage_plan() -> tuple[SearchStage, ...]:
    return (
        SearchStage("aggressive", PROFILES["aggressive"], 0.40, 0.40),
        SearchStage("balanced", PROFILES["balanced"], 0.60, 0.60),
    )


def _allocate_stage_limits(base: SearchLimits, stage: SearchStage) -> SearchLimits:
    return SearchLimits(
        max_depth=base.max_depth,
        max_seconds=max(0.05, base.max_seconds * stage.time_share),
        max_nodes=max(2_000, int(base.max_nodes * stage.node_share)),
    )


def _stage_detail(name: str, result: SolveResult) -> dict:
    return {
        "name": name,
        "status": result.status,
        "reason": result.stop_reason,
        "elapsed_ms": round(result.elapsed_ms, 3),
        "expanded_nodes": result.expanded_nodes,
        "generated_nodes": result.generated_nodes,
        "cycles_skipped": result.cycles_skipped,
        "pruned_moves": result.pruned_moves,
    }


def solve_staged(
    initial_state: KlondikeState,
    limits: SearchLimits = SearchLimits(),
    should_stop: Optional[Callable[[], bool]] = None,
) -> tuple[SolveResult, list[dict], str]:
    """Narrow search first, then a wider one with the rest of the budget."""

    stages = _build_stage_plan()
    stage_details: list[dict] = []
    final_result: Optional[SolveResult] = None
    final_stage = stages[-1].name
    totals = {
        "expanded_nodes": 0,
        "generated_nodes": 0,
        "cycles_skipped": 0,
        "pruned_moves": 0,
        "depth_cutoffs": 0,
        "max_depth": 0,
        "elapsed_ms": 0.0,
    }

    for stage in stages:
        result = solve_state(
            initial_state,
            limits=_allocate_stage_limits(limits, stage),
            policy=stage.policy,
            should_stop=should_stop,
        )
        stage_details.append(_stage_detail(stage.name, result))
        totals["expanded_nodes"] += result.expanded_nodes
        totals["generated_nodes"] += result.generated_nodes
        totals["cycles_skipped"] += result.cycles_skipped
        totals["pruned_moves"] += result.pruned_moves
        totals["depth_cutoffs"] += result.depth_cutoffs
        totals["max_depth"] = max(totals["max_depth"], result.max_depth)
        totals["elapsed_ms"] += result.elapsed_ms
        final_result = result
        final_stage = stage.name
        if result.status in ("solved", "proven_unsolvable") or result.stop_reason == "cancelled":
            break
        logger.debug("stage %s ended %s (%s)", stage.name, result.status, result.stop_reason)

    assert final_result is not None
    merged = replace(final_result, **totals)
    return merged, stage_details, final_stage


def _move_reasoning(move: Move, state: KlondikeState) -> list[str]:
    reasons: list[str] = []
    if move.kind == STOCK_DRAW:
        if move.recycle:
            reasons.append("Turn the waste back into the stock")
        else:
            reasons.append("No stronger move on the table, draw from the stock")
        return reasons
    if is_foundation_move(move):
        reasons.append(f"Build the foundation with {move.to_notation()}")
    if reveals_hidden_card(move, state):
        reasons.append("Reveals a face-down card")
    if move.kind in (TABLEAU_TO_TABLEAU, WASTE_TO_TABLEAU):
        if not state.tableau[move.dest_col] and cardNum(move.card) == KING_NUM:
            reasons.append("Places a King in an empty column")
        else:
            reasons.append("Extends a tableau sequence")
    if is_counterproductive(move, state):
        reasons.append("Only move left, though the card could go to its foundation")
    return reasons


def _plan_ahead(state: KlondikeState, first: Move, weights: RankWeights) -> tuple[Move, ...]:
    """Follow-up best moves while the line keeps scoring or revealing cards."""
    plan: list[Move] = []
    move = first
    current = state
    for _ in range(PLAN_LOOKAHEAD):
        if not (is_foundation_move(move) or reveals_hidden_card(move, current)):
            break
        current = apply_move(current, move)
        move = best_move(current, weights)
        if move is None:
            break
        plan.append(move)
    return tuple(plan)


def hint(state: KlondikeState, weights: RankWeights = DEFAULT_WEIGHTS) -> Hint:
    """Top-ranked move with its reasoning; never searches."""
    move = best_move(state, weights)
    stock = analyze_stock(state)
    probability = win_probability(state)
    if move is None:
        return Hint(None, ("No legal moves available",), probability, stock)
    reasoning = _move_reasoning(move, state)
    if move.kind == STOCK_DRAW and stock.reason:
        reasoning.append(stock.reason)
    return Hint(move, tuple(reasoning), probability, stock, _plan_ahead(state, move, weights))


def analyze_state(
    initial_state: KlondikeState,
    seed: Optional[int] = None,
    limits: SearchLimits = SearchLimits(),
    policy: SearchPolicy = DEFAULT_POLICY,
    staged: bool = True,
    should_stop: Optional[Callable[[], bool]] = None,
) -> AnalyzeResult:
    """Run the solver and summarize the position."""

    if staged:
        solved, stage_details, final_stage = solve_staged(initial_state, limits, should_stop=should_stop)
    else:
        solved = solve_state(initial_state, limits, policy=policy, should_stop=should_stop)
        stage_details = [_stage_detail("single", solved)]
        final_stage = "single"

    metrics = solved.to_dict()["metrics"]
    metrics["reason"] = solved.stop_reason
    metrics["final_stage"] = final_stage
    metrics["stages"] = stage_details

    suggestion = best_move(initial_state)
    common = {
        "seed": seed,
        "draw_mode": initial_state.draw_mode,
        "win_probability": win_probability(initial_state),
        "insights": position_insights(initial_state),
        "best_move": suggestion.to_notation() if suggestion is not None else None,
        "metrics": metrics,
    }

    if solved.status == "solved":
        metrics["solution_len"] = solved.move_count
        return AnalyzeResult(
            status="solved",
            solvable=True,
            proven=False,
            solution=tuple(move.to_notation() for move in solved.solution),
            confidence=path_confidence(solved.solution),
            **common,
        )

    if solved.status == "proven_unsolvable":
        return AnalyzeResult(status="proven_unsolvable", solvable=False, proven=True, **common)

    return AnalyzeResult(status="unknown", solvable=None, proven=False, **common)


def analyze_seed(
    seed: int,
    draw_mode: int = 1,
    limits: SearchLimits = SearchLimits(),
    policy: SearchPolicy = DEFAULT_POLICY,
    staged: bool = True,
) -> AnalyzeResult:
    cfg = GameConfig()
    cfg.seed = seed
    cfg.drawMode = draw_mode
    state = build_initial_state(cfg)
    return analyze_state(initial_state=state, seed=seed, limits=limits, policy=policy, staged=staged)


def analyze_seeds(
    seeds: Iterable[int],
    draw_mode: int = 1,
    limits: SearchLimits = SearchLimits(),
    policy: SearchPolicy = DEFAULT_POLICY,
    staged: bool = True,
) -> list[AnalyzeResult]:
    return [
        analyze_seed(seed=seed, draw_mode=draw_mode, limits=limits, policy=policy, staged=staged) for seed in seeds
    ]


def _parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Analyze Klondike deals: solvability, win probability, hints.")
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--seed", type=int, action="append", help="Seed to deal and analyze; can be repeated.")
    source.add_argument("--state-file", type=str, help="JSON file holding a serialized position.")
    source.add_argument("--game-config", type=str, help="Game config file (seed, drawMode, gameCode) describing a deal.")
    parser.add_argument("--draw-mode", type=int, choices=(1, 3), default=1, help="Cards per stock draw.")
    parser.add_argument("--profile", choices=PROFILE_ORDER, help="Search profile; implies a single stage.")
    parser.add_argument("--config", type=str, help="Search settings ini file.")
    parser.add_argument("--max-depth", type=int, help="Search depth limit.")
    parser.add_argument("--max-seconds", type=float, help="Search time limit in seconds.")
    parser.add_argument("--max-nodes", type=int, help="Search node limit.")
    parser.add_argument("--single-stage", action="store_true", help="Disable staged search.")
    parser.add_argument("--hint", action="store_true", help="Print the best move instead of searching.")
    parser.add_argument("--pretty", action="store_true", help="Pretty-print json output.")
    parser.add_argument("--verbose", action="store_true", help="Log search progress to stderr.")
    return parser.parse_args(argv)


def _load_state_file(path: str) -> KlondikeState:
    with Path(path).expanduser().open(encoding="utf-8") as f:
        return state_from_payload(json.load(f))


def main(argv=None) -> None:
    args = _parse_args(argv)
    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, stream=sys.stderr, format="%(levelname)s %(name)s: %(message)s")

    settings = load_search_settings(args.config, args.profile)
    limits = SearchLimits(
        max_depth=args.max_depth if args.max_depth is not None else settings.limits.max_depth,
        max_seconds=args.max_seconds if args.max_seconds is not None else settings.limits.max_seconds,
        max_nodes=args.max_nodes if args.max_nodes is not None else settings.limits.max_nodes,
    )
    staged = not args.single_stage and args.profile is None

    if args.state_file:
        try:
            state = _load_state_file(args.state_file)
        except (OSError, json.JSONDecodeError, InvalidStateError) as exc:
            print(json.dumps({"error": str(exc)}, ensure_ascii=False))
            sys.exit(2)
        if args.hint:
            payload = hint(state, settings.policy.weights).to_dict()
        else:
            payload = analyze_state(state, limits=limits, policy=settings.policy, staged=staged).to_dict()
    elif args.game_config:
        cfg = GameConfig.loadFromFile(Path(args.game_config).expanduser())
        state = build_initial_state(cfg)
        if args.hint:
            payload = {"seed": cfg.seed, **hint(state, settings.policy.weights).to_dict()}
        else:
            payload = analyze_state(state, seed=cfg.seed, limits=limits, policy=settings.policy, staged=staged).to_dict()
    elif args.hint:
        payload = []
        for seed in args.seed:
            cfg = GameConfig()
            cfg.seed = seed
            cfg.drawMode = args.draw_mode
            payload.append({"seed": seed, **hint(build_initial_state(cfg), settings.policy.weights).to_dict()})
    else:
        results = analyze_seeds(
            args.seed,
            draw_mode=args.draw_mode,
            limits=limits,
            policy=settings.policy,
            staged=staged,
        )
        payload = [result.to_dict() for result in results]

    if isinstance(payload, list) and len(payload) == 1:
        payload = payload[0]

    if args.pretty:
        print(json.dumps(payload, ensure_ascii=False, indent=2))
    else:
        print(json.dumps(payload, ensure_ascii=False))


if __name__ == "__main__":
    main()
