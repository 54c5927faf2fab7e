from __future__ import annotations

import argparse
import json
import logging
import sys
import time
from pathlib import Path

from klondike.Cards import GameConfig
from solver.analyzer import analyze_seed
from solver.search import SearchLimits
from solver.settings import PROFILE_ORDER, load_search_settings


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Batch seed mining for the Klondike solver/analyzer.")
    parser.add_argument("--draw-mode", type=int, choices=(1, 3), default=1, help="Cards per stock draw.")
    parser.add_argument("--start-seed", type=int, required=True, help="Start seed (inclusive).")
    parser.add_argument("--count", type=int, required=True, help="How many seeds to scan.")
    parser.add_argument("--max-seconds", type=float, default=10.0, help="Per-seed solver time limit.")
    parser.add_argument("--max-nodes", type=int, default=2_000_000, help="Per-seed node limit.")
    parser.add_argument("--max-depth", type=int, default=200, help="Per-seed depth limit.")
    parser.add_argument("--target-solved", type=int, default=1, help="Stop early after this many solved seeds.")
    parser.add_argument("--jsonl", type=str, default="", help="Optional output jsonl path.")
    parser.add_argument("--save-solved", type=str, default="", help="Write the first solved deal as a game config file.")
    parser.add_argument("--profile", choices=PROFILE_ORDER, help="Search profile; implies a single stage.")
    parser.add_argument("--single-stage", action="store_true", help="Disable staged search.")
    parser.add_argument("--verbose", action="store_true", help="Log search progress to stderr.")
    return parser.parse_args(argv)


def _save_deal(seed: int, draw_mode: int, path: str) -> None:
    config = GameConfig()
    config.seed = seed
    config.drawMode = draw_mode
    out = Path(path).expanduser()
    out.parent.mkdir(parents=True, exist_ok=True)
    config.saveToFile(out)


def main(argv=None) -> None:
    args = parse_args(argv)
    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, stream=sys.stderr, format="%(levelname)s %(name)s: %(message)s")
    limits = SearchLimits(max_depth=args.max_depth, max_seconds=args.max_seconds, max_nodes=args.max_nodes)
    policy = load_search_settings(profile=args.profile).policy
    staged = not args.single_stage and args.profile is None

    out_path = Path(args.jsonl).expanduser() if args.jsonl else None
    if out_path is not None:
        out_path.parent.mkdir(parents=True, exist_ok=True)

    solved = 0
    unknown = 0
    proven_unsolvable = 0
    started = time.perf_counter()

    for i in range(args.count):
        seed = args.start_seed + i
        t0 = time.perf_counter()
        result = analyze_seed(seed=seed, draw_mode=args.draw_mode, limits=limits, policy=policy, staged=staged)
        wall_ms = (time.perf_counter() - t0) * 1000.0

        payload = result.to_dict()
        payload["wall_ms"] = round(wall_ms, 3)

        if out_path is not None:
            with out_path.open("a", encoding="utf-8") as f:
                f.write(json.dumps(payload, ensure_ascii=False) + "\n")

        if result.status == "solved":
            solved += 1
            if solved == 1 and args.save_solved:
                _save_deal(seed, args.draw_mode, args.save_solved)
        elif result.status == "proven_unsolvable":
            proven_unsolvable += 1
        else:
            unknown += 1

        metrics = result.metrics
        print(
            f"seed={seed} status={result.status} reason={metrics.get('reason')} "
            f"wall_ms={wall_ms:.1f} solver_ms={metrics['elapsed_ms']} "
            f"expanded={metrics['expanded_nodes']} moves={len(result.solution)} "
            f"win_probability={result.win_probability:.1f}"
        )

        if solved >= args.target_solved:
            break

    total_ms = (time.perf_counter() - started) * 1000.0
    print(
        f"summary draw_mode={args.draw_mode} scanned={solved + unknown + proven_unsolvable} solved={solved} "
        f"unknown={unknown} proven_unsolvable={proven_unsolvable} total_ms={total_ms:.1f}"
    )


if __name__ == "__main__":
    main()
