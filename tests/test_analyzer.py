import io
import json
import os
import tempfile
import unittest
from contextlib import redirect_stdout

from solver.analyzer import analyze_seed, analyze_seeds, analyze_state, hint, main, solve_staged
from solver.codec import state_to_payload
from solver.moves import STOCK_DRAW, TABLEAU_TO_FOUNDATION
from solver.search import SearchLimits
from solver.state import KlondikeState


def card(suit, rank):
    return suit * 13 + rank - 1


def position(tableau, hidden=None, stock=(), waste=(), foundations=(0, 0, 0, 0)):
    tableau = tuple(tuple(column) for column in tableau)
    tableau += ((),) * (7 - len(tableau))
    hidden = tuple(hidden or ()) + (0,) * (7 - len(hidden or ()))
    return KlondikeState(
        stock=tuple(stock),
        waste=tuple(waste),
        foundations=tuple(foundations),
        tableau=tableau,
        hidden_prefix=hidden,
    )


def one_move_from_win():
    return position([(card(0, 13),)], foundations=(12, 13, 13, 13))


def deadlock():
    nine_hearts, nine_diamonds, two_clubs = card(1, 9), card(3, 9), card(2, 2)
    buried = tuple(c for c in range(52) if c not in (nine_hearts, nine_diamonds, two_clubs))
    return position([(nine_hearts,), (nine_diamonds,), buried + (two_clubs,)], hidden=(0, 0, len(buried)))


def shuttle():
    nine_hearts, nine_diamonds, eight_spades, two_clubs = card(1, 9), card(3, 9), card(0, 8), card(2, 2)
    placed = (nine_hearts, nine_diamonds, eight_spades, two_clubs)
    buried = tuple(c for c in range(52) if c not in placed)
    return position(
        [(nine_hearts,), (nine_diamonds,), (eight_spades,), buried + (two_clubs,)],
        hidden=(0, 0, 0, len(buried)),
    )


def court_cards():
    return position(
        [
            (card(0, 13), card(1, 12), card(0, 11)),
            (card(1, 13), card(0, 12), card(1, 11)),
            (card(2, 13), card(3, 12), card(2, 11)),
            (card(3, 13), card(2, 12), card(3, 11)),
        ],
        foundations=(10, 10, 10, 10),
    )


def run_cli(argv):
    out = io.StringIO()
    with redirect_stdout(out):
        main(argv)
    return json.loads(out.getvalue())


class StagedSearchTestCase(unittest.TestCase):
    def test_first_stage_solves(self):
        result, stages, final_stage = solve_staged(one_move_from_win(), SearchLimits(max_seconds=2.0))
        self.assertTrue(result.solvable)
        self.assertEqual("aggressive", final_stage)
        self.assertEqual(1, len(stages))

    def test_widens_after_inconclusive_stage(self):
        result, stages, final_stage = solve_staged(shuttle(), SearchLimits(max_seconds=2.0))
        self.assertFalse(result.solvable)
        self.assertEqual(["aggressive", "balanced"], [stage["name"] for stage in stages])
        self.assertEqual("balanced", final_stage)
        self.assertEqual(sum(stage["expanded_nodes"] for stage in stages), result.expanded_nodes)


class AnalyzeStateTestCase(unittest.TestCase):
    def test_solved_state(self):
        result = analyze_state(one_move_from_win(), limits=SearchLimits(max_seconds=2.0))
        self.assertEqual("solved", result.status)
        self.assertTrue(result.solvable)
        self.assertEqual(("T0->F(K♠)",), result.solution)
        self.assertEqual("T0->F(K♠)", result.best_move)
        self.assertIsNotNone(result.confidence)
        self.assertIn("solution_len", result.metrics)

    def test_deadlock_is_proven(self):
        result = analyze_state(deadlock(), limits=SearchLimits(max_seconds=2.0))
        self.assertEqual("proven_unsolvable", result.status)
        self.assertIs(False, result.solvable)
        self.assertTrue(result.proven)
        self.assertIsNone(result.best_move)
        self.assertIn("no legal moves", result.insights)

    def test_single_stage_unknown(self):
        result = analyze_state(shuttle(), limits=SearchLimits(max_seconds=2.0), staged=False)
        self.assertEqual("unknown", result.status)
        self.assertIsNone(result.solvable)
        self.assertFalse(result.proven)
        self.assertEqual("single", result.metrics["final_stage"])

    def test_to_dict(self):
        data = analyze_state(one_move_from_win(), seed=9, limits=SearchLimits(max_seconds=2.0)).to_dict()
        self.assertEqual(9, data["seed"])
        self.assertEqual(["T0->F(K♠)"], data["solution"])
        self.assertEqual(1, data["draw_mode"])
        self.assertIn("expanded_nodes", data["metrics"])

    def test_analyze_seed_returns_structured_result(self):
        result = analyze_seed(seed=20260210, limits=SearchLimits(max_seconds=0.1, max_nodes=1500))
        self.assertIn(result.status, {"solved", "unknown", "proven_unsolvable"})
        self.assertEqual(20260210, result.seed)
        self.assertIn("expanded_nodes", result.metrics)

    def test_analyze_seeds(self):
        results = analyze_seeds([1, 2], draw_mode=3, limits=SearchLimits(max_seconds=0.05), staged=False)
        self.assertEqual([1, 2], [r.seed for r in results])
        self.assertTrue(all(r.draw_mode == 3 for r in results))


class HintTestCase(unittest.TestCase):
    def test_foundation_hint(self):
        advice = hint(one_move_from_win())
        self.assertEqual(TABLEAU_TO_FOUNDATION, advice.move.kind)
        self.assertTrue(any("foundation" in reason for reason in advice.reasoning))
        self.assertEqual((), advice.plan)

    def test_plan_follows_foundation_moves(self):
        advice = hint(court_cards())
        self.assertEqual(card(0, 11), advice.move.card)
        self.assertEqual(2, len(advice.plan))
        self.assertTrue(all(move.kind == TABLEAU_TO_FOUNDATION for move in advice.plan))

    def test_no_moves(self):
        advice = hint(deadlock())
        self.assertIsNone(advice.move)
        self.assertEqual(("No legal moves available",), advice.reasoning)
        self.assertIsNone(advice.to_dict()["move"])

    def test_draw_hint_mentions_stock(self):
        state = position([(card(1, 7),)], stock=(card(3, 12), card(0, 6)))
        advice = hint(state)
        self.assertEqual(STOCK_DRAW, advice.move.kind)
        self.assertTrue(advice.stock.should_draw)
        self.assertEqual(2, len(advice.reasoning))


class CommandLineTestCase(unittest.TestCase):
    def test_seed_analysis(self):
        payload = run_cli(["--seed", "5", "--max-seconds", "0.1", "--single-stage"])
        self.assertEqual(5, payload["seed"])
        self.assertIn(payload["status"], {"solved", "unknown", "proven_unsolvable"})

    def test_multiple_seeds(self):
        payload = run_cli(["--seed", "5", "--seed", "6", "--max-seconds", "0.05", "--profile", "aggressive"])
        self.assertEqual([5, 6], [item["seed"] for item in payload])

    def test_seed_hint(self):
        payload = run_cli(["--seed", "5", "--draw-mode", "3", "--hint"])
        self.assertEqual(5, payload["seed"])
        self.assertIn("move", payload)

    def test_state_file(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "state.json")
            with open(path, "w", encoding="utf-8") as f:
                json.dump(state_to_payload(one_move_from_win()), f)
            payload = run_cli(["--state-file", path, "--max-seconds", "1", "--pretty"])
        self.assertEqual("solved", payload["status"])
        self.assertEqual(["T0->F(K♠)"], payload["solution"])

    def test_game_config_file(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "game.txt")
            with open(path, "w", encoding="utf-8") as f:
                f.write("# saved deal\nseed=5\ndrawMode=3\ngameCode=None\n")
            payload = run_cli(["--game-config", path, "--max-seconds", "0.1", "--single-stage"])
            hinted = run_cli(["--game-config", path, "--hint"])
        self.assertEqual(5, payload["seed"])
        self.assertEqual(3, payload["draw_mode"])
        self.assertIn(payload["status"], {"solved", "unknown", "proven_unsolvable"})
        self.assertEqual(5, hinted["seed"])
        self.assertIn("move", hinted)

    def test_bad_state_file(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "state.json")
            with open(path, "w", encoding="utf-8") as f:
                json.dump({"tableau": []}, f)
            out = io.StringIO()
            with redirect_stdout(out), self.assertRaises(SystemExit):
                main(["--state-file", path])
        self.assertIn("error", json.loads(out.getvalue()))


if __name__ == "__main__":
    unittest.main()
