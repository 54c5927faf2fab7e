import unittest

from klondike.Cards import GameConfig
from solver.evaluator import (
    StockAdvice,
    analyze_stock,
    buried_playable_count,
    game_progress,
    path_confidence,
    playable_cards,
    position_insights,
    progress_score,
    simulate_stock_draws,
    win_probability,
)
from solver.moves import STOCK_DRAW, TABLEAU_TO_FOUNDATION, Move, apply_move, generate_moves
from solver.state import KlondikeState, build_initial_state


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


def deadlock():
    nine_hearts, nine_diamonds, two_clubs = card(1, 9), card(3, 9), card(2, 2)
    rest = tuple(c for c in range(52) if c not in (nine_hearts, nine_diamonds, two_clubs))
    return position([(nine_hearts,), (nine_diamonds,), rest + (two_clubs,)], hidden=(0, 0, 48))


class WinProbabilityTestCase(unittest.TestCase):
    def test_won_position_scores_full(self):
        self.assertEqual(100.0, win_probability(position([], foundations=(13, 13, 13, 13))))

    def test_fresh_deal(self):
        config = GameConfig()
        config.seed = 8
        state = build_initial_state(config)
        self.assertAlmostEqual(25.0 * (1 - 21 / 28), win_probability(state))
        self.assertLess(game_progress(state), 0)

    def test_hidden_share_is_over_tableau_cards(self):
        state = position([(card(2, 4), card(0, 9))], hidden=(1,))
        self.assertAlmostEqual(25.0 * 0.5 + 15.0 * 6 / 7, win_probability(state))

    def test_score_is_clamped(self):
        self.assertGreaterEqual(win_probability(deadlock()), 0.0)


class ProgressTestCase(unittest.TestCase):
    def test_reveal_and_foundation_progress(self):
        state = position([(card(2, 4), card(0, 9)), (card(3, 10),), (card(0, 1),)], hidden=(1, 0, 0))
        moves = generate_moves(state)
        reveal = next(m for m in moves if m.card == card(0, 9))
        self.assertEqual(5, progress_score(state, apply_move(state, reveal)))

        ace_up = next(m for m in moves if m.kind == TABLEAU_TO_FOUNDATION)
        # The ace leaves its column empty as well.
        self.assertEqual(14, progress_score(state, apply_move(state, ace_up)))

    def test_covering_a_playable_card_is_sharply_regressive(self):
        nine_hearts, king_diamonds, eight_spades = card(1, 9), card(3, 13), card(0, 8)
        state = position([(nine_hearts,), (king_diamonds, eight_spades)], foundations=(0, 8, 0, 0))
        self.assertEqual(frozenset({nine_hearts}), playable_cards(state))
        cover = next(m for m in generate_moves(state) if m.card == eight_spades)
        self.assertEqual(1, buried_playable_count(state, apply_move(state, cover)))
        self.assertEqual(-12, progress_score(state, apply_move(state, cover)))

        play = next(m for m in generate_moves(state) if m.kind == TABLEAU_TO_FOUNDATION)
        self.assertEqual(0, buried_playable_count(state, apply_move(state, play)))
        self.assertEqual(14, progress_score(state, apply_move(state, play)))

    def test_drawing_over_a_playable_waste_card(self):
        state = position([], stock=(card(2, 7),), waste=(card(0, 1),))
        draw = next(m for m in generate_moves(state) if m.kind == STOCK_DRAW)
        self.assertEqual(-12, progress_score(state, apply_move(state, draw)))

    def test_recycle_penalty(self):
        state = position([], waste=(1, 2))
        after = apply_move(state, Move(kind=STOCK_DRAW, recycle=True))
        self.assertEqual(0, progress_score(state, after))
        self.assertEqual(-8, progress_score(state, after, recycle_penalty=8))


class InsightsTestCase(unittest.TestCase):
    def test_deadlock_insights(self):
        self.assertEqual(
            (
                "foundation progress low",
                "many cards blocked (48 face-down)",
                "empty column available",
                "stock exhausted",
                "no legal moves",
            ),
            position_insights(deadlock()),
        )

    def test_high_foundation_progress(self):
        state = position([(card(0, 13),)], foundations=(12, 13, 13, 13))
        self.assertIn("foundation progress high", position_insights(state))


class StockAdviceTestCase(unittest.TestCase):
    def test_empty_stock(self):
        self.assertEqual(
            StockAdvice(False, 0, "No cards in stock or waste", "low"),
            analyze_stock(position([(card(1, 7),)])),
        )

    def test_draw_when_tableau_is_stuck(self):
        six_spades = card(0, 6)
        state = position([(card(1, 7),)], stock=(card(3, 12), six_spades))
        advice = analyze_stock(state)
        self.assertTrue(advice.should_draw)
        self.assertEqual(1, advice.draws_needed)
        self.assertEqual("high", advice.priority)
        self.assertIn("6♠", advice.reason)

    def test_prefer_tableau_moves(self):
        state = position([(card(1, 7),), (card(0, 6),)], stock=(card(3, 12),))
        advice = analyze_stock(state)
        self.assertFalse(advice.should_draw)
        self.assertEqual("low", advice.priority)

    def test_simulated_draws_wrap_around(self):
        state = position([], stock=(5,), waste=(6, 7))
        upcoming = simulate_stock_draws(state, max_draws=4)
        self.assertEqual([5, 6, 7, 5], [c for _, c, _ in upcoming])
        self.assertEqual([1, 2, 3, 4], [n for n, _, _ in upcoming])


class PathConfidenceTestCase(unittest.TestCase):
    def test_bounds(self):
        self.assertEqual(95, path_confidence(()))
        self.assertEqual(20, path_confidence([Move(kind=STOCK_DRAW, draw_count=1)] * 60))
        ups = [Move(kind=TABLEAU_TO_FOUNDATION, card=0, src_col=0, suit=0)] * 10
        self.assertEqual(95, path_confidence(ups))


if __name__ == "__main__":
    unittest.main()
