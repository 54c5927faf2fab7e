import unittest

from solver.moves import STOCK_DRAW, TABLEAU_TO_FOUNDATION, TABLEAU_TO_TABLEAU, WASTE_TO_TABLEAU, Move, generate_moves
from solver.ranker import (
    DEFAULT_WEIGHTS,
    best_ranked,
    is_counterproductive,
    is_probably_bad,
    rank_moves,
    reveals_hidden_card,
    score_move,
    splits_run,
)
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


class RankerTestCase(unittest.TestCase):
    def test_foundation_beats_reveal_beats_sequence(self):
        ace_hearts = card(1, 1)
        nine_spades, ten_diamonds = card(0, 9), card(3, 10)
        # Column 2 hides a card under the nine, so moving it reveals.
        state = position(
            [(ace_hearts,), (ten_diamonds,), (card(2, 4), nine_spades), (card(1, 10),)],
            hidden=(0, 0, 1, 0),
            stock=(card(2, 6),),
        )
        moves = generate_moves(state)
        ranked = rank_moves(moves, state)

        self.assertEqual(TABLEAU_TO_FOUNDATION, ranked[0].kind)
        self.assertEqual(ace_hearts, ranked[0].card)
        self.assertEqual(nine_spades, ranked[1].card)
        self.assertTrue(reveals_hidden_card(ranked[1], state))
        self.assertEqual(STOCK_DRAW, ranked[-1].kind)
        self.assertLess(score_move(ranked[-1], state, moves), 0)

    def test_aces_outrank_higher_foundation_cards(self):
        ace_spades = card(0, 1)
        five_hearts = card(1, 5)
        state = position([(ace_spades,), (five_hearts,)], foundations=(0, 4, 0, 0))
        ranked = rank_moves(generate_moves(state), state)
        self.assertEqual([ace_spades, five_hearts], [move.card for move in ranked])

        ace_score = score_move(ranked[0], state)
        self.assertEqual(
            DEFAULT_WEIGHTS.foundation_base + 13 * DEFAULT_WEIGHTS.foundation_rank_step + DEFAULT_WEIGHTS.low_card_bonus,
            ace_score,
        )

    def test_king_to_empty_column_and_pointless_shuffle(self):
        king = card(0, 13)
        hidden_card = card(3, 3)
        covered = position([(hidden_card, king)], hidden=(1,))
        move = Move(kind=TABLEAU_TO_TABLEAU, card=king, src_col=0, dest_col=1)
        self.assertGreater(score_move(move, covered), DEFAULT_WEIGHTS.reveal_bonus)
        self.assertFalse(is_probably_bad(move, covered))

        alone = position([(king,)])
        shuffle = Move(kind=TABLEAU_TO_TABLEAU, card=king, src_col=0, dest_col=1)
        self.assertLess(score_move(shuffle, alone), 0)
        self.assertTrue(is_probably_bad(shuffle, alone))

    def test_counterproductive_moves(self):
        two_spades, three_hearts = card(0, 2), card(1, 3)
        state = position([(three_hearts,), (card(2, 9), two_spades)], foundations=(1, 0, 0, 0))
        waste_state = position([(three_hearts,)], waste=(two_spades,), foundations=(1, 0, 0, 0))
        to_tableau = Move(kind=WASTE_TO_TABLEAU, card=two_spades, dest_col=0)
        self.assertTrue(is_counterproductive(to_tableau, waste_state))
        self.assertLess(score_move(to_tableau, waste_state), 0)

        tableau_move = Move(kind=TABLEAU_TO_TABLEAU, card=two_spades, src_col=1, dest_col=0)
        self.assertTrue(is_counterproductive(tableau_move, state))

        ace_move = Move(kind=WASTE_TO_TABLEAU, card=card(3, 1), dest_col=0)
        self.assertTrue(is_counterproductive(ace_move, waste_state))

    def test_splitting_a_run_without_reveal_is_probably_bad(self):
        ten_hearts, nine_spades = card(1, 10), card(0, 9)
        state = position([(card(2, 11), ten_hearts, nine_spades), (card(3, 10),)])
        move = Move(kind=TABLEAU_TO_TABLEAU, card=nine_spades, src_col=0, dest_col=1)
        self.assertTrue(splits_run(move, state))
        self.assertTrue(is_probably_bad(move, state))

    def test_draw_baseline_and_playable_bonus(self):
        state = position([(card(1, 7),)], stock=(card(3, 12), card(0, 6)))
        draw = generate_moves(state)[0]
        self.assertEqual(STOCK_DRAW, draw.kind)
        self.assertEqual(
            DEFAULT_WEIGHTS.draw_baseline + DEFAULT_WEIGHTS.draw_useful_bonus,
            score_move(draw, state, [draw]),
        )

        dull = position([(card(1, 7),)], stock=(card(0, 6), card(3, 12)))
        self.assertEqual(DEFAULT_WEIGHTS.draw_baseline, score_move(draw, dull, [draw]))

    def test_ties_keep_generation_order(self):
        state = position([(card(0, 13),), (card(1, 13),)])
        moves = generate_moves(state)
        self.assertEqual(moves, rank_moves(moves, state))
        self.assertEqual(moves[0], best_ranked(moves, state))
        self.assertIsNone(best_ranked([], state))


if __name__ == "__main__":
    unittest.main()
