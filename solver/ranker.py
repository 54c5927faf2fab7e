"""Heuristic move scoring used for hints and for ordering the search."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence

from klondike.Cards import cardNum, cardRank
from solver.moves import (
    ACE_NUM,
    KING_NUM,
    STOCK_DRAW,
    TABLEAU_TO_FOUNDATION,
    TABLEAU_TO_TABLEAU,
    WASTE_TO_TABLEAU,
    Move,
    can_place_on_column,
    can_place_on_foundation,
    is_foundation_move,
    is_run_link,
)
from solver.state import KlondikeState, normalized_hidden_prefix


@dataclass(frozen=True, slots=True)
class RankWeights:
    foundation_base: int = 1000
    # Per rank below King; Aces get the most.
    foundation_rank_step: int = 10
    low_card_bonus: int = 200
    low_card_max_rank: int = 4
    reveal_bonus: int = 500
    king_to_empty_bonus: int = 300
    king_run_bonus_per_card: int = 40
    king_run_bonus_cap: int = 200
    pointless_king_penalty: int = 400
    sequence_bonus: int = 50
    counterproductive_penalty: int = 800
    draw_penalty: int = 100
    draw_baseline: int = 15
    draw_useful_bonus: int = 10


DEFAULT_WEIGHTS = RankWeights()


def reveals_hidden_card(move: Move, state: KlondikeState) -> bool:
    """Whether the move lifts everything above a face-down tableau card."""
    if move.kind not in (TABLEAU_TO_FOUNDATION, TABLEAU_TO_TABLEAU):
        return False
    hidden = normalized_hidden_prefix(state)[move.src_col]
    column = state.tableau[move.src_col]
    return hidden > 0 and len(column) - move.count == hidden


def _is_king_to_empty(move: Move, state: KlondikeState) -> bool:
    if move.kind not in (TABLEAU_TO_TABLEAU, WASTE_TO_TABLEAU):
        return False
    return cardNum(move.card) == KING_NUM and not state.tableau[move.dest_col]


def _is_pointless_king_shuffle(move: Move, state: KlondikeState) -> bool:
    """A King that already heads an otherwise empty column moving to another empty column."""
    if move.kind != TABLEAU_TO_TABLEAU or not _is_king_to_empty(move, state):
        return False
    return len(state.tableau[move.src_col]) == move.count


def is_counterproductive(move: Move, state: KlondikeState) -> bool:
    if is_foundation_move(move) or move.kind == STOCK_DRAW:
        return False
    if cardNum(move.card) == ACE_NUM:
        return True
    if move.kind == TABLEAU_TO_TABLEAU:
        # Only a lone top card could have gone to its foundation instead.
        return move.count == 1 and can_place_on_foundation(state, move.card)
    if move.kind == WASTE_TO_TABLEAU:
        return can_place_on_foundation(state, move.card)
    return False


def splits_run(move: Move, state: KlondikeState) -> bool:
    """Whether a tableau move breaks a valid run without exposing a face-down card."""
    if move.kind != TABLEAU_TO_TABLEAU:
        return False
    column = state.tableau[move.src_col]
    start = len(column) - move.count
    if start <= normalized_hidden_prefix(state)[move.src_col]:
        return False
    return is_run_link(column[start - 1], column[start])


def is_probably_bad(move: Move, state: KlondikeState) -> bool:
    return is_counterproductive(move, state) or splits_run(move, state) or _is_pointless_king_shuffle(move, state)


def _next_draw_is_playable(state: KlondikeState) -> bool:
    if state.stock:
        draw_count = min(state.draw_mode, len(state.stock))
        card = state.stock[len(state.stock) - draw_count]
    elif state.waste:
        card = state.waste[0]
    else:
        return False
    if can_place_on_foundation(state, card):
        return True
    return any(can_place_on_column(state, card, col) for col in range(len(state.tableau)))


def score_move(
    move: Move,
    state: KlondikeState,
    moves: Sequence[Move] = (),
    weights: RankWeights = DEFAULT_WEIGHTS,
) -> int:
    """Additive strategic value of `move`; `moves` is the full candidate set it competes with."""

    score = 0

    if move.kind == STOCK_DRAW:
        better_exists = any(is_foundation_move(m) or reveals_hidden_card(m, state) for m in moves)
        if better_exists:
            return -weights.draw_penalty
        score = weights.draw_baseline
        if _next_draw_is_playable(state):
            score += weights.draw_useful_bonus
        return score

    if is_foundation_move(move):
        rank = cardRank(move.card)
        score += weights.foundation_base + (14 - rank) * weights.foundation_rank_step
        if rank <= weights.low_card_max_rank:
            score += weights.low_card_bonus

    if reveals_hidden_card(move, state):
        score += weights.reveal_bonus

    if _is_king_to_empty(move, state):
        if _is_pointless_king_shuffle(move, state):
            score -= weights.pointless_king_penalty
        else:
            score += weights.king_to_empty_bonus
            if move.kind == TABLEAU_TO_TABLEAU and move.count > 1:
                score += min(weights.king_run_bonus_cap, (move.count - 1) * weights.king_run_bonus_per_card)
    elif move.kind in (TABLEAU_TO_TABLEAU, WASTE_TO_TABLEAU):
        # Placement already guarantees the alternating descending link.
        score += weights.sequence_bonus

    if is_counterproductive(move, state):
        score -= weights.counterproductive_penalty

    return score


def rank_moves(
    moves: Sequence[Move],
    state: KlondikeState,
    weights: RankWeights = DEFAULT_WEIGHTS,
) -> list[Move]:
    """Sort moves by descending score; ties keep generation order."""
    scored = [(score_move(move, state, moves, weights), idx, move) for idx, move in enumerate(moves)]
    scored.sort(key=lambda item: (-item[0], item[1]))
    return [move for _, _, move in scored]


def best_ranked(
    moves: Sequence[Move],
    state: KlondikeState,
    weights: RankWeights = DEFAULT_WEIGHTS,
) -> Optional[Move]:
    if not moves:
        return None
    return rank_moves(moves, state, weights)[0]
