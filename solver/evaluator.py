"""Cheap, non-recursive position evaluation."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Sequence

from klondike.Cards import COLUMN_COUNT, DECK_SIZE, cardLabel, cardNum, cardSuit
from solver.moves import (
    TABLEAU_TO_FOUNDATION,
    TABLEAU_TO_TABLEAU,
    Move,
    can_place_on_column,
    can_place_on_foundation,
    generate_moves,
    is_foundation_move,
)
from solver.state import KlondikeState, empty_columns, foundation_total, hidden_count, top_is_face_up

# Face-down cards in a fresh deal.
INITIAL_HIDDEN = 21
STOCK_LOOKAHEAD = 10
# Covering a card that could go to its foundation.
BURIED_PLAYABLE_PENALTY = 12


@dataclass(frozen=True, slots=True)
class StockAdvice:
    should_draw: bool
    draws_needed: int
    reason: str
    priority: str

    def to_dict(self) -> dict:
        return asdict(self)


def win_probability(state: KlondikeState) -> float:
    """Heuristic closeness to victory in [0, 100]."""
    score = 60.0 * foundation_total(state) / DECK_SIZE
    tableau_cards = sum(len(column) for column in state.tableau)
    score += 25.0 * (1.0 - hidden_count(state) / max(1, tableau_cards))
    score += 15.0 * empty_columns(state) / COLUMN_COUNT
    return min(100.0, max(0.0, score))


def game_progress(state: KlondikeState) -> float:
    """Foundation fraction minus a penalty for cards still face-down, in [-1, 1]."""
    return foundation_total(state) / DECK_SIZE - hidden_count(state) / DECK_SIZE


def playable_cards(state: KlondikeState) -> frozenset[int]:
    """Exposed cards (waste top and face-up column tops) that fit on their foundation."""
    exposed = [column[-1] for col, column in enumerate(state.tableau) if top_is_face_up(state, col)]
    if state.waste:
        exposed.append(state.waste[-1])
    return frozenset(card for card in exposed if can_place_on_foundation(state, card))


def buried_playable_count(before: KlondikeState, after: KlondikeState) -> int:
    """Cards playable to a foundation before that are covered, not played, after."""
    lost = playable_cards(before) - playable_cards(after)
    return sum(1 for card in lost if after.foundations[cardSuit(card)] <= cardNum(card))


def progress_score(before: KlondikeState, after: KlondikeState, recycle_penalty: int = 0) -> int:
    foundation_delta = foundation_total(after) - foundation_total(before)
    revealed = hidden_count(before) - hidden_count(after)
    empty_delta = empty_columns(after) - empty_columns(before)
    score = foundation_delta * 10 + revealed * 5 + empty_delta * 4
    score -= buried_playable_count(before, after) * BURIED_PLAYABLE_PENALTY
    if after.recycles > before.recycles:
        score -= recycle_penalty
    return score


def position_insights(state: KlondikeState) -> tuple[str, ...]:
    """Advisory strings for display; order is stable."""
    insights: list[str] = []
    on_foundations = foundation_total(state)
    if on_foundations >= DECK_SIZE // 2:
        insights.append("foundation progress high")
    elif on_foundations < 8:
        insights.append("foundation progress low")
    hidden = hidden_count(state)
    if hidden > INITIAL_HIDDEN // 2:
        insights.append(f"many cards blocked ({hidden} face-down)")
    if empty_columns(state) > 0:
        insights.append("empty column available")
    if not state.stock and not state.waste:
        insights.append("stock exhausted")
    if not generate_moves(state):
        insights.append("no legal moves")
    return tuple(insights)


def _is_useful(card: int, state: KlondikeState) -> bool:
    if can_place_on_foundation(state, card):
        return True
    return any(can_place_on_column(state, card, col) for col in range(len(state.tableau)))


def simulate_stock_draws(state: KlondikeState, max_draws: int = STOCK_LOOKAHEAD) -> list[tuple[int, int, bool]]:
    """The waste top after each of the next draws, as (draw number, card, playable now)."""
    stock = list(state.stock)
    waste = list(state.waste)
    upcoming: list[tuple[int, int, bool]] = []
    draw = 0
    while draw < max_draws and (stock or waste):
        if not stock:
            stock = list(reversed(waste))
            waste = []
        for _ in range(min(state.draw_mode, len(stock))):
            waste.append(stock.pop())
        draw += 1
        upcoming.append((draw, waste[-1], _is_useful(waste[-1], state)))
    return upcoming


def _plural(n: int) -> str:
    return "" if n == 1 else "s"


def analyze_stock(state: KlondikeState) -> StockAdvice:
    if not state.stock and not state.waste:
        return StockAdvice(False, 0, "No cards in stock or waste", "low")

    next_useful = next((item for item in simulate_stock_draws(state) if item[2]), None)
    tableau_moves = [m for m in generate_moves(state) if m.kind in (TABLEAU_TO_FOUNDATION, TABLEAU_TO_TABLEAU)]

    if not tableau_moves:
        if next_useful is not None:
            draws, card, _ = next_useful
            return StockAdvice(
                True,
                draws,
                f"No tableau moves available. Draw {draws} time{_plural(draws)} to get {cardLabel(card)}",
                "high",
            )
        return StockAdvice(True, 1, "No tableau moves available, try drawing from stock", "high")

    if len(tableau_moves) < 2 and next_useful is not None and next_useful[0] <= 3:
        draws, card, _ = next_useful
        return StockAdvice(
            True,
            draws,
            f"Limited tableau options. Draw {draws} time{_plural(draws)} to get useful {cardLabel(card)}",
            "medium",
        )

    if next_useful is not None and next_useful[0] <= 5:
        draws = next_useful[0]
        return StockAdvice(
            False,
            draws,
            f"Focus on {len(tableau_moves)} tableau moves first. (Useful card in {draws} draws)",
            "low",
        )

    return StockAdvice(False, 0, f"Focus on {len(tableau_moves)} available tableau moves first", "low")


def path_confidence(moves: Sequence[Move]) -> int:
    length_factor = max(20, 100 - len(moves) * 2)
    foundation_factor = sum(1 for m in moves if is_foundation_move(m)) * 5
    return min(95, length_factor + foundation_factor)
