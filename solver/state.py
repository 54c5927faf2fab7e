from __future__ import annotations

from collections import Counter
from dataclasses import dataclass

from klondike.Cards import (
    COLUMN_COUNT,
    DECK_SIZE,
    FOUNDATION_COUNT,
    Card,
    GameConfig,
    cardNum,
    cardSuit,
    dealKlondike,
)

CardAtom = int
ColumnAtom = tuple[CardAtom, ...]
StateKey = tuple[
    tuple[int, ...],
    tuple[int, ...],
    tuple[int, ...],
    tuple[tuple[ColumnAtom, int], ...],
]


class InvalidStateError(ValueError):
    """Raised when a position is structurally corrupt and must not be searched."""


@dataclass(frozen=True, slots=True)
class KlondikeState:
    """Immutable full-information Klondike position used by the solver."""

    stock: tuple[int, ...]
    waste: tuple[int, ...]
    foundations: tuple[int, ...]
    tableau: tuple[ColumnAtom, ...]
    # Number of face-down cards from the bottom of each column.
    hidden_prefix: tuple[int, ...] = ()
    draw_mode: int = 1
    # Waste-to-stock turnovers on this line of play; not part of the key.
    recycles: int = 0
    move_count: int = 0


def normalized_hidden_prefix(state: KlondikeState) -> tuple[int, ...]:
    if len(state.hidden_prefix) == len(state.tableau):
        return state.hidden_prefix
    return tuple(0 for _ in state.tableau)


def canonical_state_key(state: KlondikeState) -> StateKey:
    """
    Canonical key for cycle detection:
    - keep stock and waste order (draw order matters)
    - sort tableau columns to collapse permutation symmetry
    """
    hidden = normalized_hidden_prefix(state)
    columns = tuple((state.tableau[i], hidden[i]) for i in range(len(state.tableau)))
    return state.stock, state.waste, state.foundations, tuple(sorted(columns))


def foundation_top(state: KlondikeState, suit: int) -> int:
    """Card id on top of a foundation, or -1 when it is empty."""
    count = state.foundations[suit]
    if count == 0:
        return -1
    return suit * Card.NUM_PER_SUIT + count - 1


def foundation_total(state: KlondikeState) -> int:
    return sum(state.foundations)


def hidden_count(state: KlondikeState) -> int:
    return sum(normalized_hidden_prefix(state))


def empty_columns(state: KlondikeState) -> int:
    return sum(1 for column in state.tableau if not column)


def is_won(state: KlondikeState) -> bool:
    return all(count == Card.NUM_PER_SUIT for count in state.foundations)


def card_counts(state: KlondikeState) -> Counter:
    """Multiset of every card id in the position, foundation cards included."""
    counts: Counter = Counter()
    counts.update(state.stock)
    counts.update(state.waste)
    for column in state.tableau:
        counts.update(column)
    for suit, count in enumerate(state.foundations):
        counts.update(suit * Card.NUM_PER_SUIT + num for num in range(count))
    return counts


def validate_state(state: KlondikeState) -> None:
    """Raise InvalidStateError unless the position holds each of the 52 cards exactly once."""

    if len(state.tableau) != COLUMN_COUNT:
        raise InvalidStateError(f"expected {COLUMN_COUNT} tableau columns, got {len(state.tableau)}")
    if len(state.foundations) != FOUNDATION_COUNT:
        raise InvalidStateError(f"expected {FOUNDATION_COUNT} foundations, got {len(state.foundations)}")
    for suit, count in enumerate(state.foundations):
        if count < 0 or count > Card.NUM_PER_SUIT:
            raise InvalidStateError(f"foundation {Card.SUIT_NAMES[suit]} holds {count} cards")
    if state.draw_mode not in (1, 3):
        raise InvalidStateError(f"draw mode must be 1 or 3, got {state.draw_mode}")
    if state.hidden_prefix and len(state.hidden_prefix) != len(state.tableau):
        raise InvalidStateError("hidden prefix does not match the tableau")
    hidden = normalized_hidden_prefix(state)
    for idx, column in enumerate(state.tableau):
        if hidden[idx] < 0 or hidden[idx] > len(column):
            raise InvalidStateError(f"column {idx} hides {hidden[idx]} of {len(column)} cards")

    counts = card_counts(state)
    out_of_range = sorted(card for card in counts if card < 0 or card >= DECK_SIZE)
    if out_of_range:
        raise InvalidStateError(f"card ids out of range: {out_of_range}")
    duplicates = sorted(card for card, n in counts.items() if n > 1)
    if duplicates:
        raise InvalidStateError(f"duplicate cards: {duplicates}")
    missing = DECK_SIZE - len(counts)
    if missing:
        raise InvalidStateError(f"{missing} cards missing from the position")


def build_initial_state(config: GameConfig) -> KlondikeState:
    """Deal the starting position described by `config`."""

    columns, stock = dealKlondike(config.initDeck())
    tableau = tuple(tuple(card.id for card in column) for column in columns)
    hidden_prefix = tuple(sum(1 for card in column if card.hidden) for column in columns)
    return KlondikeState(
        stock=tuple(card.id for card in stock),
        waste=(),
        foundations=(0,) * FOUNDATION_COUNT,
        tableau=tableau,
        hidden_prefix=hidden_prefix,
        draw_mode=3 if config.isDrawThree() else 1,
    )


def top_is_face_up(state: KlondikeState, col: int) -> bool:
    column = state.tableau[col]
    return len(column) > 0 and normalized_hidden_prefix(state)[col] < len(column)


def describe_card_location(state: KlondikeState, card_id: int) -> str:
    if card_id in state.stock:
        return "stock"
    if card_id in state.waste:
        return "waste"
    for idx, column in enumerate(state.tableau):
        if card_id in column:
            return f"tableau {idx}"
    if cardNum(card_id) < state.foundations[cardSuit(card_id)]:
        return "foundation"
    return "missing"
