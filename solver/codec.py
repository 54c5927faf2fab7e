"""Serialized positions in, self-describing move descriptors out.

Payload shape (every pile lists its cards bottom to top unless a
``*TopFirst`` flag says otherwise)::

    {
      "stock": [card, ...], "waste": [card, ...],
      "foundations": [[card, ...], x4],
      "tableau": [[card, ...], x7],
      "drawMode": 1 | 3
    }

where a card is ``{"suit": "hearts" | "♥" | "H" | 1, "rank": 1..13 | "A" | "Q", "faceUp": bool}``.
"""

from __future__ import annotations

from typing import Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from klondike.Cards import COLUMN_COUNT, FOUNDATION_COUNT, Card, cardRank, cardSuit
from solver.moves import FOUNDATION_KINDS, STOCK_DRAW, TABLEAU_TO_TABLEAU, IllegalMoveError, Move
from solver.state import InvalidStateError, KlondikeState, normalized_hidden_prefix, validate_state

_SUIT_ALIASES = {}
for _idx, (_name, _symbol) in enumerate(zip(Card.SUIT_NAMES, Card.SUITS)):
    _SUIT_ALIASES[_name] = _idx
    _SUIT_ALIASES[_name[:-1]] = _idx
    _SUIT_ALIASES[_name[0]] = _idx
    _SUIT_ALIASES[_symbol] = _idx

_RANK_ALIASES = {"a": 1, "ace": 1, "j": 11, "jack": 11, "q": 12, "queen": 12, "k": 13, "king": 13}


def parse_suit(value: Union[int, str]) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, str)):
        raise ValueError(f"bad suit: {value!r}")
    if isinstance(value, int):
        if 0 <= value < FOUNDATION_COUNT:
            return value
        raise ValueError(f"suit index out of range: {value}")
    key = value.strip().lower()
    if key not in _SUIT_ALIASES:
        raise ValueError(f"unknown suit: {value!r}")
    return _SUIT_ALIASES[key]


def parse_rank(value: Union[int, str]) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, str)):
        raise ValueError(f"bad rank: {value!r}")
    if isinstance(value, str):
        key = value.strip().lower()
        if key in _RANK_ALIASES:
            return _RANK_ALIASES[key]
        if not key.isdigit():
            raise ValueError(f"unknown rank: {value!r}")
        value = int(key)
    if not 1 <= value <= Card.NUM_PER_SUIT:
        raise ValueError(f"rank out of range: {value}")
    return value


class CardModel(BaseModel):
    model_config = ConfigDict(extra="ignore")

    suit: int
    rank: int
    faceUp: bool = True

    @field_validator("suit", mode="before")
    @classmethod
    def _suit(cls, value: Any) -> int:
        return parse_suit(value)

    @field_validator("rank", mode="before")
    @classmethod
    def _rank(cls, value: Any) -> int:
        return parse_rank(value)

    @property
    def card_id(self) -> int:
        return self.suit * Card.NUM_PER_SUIT + self.rank - 1


class StateModel(BaseModel):
    model_config = ConfigDict(extra="ignore")

    stock: list[CardModel] = Field(default_factory=list)
    waste: list[CardModel] = Field(default_factory=list)
    foundations: list[list[CardModel]] = Field(default_factory=lambda: [[] for _ in range(FOUNDATION_COUNT)])
    tableau: list[list[CardModel]]
    drawMode: Literal[1, 3] = 1
    stockTopFirst: bool = False
    wasteTopFirst: bool = False


class CardRef(BaseModel):
    suit: int
    rank: int

    @field_validator("suit", mode="before")
    @classmethod
    def _suit(cls, value: Any) -> int:
        return parse_suit(value)

    @field_validator("rank", mode="before")
    @classmethod
    def _rank(cls, value: Any) -> int:
        return parse_rank(value)


class PileRef(BaseModel):
    model_config = ConfigDict(extra="ignore")

    pile: Literal["stock", "waste", "foundation", "tableau"]
    index: Optional[int] = None
    suit: Optional[str] = None


class MoveDescriptor(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    kind: Literal[
        "STOCK_DRAW",
        "WASTE_TO_FOUNDATION",
        "WASTE_TO_TABLEAU",
        "TABLEAU_TO_FOUNDATION",
        "TABLEAU_TO_TABLEAU",
    ]
    card: Optional[CardRef] = None
    source: PileRef = Field(alias="from")
    target: PileRef = Field(alias="to")
    count: int = Field(default=1, ge=1)
    drawCount: int = Field(default=0, ge=0, le=3)
    recycle: bool = False


def _foundation_counts(piles: list[list[CardModel]]) -> tuple[int, ...]:
    if len(piles) > FOUNDATION_COUNT:
        raise InvalidStateError(f"expected at most {FOUNDATION_COUNT} foundation piles, got {len(piles)}")
    counts = [0] * FOUNDATION_COUNT
    seen: set[int] = set()
    for idx, pile in enumerate(piles):
        if not pile:
            continue
        suit = pile[0].suit
        if suit in seen:
            raise InvalidStateError(f"two foundation piles hold {Card.SUIT_NAMES[suit]}")
        seen.add(suit)
        for pos, card in enumerate(pile):
            if card.suit != suit:
                raise InvalidStateError(f"foundation pile {idx} mixes suits")
            if card.rank != pos + 1:
                raise InvalidStateError(f"foundation pile {idx} is out of order at position {pos}")
        counts[suit] = len(pile)
    return tuple(counts)


def _column(cards: list[CardModel], idx: int) -> tuple[tuple[int, ...], int]:
    hidden = 0
    while hidden < len(cards) and not cards[hidden].faceUp:
        hidden += 1
    if any(not card.faceUp for card in cards[hidden:]):
        raise InvalidStateError(f"column {idx} has a face-down card above a face-up card")
    # A covered-only column turns its top card up.
    if cards and hidden == len(cards):
        hidden -= 1
    return tuple(card.card_id for card in cards), hidden


def state_from_payload(payload: Any) -> KlondikeState:
    """Parse and validate a serialized position; raises InvalidStateError on any problem."""

    try:
        model = StateModel.model_validate(payload)
    except ValidationError as exc:
        raise InvalidStateError(f"malformed game state: {exc.error_count()} error(s): {exc.errors()[0]['msg']}") from exc

    if len(model.tableau) != COLUMN_COUNT:
        raise InvalidStateError(f"expected {COLUMN_COUNT} tableau columns, got {len(model.tableau)}")
    columns = [_column(cards, idx) for idx, cards in enumerate(model.tableau)]

    stock = tuple(card.card_id for card in model.stock)
    waste = tuple(card.card_id for card in model.waste)
    if model.stockTopFirst:
        stock = stock[::-1]
    if model.wasteTopFirst:
        waste = waste[::-1]

    state = KlondikeState(
        stock=stock,
        waste=waste,
        foundations=_foundation_counts(model.foundations),
        tableau=tuple(column for column, _ in columns),
        hidden_prefix=tuple(hidden for _, hidden in columns),
        draw_mode=model.drawMode,
    )
    validate_state(state)
    return state


def _card_payload(card: int, face_up: bool) -> dict:
    return {"suit": Card.SUIT_NAMES[cardSuit(card)], "rank": cardRank(card), "faceUp": face_up}


def state_to_payload(state: KlondikeState) -> dict:
    hidden = normalized_hidden_prefix(state)
    return {
        "stock": [_card_payload(card, False) for card in state.stock],
        "waste": [_card_payload(card, True) for card in state.waste],
        "foundations": [
            [_card_payload(suit * Card.NUM_PER_SUIT + num, True) for num in range(count)]
            for suit, count in enumerate(state.foundations)
        ],
        "tableau": [
            [_card_payload(card, pos >= hidden[col]) for pos, card in enumerate(column)]
            for col, column in enumerate(state.tableau)
        ],
        "drawMode": state.draw_mode,
    }


def move_to_descriptor(move: Move) -> dict:
    return move.to_dict()


def move_from_descriptor(descriptor: Any) -> Move:
    """Rebuild a Move from its descriptor; raises IllegalMoveError when it is malformed."""

    try:
        model = MoveDescriptor.model_validate(descriptor)
    except ValidationError as exc:
        raise IllegalMoveError(f"malformed move descriptor: {exc.errors()[0]['msg']}") from exc

    if model.kind == STOCK_DRAW:
        return Move(kind=STOCK_DRAW, draw_count=model.drawCount, recycle=model.recycle)

    if model.card is None:
        raise IllegalMoveError(f"{model.kind} needs a card")
    card = model.card.suit * Card.NUM_PER_SUIT + model.card.rank - 1
    src_col = model.source.index if model.source.pile == "tableau" else -1
    dest_col = model.target.index if model.target.pile == "tableau" else -1
    if model.source.pile == "tableau" and src_col is None:
        raise IllegalMoveError("tableau source needs an index")
    if model.target.pile == "tableau" and dest_col is None:
        raise IllegalMoveError("tableau target needs an index")

    if model.kind in FOUNDATION_KINDS:
        return Move(kind=model.kind, card=card, src_col=src_col, suit=cardSuit(card))
    count = model.count if model.kind == TABLEAU_TO_TABLEAU else 1
    return Move(kind=model.kind, card=card, src_col=src_col, dest_col=dest_col, count=count)

