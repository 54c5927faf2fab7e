from __future__ import annotations

from dataclasses import dataclass, replace

from klondike.Cards import Card, cardLabel, cardNum, cardRank, cardSuit, isRed
from solver.state import (
    ColumnAtom,
    KlondikeState,
    describe_card_location,
    normalized_hidden_prefix,
    top_is_face_up,
)

STOCK_DRAW = "STOCK_DRAW"
WASTE_TO_FOUNDATION = "WASTE_TO_FOUNDATION"
WASTE_TO_TABLEAU = "WASTE_TO_TABLEAU"
TABLEAU_TO_FOUNDATION = "TABLEAU_TO_FOUNDATION"
TABLEAU_TO_TABLEAU = "TABLEAU_TO_TABLEAU"

MOVE_KINDS = (
    STOCK_DRAW,
    WASTE_TO_FOUNDATION,
    WASTE_TO_TABLEAU,
    TABLEAU_TO_FOUNDATION,
    TABLEAU_TO_TABLEAU,
)
FOUNDATION_KINDS = frozenset((WASTE_TO_FOUNDATION, TABLEAU_TO_FOUNDATION))

ACE_NUM = 0
KING_NUM = Card.NUM_PER_SUIT - 1


class IllegalMoveError(ValueError):
    """Raised when a move is applied to a position where it is not legal."""


@dataclass(frozen=True, slots=True)
class Move:
    """A single player move in solver notation."""

    kind: str
    card: int = -1
    src_col: int = -1
    dest_col: int = -1
    suit: int = -1
    count: int = 1
    draw_count: int = 0
    recycle: bool = False

    def to_notation(self) -> str:
        if self.kind == STOCK_DRAW:
            if self.recycle:
                return "RECYCLE"
            return f"DRAW({self.draw_count})"
        label = cardLabel(self.card)
        if self.kind == WASTE_TO_FOUNDATION:
            return f"W->F({label})"
        if self.kind == WASTE_TO_TABLEAU:
            return f"W->T{self.dest_col}({label})"
        if self.kind == TABLEAU_TO_FOUNDATION:
            return f"T{self.src_col}->F({label})"
        return f"T{self.src_col}->T{self.dest_col}({label},len={self.count})"

    def to_dict(self) -> dict:
        """Self-describing descriptor that can be replayed against the original position."""
        card = None
        if self.card >= 0:
            card = {"suit": Card.SUIT_NAMES[cardSuit(self.card)], "rank": cardRank(self.card)}
        if self.kind == STOCK_DRAW:
            source = {"pile": "waste" if self.recycle else "stock"}
            target = {"pile": "stock" if self.recycle else "waste"}
        elif self.kind in (WASTE_TO_FOUNDATION, WASTE_TO_TABLEAU):
            source = {"pile": "waste"}
            target = _target_locator(self)
        else:
            source = {"pile": "tableau", "index": self.src_col}
            target = _target_locator(self)
        return {
            "kind": self.kind,
            "card": card,
            "from": source,
            "to": target,
            "count": self.count,
            "drawCount": self.draw_count,
            "recycle": self.recycle,
            "notation": self.to_notation(),
        }


def _target_locator(move: Move) -> dict:
    if move.kind in FOUNDATION_KINDS:
        return {"pile": "foundation", "suit": Card.SUIT_NAMES[move.suit]}
    return {"pile": "tableau", "index": move.dest_col}


def is_foundation_move(move: Move) -> bool:
    return move.kind in FOUNDATION_KINDS


def can_place_on_foundation(state: KlondikeState, card: int) -> bool:
    return state.foundations[cardSuit(card)] == cardNum(card)


def can_place_on_column(state: KlondikeState, card: int, col: int) -> bool:
    column = state.tableau[col]
    if not column:
        return cardNum(card) == KING_NUM
    if not top_is_face_up(state, col):
        return False
    top = column[-1]
    return isRed(top) != isRed(card) and cardNum(top) == cardNum(card) + 1


def is_run_link(lower: int, upper: int) -> bool:
    """Whether `upper` legally sits on `lower` inside a tableau run."""
    return isRed(lower) != isRed(upper) and cardNum(lower) == cardNum(upper) + 1


def valid_run_starts(column: ColumnAtom, hidden_prefix: int) -> tuple[int, ...]:
    """Return all indices that start a movable alternating descending run ending at the top."""
    n = len(column)
    if n == 0 or hidden_prefix >= n:
        return ()
    hidden_prefix = max(0, hidden_prefix)

    valid: list[int] = [n - 1]
    for idx in range(n - 2, hidden_prefix - 1, -1):
        if not is_run_link(column[idx], column[idx + 1]):
            break
        valid.append(idx)
    valid.reverse()
    return tuple(valid)


def generate_moves(state: KlondikeState) -> list[Move]:
    """Enumerate every legal move, in a fixed generation order."""

    moves: list[Move] = []
    hidden = normalized_hidden_prefix(state)
    columns = range(len(state.tableau))

    if state.stock:
        moves.append(Move(kind=STOCK_DRAW, draw_count=min(state.draw_mode, len(state.stock))))
    elif state.waste:
        moves.append(Move(kind=STOCK_DRAW, recycle=True))

    if state.waste:
        top = state.waste[-1]
        if can_place_on_foundation(state, top):
            moves.append(Move(kind=WASTE_TO_FOUNDATION, card=top, suit=cardSuit(top)))
        for col in columns:
            if can_place_on_column(state, top, col):
                moves.append(Move(kind=WASTE_TO_TABLEAU, card=top, dest_col=col))

    for col in columns:
        column = state.tableau[col]
        if column and hidden[col] < len(column) and can_place_on_foundation(state, column[-1]):
            moves.append(Move(kind=TABLEAU_TO_FOUNDATION, card=column[-1], src_col=col, suit=cardSuit(column[-1])))

    for col in columns:
        column = state.tableau[col]
        for idx in valid_run_starts(column, hidden[col]):
            head = column[idx]
            for dest in columns:
                if dest == col:
                    continue
                if can_place_on_column(state, head, dest):
                    moves.append(
                        Move(
                            kind=TABLEAU_TO_TABLEAU,
                            card=head,
                            src_col=col,
                            dest_col=dest,
                            count=len(column) - idx,
                        )
                    )

    return moves


def is_legal(state: KlondikeState, move: Move) -> bool:
    moves = generate_moves(state)
    if move.kind != STOCK_DRAW:
        return move in moves
    # A zero draw count takes whatever the stock yields.
    return any(
        m.kind == STOCK_DRAW and m.recycle == move.recycle and move.draw_count in (0, m.draw_count)
        for m in moves
    )


def _check_column(state: KlondikeState, col: int) -> None:
    if col < 0 or col >= len(state.tableau):
        raise IllegalMoveError(f"no tableau column {col}")


def _shrink_column(column: ColumnAtom, hidden_prefix: int, remove: int) -> tuple[ColumnAtom, int]:
    """Drop `remove` cards from the top and flip the new top face-up if needed."""
    new_column = column[: len(column) - remove]
    new_hidden = min(hidden_prefix, len(new_column))
    if len(new_column) > 0 and new_hidden >= len(new_column):
        new_hidden = len(new_column) - 1
    return new_column, new_hidden


def _apply_draw(state: KlondikeState, move: Move) -> KlondikeState:
    if move.recycle:
        if state.stock or not state.waste:
            raise IllegalMoveError("recycling needs an empty stock and a non-empty waste")
        if move.draw_count:
            raise IllegalMoveError("a recycle draws no cards")
        return replace(
            state,
            stock=tuple(reversed(state.waste)),
            waste=(),
            recycles=state.recycles + 1,
            move_count=state.move_count + 1,
        )

    if not state.stock:
        raise IllegalMoveError("cannot draw from an empty stock")
    draw_count = min(state.draw_mode, len(state.stock))
    if move.draw_count not in (0, draw_count):
        raise IllegalMoveError(f"draw of {move.draw_count} cards, but the stock yields {draw_count}")
    drawn = state.stock[len(state.stock) - draw_count:]
    return replace(
        state,
        stock=state.stock[: len(state.stock) - draw_count],
        waste=state.waste + tuple(reversed(drawn)),
        move_count=state.move_count + 1,
    )


def _apply_waste_move(state: KlondikeState, move: Move) -> KlondikeState:
    if not state.waste or state.waste[-1] != move.card:
        raise IllegalMoveError(
            f"{cardLabel(move.card)} is not on top of the waste ({describe_card_location(state, move.card)})"
        )
    waste = state.waste[:-1]

    if move.kind == WASTE_TO_FOUNDATION:
        if not can_place_on_foundation(state, move.card):
            raise IllegalMoveError(f"{cardLabel(move.card)} cannot go to its foundation")
        foundations = list(state.foundations)
        foundations[cardSuit(move.card)] += 1
        return replace(state, waste=waste, foundations=tuple(foundations), move_count=state.move_count + 1)

    _check_column(state, move.dest_col)
    if not can_place_on_column(state, move.card, move.dest_col):
        raise IllegalMoveError(f"{cardLabel(move.card)} cannot go on column {move.dest_col}")
    tableau = list(state.tableau)
    tableau[move.dest_col] = tableau[move.dest_col] + (move.card,)
    return replace(
        state,
        waste=waste,
        tableau=tuple(tableau),
        hidden_prefix=normalized_hidden_prefix(state),
        move_count=state.move_count + 1,
    )


def _apply_tableau_to_foundation(state: KlondikeState, move: Move) -> KlondikeState:
    _check_column(state, move.src_col)
    column = state.tableau[move.src_col]
    if not top_is_face_up(state, move.src_col) or column[-1] != move.card:
        raise IllegalMoveError(f"{cardLabel(move.card)} is not the face-up top of column {move.src_col}")
    if not can_place_on_foundation(state, move.card):
        raise IllegalMoveError(f"{cardLabel(move.card)} cannot go to its foundation")

    tableau = list(state.tableau)
    hidden = list(normalized_hidden_prefix(state))
    tableau[move.src_col], hidden[move.src_col] = _shrink_column(column, hidden[move.src_col], 1)
    foundations = list(state.foundations)
    foundations[cardSuit(move.card)] += 1
    return replace(
        state,
        foundations=tuple(foundations),
        tableau=tuple(tableau),
        hidden_prefix=tuple(hidden),
        move_count=state.move_count + 1,
    )


def _apply_tableau_to_tableau(state: KlondikeState, move: Move) -> KlondikeState:
    _check_column(state, move.src_col)
    _check_column(state, move.dest_col)
    if move.src_col == move.dest_col:
        raise IllegalMoveError("source and target column are the same")

    hidden = list(normalized_hidden_prefix(state))
    column = state.tableau[move.src_col]
    start = len(column) - move.count
    if move.count < 1 or start < 0 or start not in valid_run_starts(column, hidden[move.src_col]):
        raise IllegalMoveError(f"column {move.src_col} has no movable run of {move.count} cards")
    if column[start] != move.card:
        raise IllegalMoveError(f"run on column {move.src_col} does not start with {cardLabel(move.card)}")
    if not can_place_on_column(state, move.card, move.dest_col):
        raise IllegalMoveError(f"{cardLabel(move.card)} cannot go on column {move.dest_col}")

    tableau = list(state.tableau)
    moving = column[start:]
    tableau[move.src_col], hidden[move.src_col] = _shrink_column(column, hidden[move.src_col], move.count)
    tableau[move.dest_col] = tableau[move.dest_col] + moving
    return replace(
        state,
        tableau=tuple(tableau),
        hidden_prefix=tuple(hidden),
        move_count=state.move_count + 1,
    )


def apply_move(state: KlondikeState, move: Move) -> KlondikeState:
    """Return the position after `move`; raise IllegalMoveError if it does not apply."""

    if move.kind == STOCK_DRAW:
        return _apply_draw(state, move)
    if move.kind in (WASTE_TO_FOUNDATION, WASTE_TO_TABLEAU):
        return _apply_waste_move(state, move)
    if move.kind == TABLEAU_TO_FOUNDATION:
        return _apply_tableau_to_foundation(state, move)
    if move.kind == TABLEAU_TO_TABLEAU:
        return _apply_tableau_to_tableau(state, move)
    raise IllegalMoveError(f"unknown move kind: {move.kind}")

