"""Boundary to an external text-completion assistant.

The assistant only ever sees a textual position and a numbered list of the
legal moves; whatever it answers is validated and mapped back onto that list,
so a bad or hostile reply can never produce an illegal move.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Literal, Optional, Protocol, Sequence

from pydantic import BaseModel, Field, ValidationError, field_validator

from klondike.Cards import Card, cardLabel
from solver.moves import (
    STOCK_DRAW,
    TABLEAU_TO_FOUNDATION,
    WASTE_TO_FOUNDATION,
    WASTE_TO_TABLEAU,
    Move,
    generate_moves,
)
from solver.state import KlondikeState, foundation_top, normalized_hidden_prefix

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are a Klondike Solitaire expert. Analyze the available moves and recommend the best one with clear reasoning."
)


class CompletionClient(Protocol):
    def complete(self, prompt: str) -> str: ...


class Recommendation(BaseModel):
    move: int = Field(ge=1)
    reasoning: str = ""
    priority: Literal["High", "Medium", "Low"] = "Medium"

    @field_validator("priority", mode="before")
    @classmethod
    def _priority(cls, value):
        if isinstance(value, str):
            return value.strip().capitalize()
        return value


@dataclass(frozen=True, slots=True)
class Advice:
    move: Move
    index: int
    reasoning: str
    priority: str

    def to_dict(self) -> dict:
        return {
            "move": self.move.to_dict(),
            "index": self.index,
            "reasoning": self.reasoning,
            "priority": self.priority,
        }


def describe_state(state: KlondikeState) -> str:
    lines = ["GAME STATE:", f"Stock: {len(state.stock)} cards remaining"]
    if state.waste:
        lines.append(f"Waste: {cardLabel(state.waste[-1])} (top card)")
    else:
        lines.append("Waste: empty")

    foundations = []
    for suit, name in enumerate(Card.SUIT_NAMES):
        top = foundation_top(state, suit)
        foundations.append(f"{name}: {cardLabel(top) if top >= 0 else 'empty'}")
    lines.append("Foundations: " + ", ".join(foundations))

    lines.append("")
    lines.append("TABLEAU:")
    hidden = normalized_hidden_prefix(state)
    for col, column in enumerate(state.tableau):
        if not column:
            lines.append(f"Column {col + 1}: empty")
            continue
        text = f"Column {col + 1}: "
        if hidden[col] > 0:
            text += f"{hidden[col]} face-down, "
        face_up = column[hidden[col]:]
        text += "-".join(cardLabel(card) for card in face_up) if face_up else "no face-up cards"
        lines.append(text)
    return "\n".join(lines)


def describe_move(move: Move) -> str:
    if move.kind == STOCK_DRAW:
        if move.recycle:
            return "Turn the waste over into the stock"
        return f"Draw {move.draw_count} card(s) from the stock"
    label = cardLabel(move.card)
    if move.kind == WASTE_TO_FOUNDATION:
        return f"Move {label} from waste to foundation"
    if move.kind == WASTE_TO_TABLEAU:
        return f"Move {label} from waste to column {move.dest_col + 1}"
    if move.kind == TABLEAU_TO_FOUNDATION:
        return f"Move {label} from column {move.src_col + 1} to foundation"
    return f"Move {move.count} card(s) from column {move.src_col + 1} to column {move.dest_col + 1} ({label})"


def describe_moves(moves: Sequence[Move]) -> str:
    return "\n".join(f"{i + 1}. {describe_move(move)}" for i, move in enumerate(moves))


def build_prompt(state: KlondikeState, moves: Optional[Sequence[Move]] = None) -> str:
    if moves is None:
        moves = generate_moves(state)
    return (
        f"{SYSTEM_PROMPT}\n\n"
        "Current Klondike Solitaire game state:\n"
        f"{describe_state(state)}\n\n"
        "Available moves:\n"
        f"{describe_moves(moves)}\n\n"
        "Which move would you recommend and why? Consider:\n"
        "- Foundation building opportunities\n"
        "- Revealing hidden cards\n"
        "- Creating empty tableau columns\n"
        "- Long-term strategic value\n\n"
        "Reply with a single JSON object and nothing else:\n"
        '{"move": <number from the list>, "reasoning": "<brief explanation>", "priority": "High" | "Medium" | "Low"}\n'
    )


def _strip_think(text: str) -> str:
    cleaned = re.sub(r"<think>.*?</think>", "", text, flags=re.DOTALL | re.IGNORECASE)
    match = re.search(r"<think>", cleaned, flags=re.IGNORECASE)
    if match:
        cleaned = cleaned[: match.start()]
    return cleaned.strip()


def _from_json(text: str) -> Optional[Recommendation]:
    match = re.search(r"\{.*\}", text, flags=re.DOTALL)
    if not match:
        return None
    try:
        return Recommendation.model_validate(json.loads(match.group(0)))
    except (json.JSONDecodeError, ValidationError) as exc:
        logger.debug("assistant json reply rejected: %s", exc)
        return None


def _from_labeled_lines(text: str) -> Optional[Recommendation]:
    fields = {}
    for line in text.splitlines():
        line = line.strip()
        for label, key in (("RECOMMENDED MOVE:", "move"), ("REASONING:", "reasoning"), ("PRIORITY:", "priority")):
            if line.upper().startswith(label):
                fields[key] = line[len(label):].strip()
    if "move" not in fields:
        return None
    number = re.search(r"\d+", fields["move"])
    if not number:
        return None
    fields["move"] = int(number.group(0))
    try:
        return Recommendation.model_validate(fields)
    except ValidationError as exc:
        logger.debug("assistant labeled reply rejected: %s", exc)
        return None


def parse_recommendation(
    text: str,
    state: KlondikeState,
    moves: Optional[Sequence[Move]] = None,
) -> Optional[Advice]:
    """Map an assistant reply onto a legal move of `state`, or None if it does not name one."""

    if moves is None:
        moves = generate_moves(state)
    if not isinstance(text, str) or not moves:
        return None

    cleaned = _strip_think(text)
    recommendation = _from_json(cleaned) or _from_labeled_lines(cleaned)
    if recommendation is None:
        return None
    if recommendation.move > len(moves):
        logger.debug("assistant picked move %d of %d", recommendation.move, len(moves))
        return None

    move = moves[recommendation.move - 1]
    # The list may have been built by the caller; only legal moves leave this function.
    if move not in generate_moves(state):
        return None
    return Advice(move, recommendation.move, recommendation.reasoning, recommendation.priority)


def ask_advisor(client: CompletionClient, state: KlondikeState) -> Optional[Advice]:
    moves = generate_moves(state)
    if not moves:
        return None
    try:
        reply = client.complete(build_prompt(state, moves))
    except Exception as exc:
        logger.warning("assistant request failed: %s", exc)
        return None
    return parse_recommendation(reply, state, moves)
