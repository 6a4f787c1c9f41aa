"""Chat command parsing and reply formatting.

Mentions look like `<@BOTID> -0.25 45`: a normalized offset (-1..1) and a
clockwise rotation in degrees (-180..180), optionally followed by a shape id.
Keywords `start`/`join`, `status` and `reset` map to the other intents.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass

from tower_battle.api.models import IntentKind, Outcome, OutcomeKind, StageStatus
from tower_battle.errors import ErrorKind, TowerError

_LEADING_MENTION = re.compile(r"^\s*(<@[0-9A-Za-z]+>\s*)+")

_KEYWORDS: dict[str, IntentKind] = {
    "start": IntentKind.start,
    "join": IntentKind.start,
    "play": IntentKind.start,
    "status": IntentKind.status,
    "reset": IntentKind.reset,
    "restart": IntentKind.reset,
}

USAGE = "Send a position (-1 to 1) and a rotation (-180 to 180, clockwise positive), e.g. `@tower_battle -0.25 45`"

WELCOME = (
    ":sparkles: Welcome to tower battle :sparkles:\n"
    "Take turns stacking pieces and see how high the tower goes :fire:\n\n"
    "How to play:\n" + USAGE + "\n"
    "Add a shape name to drop a specific piece, `status` to see the tower, `reset` to start over."
)


@dataclass(frozen=True, slots=True)
class ParsedCommand:
    kind: IntentKind
    offset: float | None = None
    rotation: float | None = None
    shape_id: str | None = None


def _parse_number(token: str) -> float:
    try:
        value = float(token)
    except ValueError as e:
        raise TowerError(ErrorKind.invalid_intent, f"Invalid input. {USAGE}") from e
    if not math.isfinite(value):
        raise TowerError(ErrorKind.invalid_intent, f"Invalid input. {USAGE}")
    return value


def parse_mention(text: str) -> ParsedCommand:
    body = _LEADING_MENTION.sub("", text or "").strip()
    args = body.split()
    if not args:
        return ParsedCommand(kind=IntentKind.start)

    keyword = _KEYWORDS.get(args[0].casefold())
    if keyword is not None:
        if len(args) != 1:
            raise TowerError(ErrorKind.invalid_intent, f"'{args[0]}' takes no arguments")
        return ParsedCommand(kind=keyword)

    if args[0].casefold() == "drop":
        args = args[1:]

    if len(args) not in (2, 3):
        raise TowerError(ErrorKind.invalid_intent, f"Invalid input. {USAGE}")

    return ParsedCommand(
        kind=IntentKind.drop,
        offset=_parse_number(args[0]),
        rotation=_parse_number(args[1]),
        shape_id=args[2].casefold() if len(args) == 3 else None,
    )


def _mention(user_id: str | None) -> str:
    return f"<@{user_id}>" if user_id else "someone"


def _next_up(outcome: Outcome) -> str:
    if outcome.next_player_id is None:
        return ""
    piece = f" with a `{outcome.next_shape_id}`" if outcome.next_shape_id else ""
    return f"\nNext up: {_mention(outcome.next_player_id)}{piece}"


def format_outcome(outcome: Outcome) -> str:
    """Human-readable reply for the chat channel."""

    snap = outcome.snapshot
    height = snap.height if snap is not None else 0

    if outcome.kind == OutcomeKind.rejected:
        return outcome.reason or "Request rejected."

    if outcome.kind == OutcomeKind.settled:
        actor = snap.pieces[-1].player_id if snap is not None and snap.pieces else None
        return f"{_mention(actor)} {outcome.elevation:g} m ({height} pieces){_next_up(outcome)}"

    if outcome.kind == OutcomeKind.toppled:
        why = "missed the tower" if outcome.collapse_reason == "missed" else "knocked it off balance"
        return (
            f"{_mention(outcome.loser_id)} Game Over :angry: ({why})\n"
            f"Final tower: {height} pieces, {outcome.elevation:g} m. Send `reset` to play again."
        )

    if outcome.event in ("started", "reset"):
        return WELCOME + _next_up(outcome)

    if outcome.event == "joined":
        return f"{_mention(outcome.players[-1])} joined the game ({len(outcome.players)} players).{_next_up(outcome)}"

    if outcome.status == StageStatus.ended:
        if outcome.loser_id:
            return f"Game over: {_mention(outcome.loser_id)} toppled the tower at {height} pieces. Send `reset` to play again."
        return "This game has ended. Send `reset` to play again."

    return f"Tower: {height} pieces, {outcome.elevation:g} m.{_next_up(outcome)}"
