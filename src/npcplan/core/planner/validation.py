"""
Validation and repair layer for NPC decisions.

Parses the extracted JSON into a typed Decision, rejects malformed or
ambiguous shapes, then applies the behavior rules so the decision is
game-legal whatever the model proposed. Nothing here raises on bad model
output: failures come back as a ``Rejection`` and ``resolve_decision``
turns them into the fallback decision.

Distances are Manhattan throughout.
"""

import json
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Optional, Tuple, Union

from npcplan.core.planner.extraction import try_extract_first_json_object
from npcplan.core.planner.prompt_builder import clamp_point, normalize
from npcplan.core.planner.types import (
    Decision,
    DecisionRequest,
    DecisionSchema,
    GridPoint,
    NpcAction,
    NpcBehavior,
)


class RejectionReason(str, Enum):
    EMPTY = "empty"
    INVALID_JSON = "invalid_json"
    NOT_AN_OBJECT = "not_an_object"
    DUPLICATE_KEY = "duplicate_key"
    UNEXPECTED_KEYS = "unexpected_keys"
    MISSING_KEYS = "missing_keys"
    NON_INTEGER = "non_integer"
    UNKNOWN_ACTION = "unknown_action"
    UNREACHABLE_TARGET = "unreachable_target"


@dataclass(frozen=True)
class Rejection:
    reason: RejectionReason
    detail: str = ""

    def __str__(self) -> str:
        return f"{self.reason.value}: {self.detail}" if self.detail else self.reason.value


DecisionResult = Union[Decision, Rejection]


class _DuplicateKeyError(ValueError):
    def __init__(self, key: str):
        super().__init__(f"duplicate key {key!r}")
        self.key = key


def _reject_duplicates(pairs) -> dict:
    obj = {}
    for key, value in pairs:
        if key in obj:
            raise _DuplicateKeyError(key)
        obj[key] = value
    return obj


def _as_int(value) -> Optional[int]:
    """Lossless int conversion of a JSON number; None otherwise."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return None


def _parse_action(value) -> Optional[NpcAction]:
    if not isinstance(value, str):
        return None
    try:
        return NpcAction(value.strip().lower())
    except ValueError:
        return None


# -----------------------------------------------------------------------------
# Parsing
# -----------------------------------------------------------------------------

def parse_decision(
    json_text: Optional[str],
    request: DecisionRequest,
    schema: DecisionSchema = DecisionSchema.COORDINATES,
) -> DecisionResult:
    """Parse one JSON object into a Decision with coordinates clamped into the grid.

    Args:
        json_text: Candidate JSON object text
        request: Decision request (normalized on entry)
        schema: Expected object shape

    Returns:
        Decision, or Rejection describing the first violation found
    """
    if json_text is None or not json_text.strip():
        return Rejection(RejectionReason.EMPTY, "no completion text")

    try:
        data = json.loads(json_text, object_pairs_hook=_reject_duplicates)
    except _DuplicateKeyError as e:
        return Rejection(RejectionReason.DUPLICATE_KEY, str(e))
    except (ValueError, RecursionError) as e:
        return Rejection(RejectionReason.INVALID_JSON, str(e))

    if not isinstance(data, dict):
        return Rejection(RejectionReason.NOT_AN_OBJECT, f"got {type(data).__name__}")

    expected = set(schema.keys)
    extra = sorted(set(data) - expected)
    if extra:
        return Rejection(RejectionReason.UNEXPECTED_KEYS, ", ".join(extra))
    missing = [k for k in schema.keys if k not in data]
    if missing:
        return Rejection(RejectionReason.MISSING_KEYS, ", ".join(missing))

    x = _as_int(data["target_x"])
    y = _as_int(data["target_y"])
    if x is None or y is None:
        bad = "target_x" if x is None else "target_y"
        return Rejection(RejectionReason.NON_INTEGER, f"{bad}={data[bad]!r}")

    action = None
    if schema is DecisionSchema.ACTION:
        action = _parse_action(data["action"])
        if action is None:
            return Rejection(RejectionReason.UNKNOWN_ACTION, repr(data["action"]))

    request = normalize(request)
    target = clamp_point(GridPoint(x, y), request.grid_width, request.grid_height)
    return Decision(target.x, target.y, action)


# -----------------------------------------------------------------------------
# Behavior repair
# -----------------------------------------------------------------------------

def find_scout_target(request: DecisionRequest) -> Optional[GridPoint]:
    """Find the cell closest to ``near_radius + 1`` from the ping while staying outside the radius.

    Cells with ping distance <= near_radius are excluded. Among the rest the
    one minimizing ``|distance - (near_radius + 1)|`` wins, then the one
    nearest the NPC, then the first in row-major order.

    Returns:
        The chosen cell, or None when every cell is within the radius
    """
    desired = request.near_radius + 1
    best = None
    best_key = None
    for y in range(request.grid_height):
        for x in range(request.grid_width):
            point = GridPoint(x, y)
            ping_distance = point.manhattan(request.ping)
            if ping_distance <= request.near_radius:
                continue
            key = (abs(ping_distance - desired), point.manhattan(request.npc))
            if best_key is None or key < best_key:
                best, best_key = point, key
    return best


def _build(decision: Decision, point: GridPoint, action: NpcAction) -> Decision:
    # Coordinate-schema decisions carry no action
    return Decision(point.x, point.y, action if decision.action is not None else None)


def _repair_guard(decision: Decision, request: DecisionRequest) -> DecisionResult:
    return _build(decision, request.npc, NpcAction.HOLD)


def _repair_aggressive(decision: Decision, request: DecisionRequest) -> DecisionResult:
    return _build(decision, request.ping, NpcAction.MOVE_TO_PING)


def _repair_scout(decision: Decision, request: DecisionRequest) -> DecisionResult:
    target = decision.target
    if target.manhattan(request.ping) != request.near_radius + 1:
        target = find_scout_target(request)
        if target is None:
            return Rejection(
                RejectionReason.UNREACHABLE_TARGET,
                f"no cell farther than {request.near_radius} from ping {request.ping}",
            )
    return _build(decision, target, NpcAction.MOVE_NEAR_PING)


def _repair_cautious(decision: Decision, request: DecisionRequest) -> DecisionResult:
    if decision.action is NpcAction.HOLD:
        return _build(decision, request.npc, NpcAction.HOLD)
    if decision.action is NpcAction.MOVE_TO_PING:
        return _repair_scout(decision, request)

    target = decision.target
    if target.manhattan(request.ping) <= request.near_radius:
        target = find_scout_target(request)
        if target is None:
            return Rejection(
                RejectionReason.UNREACHABLE_TARGET,
                f"no cell farther than {request.near_radius} from ping {request.ping}",
            )
    return _build(decision, target, NpcAction.MOVE_NEAR_PING)


BEHAVIOR_REPAIRS: Dict[NpcBehavior, Callable[[Decision, DecisionRequest], DecisionResult]] = {
    NpcBehavior.GUARD: _repair_guard,
    NpcBehavior.AGGRESSIVE: _repair_aggressive,
    NpcBehavior.SCOUT: _repair_scout,
    NpcBehavior.CAUTIOUS: _repair_cautious,
}


def repair(decision: Decision, request: DecisionRequest) -> DecisionResult:
    """Apply the behavior rule of ``request`` to a parsed decision."""
    request = normalize(request)
    return BEHAVIOR_REPAIRS[request.behavior](decision, request)


# -----------------------------------------------------------------------------
# Resolution
# -----------------------------------------------------------------------------

def parse_and_repair(
    json_text: Optional[str],
    request: DecisionRequest,
    schema: DecisionSchema = DecisionSchema.COORDINATES,
) -> DecisionResult:
    parsed = parse_decision(json_text, request, schema)
    if isinstance(parsed, Rejection):
        return parsed
    return repair(parsed, request)


def build_fallback_decision(
    request: DecisionRequest, schema: DecisionSchema = DecisionSchema.COORDINATES
) -> Decision:
    """Hold at the NPC position."""
    npc = normalize(request).npc
    action = NpcAction.HOLD if schema is DecisionSchema.ACTION else None
    return Decision(npc.x, npc.y, action)


def resolve_decision(
    completion: Optional[str],
    request: DecisionRequest,
    schema: DecisionSchema = DecisionSchema.COORDINATES,
    extract: bool = True,
) -> Tuple[Decision, Optional[Rejection]]:
    """Turn model text into a decision. Total: never raises on model output.

    Args:
        completion: Model text, or an already-extracted JSON object
        request: Decision request
        schema: Expected object shape
        extract: Scan ``completion`` for its first JSON object first

    Returns:
        (decision, None) on success; (fallback_decision, rejection) otherwise
    """
    json_text = completion
    if extract and completion and completion.strip():
        found, json_text = try_extract_first_json_object(completion)
        if not found:
            rejection = Rejection(RejectionReason.INVALID_JSON, "no complete JSON object in completion")
            return build_fallback_decision(request, schema), rejection

    result = parse_and_repair(json_text, request, schema)
    if isinstance(result, Rejection):
        return build_fallback_decision(request, schema), result
    return result, None
