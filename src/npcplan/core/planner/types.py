"""
Data types of the NPC decision protocol.

Contains:
    - GridPoint: integer cell coordinate with Manhattan distance
    - NpcBehavior / NpcAction / DecisionSchema: closed vocabularies
    - DecisionRequest: game state for one planning call
    - Decision: validated target (and action for the action schema)
    - DecisionTrace: prompts, raw completion and decision of one call
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


@dataclass(frozen=True)
class GridPoint:
    x: int
    y: int

    def manhattan(self, other: "GridPoint") -> int:
        return abs(self.x - other.x) + abs(self.y - other.y)

    def __str__(self) -> str:
        return f"({self.x},{self.y})"


class NpcBehavior(str, Enum):
    GUARD = "guard"
    CAUTIOUS = "cautious"
    AGGRESSIVE = "aggressive"
    SCOUT = "scout"


class NpcAction(str, Enum):
    HOLD = "hold"
    MOVE_TO_PING = "move_to_ping"
    MOVE_NEAR_PING = "move_near_ping"


class DecisionSchema(str, Enum):
    """Shape of the JSON object the model is asked to produce."""

    COORDINATES = "coordinates"  # {"target_x", "target_y"}
    ACTION = "action"            # {"action", "target_x", "target_y"}

    @property
    def keys(self) -> tuple:
        if self is DecisionSchema.ACTION:
            return ("action", "target_x", "target_y")
        return ("target_x", "target_y")


@dataclass(frozen=True)
class DecisionRequest:
    npc: GridPoint
    ping: GridPoint
    behavior: NpcBehavior
    grid_width: int
    grid_height: int
    near_radius: int = 1

    def contains(self, point: GridPoint) -> bool:
        return 0 <= point.x < self.grid_width and 0 <= point.y < self.grid_height


@dataclass(frozen=True)
class Decision:
    target_x: int
    target_y: int
    action: Optional[NpcAction] = None

    @property
    def target(self) -> GridPoint:
        return GridPoint(self.target_x, self.target_y)

    def to_dict(self) -> dict:
        """Render in the wire shape the model was asked for."""
        data = {"target_x": self.target_x, "target_y": self.target_y}
        if self.action is not None:
            data = {"action": self.action.value, **data}
        return data


@dataclass(frozen=True)
class DecisionTrace:
    system_prompt: str
    user_prompt: str
    completion: str
    decision: Decision
    # Rejection text when the fallback decision was used
    fallback_reason: Optional[str] = None

    @property
    def used_fallback(self) -> bool:
        return self.fallback_reason is not None

    def to_dict(self) -> dict:
        return {
            "system_prompt": self.system_prompt,
            "user_prompt": self.user_prompt,
            "completion": self.completion,
            "decision": self.decision.to_dict(),
            "fallback_reason": self.fallback_reason,
        }
