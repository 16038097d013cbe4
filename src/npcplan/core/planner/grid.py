"""
Grid geometry and the ping-driven NPC controller.

Contains:
    - resolve_grid_width / grid_height_for: grid shape from a flat cell count
    - index_to_point / point_to_index: row-major cell indexing
    - render_grid: text rendering with NPC / player labels
    - GridPingController: moves an NPC in response to player pings
"""

import logging
import math
from dataclasses import dataclass
from typing import Literal, Optional, Union

from npcplan.core.llm.runtime import ModelRuntime
from npcplan.core.planner.planner import NpcPlanner
from npcplan.core.planner.types import DecisionRequest, DecisionTrace, GridPoint, NpcBehavior

logger = logging.getLogger(__name__)

GridConstraint = Literal["flexible", "fixed_columns", "fixed_rows"]


def resolve_grid_width(cell_count: int, constraint: GridConstraint = "flexible", constraint_count: int = 0) -> int:
    """Grid width for ``cell_count`` cells laid out under ``constraint``.

    ``fixed_columns`` uses ``constraint_count`` directly, ``fixed_rows`` spreads
    the cells over that many rows, and ``flexible`` assumes a square grid.
    """
    if constraint == "fixed_columns":
        return max(1, constraint_count)
    if constraint == "fixed_rows":
        rows = max(1, constraint_count)
        return max(1, math.ceil(cell_count / rows))
    return max(1, round(math.sqrt(max(0, cell_count))))


def grid_height_for(cell_count: int, width: int) -> int:
    return max(1, math.ceil(cell_count / max(1, width)))


def index_to_point(index: int, width: int) -> GridPoint:
    return GridPoint(index % width, index // width)


def point_to_index(point: GridPoint, width: int) -> int:
    return point.y * width + point.x


@dataclass(frozen=True)
class GridLabels:
    npc: str = "NPC"
    player: str = "player"
    overlap: str = "player + NPC"


def render_grid(
    width: int,
    height: int,
    npc: GridPoint,
    ping: Optional[GridPoint] = None,
    labels: GridLabels = GridLabels(),
) -> str:
    """Render the grid as text, one row per line, ``.`` for empty cells."""
    cells = {}
    if ping is not None:
        cells[ping] = labels.player
    cells[npc] = labels.overlap if npc == ping else labels.npc

    cell_width = max(len(label) for label in (labels.npc, labels.player, labels.overlap, "."))
    rows = []
    for y in range(height):
        row = [cells.get(GridPoint(x, y), ".").center(cell_width) for x in range(width)]
        rows.append("|" + "|".join(row) + "|")
    return "\n".join(rows)


class GridPingController:
    """
    Moves one NPC across a grid in response to player pings.

    Each ping builds a decision request from the controller state, runs the
    planner and moves the NPC to the decided target.

    Attributes:
        runtime: Model runtime used for generation
        planner: NpcPlanner producing the decisions
        npc: Current NPC position
        behavior: NPC behavior applied to every ping
        near_radius: Radius used by the scout and cautious rules
        use_session: Plan in the active chat session instead of one-shot
        clear_history_per_prompt: In session mode, reset the session before
            every ping; otherwise it is seeded once and grows
    """

    def __init__(
        self,
        runtime: ModelRuntime,
        grid_width: int,
        grid_height: int,
        planner: Optional[NpcPlanner] = None,
        npc: GridPoint = GridPoint(0, 0),
        behavior: NpcBehavior = NpcBehavior.SCOUT,
        near_radius: int = 3,
        use_session: bool = False,
        clear_history_per_prompt: bool = True,
        labels: GridLabels = GridLabels(),
    ):
        self.runtime = runtime
        self.planner = planner or NpcPlanner()
        self.grid_width = max(1, grid_width)
        self.grid_height = max(1, grid_height)
        self.npc = npc
        self.behavior = behavior
        self.near_radius = near_radius
        self.use_session = use_session
        self.clear_history_per_prompt = clear_history_per_prompt
        self.labels = labels
        self.last_ping: Optional[GridPoint] = None
        self._session_primed = False
        self._last_system_prompt = ""

    @classmethod
    def from_cell_count(
        cls,
        runtime: ModelRuntime,
        cell_count: int,
        constraint: GridConstraint = "flexible",
        constraint_count: int = 0,
        **kwargs,
    ) -> "GridPingController":
        width = resolve_grid_width(cell_count, constraint, constraint_count)
        return cls(runtime, width, grid_height_for(cell_count, width), **kwargs)

    def set_behavior(self, behavior: Union[NpcBehavior, str]) -> None:
        self.behavior = NpcBehavior(behavior.lower() if isinstance(behavior, str) else behavior)

    async def ensure_runtime(self, session_count: int = 1) -> None:
        if not self.runtime.is_initialized:
            await self.runtime.initialize(session_count)

    def build_request(self, ping: GridPoint) -> DecisionRequest:
        return DecisionRequest(
            npc=self.npc,
            ping=ping,
            behavior=self.behavior,
            grid_width=self.grid_width,
            grid_height=self.grid_height,
            near_radius=self.near_radius,
        )

    async def ping(self, target: Union[GridPoint, int]) -> DecisionTrace:
        """Handle a player ping at a cell (point or row-major index)."""
        await self.ensure_runtime()
        point = index_to_point(target, self.grid_width) if isinstance(target, int) else target
        request = self.build_request(point)

        if self.use_session:
            trace = await self._plan_in_session(request)
        else:
            trace = await self.planner.plan(self.runtime, request)

        self.last_ping = self.planner.build_prompts(request)[0].ping
        self.npc = trace.decision.target
        logger.info(
            "behavior=%s, ping=%s, target=%s%s",
            self.behavior.value,
            self.last_ping,
            self.npc,
            f" (fallback: {trace.fallback_reason})" if trace.used_fallback else "",
        )
        return trace

    async def _plan_in_session(self, request: DecisionRequest) -> DecisionTrace:
        _, system_prompt, _ = self.planner.build_prompts(request)
        reset = self.clear_history_per_prompt or not self._session_primed
        if not reset and system_prompt != self._last_system_prompt:
            logger.info(
                "System prompt changed but clear_history_per_prompt is disabled; "
                "the current session prompt remains active."
            )
        trace = await self.planner.plan_in_active_session(self.runtime, request, reset=reset)
        if reset:
            self._session_primed = True
            self._last_system_prompt = system_prompt
        return trace

    def render(self) -> str:
        return render_grid(self.grid_width, self.grid_height, self.npc, self.last_ping, self.labels)
