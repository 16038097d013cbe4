"""
Prompt builder for NPC planner calls.

Renders the system prompt (task, grid bounds, behavior rules, JSON format)
and the user prompt (NPC state and ping) from a normalized request. Every
function here is pure: equal requests give byte-identical prompts.
"""

from dataclasses import replace
from typing import Tuple

from npcplan.core.planner.profiles import DEFAULT_PROFILE, PlannerProfile
from npcplan.core.planner.types import DecisionRequest, DecisionSchema, GridPoint, NpcAction


def _clamp(value: int, low: int, high: int) -> int:
    return max(low, min(high, value))


def clamp_point(point: GridPoint, width: int, height: int) -> GridPoint:
    return GridPoint(_clamp(point.x, 0, width - 1), _clamp(point.y, 0, height - 1))


def normalize(request: DecisionRequest) -> DecisionRequest:
    """Clamp bounds and radius to >= 1 and both positions into the grid.

    Returns a new request; the input is left untouched. Idempotent.
    """
    width = max(1, int(request.grid_width))
    height = max(1, int(request.grid_height))
    return replace(
        request,
        grid_width=width,
        grid_height=height,
        near_radius=max(1, int(request.near_radius)),
        npc=clamp_point(request.npc, width, height),
        ping=clamp_point(request.ping, width, height),
    )


def json_format_line(schema: DecisionSchema) -> str:
    if schema is DecisionSchema.ACTION:
        actions = "|".join(f'"{a.value}"' for a in NpcAction)
        return f'{{"action":{actions},"target_x":<int>,"target_y":<int>}}'
    return '{"target_x":<int>,"target_y":<int>}'


def build_system_prompt(request: DecisionRequest, profile: PlannerProfile = DEFAULT_PROFILE) -> str:
    """Render the planner system prompt for a normalized request.

    Args:
        request: Normalized decision request
        profile: Rule text and output shape to render

    Returns:
        System prompt text
    """
    lines = [
        profile.base_instruction.strip(),
        profile.task,
        f"Grid width={request.grid_width}, height={request.grid_height}.",
        "Rules:",
    ]
    lines.extend(f"- {rule}" for rule in profile.behavior_rules.values())
    lines.append("- target_x and target_y must be inside the grid.")
    lines.append("User message contains NPC state and player ping coordinates.")
    lines.append("Respond with JSON only.")
    lines.append("JSON format:")
    lines.append(json_format_line(profile.decision_schema))
    lines.extend(f"- {hint}" for hint in profile.format_hints)
    return "\n".join(lines)


def build_user_prompt(request: DecisionRequest) -> str:
    return (
        f"NPC previous location x={request.npc.x}, y={request.npc.y}.\n"
        f"NPC behavior={request.behavior.value.lower()}. Near radius={request.near_radius}.\n"
        f"ping_x={request.ping.x}, ping_y={request.ping.y}"
    )


def build_prompts(
    request: DecisionRequest, profile: PlannerProfile = DEFAULT_PROFILE
) -> Tuple[DecisionRequest, str, str]:
    """Normalize a request and render both prompts.

    Returns:
        (normalized_request, system_prompt, user_prompt)
    """
    normalized = normalize(request)
    return normalized, build_system_prompt(normalized, profile), build_user_prompt(normalized)
