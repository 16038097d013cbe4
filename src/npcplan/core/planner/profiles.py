"""Planner profiles: the rule text and output shape of an NPC planner.

A profile is configuration, not code. The built-in profiles cover the
coordinate-only planner (the default) and the action-tagged variant; custom
profiles can be loaded from JSON or YAML files and are validated with
pydantic.
"""

from __future__ import annotations

import json
from pathlib import Path

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from npcplan.core import config
from npcplan.core.planner.types import DecisionSchema, NpcBehavior


class PlannerProfile(BaseModel):
    """Prompt and sampling configuration for one planner variant.

    Attributes:
        name: Profile identifier.
        base_instruction: First line of the system prompt.
        task: One-line task statement.
        behavior_rules: Rule line per behavior, rendered in insertion order.
        decision_schema: JSON shape the model must produce.
        format_hints: Extra formatting rules appended after the JSON format.
        use_grammar: Whether to constrain generation with the decision grammar.
        temperature: Sampling temperature for planner calls.
        max_tokens: Generation limit for planner calls.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str = Field(..., description="Profile identifier.")
    base_instruction: str = Field(
        default="You are an NPC tactical planner for a grid game. Respond with exactly one JSON object.",
    )
    task: str = Field(default="Choose one NPC target position.")
    behavior_rules: dict[NpcBehavior, str] = Field(default_factory=dict)
    decision_schema: DecisionSchema = Field(default=DecisionSchema.COORDINATES)
    format_hints: list[str] = Field(default_factory=list)
    use_grammar: bool = Field(default=True)
    temperature: float = Field(default=config.PLANNER_TEMPERATURE, ge=0.0)
    max_tokens: int = Field(default=config.PLANNER_MAX_TOKENS, ge=1)


COORDINATE_PROFILE = PlannerProfile(
    name="coordinates",
    behavior_rules={
        NpcBehavior.AGGRESSIVE: "aggressive always teleport to same location as ping.",
        NpcBehavior.GUARD: "guard always holds its position.",
        NpcBehavior.SCOUT: "scout always moves close to ping but always farther than near radius from ping.",
        NpcBehavior.CAUTIOUS: "cautious never moves within near radius of ping.",
    },
    decision_schema=DecisionSchema.COORDINATES,
    format_hints=[
        "Do not add markdown, code fences, or extra keys.",
        "target_x must be an integer in [0, grid width - 1].",
        "target_y must be an integer in [0, grid height - 1].",
    ],
)

ACTION_PROFILE = PlannerProfile(
    name="action",
    task="Choose one NPC action and target position.",
    behavior_rules={
        NpcBehavior.AGGRESSIVE: "aggressive always uses move_to_ping and targets the ping.",
        NpcBehavior.GUARD: "guard always uses hold and targets its own position.",
        NpcBehavior.SCOUT: "scout always uses move_near_ping and stays farther than near radius from ping.",
        NpcBehavior.CAUTIOUS: "cautious uses hold or move_near_ping, never move_to_ping.",
    },
    decision_schema=DecisionSchema.ACTION,
    format_hints=[
        "Do not add markdown, code fences, or extra keys.",
        "action must be one of hold, move_to_ping, move_near_ping.",
        "target_x must be an integer in [0, grid width - 1].",
        "target_y must be an integer in [0, grid height - 1].",
    ],
)

DEFAULT_PROFILE = COORDINATE_PROFILE

BUILTIN_PROFILES = {
    COORDINATE_PROFILE.name: COORDINATE_PROFILE,
    ACTION_PROFILE.name: ACTION_PROFILE,
}


def profile_from_dict(data: dict) -> PlannerProfile:
    """Validate a profile definition.

    Raises:
        ValueError: If the profile data is invalid.
    """
    if not isinstance(data, dict):
        raise ValueError(f"Invalid profile data: expected a mapping, got {type(data).__name__}")
    try:
        return PlannerProfile.model_validate(data)
    except ValidationError as e:
        raise ValueError(f"Invalid profile data: {e}") from e


def load_profile(path: str | Path) -> PlannerProfile:
    """Load a planner profile from a JSON or YAML file, or by built-in name.

    Args:
        path: Path to a .json, .yaml or .yml file, or a built-in profile name
            ("coordinates", "action").

    Returns:
        A PlannerProfile instance.

    Raises:
        FileNotFoundError: If the file doesn't exist.
        ValueError: If the file format is not supported or content is invalid.
    """
    if str(path) in BUILTIN_PROFILES:
        return BUILTIN_PROFILES[str(path)]

    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Profile file not found: {path}")

    suffix = path.suffix.lower()
    with open(path, "r", encoding="utf-8") as f:
        content = f.read()

    if suffix == ".json":
        data = json.loads(content)
    elif suffix in (".yaml", ".yml"):
        try:
            data = yaml.safe_load(content)
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in {path}: {e}") from e
    else:
        raise ValueError(
            f"Unsupported file format: {suffix}. "
            "Supported formats: .json, .yaml, .yml"
        )

    return profile_from_dict(data)
