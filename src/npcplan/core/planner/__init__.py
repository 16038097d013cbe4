"""
NPC decision protocol.

Prompt-in, validated-structured-decision-out:
- Layer 1: Constrained decoding (GBNF grammar or JSON schema)
- Layer 2: Deterministic rule prompts rendered from a planner profile
- Layer 3: Extraction, validation and behavior repair with a total fallback
"""

from npcplan.core.planner.extraction import (
    json_object_complete,
    strip_markdown_fences,
    strip_think_tags,
    trim_completion,
    try_extract_first_json_object,
)
from npcplan.core.planner.grammar_builder import DecisionGrammar, build_gbnf, build_grammar, build_json_schema
from npcplan.core.planner.grid import (
    GridLabels,
    GridPingController,
    grid_height_for,
    index_to_point,
    point_to_index,
    render_grid,
    resolve_grid_width,
)
from npcplan.core.planner.planner import NpcPlanner, PlannerSampling
from npcplan.core.planner.profiles import (
    ACTION_PROFILE,
    BUILTIN_PROFILES,
    COORDINATE_PROFILE,
    DEFAULT_PROFILE,
    PlannerProfile,
    load_profile,
    profile_from_dict,
)
from npcplan.core.planner.prompt_builder import (
    build_prompts,
    build_system_prompt,
    build_user_prompt,
    normalize,
)
from npcplan.core.planner.types import (
    Decision,
    DecisionRequest,
    DecisionSchema,
    DecisionTrace,
    GridPoint,
    NpcAction,
    NpcBehavior,
)
from npcplan.core.planner.validation import (
    BEHAVIOR_REPAIRS,
    Rejection,
    RejectionReason,
    build_fallback_decision,
    find_scout_target,
    parse_and_repair,
    parse_decision,
    repair,
    resolve_decision,
)

__all__ = [
    "GridPoint",
    "NpcBehavior",
    "NpcAction",
    "DecisionSchema",
    "DecisionRequest",
    "Decision",
    "DecisionTrace",
    "PlannerProfile",
    "COORDINATE_PROFILE",
    "ACTION_PROFILE",
    "DEFAULT_PROFILE",
    "BUILTIN_PROFILES",
    "load_profile",
    "profile_from_dict",
    "normalize",
    "build_system_prompt",
    "build_user_prompt",
    "build_prompts",
    "DecisionGrammar",
    "build_gbnf",
    "build_json_schema",
    "build_grammar",
    "try_extract_first_json_object",
    "json_object_complete",
    "strip_markdown_fences",
    "strip_think_tags",
    "trim_completion",
    "Rejection",
    "RejectionReason",
    "BEHAVIOR_REPAIRS",
    "parse_decision",
    "repair",
    "find_scout_target",
    "parse_and_repair",
    "build_fallback_decision",
    "resolve_decision",
    "NpcPlanner",
    "PlannerSampling",
    "GridLabels",
    "GridPingController",
    "resolve_grid_width",
    "grid_height_for",
    "index_to_point",
    "point_to_index",
    "render_grid",
]
