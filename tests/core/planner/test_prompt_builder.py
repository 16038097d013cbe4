"""
Tests for the planner prompt builder.
"""

import pytest

from npcplan.core.planner.profiles import ACTION_PROFILE, COORDINATE_PROFILE
from npcplan.core.planner.prompt_builder import (
    build_prompts,
    build_system_prompt,
    build_user_prompt,
    normalize,
)
from npcplan.core.planner.types import DecisionRequest, GridPoint, NpcBehavior


def make_request(**overrides) -> DecisionRequest:
    fields = dict(
        npc=GridPoint(1, 2),
        ping=GridPoint(3, 4),
        behavior=NpcBehavior.SCOUT,
        grid_width=5,
        grid_height=5,
        near_radius=1,
    )
    fields.update(overrides)
    return DecisionRequest(**fields)


def test_normalize_clamps_positions_into_grid():
    """Out-of-range positions are clamped, not rejected."""
    request = normalize(make_request(npc=GridPoint(-3, 9), ping=GridPoint(7, -1)))
    assert request.npc == GridPoint(0, 4)
    assert request.ping == GridPoint(4, 0)


def test_normalize_clamps_bounds_and_radius_to_one():
    """Width, height and radius are at least 1."""
    request = normalize(make_request(grid_width=0, grid_height=-4, near_radius=0))
    assert (request.grid_width, request.grid_height, request.near_radius) == (1, 1, 1)
    assert request.npc == GridPoint(0, 0)
    assert request.ping == GridPoint(0, 0)


def test_normalize_returns_copy():
    """The input request is left untouched."""
    original = make_request(npc=GridPoint(10, 10))
    normalized = normalize(original)
    assert original.npc == GridPoint(10, 10)
    assert normalized is not original


@pytest.mark.parametrize("width,height,npc,ping,radius", [
    (5, 5, (0, 0), (2, 2), 1),
    (0, 0, (-1, -1), (9, 9), 0),
    (3, 7, (8, -2), (1, 12), -5),
    (1, 1, (0, 0), (0, 0), 1),
    (10, 2, (9, 1), (-10, 5), 4),
])
def test_normalize_is_idempotent(width, height, npc, ping, radius):
    """normalize(normalize(r)) == normalize(r)."""
    request = make_request(
        grid_width=width, grid_height=height,
        npc=GridPoint(*npc), ping=GridPoint(*ping), near_radius=radius,
    )
    once = normalize(request)
    assert normalize(once) == once


def test_user_prompt_format():
    """User prompt lists NPC position, lower-cased behavior, radius and ping."""
    prompt = build_user_prompt(make_request(behavior=NpcBehavior.AGGRESSIVE, near_radius=3))
    assert prompt == (
        "NPC previous location x=1, y=2.\n"
        "NPC behavior=aggressive. Near radius=3.\n"
        "ping_x=3, ping_y=4"
    )


def test_system_prompt_contains_bounds_and_rules():
    """System prompt embeds grid bounds, behavior rules and the JSON format."""
    prompt = build_system_prompt(make_request(grid_width=7, grid_height=3))
    assert prompt.startswith("You are an NPC tactical planner for a grid game.")
    assert "Grid width=7, height=3." in prompt
    assert "- guard always holds its position." in prompt
    assert "- scout always moves close to ping but always farther than near radius from ping." in prompt
    assert '{"target_x":<int>,"target_y":<int>}' in prompt
    assert prompt.endswith("- target_y must be an integer in [0, grid height - 1].")


def test_action_profile_system_prompt_mentions_actions():
    """The action profile asks for the action-tagged object."""
    prompt = build_system_prompt(make_request(), ACTION_PROFILE)
    assert '"action":"hold"|"move_to_ping"|"move_near_ping"' in prompt
    assert "action must be one of hold, move_to_ping, move_near_ping." in prompt


def test_prompts_are_deterministic():
    """Equal requests render byte-identical prompts."""
    first = build_prompts(make_request(), COORDINATE_PROFILE)
    second = build_prompts(make_request(), COORDINATE_PROFILE)
    assert first == second


def test_build_prompts_normalizes_before_rendering():
    """Prompts reflect the clamped request."""
    normalized, _, user = build_prompts(make_request(ping=GridPoint(50, 50)))
    assert normalized.ping == GridPoint(4, 4)
    assert "ping_x=4, ping_y=4" in user
