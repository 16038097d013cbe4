"""
Tests for NpcPlanner orchestration against the mock engine.
"""

import logging
from unittest.mock import Mock

import pytest

from npcplan.core.llm.errors import GrammarCompileError
from npcplan.core.llm.llm_config import RuntimeConfig
from npcplan.core.llm.providers.mock import MockEngine
from npcplan.core.llm.runtime import ModelRuntime
from npcplan.core.planner.extraction import json_object_complete
from npcplan.core.planner.planner import NpcPlanner
from npcplan.core.planner.profiles import ACTION_PROFILE
from npcplan.core.planner.types import (
    Decision,
    DecisionRequest,
    GridPoint,
    NpcAction,
    NpcBehavior,
)


def make_request(**overrides) -> DecisionRequest:
    fields = dict(
        npc=GridPoint(0, 0),
        ping=GridPoint(2, 2),
        behavior=NpcBehavior.AGGRESSIVE,
        grid_width=5,
        grid_height=5,
        near_radius=1,
    )
    fields.update(overrides)
    return DecisionRequest(**fields)


async def ready_runtime(engine: MockEngine, **init_kwargs) -> ModelRuntime:
    runtime = ModelRuntime(RuntimeConfig(dialect="mock"), engine=engine)
    await runtime.initialize(**init_kwargs)
    return runtime


def test_default_sampling_values():
    """Planner sampling defaults: low temperature, short output."""
    planner = NpcPlanner()
    assert planner.sampling.temperature == 0.15
    assert planner.sampling.max_tokens == 64
    assert planner.sampling.repeat_penalty == 1.05
    assert planner.sampling.repeat_last_tokens_count == 32
    assert planner.sampling.stop_sequences == ["<|im_end|>"]


@pytest.mark.asyncio
async def test_plan_uses_grammar_and_trims_chatter():
    """The heuristic reply has trailing chatter; the trace keeps only the object."""
    engine = MockEngine()
    runtime = await ready_runtime(engine)
    trace = await NpcPlanner().plan(runtime, make_request())

    assert trace.completion == '{"target_x":2,"target_y":2}'
    assert trace.decision == Decision(2, 2)
    assert trace.fallback_reason is None
    assert engine.last_grammar.startswith("root ::=")
    assert "ping_x=2, ping_y=2" in trace.user_prompt
    await runtime.close()


@pytest.mark.asyncio
async def test_plan_repairs_guard_output():
    """Guard decisions hold the NPC position whatever the model says."""
    engine = MockEngine(replies=['{"target_x":4,"target_y":4}'])
    runtime = await ready_runtime(engine)
    trace = await NpcPlanner().plan(runtime, make_request(behavior=NpcBehavior.GUARD, npc=GridPoint(3, 1)))
    assert trace.decision == Decision(3, 1)
    await runtime.close()


@pytest.mark.asyncio
async def test_plan_falls_back_and_logs_warning(caplog):
    """Garbled output resolves to hold with the raw text logged."""
    engine = MockEngine(replies=["I think the NPC should go left"])
    runtime = await ready_runtime(engine)
    with caplog.at_level(logging.WARNING, logger="npcplan.core.planner.planner"):
        trace = await NpcPlanner().plan(runtime, make_request(npc=GridPoint(1, 1)))

    assert trace.decision == Decision(1, 1)
    assert trace.used_fallback
    assert "I think the NPC should go left" in caplog.text
    await runtime.close()


@pytest.mark.asyncio
async def test_grammar_compile_failure_degrades(caplog):
    """A rejected grammar is logged and generation continues unconstrained."""
    engine = MockEngine(fail_grammar=True)
    runtime = await ready_runtime(engine)
    with caplog.at_level(logging.WARNING):
        trace = await NpcPlanner().plan(runtime, make_request())

    assert engine.last_grammar is None
    assert trace.decision == Decision(2, 2)
    assert "prompt-only" in caplog.text
    await runtime.close()


@pytest.mark.asyncio
async def test_build_sampling_without_trim_has_no_stop_predicate():
    engine = MockEngine()
    runtime = await ready_runtime(engine)
    sampling = await NpcPlanner(trim_to_first_json=False).build_sampling(make_request(), runtime)
    assert sampling.stop_predicate is None
    trimmed = await NpcPlanner().build_sampling(make_request(), runtime)
    assert trimmed.stop_predicate is json_object_complete
    await runtime.close()


def test_untrimmed_completion_with_chatter_falls_back():
    """Without trimming the whole completion must be the object."""
    planner = NpcPlanner(trim_to_first_json=False)
    trace = planner.build_decision_trace(
        make_request(npc=GridPoint(4, 4)), "sys", "user", '{"target_x":1,"target_y":1} ok'
    )
    assert trace.decision == Decision(4, 4)
    assert trace.fallback_reason.startswith("invalid_json")


def test_action_profile_trace():
    planner = NpcPlanner(ACTION_PROFILE)
    trace = planner.build_decision_trace(
        make_request(behavior=NpcBehavior.SCOUT),
        "sys",
        "user",
        '```json\n{"action":"move_to_ping","target_x":2,"target_y":2}\n```',
    )
    assert trace.decision.action is NpcAction.MOVE_NEAR_PING
    assert trace.decision.target.manhattan(GridPoint(2, 2)) == 2


@pytest.mark.asyncio
async def test_plan_does_not_touch_active_session():
    """One-shot planning leaves the chat history unchanged."""
    engine = MockEngine()
    runtime = await ready_runtime(engine, session_count=1, system_prompt="chat")
    before = runtime.get_active_messages()
    await NpcPlanner().plan(runtime, make_request())
    assert runtime.get_active_messages() == before
    await runtime.close()


@pytest.mark.asyncio
async def test_plan_in_active_session_keeps_exchange():
    """Session planning seeds the system prompt and records the exchange."""
    engine = MockEngine()
    runtime = await ready_runtime(engine)
    trace = await NpcPlanner().plan_in_active_session(runtime, make_request())

    messages = runtime.get_active_messages()
    assert [m.role for m in messages] == ["system", "user", "assistant"]
    assert messages[0].content == trace.system_prompt
    assert messages[2].content == '{"target_x":2,"target_y":2}'
    assert trace.decision == Decision(2, 2)
    await runtime.close()


def test_trace_logger_receives_fallback():
    trace_logger = Mock()
    planner = NpcPlanner(trace_logger=trace_logger)
    planner.build_decision_trace(make_request(), "sys", "user", "nope")
    trace_logger.log_completion.assert_called_once_with("nope")
    trace_logger.log_fallback.assert_called_once()
    trace_logger.log_decision.assert_called_once()
