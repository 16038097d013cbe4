"""
Tests for the calculator chat front-end.
"""

import logging

import pytest

from npcplan.core.chat.calculator import DEFAULT_SYSTEM_PROMPT, CalculatorChat
from npcplan.core.llm.llm_config import RuntimeConfig
from npcplan.core.llm.providers.mock import MockEngine
from npcplan.core.llm.runtime import ModelRuntime
from npcplan.core.llm.session import FewShotExample


def make_chat(replies=None, **kwargs) -> CalculatorChat:
    runtime = ModelRuntime(RuntimeConfig(dialect="mock"), engine=MockEngine(replies=replies))
    return CalculatorChat(runtime, **kwargs)


@pytest.mark.asyncio
async def test_initialize_seeds_few_shot_examples():
    """Every session starts with the system prompt and the examples."""
    chat = make_chat(few_shot=[FewShotExample("2+2", "4")])
    chat.add_few_shot_example("3*3", "9")
    await chat.initialize(session_count=2)

    for index in range(2):
        await chat.switch_session(index)
        messages = chat.runtime.get_active_messages()
        assert [(m.role, m.content) for m in messages] == [
            ("system", DEFAULT_SYSTEM_PROMPT),
            ("user", "2+2"),
            ("assistant", "4"),
            ("user", "3*3"),
            ("assistant", "9"),
        ]


@pytest.mark.asyncio
async def test_ask_text_returns_stripped_reply():
    chat = make_chat(replies=["  42  "])
    await chat.initialize()
    assert await chat.ask_text("6*7") == "42"
    assert chat.runtime.get_active_messages()[-1].content.strip() == "42"


@pytest.mark.asyncio
async def test_repetition_guard_stops_early(caplog):
    """A token repeated too many times in a row ends the reply."""
    chat = make_chat(replies=[" 7 7 7 7 7 7 8"], max_same_token_in_row=3)
    await chat.initialize()

    with caplog.at_level(logging.WARNING, logger="npcplan.core.chat.calculator"):
        reply = await chat.ask_text("7+0")

    assert reply == "7 7 7"
    assert "repeated 3 times" in caplog.text


@pytest.mark.asyncio
async def test_clear_reseeds_active_session():
    chat = make_chat(replies=["4"], few_shot=[FewShotExample("1+1", "2")])
    await chat.initialize()
    await chat.ask_text("2+2")
    await chat.clear()

    messages = chat.runtime.get_active_messages()
    assert [m.content for m in messages] == [DEFAULT_SYSTEM_PROMPT, "1+1", "2"]
