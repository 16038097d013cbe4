"""
Tests for runtime and sampling configuration.
"""

from npcplan.core import config
from npcplan.core.llm.llm_config import (
    RuntimeConfig,
    SamplingConfig,
    chat_sampling,
    planner_sampling,
)


def test_planner_sampling_is_low_temperature_and_short():
    sampling = planner_sampling()
    assert sampling.temperature == config.PLANNER_TEMPERATURE
    assert sampling.max_tokens == config.PLANNER_MAX_TOKENS
    assert sampling.stop_sequences == [config.END_OF_TURN]


def test_chat_sampling_stops_on_user_turns():
    sampling = chat_sampling()
    assert config.END_OF_TURN in sampling.stop_sequences
    assert "User:" in sampling.stop_sequences


def test_with_overrides_returns_copy():
    base = SamplingConfig()
    changed = base.with_overrides(max_tokens=8)
    assert changed.max_tokens == 8
    assert base.max_tokens == 256


def test_stop_sequences_not_shared():
    a, b = SamplingConfig(), SamplingConfig()
    a.stop_sequences.append("x")
    assert "x" not in b.stop_sequences


def test_runtime_config_defaults():
    runtime_config = RuntimeConfig()
    assert runtime_config.dialect == "llama_cpp"
    assert runtime_config.context_size == config.CONTEXT_SIZE
    assert runtime_config.native_search_paths == []
