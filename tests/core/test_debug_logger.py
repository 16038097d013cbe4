"""Tests for core.debug_logger module."""

from pathlib import Path

from npcplan.core.debug_logger import DebugLogger


def _session_text(log_dir: Path) -> str:
    files = list(log_dir.glob("session_*.txt"))
    assert len(files) == 1
    return files[0].read_text(encoding='utf-8')


def test_logger_creates_log_directory(tmp_path):
    """Should create log directory if it doesn't exist."""
    DebugLogger(log_dir=tmp_path / "logs")
    assert (tmp_path / "logs").exists()


def test_log_prompt_writes_to_file(tmp_path):
    """Should write both prompts to file."""
    logger = DebugLogger(log_dir=tmp_path / "logs")
    logger.log_prompt("You control an NPC.", "npc_x=0, npc_y=0, ping_x=3, ping_y=0")

    content = _session_text(tmp_path / "logs")
    assert "[PROMPT]" in content
    assert "You control an NPC." in content
    assert "ping_x=3" in content


def test_log_completion_writes_to_file(tmp_path):
    logger = DebugLogger(log_dir=tmp_path / "logs")
    logger.log_completion('{"target_x":3,"target_y":0}')

    content = _session_text(tmp_path / "logs")
    assert "[COMPLETION]" in content
    assert '{"target_x":3,"target_y":0}' in content


def test_log_decision_and_fallback(tmp_path):
    """Should record the behavior, the decision and any fallback."""
    logger = DebugLogger(log_dir=tmp_path / "logs")
    logger.log_fallback("invalid_json: no JSON object", "I will go left")
    logger.log_decision("guard", {"target_x": 0, "target_y": 0})

    content = _session_text(tmp_path / "logs")
    assert "[FALLBACK] invalid_json: no JSON object" in content
    assert "'I will go left'" in content
    assert "[DECISION] Behavior: guard" in content


def test_multiple_logs_append_to_same_file(tmp_path):
    """Multiple logs should append to the same session file."""
    logger = DebugLogger(log_dir=tmp_path / "logs")
    logger.log_prompt("sys", "user")
    logger.log_completion("raw")
    logger.log_decision("scout", {"target_x": 1, "target_y": 1})

    content = _session_text(tmp_path / "logs")
    assert content.index("[PROMPT]") < content.index("[COMPLETION]") < content.index("[DECISION]")
