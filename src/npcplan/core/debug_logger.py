"""Debug logger for full prompt/completion/decision tracing during development."""

import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

from npcplan.core import config


class DebugLogger:
    """Logs planner prompts, raw completions, decisions and fallbacks.

    Outputs to:
    - Console (stdout with timestamps)
    - File: <log_dir>/session_YYYYMMDD_HHMMSS.txt
    """

    def __init__(self, log_dir: Optional[Path] = None):
        """Initialize debug logger.

        Args:
            log_dir: Directory for log files (created if doesn't exist);
                defaults to NPCPLAN_TRACE_DIR
        """
        self.log_dir = Path(log_dir) if log_dir is not None else Path(config.TRACE_DIR)
        self.log_dir.mkdir(parents=True, exist_ok=True)

        self.console = logging.getLogger("npcplan.trace")
        self.console.handlers.clear()
        self.console.setLevel(logging.DEBUG)
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(
            '[%(asctime)s] %(message)s',
            datefmt='%H:%M:%S'
        ))
        self.console.addHandler(handler)

        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        self.file_path = self.log_dir / f"session_{timestamp}.txt"

    def _section(self, title: str, body: str) -> str:
        return (
            f"\n{'='*60}\n"
            f"[{title}]\n"
            f"{'='*60}\n"
            f"{body}\n"
            f"{'='*60}"
        )

    def log_prompt(self, system_prompt: str, user_prompt: str) -> None:
        """Log the system and user prompt of one planner call."""
        msg = self._section("PROMPT", f"{system_prompt}\n{'-'*60}\n{user_prompt}")
        self.console.debug(msg)
        self._write_to_file(msg)

    def log_completion(self, completion: str) -> None:
        """Log the raw model completion."""
        msg = self._section("COMPLETION", completion)
        self.console.debug(msg)
        self._write_to_file(msg)

    def log_decision(self, behavior: str, decision: Dict[str, Any]) -> None:
        msg = f"\n[DECISION] Behavior: {behavior} -> {decision}"
        self.console.debug(msg)
        self._write_to_file(msg)

    def log_fallback(self, reason: str, completion: str) -> None:
        """Log a rejected completion that was replaced by the fallback decision.

        Args:
            reason: Rejection reason and detail
            completion: Raw completion text
        """
        msg = f"\n[FALLBACK] {reason} -> raw: {completion!r}"
        self.console.debug(msg)
        self._write_to_file(msg)

    def _write_to_file(self, content: str) -> None:
        with open(self.file_path, 'a', encoding='utf-8') as f:
            f.write(content + "\n")
