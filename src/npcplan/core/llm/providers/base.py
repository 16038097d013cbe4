"""
Completion engine interface.

An engine owns the loaded model and its evaluation state. ``ModelRuntime``
drives it from a single worker thread, so implementations do not need to be
thread-safe, but every call may block.
"""

from abc import ABC, abstractmethod
from typing import Any, Iterator, List, Optional

from ..llm_config import RuntimeConfig, SamplingConfig
from ..session import ChatMessage

IM_START = "<|im_start|>"
IM_END = "<|im_end|>"


def render_chatml(messages: List[ChatMessage], open_assistant: bool = True) -> str:
    """Render messages in the ChatML layout used by Qwen instruct models."""
    parts = [f"{IM_START}{m.role}\n{m.content}{IM_END}\n" for m in messages]
    if open_assistant:
        parts.append(f"{IM_START}assistant\n")
    return "".join(parts)


class CompletionEngine(ABC):
    """Model backend used by the runtime."""

    dialect: str = ""

    @abstractmethod
    def load_weights(self, config: RuntimeConfig) -> None:
        """Load the model and create an evaluation context."""

    @abstractmethod
    def complete(
        self,
        messages: List[ChatMessage],
        sampling: SamplingConfig,
        grammar: Optional[Any] = None,
    ) -> Iterator[str]:
        """Feed ``messages`` on top of the current state and stream the reply.

        The assistant reply produced so far becomes part of the engine state
        once the iterator is exhausted or closed.
        """

    @abstractmethod
    def get_state(self) -> Any:
        """Snapshot the evaluation state."""

    @abstractmethod
    def load_state(self, state: Any) -> None:
        """Restore a snapshot taken by ``get_state``."""

    @abstractmethod
    def compile_grammar(self, gbnf: str, json_schema: dict) -> Any:
        """Compile a decision grammar into an engine-specific constraint.

        Raises:
            GrammarCompileError: The engine rejected the grammar
        """

    def close(self) -> None:
        pass
