"""
Mock completion engine for offline testing and development.

Contains:
    - MockEngine: deterministic engine with scripted or heuristic replies

Without a script the engine answers NPC planner prompts with the ping
coordinates followed by some chatter (so output trimming is exercised) and
echoes anything else. Its state is the JSON-encoded transcript of every
message it has seen, which makes checkpoint isolation easy to assert.
"""

import json
import re
from typing import Any, Iterable, Iterator, List, Optional

from ..errors import GrammarCompileError
from ..llm_config import RuntimeConfig, SamplingConfig
from ..session import ChatMessage
from .base import CompletionEngine

_PING_RE = re.compile(r"ping_x=(-?\d+),\s*ping_y=(-?\d+)")


def _tokenize(text: str) -> List[str]:
    # Whitespace-preserving word chunks, close enough to subword streaming
    return re.findall(r"\s*\S+|\s+", text)


class MockEngine(CompletionEngine):
    """
    Deterministic local stub.

    Attributes:
        replies: Scripted replies consumed in order; heuristics apply once empty
        transcript: Messages the current state has seen, replies included
        calls: Number of ``complete`` calls
        fail_grammar: Make ``compile_grammar`` raise
    """

    dialect = "mock"

    def __init__(
        self,
        replies: Optional[Iterable[str]] = None,
        fail_grammar: bool = False,
        fail_load: Optional[Exception] = None,
    ):
        self.replies = list(replies or [])
        self.fail_grammar = fail_grammar
        self.fail_load = fail_load
        self.transcript: List[dict] = []
        self.calls = 0
        self.loaded = False
        self.closed = False
        self.last_sampling: Optional[SamplingConfig] = None
        self.last_grammar: Any = None

    def load_weights(self, config: RuntimeConfig) -> None:
        if self.fail_load is not None:
            raise self.fail_load
        self.loaded = True

    def complete(
        self,
        messages: List[ChatMessage],
        sampling: SamplingConfig,
        grammar: Optional[Any] = None,
    ) -> Iterator[str]:
        self.calls += 1
        self.last_sampling = sampling
        self.last_grammar = grammar
        for m in messages:
            self.transcript.append({"role": m.role, "content": m.content})

        reply = self.replies.pop(0) if self.replies else self._heuristic_reply()
        produced = []
        try:
            for i, token in enumerate(_tokenize(reply)):
                if i >= sampling.max_tokens:
                    break
                before = "".join(produced)
                text = before + token
                cuts = [text.index(stop) for stop in sampling.stop_sequences if stop and stop in text]
                if cuts:
                    # Keep whatever precedes the stop string
                    head = text[len(before):min(cuts)]
                    if head:
                        produced.append(head)
                        yield head
                    break
                produced.append(token)
                yield token
        finally:
            self.transcript.append({"role": "assistant", "content": "".join(produced)})

    def _heuristic_reply(self) -> str:
        last_user = next(
            (m["content"] for m in reversed(self.transcript) if m["role"] == "user"), ""
        )
        match = _PING_RE.search(last_user)
        if match:
            x, y = match.groups()
            return f'{{"target_x":{x},"target_y":{y}}} Moving to the ping.'
        return f"You said: {last_user}"

    def get_state(self) -> bytes:
        return json.dumps(self.transcript).encode("utf-8")

    def load_state(self, state: Any) -> None:
        self.transcript = json.loads(state.decode("utf-8")) if state else []

    def compile_grammar(self, gbnf: str, json_schema: dict) -> str:
        if self.fail_grammar:
            raise GrammarCompileError("mock engine rejects every grammar")
        return gbnf

    def close(self) -> None:
        self.closed = True
