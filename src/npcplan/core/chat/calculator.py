"""
Calculator-style chat over the runtime's persistent sessions.

Contains:
    - CalculatorChat: few-shot seeded chat with a repetition guard
"""

import logging
from contextlib import aclosing
from typing import AsyncIterator, Iterable, List, Optional

from npcplan.core import config
from npcplan.core.llm.llm_config import SamplingConfig, chat_sampling
from npcplan.core.llm.runtime import ModelRuntime
from npcplan.core.llm.session import FewShotExample

logger = logging.getLogger(__name__)

DEFAULT_SYSTEM_PROMPT = "You are a precise calculator assistant. Return direct, correct answers."


class CalculatorChat:
    """
    Chat front-end for calculator prompts.

    Every session of the runtime is seeded with the system prompt and the
    few-shot examples. Replies stream from the active session; generation is
    cut short when the model gets stuck repeating one token.

    Attributes:
        runtime: Model runtime holding the sessions
        system_prompt: System message seeded into each session
        few_shot: Example exchanges seeded after the system message
        sampling: Sampling settings for every reply
        max_same_token_in_row: Repetition limit before stopping early
    """

    def __init__(
        self,
        runtime: ModelRuntime,
        system_prompt: str = DEFAULT_SYSTEM_PROMPT,
        few_shot: Optional[Iterable[FewShotExample]] = None,
        sampling: Optional[SamplingConfig] = None,
        max_same_token_in_row: int = config.MAX_SAME_TOKEN_IN_ROW,
    ):
        self.runtime = runtime
        self.system_prompt = system_prompt
        self.few_shot: List[FewShotExample] = list(few_shot or [])
        self.sampling = sampling or chat_sampling()
        self.max_same_token_in_row = max(1, max_same_token_in_row)

    def add_few_shot_example(self, user_prompt: str, assistant_prompt: str) -> None:
        """Register an example; applies to sessions created afterwards."""
        self.few_shot.append(FewShotExample(user_prompt, assistant_prompt))

    async def initialize(self, session_count: int = config.RUNTIME_SESSION_COUNT) -> None:
        await self.runtime.initialize(session_count, self.system_prompt, self.few_shot)

    async def switch_session(self, index: int) -> None:
        await self.runtime.switch_active_session(index)

    async def clear(self) -> None:
        await self.runtime.clear_active_history(self.system_prompt, self.few_shot)

    async def ask(self, prompt: str) -> AsyncIterator[str]:
        """Stream the reply to ``prompt`` from the active session."""
        previous = None
        same_count = 0
        async with aclosing(self.runtime.stream_chat(prompt, self.sampling)) as stream:
            async for token in stream:
                yield token
                if token == previous:
                    same_count += 1
                    if same_count >= self.max_same_token_in_row:
                        logger.warning(
                            "Stopping generation early: token %r repeated %d times.", token, same_count
                        )
                        break
                else:
                    previous = token
                    same_count = 1

    async def ask_text(self, prompt: str) -> str:
        parts = []
        async with aclosing(self.ask(prompt)) as tokens:
            async for token in tokens:
                parts.append(token)
        return "".join(parts).strip()
