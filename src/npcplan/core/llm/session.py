"""
Conversation sessions held by the model runtime.

Contains:
    - ChatMessage: role-tagged message
    - FewShotExample: user/assistant exchange injected before live prompts
    - ConversationSession: message history plus the engine checkpoint taken
      after the session last generated
"""

import logging
from dataclasses import dataclass
from typing import Any, Iterable, List, Literal, Optional

logger = logging.getLogger(__name__)

Role = Literal["system", "user", "assistant"]


@dataclass(frozen=True)
class ChatMessage:
    role: Role
    content: str


@dataclass(frozen=True)
class FewShotExample:
    user_prompt: str = ""
    assistant_prompt: str = ""


class ConversationSession:
    """Ordered chat history for one conversation.

    The engine only sees messages once: ``pending_messages`` returns the tail
    that has not been fed yet and ``mark_fed`` advances the cursor after a
    generation. ``checkpoint`` is the opaque engine state that carries the
    conversational memory; ``None`` means the session never generated.
    """

    def __init__(
        self,
        system_prompt: Optional[str] = None,
        few_shot: Optional[Iterable[FewShotExample]] = None,
    ):
        self._messages: List[ChatMessage] = []
        self._fed = 0
        self.checkpoint: Any = None
        if system_prompt and system_prompt.strip():
            self.add_system_message(system_prompt)
        if few_shot:
            apply_few_shot_examples(self, few_shot)

    @property
    def messages(self) -> List[ChatMessage]:
        return list(self._messages)

    def add_system_message(self, content: str) -> None:
        self._messages.append(ChatMessage("system", content))

    def add_user_message(self, content: str) -> None:
        self._messages.append(ChatMessage("user", content))

    def add_assistant_message(self, content: str) -> None:
        self._messages.append(ChatMessage("assistant", content))

    def pending_messages(self) -> List[ChatMessage]:
        return self._messages[self._fed:]

    def mark_fed(self) -> None:
        self._fed = len(self._messages)

    def __len__(self) -> int:
        return len(self._messages)


def apply_few_shot_examples(
    session: ConversationSession, examples: Iterable[FewShotExample]
) -> int:
    """Seed a session with few-shot exchanges.

    Empty examples are skipped. One-sided examples are still applied but
    logged, since the model then sees an unbalanced exchange.

    Returns:
        Number of examples applied
    """
    applied = 0
    for i, example in enumerate(examples):
        if example is None:
            continue
        user = (example.user_prompt or "").strip()
        assistant = (example.assistant_prompt or "").strip()
        if not user and not assistant:
            continue
        if user:
            session.add_user_message(user)
        if assistant:
            session.add_assistant_message(assistant)
        if bool(user) != bool(assistant):
            logger.warning(
                "Few-shot example #%d has only one side of the exchange. "
                "Consider providing both prompts.",
                i,
            )
        applied += 1
    return applied
