"""
Model runtime with checkpointed chat sessions and one-shot completions.

Contains:
    - RuntimeState: lifecycle of a runtime
    - create_engine: Factory for completion engines by dialect
    - ModelRuntime: owns the engine, the sessions and the execution gate

The runtime provides:
- N independent chat sessions sharing one loaded model
- Session switching that saves and restores engine checkpoints
- Streaming chat turns on the active session
- One-shot completions that never disturb the active session
- Serialized engine access (asyncio gate + single worker thread)

All engine calls run on one dedicated worker thread, so token production
stays off the event loop and calls reach the engine in submission order. A
restore queued after a cancelled token pull therefore runs only once that
pull has finished.
"""

import asyncio
import functools
import logging
from concurrent.futures import ThreadPoolExecutor
from contextlib import asynccontextmanager
from enum import Enum
from typing import Any, AsyncIterator, Callable, Iterable, List, Optional

from .errors import (
    InvalidSessionCountError,
    RuntimeNotInitializedError,
    SessionIndexError,
    UnknownDialectError,
)
from .llm_config import RuntimeConfig, SamplingConfig
from .native import ensure_native_libraries
from .providers import CompletionEngine, MockEngine, _import_llamacpp, _import_ollama
from .session import ChatMessage, ConversationSession, FewShotExample

logger = logging.getLogger(__name__)

_DONE = object()


class RuntimeState(str, Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"


def create_engine(config: RuntimeConfig) -> CompletionEngine:
    """
    Factory function to create a completion engine.

    Args:
        config: RuntimeConfig whose ``dialect`` selects the engine

    Returns:
        Unloaded engine instance

    Raises:
        UnknownDialectError: If the dialect is not supported
    """
    if config.dialect == "llama_cpp":
        return _import_llamacpp()()
    if config.dialect == "ollama":
        return _import_ollama()()
    if config.dialect == "mock":
        return MockEngine()
    raise UnknownDialectError(config.dialect)


class ModelRuntime:
    """
    Session and runtime manager for one loaded model.

    Attributes:
        config: RuntimeConfig used to create and load the engine
        _gate: asyncio.Lock serializing every engine-state operation
        _init_lock: asyncio.Lock serializing initialization
        _executor: single-thread executor every engine call runs on
    """

    def __init__(self, config: Optional[RuntimeConfig] = None, engine: Optional[CompletionEngine] = None):
        self.config = config or RuntimeConfig.from_env()
        self._engine = engine
        self._executor: Optional[ThreadPoolExecutor] = None
        self._init_lock = asyncio.Lock()
        self._gate = asyncio.Lock()
        self._state = RuntimeState.UNINITIALIZED
        self._sessions: List[ConversationSession] = []
        self._active = 0
        self._empty_state: Any = None

    # -------------------------------------------------------------------------
    # Introspection
    # -------------------------------------------------------------------------

    @property
    def state(self) -> RuntimeState:
        return self._state

    @property
    def is_initialized(self) -> bool:
        return self._state is RuntimeState.READY

    @property
    def session_count(self) -> int:
        return len(self._sessions)

    @property
    def active_session_index(self) -> int:
        return self._active

    @property
    def engine(self) -> Optional[CompletionEngine]:
        return self._engine

    def get_active_messages(self) -> List[ChatMessage]:
        self._require_ready()
        return self._sessions[self._active].messages

    def _require_ready(self) -> None:
        if self._state is not RuntimeState.READY:
            raise RuntimeNotInitializedError()

    # -------------------------------------------------------------------------
    # Worker thread helpers
    # -------------------------------------------------------------------------

    async def _run(self, fn: Callable, *args) -> Any:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, functools.partial(fn, *args))

    @staticmethod
    async def _shielded(coro) -> Any:
        """Run ``coro`` to completion even if the caller is cancelled."""
        task = asyncio.ensure_future(coro)
        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            await task
            raise

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def initialize(
        self,
        session_count: int = 1,
        system_prompt: Optional[str] = None,
        few_shot: Optional[Iterable[FewShotExample]] = None,
    ) -> None:
        """
        Load the model and create ``session_count`` sessions.

        Calling it again once ready is a no-op. A failed attempt leaves the
        runtime uninitialized so it can be retried.

        Raises:
            InvalidSessionCountError: If ``session_count`` <= 0
            UnknownDialectError: If the configured dialect is unknown
            BackendError: If the backend or the model cannot be loaded
        """
        if session_count <= 0:
            raise InvalidSessionCountError(session_count)
        few_shot = list(few_shot or [])

        async with self._init_lock:
            if self._state is RuntimeState.READY:
                return
            self._state = RuntimeState.INITIALIZING
            try:
                if self._executor is None:
                    self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="npcplan-engine")
                if self._engine is None:
                    if self.config.dialect == "llama_cpp":
                        # Must run before llama_cpp is first imported
                        await self._run(ensure_native_libraries, self.config.native_search_paths)
                    self._engine = create_engine(self.config)
                await self._run(self._engine.load_weights, self.config)
                self._empty_state = await self._run(self._engine.get_state)
            except BaseException:
                self._state = RuntimeState.UNINITIALIZED
                raise

            self._sessions = [
                ConversationSession(system_prompt, few_shot) for _ in range(session_count)
            ]
            self._active = 0
            self._state = RuntimeState.READY
            logger.info(
                "Runtime ready: dialect=%s, sessions=%d", self._engine.dialect, session_count
            )

    async def close(self) -> None:
        """Release the engine and the worker thread."""
        async with self._gate:
            if self._engine is not None:
                if self._executor is not None:
                    await self._run(self._engine.close)
                else:
                    self._engine.close()
                self._engine = None
            if self._executor is not None:
                self._executor.shutdown(wait=True)
                self._executor = None
            self._sessions = []
            self._active = 0
            self._empty_state = None
            self._state = RuntimeState.UNINITIALIZED

    async def __aenter__(self) -> "ModelRuntime":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    # -------------------------------------------------------------------------
    # Sessions
    # -------------------------------------------------------------------------

    async def switch_active_session(self, index: int) -> None:
        """
        Make session ``index`` the active one.

        Raises:
            SessionIndexError: If ``index`` is out of range
            RuntimeNotInitializedError: If the runtime is not ready
        """
        self._require_ready()
        if not 0 <= index < len(self._sessions):
            raise SessionIndexError(index, len(self._sessions))
        async with self._gate:
            if index == self._active:
                return
            await self._shielded(self._swap_sessions(index))

    async def _swap_sessions(self, index: int) -> None:
        outgoing = self._sessions[self._active]
        outgoing.checkpoint = await self._run(self._engine.get_state)
        incoming = self._sessions[index]
        state = incoming.checkpoint if incoming.checkpoint is not None else self._empty_state
        await self._run(self._engine.load_state, state)
        logger.debug("Switched active session %d -> %d", self._active, index)
        self._active = index

    async def clear_active_history(
        self,
        system_prompt: Optional[str] = None,
        few_shot: Optional[Iterable[FewShotExample]] = None,
    ) -> None:
        """Reset the active session to an empty engine state and fresh history."""
        self._require_ready()
        async with self._gate:
            await self._shielded(self._run(self._engine.load_state, self._empty_state))
            self._sessions[self._active] = ConversationSession(system_prompt, few_shot)

    # -------------------------------------------------------------------------
    # Generation
    # -------------------------------------------------------------------------

    async def stream_chat(
        self,
        user_message: str,
        sampling: SamplingConfig,
        grammar: Any = None,
    ) -> AsyncIterator[str]:
        """
        Run one chat turn on the active session and yield tokens as produced.

        The reply generated so far is appended to the session history when
        the stream ends, is closed early, or is cancelled. Close the stream
        with ``contextlib.aclosing`` when breaking out early.
        """
        self._require_ready()
        async with self._gate:
            session = self._sessions[self._active]
            session.add_user_message(user_message)
            tokens = self._engine.complete(session.pending_messages(), sampling, grammar)
            produced: List[str] = []
            try:
                while True:
                    token = await self._pull(tokens, produced)
                    if token is _DONE:
                        break
                    yield token
            finally:
                await self._shielded(self._finish_turn(session, tokens, produced))

    async def _pull(self, tokens, produced: List[str]) -> Any:
        """Fetch the next token into ``produced``.

        A cancelled caller still waits for the pull already on the worker
        thread: the engine has decoded that token, so history records it too.
        """
        task = asyncio.ensure_future(self._run(next, tokens, _DONE))
        try:
            token = await asyncio.shield(task)
        except asyncio.CancelledError:
            token = await task
            if token is not _DONE:
                produced.append(token)
            raise
        if token is not _DONE:
            produced.append(token)
        return token

    async def _finish_turn(self, session: ConversationSession, tokens, produced: List[str]) -> None:
        await self._run(tokens.close)
        session.add_assistant_message("".join(produced))
        session.mark_fed()

    @asynccontextmanager
    async def _checkpoint_scope(self):
        """Run the body on the empty state and restore the active checkpoint after."""
        saved = await self._shielded(self._run(self._engine.get_state))
        try:
            await self._shielded(self._run(self._engine.load_state, self._empty_state))
            yield
        finally:
            await self._shielded(self._run(self._engine.load_state, saved))

    async def complete_once(
        self,
        system_prompt: Optional[str],
        user_prompt: str,
        sampling: SamplingConfig,
        grammar: Any = None,
        stop_predicate: Optional[Callable[[str], bool]] = None,
    ) -> str:
        """
        Run an ephemeral system/user turn and return the generated text, stripped.

        Generation stops at the end of the reply or as soon as
        ``stop_predicate(text)`` holds. The active session's history and
        engine checkpoint are unchanged afterwards, whatever happens.
        """
        self._require_ready()
        async with self._gate:
            async with self._checkpoint_scope():
                messages = []
                if system_prompt:
                    messages.append(ChatMessage("system", system_prompt))
                messages.append(ChatMessage("user", user_prompt))

                tokens = self._engine.complete(messages, sampling, grammar)
                text = ""
                try:
                    while True:
                        token = await self._run(next, tokens, _DONE)
                        if token is _DONE:
                            break
                        text += token
                        if stop_predicate is not None and stop_predicate(text):
                            break
                finally:
                    await self._shielded(self._run(tokens.close))
                return text.strip()

    async def compile_grammar(self, grammar: Any) -> Any:
        """
        Compile a decision grammar for the loaded engine.

        Args:
            grammar: Object exposing ``gbnf`` and ``json_schema``

        Raises:
            GrammarCompileError: If the engine rejects the grammar
        """
        self._require_ready()
        return await self._run(self._engine.compile_grammar, grammar.gbnf, grammar.json_schema)
