"""
LLM module - local model runtime with checkpointed sessions.

This module provides a single interface over local inference backends:
- llama_cpp (in-process GGUF models via llama-cpp-python)
- ollama (models served by a local Ollama instance)
- mock (offline testing stub)

The module is organized into focused submodules:
- runtime: ModelRuntime with sessions, streaming chat and one-shot completion
- session: chat messages, sessions and few-shot seeding
- native: native backend discovery
- errors: failure taxonomy
- providers: engine implementations (llamacpp, ollama, mock)

Example usage:
    from npcplan.core.llm import ModelRuntime, RuntimeConfig, planner_sampling

    runtime = ModelRuntime(RuntimeConfig(model_path="models/qwen.gguf"))
    await runtime.initialize(session_count=2, system_prompt="You are a calculator.")
    text = await runtime.complete_once("Reply with JSON.", "ping", planner_sampling())
"""

from .errors import (
    BackendError,
    BackendUnavailableError,
    GrammarCompileError,
    InvalidSessionCountError,
    LLMRuntimeError,
    ModelLoadError,
    RuntimeConfigurationError,
    RuntimeNotInitializedError,
    SessionIndexError,
    UnknownDialectError,
)
from .llm_config import RuntimeConfig, SamplingConfig, chat_sampling, planner_sampling
from .native import ensure_native_libraries
from .providers import CompletionEngine, MockEngine
from .runtime import ModelRuntime, RuntimeState, create_engine
from .session import ChatMessage, ConversationSession, FewShotExample, apply_few_shot_examples

__all__ = [
    # Runtime
    "ModelRuntime",
    "RuntimeState",
    "create_engine",
    # Sessions
    "ChatMessage",
    "ConversationSession",
    "FewShotExample",
    "apply_few_shot_examples",
    # Config
    "RuntimeConfig",
    "SamplingConfig",
    "chat_sampling",
    "planner_sampling",
    # Engines
    "CompletionEngine",
    "MockEngine",
    "ensure_native_libraries",
    # Errors
    "LLMRuntimeError",
    "RuntimeConfigurationError",
    "InvalidSessionCountError",
    "SessionIndexError",
    "UnknownDialectError",
    "RuntimeNotInitializedError",
    "BackendError",
    "BackendUnavailableError",
    "ModelLoadError",
    "GrammarCompileError",
]
