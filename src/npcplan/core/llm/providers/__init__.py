"""
Completion engine implementations.

This package contains engine-specific implementations for the runtime:

- llamacpp: in-process llama-cpp-python engine (GGUF models, GBNF grammars)
- ollama: local Ollama server engine (JSON-schema constrained output)
- mock: deterministic engine for offline testing

Note: Engine modules with heavy dependencies are imported lazily so the
mock engine works without llama-cpp-python installed.
"""

from .base import CompletionEngine, render_chatml

# Mock engine has no external dependencies
from .mock import MockEngine


def _import_llamacpp():
    """Lazy import llama-cpp-python engine."""
    from .llamacpp import LlamaCppEngine
    return LlamaCppEngine


def _import_ollama():
    """Lazy import Ollama engine."""
    from .ollama import OllamaEngine
    return OllamaEngine


__all__ = [
    "CompletionEngine",
    "render_chatml",
    "MockEngine",
    "_import_llamacpp",
    "_import_ollama",
]
