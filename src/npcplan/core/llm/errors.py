"""
Failure kinds raised by the model runtime.

Configuration errors are fatal to the call that triggered them; backend
errors are fatal to initialization but leave it retryable. Model-output
problems never surface here: the planner resolves them to a fallback
decision.
"""


class LLMRuntimeError(Exception):
    """Base class for every runtime failure."""


class RuntimeConfigurationError(LLMRuntimeError):
    """The caller asked for something the runtime cannot be configured to do."""


class InvalidSessionCountError(RuntimeConfigurationError, ValueError):
    def __init__(self, session_count: int):
        super().__init__(f"Session count must be > 0, got {session_count}.")
        self.session_count = session_count


class SessionIndexError(RuntimeConfigurationError, IndexError):
    def __init__(self, index: int, session_count: int):
        super().__init__(
            f"Session index {index} is out of range (0..{session_count - 1})."
        )
        self.index = index
        self.session_count = session_count


class UnknownDialectError(RuntimeConfigurationError, ValueError):
    def __init__(self, dialect: str):
        super().__init__(f"Unknown LLM provider dialect: {dialect}")
        self.dialect = dialect


class RuntimeNotInitializedError(RuntimeConfigurationError):
    def __init__(self):
        super().__init__("LLM runtime is not initialized.")


class BackendError(LLMRuntimeError):
    """The inference backend could not be brought up."""


class BackendUnavailableError(BackendError):
    def __init__(self, message: str, attempted_paths: list[str] | None = None):
        super().__init__(message)
        self.attempted_paths = list(attempted_paths or [])


class ModelLoadError(BackendError):
    def __init__(self, model_path: str, reason: str):
        super().__init__(f"Failed to load model '{model_path}': {reason}")
        self.model_path = model_path
        self.reason = reason


class GrammarCompileError(LLMRuntimeError):
    """The engine rejected a decision grammar; callers degrade to prompt-only."""
