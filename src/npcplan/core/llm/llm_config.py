"""Runtime and sampling configuration structures."""

from dataclasses import dataclass, field, replace

from npcplan.core import config


@dataclass
class RuntimeConfig:
    dialect: str = "llama_cpp"
    model_path: str = config.MODEL_PATH
    context_size: int = config.CONTEXT_SIZE
    gpu_layers: int = config.GPU_LAYERS
    seed: int = config.SEED
    disable_kqv_offload: bool = config.DISABLE_KQV_OFFLOAD
    # llama.cpp fixes the repeat-penalty window when the context is created
    repeat_last_n: int = config.CHAT_REPEAT_LAST_N
    base_url: str | None = None
    timeout_s: float = config.LLM_TIMEOUT_S
    native_search_paths: list[str] = field(default_factory=list)

    @classmethod
    def from_env(cls) -> "RuntimeConfig":
        """Build a config from the ``NPCPLAN_*`` environment defaults."""
        return cls(
            dialect=config.LLM_DIALECT,
            base_url=config.OLLAMA_BASE_URL if config.LLM_DIALECT == "ollama" else None,
            native_search_paths=list(config.NATIVE_SEARCH_PATHS),
        )


@dataclass
class SamplingConfig:
    """Per-call sampling settings handed to the completion engine."""

    temperature: float = 0.7
    max_tokens: int = 256
    repeat_penalty: float = 1.1
    repeat_last_tokens_count: int = 64
    stop_sequences: list[str] = field(default_factory=lambda: [config.END_OF_TURN])

    def with_overrides(self, **changes) -> "SamplingConfig":
        return replace(self, **changes)


def planner_sampling() -> SamplingConfig:
    return SamplingConfig(
        temperature=config.PLANNER_TEMPERATURE,
        max_tokens=config.PLANNER_MAX_TOKENS,
        repeat_penalty=config.PLANNER_REPEAT_PENALTY,
        repeat_last_tokens_count=config.PLANNER_REPEAT_LAST_N,
        stop_sequences=[config.END_OF_TURN],
    )


def chat_sampling() -> SamplingConfig:
    return SamplingConfig(
        temperature=config.CHAT_TEMPERATURE,
        max_tokens=config.CHAT_MAX_TOKENS,
        repeat_penalty=config.CHAT_REPEAT_PENALTY,
        repeat_last_tokens_count=config.CHAT_REPEAT_LAST_N,
        stop_sequences=[config.END_OF_TURN, "\nUser:", "User:"],
    )
