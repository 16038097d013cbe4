"""Core configuration constants for npcplan.

Every value has a sensible default and can be overridden through an
``NPCPLAN_*`` environment variable.
"""

import os


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw in (None, ""):
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw in (None, ""):
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


# Runtime / model loading
LLM_DIALECT = os.getenv("NPCPLAN_DIALECT", "llama_cpp")
MODEL_PATH = os.getenv("NPCPLAN_MODEL_PATH", "models/qwen2.5-1.5b-instruct-q4_k_m.gguf")
CONTEXT_SIZE = _env_int("NPCPLAN_CONTEXT_SIZE", 2048)
GPU_LAYERS = _env_int("NPCPLAN_GPU_LAYERS", 20)
SEED = _env_int("NPCPLAN_SEED", 1337)
DISABLE_KQV_OFFLOAD = _env_bool("NPCPLAN_DISABLE_KQV_OFFLOAD", True)

# Directories searched for the native inference backend, os.pathsep separated
NATIVE_SEARCH_PATHS = [
    p for p in os.getenv("NPCPLAN_NATIVE_PATHS", "").split(os.pathsep) if p
]

# Ollama
OLLAMA_BASE_URL = os.getenv("OLLAMA_BASE_URL") or "http://127.0.0.1:11434"
LLM_TIMEOUT_S = _env_float("NPCPLAN_TIMEOUT_S", 60.0)

# Runtime sessions
RUNTIME_SESSION_COUNT = max(1, _env_int("NPCPLAN_SESSION_COUNT", 1))

# NPC planner sampling
PLANNER_TEMPERATURE = _env_float("NPCPLAN_PLANNER_TEMPERATURE", 0.15)
PLANNER_MAX_TOKENS = _env_int("NPCPLAN_PLANNER_MAX_TOKENS", 64)
PLANNER_REPEAT_PENALTY = _env_float("NPCPLAN_PLANNER_REPEAT_PENALTY", 1.05)
PLANNER_REPEAT_LAST_N = _env_int("NPCPLAN_PLANNER_REPEAT_LAST_N", 32)
PLANNER_TRIM_TO_FIRST_JSON = _env_bool("NPCPLAN_TRIM_TO_FIRST_JSON", True)

# ChatML end-of-turn marker used by the default Qwen instruct models
END_OF_TURN = "<|im_end|>"

# Calculator chat sampling
CHAT_TEMPERATURE = _env_float("NPCPLAN_CHAT_TEMPERATURE", 0.6)
CHAT_MAX_TOKENS = _env_int("NPCPLAN_CHAT_MAX_TOKENS", 256)
CHAT_REPEAT_PENALTY = _env_float("NPCPLAN_CHAT_REPEAT_PENALTY", 1.1)
CHAT_REPEAT_LAST_N = _env_int("NPCPLAN_CHAT_REPEAT_LAST_N", 64)
MAX_SAME_TOKEN_IN_ROW = _env_int("NPCPLAN_MAX_SAME_TOKEN_IN_ROW", 64)

# Debug traces
TRACE_ENABLED = _env_bool("NPCPLAN_TRACE", False)
TRACE_DIR = os.getenv("NPCPLAN_TRACE_DIR", "test_results/debug_logs")
