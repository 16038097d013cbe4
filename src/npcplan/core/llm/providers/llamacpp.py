"""
llama-cpp-python completion engine for local GGUF models.

Contains:
    - LlamaCppEngine: in-process engine with GBNF grammar support

The engine keeps a ChatML transcript of everything evaluated so far. A
checkpoint pairs that transcript with ``Llama.save_state()``; after a restore
``create_completion`` reuses the matching KV prefix and only evaluates the new
turn.
"""

import logging
from typing import Any, Iterator, List, Optional, Tuple

import llama_cpp
from llama_cpp import Llama, LlamaGrammar

from ..errors import GrammarCompileError, ModelLoadError
from ..llm_config import RuntimeConfig, SamplingConfig
from ..session import ChatMessage
from .base import IM_END, CompletionEngine, render_chatml

logger = logging.getLogger(__name__)


def _log_backend_info() -> None:
    """Log which backend llama.cpp ended up with. Never raises."""
    try:
        info = llama_cpp.llama_print_system_info()
        if isinstance(info, bytes):
            info = info.decode("utf-8", errors="replace")
        logger.info("llama.cpp system info: %s", info.strip())
        logger.info("llama.cpp GPU offload supported: %s", bool(llama_cpp.llama_supports_gpu_offload()))
    except (AttributeError, OSError) as e:
        logger.warning("Could not query llama.cpp backend info: %s", e)


class LlamaCppEngine(CompletionEngine):
    dialect = "llama_cpp"

    def __init__(self):
        self._llm: Optional[Llama] = None
        self._transcript = ""

    @property
    def llm(self) -> Llama:
        if self._llm is None:
            raise RuntimeError("Model weights are not loaded.")
        return self._llm

    def load_weights(self, config: RuntimeConfig) -> None:
        logger.info(
            "Loading model %s (ctx=%d, gpu_layers=%d, seed=%d, kqv_offload=%s)",
            config.model_path,
            config.context_size,
            config.gpu_layers,
            config.seed,
            not config.disable_kqv_offload,
        )
        try:
            self._llm = Llama(
                model_path=config.model_path,
                n_ctx=config.context_size,
                n_gpu_layers=config.gpu_layers,
                seed=config.seed,
                offload_kqv=not config.disable_kqv_offload,
                last_n_tokens_size=config.repeat_last_n,
                verbose=False,
            )
        except (ValueError, OSError, RuntimeError) as e:
            raise ModelLoadError(config.model_path, str(e)) from e
        _log_backend_info()

    def complete(
        self,
        messages: List[ChatMessage],
        sampling: SamplingConfig,
        grammar: Optional[LlamaGrammar] = None,
    ) -> Iterator[str]:
        prompt = self._transcript + render_chatml(messages)
        produced = []
        try:
            stream = self.llm.create_completion(
                prompt,
                max_tokens=sampling.max_tokens,
                temperature=sampling.temperature,
                repeat_penalty=sampling.repeat_penalty,
                stop=list(sampling.stop_sequences),
                grammar=grammar,
                stream=True,
            )
            for chunk in stream:
                text = chunk["choices"][0]["text"]
                if not text:
                    continue
                produced.append(text)
                yield text
        finally:
            self._transcript = prompt + "".join(produced) + IM_END + "\n"

    def get_state(self) -> Tuple[str, Any]:
        return self._transcript, self.llm.save_state()

    def load_state(self, state: Optional[Tuple[str, Any]]) -> None:
        if state is None:
            self._transcript = ""
            self.llm.reset()
            return
        self._transcript, llama_state = state
        if llama_state is None:
            self.llm.reset()
        else:
            self.llm.load_state(llama_state)

    def compile_grammar(self, gbnf: str, json_schema: dict) -> LlamaGrammar:
        try:
            return LlamaGrammar.from_string(gbnf, verbose=False)
        except (ValueError, RuntimeError) as e:
            raise GrammarCompileError(str(e)) from e

    def close(self) -> None:
        if self._llm is not None:
            self._llm.close()
            self._llm = None
