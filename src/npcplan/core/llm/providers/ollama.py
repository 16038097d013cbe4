"""
Ollama completion engine for models served by a local Ollama instance.

Contains:
    - create_ollama_client: Create an httpx client for Ollama
    - OllamaEngine: streaming engine over ``/api/generate`` in raw mode

Ollama cannot apply GBNF grammars, so decisions are constrained with the
JSON-schema rendering passed as ``format``. The checkpoint is the transcript
plus the ``context`` token list Ollama returns at the end of a generation;
when a stream is abandoned early no context comes back and the next turn
re-sends the full transcript instead.
"""

import json
import logging
from typing import Any, Iterator, List, Optional

import httpx

from npcplan.core import config as npc_config

from ..errors import ModelLoadError
from ..llm_config import RuntimeConfig, SamplingConfig
from ..session import ChatMessage
from .base import IM_END, CompletionEngine, render_chatml

logger = logging.getLogger(__name__)


def create_ollama_client(
    base_url: str | None = None,
    timeout: float = 30,
    transport: httpx.BaseTransport | None = None,
) -> httpx.Client:
    """
    Create an httpx client for the Ollama API.

    Args:
        base_url: Ollama server URL (defaults to OLLAMA_BASE_URL)
        timeout: Request timeout in seconds
        transport: Optional transport override (tests)

    Returns:
        Configured httpx client instance
    """
    if not base_url:
        base_url = npc_config.OLLAMA_BASE_URL
    return httpx.Client(base_url=base_url, timeout=timeout, transport=transport)


class OllamaEngine(CompletionEngine):
    dialect = "ollama"

    def __init__(self, transport: httpx.BaseTransport | None = None):
        self._transport = transport
        self._client: Optional[httpx.Client] = None
        self._model = ""
        self._transcript = ""
        self._context: Optional[List[int]] = None
        self._seed: Optional[int] = None
        self._num_ctx: Optional[int] = None

    @property
    def client(self) -> httpx.Client:
        if self._client is None:
            raise RuntimeError("Ollama client is not initialized.")
        return self._client

    def load_weights(self, config: RuntimeConfig) -> None:
        self._client = create_ollama_client(config.base_url, config.timeout_s, self._transport)
        self._model = config.model_path
        self._seed = config.seed
        self._num_ctx = config.context_size
        try:
            resp = self._client.post("/api/show", json={"model": self._model})
            resp.raise_for_status()
        except httpx.HTTPError as e:
            raise ModelLoadError(self._model, str(e)) from e
        details = resp.json().get("details") or {}
        logger.info(
            "Ollama model %s ready (family=%s, quantization=%s)",
            self._model,
            details.get("family", "?"),
            details.get("quantization_level", "?"),
        )

    def _payload(self, prompt: str, sampling: SamplingConfig, grammar: Any) -> dict:
        payload = {
            "model": self._model,
            "prompt": prompt,
            "raw": True,
            "stream": True,
            "options": {
                "temperature": sampling.temperature,
                "num_predict": sampling.max_tokens,
                "repeat_penalty": sampling.repeat_penalty,
                "repeat_last_n": sampling.repeat_last_tokens_count,
                "stop": list(sampling.stop_sequences),
                "seed": self._seed,
                "num_ctx": self._num_ctx,
            },
        }
        if self._context is not None:
            payload["context"] = self._context
        if grammar is not None:
            payload["format"] = grammar
        return payload

    def complete(
        self,
        messages: List[ChatMessage],
        sampling: SamplingConfig,
        grammar: Optional[dict] = None,
    ) -> Iterator[str]:
        chunk_text = render_chatml(messages)
        # Without a context token list the server has to see the whole history
        prompt = chunk_text if self._context is not None else self._transcript + chunk_text
        transcript = self._transcript + chunk_text
        produced = []
        context = None
        try:
            with self.client.stream(
                "POST", "/api/generate", json=self._payload(prompt, sampling, grammar)
            ) as resp:
                resp.raise_for_status()
                for line in resp.iter_lines():
                    if not line:
                        continue
                    data = json.loads(line)
                    text = data.get("response") or ""
                    if data.get("done"):
                        context = data.get("context")
                    if text:
                        produced.append(text)
                        yield text
                    if data.get("done"):
                        break
        finally:
            self._transcript = transcript + "".join(produced) + IM_END + "\n"
            self._context = context

    def get_state(self) -> dict:
        return {"transcript": self._transcript, "context": self._context}

    def load_state(self, state: Optional[dict]) -> None:
        state = state or {}
        self._transcript = state.get("transcript", "")
        self._context = state.get("context")

    def compile_grammar(self, gbnf: str, json_schema: dict) -> dict:
        return json_schema

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None
