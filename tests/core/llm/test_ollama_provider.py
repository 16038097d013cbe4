"""
Tests for the Ollama engine using httpx.MockTransport.
"""

import json

import httpx
import pytest

from npcplan.core.llm.errors import ModelLoadError
from npcplan.core.llm.llm_config import RuntimeConfig, SamplingConfig
from npcplan.core.llm.providers.ollama import OllamaEngine
from npcplan.core.llm.session import ChatMessage


class FakeOllama:
    """Records generate payloads and streams a scripted reply."""

    def __init__(self, chunks=("Hel", "lo"), context=(1, 2, 3), show_status=200):
        self.chunks = list(chunks)
        self.context = list(context)
        self.show_status = show_status
        self.generate_payloads = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        if request.url.path == "/api/show":
            if self.show_status != 200:
                return httpx.Response(self.show_status, json={"error": "model not found"})
            return httpx.Response(200, json={"details": {"family": "qwen2", "quantization_level": "Q4_K_M"}})
        if request.url.path == "/api/generate":
            self.generate_payloads.append(json.loads(request.content))
            lines = [json.dumps({"response": c, "done": False}) for c in self.chunks[:-1]]
            lines.append(json.dumps({"response": self.chunks[-1], "done": True, "context": self.context}))
            return httpx.Response(200, content=("\n".join(lines) + "\n").encode("utf-8"))
        return httpx.Response(404)


def make_engine(fake: FakeOllama) -> OllamaEngine:
    engine = OllamaEngine(transport=httpx.MockTransport(fake.handler))
    engine.load_weights(RuntimeConfig(dialect="ollama", model_path="qwen2.5:1.5b", base_url="http://ollama.test"))
    return engine


def test_load_weights_checks_model():
    fake = FakeOllama(show_status=404)
    engine = OllamaEngine(transport=httpx.MockTransport(fake.handler))
    with pytest.raises(ModelLoadError) as exc_info:
        engine.load_weights(RuntimeConfig(dialect="ollama", model_path="missing", base_url="http://ollama.test"))
    assert exc_info.value.model_path == "missing"


def test_complete_streams_and_keeps_context():
    """Tokens stream in order and the returned context becomes the checkpoint."""
    fake = FakeOllama()
    engine = make_engine(fake)
    sampling = SamplingConfig(temperature=0.15, max_tokens=64, repeat_penalty=1.05, repeat_last_tokens_count=32)

    tokens = list(engine.complete([ChatMessage("user", "hi")], sampling))

    assert tokens == ["Hel", "lo"]
    payload = fake.generate_payloads[0]
    assert payload["raw"] is True
    assert payload["model"] == "qwen2.5:1.5b"
    assert payload["prompt"] == "<|im_start|>user\nhi<|im_end|>\n<|im_start|>assistant\n"
    assert payload["options"]["num_predict"] == 64
    assert payload["options"]["repeat_last_n"] == 32
    assert payload["options"]["stop"] == ["<|im_end|>"]
    assert "context" not in payload
    assert engine.get_state()["context"] == [1, 2, 3]


def test_second_turn_sends_only_new_messages():
    fake = FakeOllama()
    engine = make_engine(fake)
    list(engine.complete([ChatMessage("user", "one")], SamplingConfig()))
    list(engine.complete([ChatMessage("user", "two")], SamplingConfig()))

    second = fake.generate_payloads[1]
    assert second["context"] == [1, 2, 3]
    assert second["prompt"] == "<|im_start|>user\ntwo<|im_end|>\n<|im_start|>assistant\n"


def test_early_close_resends_transcript():
    """Without a returned context the next turn carries the whole history."""
    fake = FakeOllama(chunks=("a", "b", "c"))
    engine = make_engine(fake)
    stream = engine.complete([ChatMessage("user", "one")], SamplingConfig())
    assert next(stream) == "a"
    stream.close()
    assert engine.get_state()["context"] is None

    list(engine.complete([ChatMessage("user", "two")], SamplingConfig()))
    prompt = fake.generate_payloads[1]["prompt"]
    assert prompt.startswith("<|im_start|>user\none<|im_end|>\n<|im_start|>assistant\na<|im_end|>\n")
    assert "context" not in fake.generate_payloads[1]


def test_state_roundtrip():
    fake = FakeOllama()
    engine = make_engine(fake)
    empty = engine.get_state()
    list(engine.complete([ChatMessage("user", "hi")], SamplingConfig()))
    saved = engine.get_state()

    engine.load_state(empty)
    assert engine.get_state() == {"transcript": "", "context": None}
    engine.load_state(saved)
    assert engine.get_state() == saved


def test_grammar_is_sent_as_format():
    """The JSON-schema rendering constrains Ollama output."""
    fake = FakeOllama()
    engine = make_engine(fake)
    schema = {"type": "object", "properties": {}, "required": []}
    compiled = engine.compile_grammar("root ::= x", schema)
    list(engine.complete([ChatMessage("user", "hi")], SamplingConfig(), compiled))
    assert fake.generate_payloads[0]["format"] == schema
