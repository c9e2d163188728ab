from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from bookmark_analyzer.models import Dialect


SYSTEM_PROMPT = "You are a helpful AI assistant specializing in content analysis."
PROBE_SYSTEM_PROMPT = "You are a helpful AI assistant."
PROBE_PROMPT = "Respond with one word: Connected"
PROBE_MAX_TOKENS = 20

_NO_MODEL_MARKERS = ("no models loaded", "model_not_found")


@dataclass(frozen=True)
class ModelSettings:
    model: str = "local-model"
    generate_model: str = "llama2"
    max_tokens: int = 1500
    temperature: float = 0.1


def _first_choice(data: Any) -> dict:
    if not isinstance(data, dict):
        return {}
    choices = data.get("choices")
    if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
        return {}
    return choices[0]


def is_model_missing(status_code: int, data: Any) -> bool:
    """Recognise the "server is up but no model is loaded" answer.

    LM Studio style servers answer ``{"error": {"message": "No models loaded",
    "code": "model_not_found"}}``; Ollama answers ``{"error": "model 'x' not
    found"}``. Either may arrive with a 200, 400 or 404 status.
    """
    if status_code not in (200, 400, 404) or not isinstance(data, dict):
        return False
    error = data.get("error")
    if isinstance(error, dict):
        message = str(error.get("message") or "").lower()
        code = str(error.get("code") or "").lower()
        return any(m in message for m in _NO_MODEL_MARKERS) or code == "model_not_found"
    if isinstance(error, str):
        lowered = error.lower()
        if any(m in lowered for m in _NO_MODEL_MARKERS):
            return True
        return "model" in lowered and "not found" in lowered
    return False


class ProtocolAdapter:
    dialect: Dialect

    def __init__(self, settings: ModelSettings | None = None):
        self._settings = settings or ModelSettings()

    def build_request(self, prompt: str, *, probe: bool = False) -> dict:
        raise NotImplementedError

    def extract_text(self, data: Any) -> str:
        raise NotImplementedError

    def build_probe(self) -> dict:
        return self.build_request(PROBE_PROMPT, probe=True)

    def _max_tokens(self, probe: bool) -> int:
        return PROBE_MAX_TOKENS if probe else self._settings.max_tokens


class ChatAdapter(ProtocolAdapter):
    dialect = Dialect.CHAT

    def build_request(self, prompt: str, *, probe: bool = False) -> dict:
        return {
            "model": self._settings.model,
            "messages": [
                {"role": "system", "content": PROBE_SYSTEM_PROMPT if probe else SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            "max_tokens": self._max_tokens(probe),
            "temperature": self._settings.temperature,
        }

    def extract_text(self, data: Any) -> str:
        choice = _first_choice(data)
        message = choice.get("message")
        content = message.get("content") if isinstance(message, dict) else None
        return str(content or choice.get("text") or "")


class CompletionAdapter(ProtocolAdapter):
    dialect = Dialect.COMPLETION

    STOP = ["</s>", "<|user|>"]

    def build_request(self, prompt: str, *, probe: bool = False) -> dict:
        system = PROBE_SYSTEM_PROMPT if probe else (
            SYSTEM_PROMPT + "\nReturn only a valid JSON object with the requested fields."
        )
        return {
            "model": self._settings.model,
            "prompt": f"<|system|>\n{system}\n<|user|>\n{prompt}\n<|assistant|>",
            "max_tokens": self._max_tokens(probe),
            "temperature": self._settings.temperature,
            "stop": list(self.STOP),
        }

    def extract_text(self, data: Any) -> str:
        return str(_first_choice(data).get("text") or "")


class GenerateAdapter(ProtocolAdapter):
    dialect = Dialect.GENERATE

    def build_request(self, prompt: str, *, probe: bool = False) -> dict:
        return {
            "model": self._settings.generate_model,
            "prompt": prompt,
            "stream": False,
            "options": {
                "temperature": self._settings.temperature,
                "num_predict": self._max_tokens(probe),
            },
        }

    def extract_text(self, data: Any) -> str:
        if not isinstance(data, dict):
            return ""
        return str(data.get("response") or "")


_ADAPTERS: dict[Dialect, type[ProtocolAdapter]] = {
    Dialect.CHAT: ChatAdapter,
    Dialect.COMPLETION: CompletionAdapter,
    Dialect.GENERATE: GenerateAdapter,
}


def adapter_for(dialect: Dialect, settings: ModelSettings | None = None) -> ProtocolAdapter:
    return _ADAPTERS[Dialect(dialect)](settings)
