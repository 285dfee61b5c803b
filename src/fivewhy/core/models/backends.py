from __future__ import annotations

from abc import ABC, abstractmethod

import httpx

from fivewhy.core.cancellation import CancellationToken, check
from fivewhy.core.net.http import request_json

from .schemas import BackendRequest, BackendResponse


class GenerationBackend(ABC):
    """A named text-generation capability. Must be safe to call from many runs at once."""

    @property
    @abstractmethod
    def name(self) -> str: ...

    @abstractmethod
    def generate(self, request: BackendRequest, token: CancellationToken | None = None) -> BackendResponse: ...


class OpenAICompatBackend(GenerationBackend):
    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.openai.com/v1",
        name: str = "primary",
        timeout_s: float = 60.0,
        retries: int | None = None,
        client: httpx.Client | None = None,
    ) -> None:
        self._name = name
        self.api_key = api_key
        self.url = base_url.rstrip("/") + "/chat/completions"
        self.timeout_s = timeout_s
        self.retries = retries
        self.client = client

    @property
    def name(self) -> str:
        return self._name

    def generate(self, request: BackendRequest, token: CancellationToken | None = None) -> BackendResponse:
        payload: dict[str, object] = {
            "model": request.model,
            "messages": [{"role": "user", "content": request.prompt}],
            "temperature": request.temperature,
            "max_tokens": request.max_tokens,
        }
        data = request_json(
            "POST",
            self.url,
            headers={"Authorization": f"Bearer {self.api_key}"},
            json=payload,
            timeout_s=self.timeout_s,
            retries=self.retries,
            token=token,
            client=self.client,
        )
        choices = data.get("choices") or []
        text = ""
        if choices:
            message = choices[0].get("message") or {}
            text = str(message.get("content") or "")
        usage = data.get("usage") or {}
        metadata = {}
        if choices and choices[0].get("finish_reason"):
            metadata["finish_reason"] = str(choices[0]["finish_reason"])
        return BackendResponse(
            text=text,
            tokens=int(usage.get("completion_tokens") or 0),
            model=str(data.get("model") or request.model),
            metadata=metadata,
        )


class OllamaBackend(GenerationBackend):
    def __init__(
        self,
        model: str | None = None,
        base_url: str = "http://127.0.0.1:11434",
        name: str = "primary",
        timeout_s: float = 120.0,
        retries: int | None = None,
        client: httpx.Client | None = None,
    ) -> None:
        self._name = name
        self.model = model
        self.url = base_url.rstrip("/") + "/api/generate"
        self.timeout_s = timeout_s
        self.retries = retries
        self.client = client

    @property
    def name(self) -> str:
        return self._name

    def generate(self, request: BackendRequest, token: CancellationToken | None = None) -> BackendResponse:
        # A model pinned at construction overrides the engine's mode routing table.
        model = self.model or request.model
        data = request_json(
            "POST",
            self.url,
            json={
                "model": model,
                "prompt": request.prompt,
                "stream": False,
                "options": {"temperature": request.temperature, "num_predict": request.max_tokens},
            },
            timeout_s=self.timeout_s,
            retries=self.retries,
            token=token,
            client=self.client,
        )
        return BackendResponse(
            text=str(data.get("response") or ""),
            tokens=int(data.get("eval_count") or 0),
            model=str(data.get("model") or model),
        )


class LocalBackend(GenerationBackend):
    """Offline placeholder that echoes the prompt; useful for wiring checks."""

    BANNER = "[LOCAL MODEL RESPONSE PLACEHOLDER]"

    def __init__(self, name: str = "primary") -> None:
        self._name = name

    @property
    def name(self) -> str:
        return self._name

    def generate(self, request: BackendRequest, token: CancellationToken | None = None) -> BackendResponse:
        check(token, "local.generate")
        return BackendResponse(text=f"{self.BANNER}\n{request.prompt}", tokens=128, model=request.model)
