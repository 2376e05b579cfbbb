"""Native Ollama HTTP client (``/api/tags`` and ``/api/generate``)."""

from __future__ import annotations

import requests

from stet_core.providers.base import BaseReviewer, GenerateResult, TransientError, Usage

DEFAULT_BASE_URL = "http://localhost:11434"


class OllamaReviewer(BaseReviewer):
    KEEP_ALIVE = "5m"

    def __init__(
        self,
        model: str,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 300,
        num_ctx: int | None = None,
        temperature: float | None = None,
        session: requests.Session | None = None,
    ):
        super().__init__(model=model, timeout=timeout)
        self.base_url = base_url.rstrip("/")
        self.num_ctx = num_ctx
        if temperature is not None:
            self.TEMPERATURE = temperature
        self.session = session or requests.Session()

    def _list_models(self) -> list[str]:
        response = self.session.get(f"{self.base_url}/api/tags", timeout=min(self.timeout, 10))
        response.raise_for_status()
        return [m.get("name", "") for m in response.json().get("models") or []]

    def _call_api(self, system_prompt: str, user_prompt: str) -> GenerateResult:
        options: dict = {"temperature": self.TEMPERATURE}
        if self.num_ctx:
            options["num_ctx"] = self.num_ctx
        payload = {
            "model": self.model,
            "system": system_prompt,
            "prompt": user_prompt,
            "stream": False,
            "format": "json",
            "options": options,
            "keep_alive": self.KEEP_ALIVE,
        }
        try:
            response = self.session.post(f"{self.base_url}/api/generate", json=payload, timeout=self.timeout)
        except (requests.ConnectionError, requests.Timeout) as e:
            raise TransientError(str(e)) from e
        if response.status_code >= 500:
            raise TransientError(f"HTTP {response.status_code}: {response.text[:200]}")
        response.raise_for_status()

        body = response.json()
        return GenerateResult(
            text=body.get("response", ""),
            model=body.get("model", self.model),
            usage=Usage(
                prompt_tokens=body.get("prompt_eval_count", 0) or 0,
                completion_tokens=body.get("eval_count", 0) or 0,
                eval_duration_ns=body.get("eval_duration", 0) or 0,
            ),
        )
