"""Reviewer for OpenAI-compatible local servers (LM Studio, vLLM, Ollama's /v1)."""

from __future__ import annotations

try:
    from openai import APIConnectionError as _APIConnectionError
    from openai import APIStatusError as _APIStatusError
    from openai import APITimeoutError as _APITimeoutError
    from openai import OpenAI as _OpenAI
except ImportError:
    _OpenAI = None  # type: ignore[assignment,misc]

from stet_core.providers.base import BaseReviewer, GenerateResult, TransientError, Usage

DEFAULT_BASE_URL = "http://localhost:11434/v1"


class OpenAIReviewer(BaseReviewer):
    def __init__(
        self,
        model: str,
        base_url: str = DEFAULT_BASE_URL,
        api_key: str | None = None,
        timeout: float = 300,
        temperature: float | None = None,
    ):
        if _OpenAI is None:
            raise ImportError(
                "The 'openai' package is required for this provider. " "Install it with: pip install 'stet[openai]'"
            )
        super().__init__(model=model, timeout=timeout)
        if temperature is not None:
            self.TEMPERATURE = temperature
        # Local servers ignore the key but the SDK requires one.
        self.client = _OpenAI(base_url=base_url, api_key=api_key or "local", timeout=timeout, max_retries=0)

    def _list_models(self) -> list[str]:
        return [m.id for m in self.client.models.list()]

    def _call_api(self, system_prompt: str, user_prompt: str) -> GenerateResult:
        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                temperature=self.TEMPERATURE,
                response_format={"type": "json_object"},
            )
        except (_APIConnectionError, _APITimeoutError) as e:
            raise TransientError(str(e)) from e
        except _APIStatusError as e:
            if e.status_code >= 500:
                raise TransientError(str(e)) from e
            raise

        usage = Usage()
        if response.usage is not None:
            usage = Usage(
                prompt_tokens=response.usage.prompt_tokens or 0,
                completion_tokens=response.usage.completion_tokens or 0,
            )
        return GenerateResult(
            text=response.choices[0].message.content or "",
            model=response.model or self.model,
            usage=usage,
        )
