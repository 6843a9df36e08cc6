from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any

from openai import AsyncAzureOpenAI, AsyncOpenAI

from datachat.settings import ModelNotConfiguredError, ModelSettings

logger = logging.getLogger(__name__)


class LLMClient(ABC):
    @abstractmethod
    async def complete(self, system_prompt: str, user_prompt: str) -> str:
        raise NotImplementedError


class _BaseOpenAIAdapter(LLMClient):
    def __init__(self, settings: ModelSettings) -> None:
        self.settings = settings
        self.model = settings.model
        self.client: Any = None

    def _request_body(self, system_prompt: str, user_prompt: str) -> dict[str, Any]:
        return {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            "temperature": self.settings.temperature,
            "max_tokens": self.settings.max_tokens,
        }

    async def complete(self, system_prompt: str, user_prompt: str) -> str:
        logger.info("Calling %s chat completion with model %s", self.settings.provider, self.model)
        response = await self.client.chat.completions.create(**self._request_body(system_prompt, user_prompt))
        if not response.choices:
            return ""
        return response.choices[0].message.content or ""


class OpenAIClient(_BaseOpenAIAdapter):
    def __init__(self, settings: ModelSettings) -> None:
        super().__init__(settings)
        # The orchestrator never retries; the SDK's own retries are switched off too.
        self.client = AsyncOpenAI(api_key=settings.api_key, base_url=settings.base_url, max_retries=0)


class AzureOpenAIClient(_BaseOpenAIAdapter):
    def __init__(self, settings: ModelSettings) -> None:
        super().__init__(settings)
        self.model = settings.azure_deployment
        self.client = AsyncAzureOpenAI(
            api_key=settings.api_key,
            azure_endpoint=settings.azure_endpoint,
            api_version=settings.azure_api_version,
            max_retries=0,
        )


def create_llm_client(settings: ModelSettings) -> LLMClient:
    settings.require_configured()
    if settings.provider == "azure":
        return AzureOpenAIClient(settings)
    if settings.provider == "openai":
        return OpenAIClient(settings)
    raise ModelNotConfiguredError("Unsupported AI_PROVIDER. Use 'openai' or 'azure'.")
