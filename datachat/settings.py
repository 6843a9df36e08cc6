from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Mapping

SUPPORTED_PROVIDERS = ("openai", "azure")


class ModelNotConfiguredError(RuntimeError):
    """Raised when no model credential is available; never retried automatically."""


@dataclass(frozen=True)
class ModelSettings:
    provider: str = "openai"
    api_key: str = ""
    model: str = "gpt-3.5-turbo"
    temperature: float = 0.7
    max_tokens: int = 1000
    base_url: str | None = None
    azure_endpoint: str = ""
    azure_deployment: str = ""
    azure_api_version: str = "2024-02-15-preview"

    @property
    def is_configured(self) -> bool:
        if self.provider == "azure":
            return bool(self.api_key and self.azure_endpoint and self.azure_deployment)
        return bool(self.api_key)

    def require_configured(self) -> None:
        if not self.is_configured:
            raise ModelNotConfiguredError(f"{self.provider} API key not configured")

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "ModelSettings":
        env = os.environ if environ is None else environ
        provider = env.get("AI_PROVIDER", "openai").strip().lower()
        if provider not in SUPPORTED_PROVIDERS:
            raise ModelNotConfiguredError("Unsupported AI_PROVIDER. Use 'openai' or 'azure'.")

        azure_endpoint = env.get("AZURE_OPENAI_ENDPOINT", "").strip()
        azure_key = env.get("AZURE_OPENAI_API_KEY", "").strip()
        azure_deployment = env.get("AZURE_OPENAI_DEPLOYMENT", "").strip()
        azure_ready = bool(azure_endpoint and azure_key and azure_deployment)

        openai_key = env.get("OPENAI_API_KEY", "").strip()
        openai_model = env.get("OPENAI_MODEL", "gpt-3.5-turbo").strip() or "gpt-3.5-turbo"
        base_url = env.get("OPENAI_BASE_URL", "").strip() or None

        common = {
            "temperature": float(env.get("AI_TEMPERATURE", "0.7")),
            "max_tokens": int(env.get("AI_MAX_TOKENS", "1000")),
        }

        # Each provider falls back to the other one when only the other is configured.
        use_azure = azure_ready and (provider == "azure" or not openai_key)
        if use_azure:
            return cls(
                provider="azure",
                api_key=azure_key,
                model=azure_deployment,
                azure_endpoint=azure_endpoint,
                azure_deployment=azure_deployment,
                **common,
            )
        return cls(provider="openai", api_key=openai_key, model=openai_model, base_url=base_url, **common)


def configure_logging(level: str | None = None) -> None:
    resolved = (level or os.getenv("DATACHAT_LOG_LEVEL", "INFO")).upper()
    logging.basicConfig(
        level=getattr(logging, resolved, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
