from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

from datachat.context_builder import build_dataset_context, describe_scope
from datachat.llm_client import LLMClient, create_llm_client
from datachat.models import AnalysisRequest, AnalysisResult
from datachat.prompts import SYSTEM_PROMPT, compose_analysis_prompt
from datachat.response_parser import parse_ai_response
from datachat.settings import ModelSettings
from datachat.store import DataStore

logger = logging.getLogger(__name__)

APOLOGY_MESSAGE = (
    "I'm having trouble analyzing your data right now. Please check your API configuration and try again."
)
ERROR_INSIGHT = "Error occurred during analysis"


class AnalysisState(str, Enum):
    IDLE = "idle"
    AWAITING_MODEL = "awaiting_model"
    DONE = "done"


class AnalysisOutcome(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"


@dataclass
class AnalysisRun:
    """Bookkeeping for one request. A new run is created per call; runs share nothing."""

    request: AnalysisRequest
    state: AnalysisState = AnalysisState.IDLE
    outcome: AnalysisOutcome | None = None
    prompt: str | None = None
    raw_response: str | None = None
    result: AnalysisResult | None = None
    error: str | None = None

    def succeed(self, raw_response: str, result: AnalysisResult) -> None:
        self.raw_response = raw_response
        self.result = result
        self.outcome = AnalysisOutcome.SUCCESS
        self.state = AnalysisState.DONE

    def fail(self, exc: Exception) -> None:
        self.error = f"{type(exc).__name__}: {exc}"
        self.result = fallback_result()
        self.outcome = AnalysisOutcome.FAILURE
        self.state = AnalysisState.DONE


def fallback_result() -> AnalysisResult:
    return AnalysisResult(message=APOLOGY_MESSAGE, insights=[ERROR_INSIGHT])


class AnalysisOrchestrator:
    """Fetch context, compose the prompt, call the model once, parse the reply."""

    def __init__(self, store: DataStore, settings: ModelSettings, client: LLMClient | None = None) -> None:
        self.store = store
        self.settings = settings
        self._client = client

    def _get_client(self) -> LLMClient:
        if self._client is None:
            self._client = create_llm_client(self.settings)
        return self._client

    async def run(self, request: AnalysisRequest) -> AnalysisRun:
        # Configuration errors are the one failure the caller has to see.
        self.settings.require_configured()
        client = self._get_client()

        run = AnalysisRun(request=request)
        try:
            context, datasets = build_dataset_context(self.store, request.owner_id, request.dataset_ids)
            scope_note = describe_scope(request.dataset_ids, datasets)
            run.prompt = compose_analysis_prompt(request.question, context, scope_note)

            run.state = AnalysisState.AWAITING_MODEL
            raw = await client.complete(SYSTEM_PROMPT, run.prompt)
            result = parse_ai_response(raw)
        except Exception as exc:
            logger.exception("AI analysis failed for owner %s", request.owner_id)
            run.fail(exc)
            return run

        run.succeed(raw, result)
        return run

    async def analyze(self, owner_id: str, question: str, dataset_ids: list[str] | None = None) -> AnalysisResult:
        run = await self.run(AnalysisRequest(owner_id=owner_id, question=question, dataset_ids=dataset_ids))
        return run.result or fallback_result()
