import asyncio
import json

import httpx
import openai
import pytest

from datachat.llm_client import LLMClient
from datachat.models import AnalysisRequest
from datachat.orchestrator import (
    APOLOGY_MESSAGE,
    ERROR_INSIGHT,
    AnalysisOrchestrator,
    AnalysisOutcome,
    AnalysisState,
)
from datachat.prompts import SYSTEM_PROMPT
from datachat.settings import ModelNotConfiguredError, ModelSettings


def test_end_to_end_with_mocked_model(store, settings, fake_llm, sales_dataset, full_reply, full_reply_text) -> None:
    store.save_dataset(sales_dataset)
    client = fake_llm(reply=full_reply_text)
    orchestrator = AnalysisOrchestrator(store, settings, client=client)

    run = asyncio.run(orchestrator.run(AnalysisRequest(owner_id=sales_dataset.owner_id, question="who sold most")))

    assert run.state == AnalysisState.DONE
    assert run.outcome == AnalysisOutcome.SUCCESS
    assert run.result is not None
    assert run.result.model_dump() == full_reply

    system_prompt, prompt = client.calls[0]
    assert system_prompt == SYSTEM_PROMPT
    assert prompt == run.prompt
    assert "who sold most" in prompt
    assert "Identify the top-performing sales representatives by total revenue and units sold" in prompt
    assert "Columns: name, sales" in prompt
    assert "Analysis scope: all available datasets." in prompt


def test_transport_failure_returns_apology(store, settings, fake_llm) -> None:
    request = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
    error = openai.APIStatusError(
        "rate limited", response=httpx.Response(429, request=request), body=None
    )
    client = fake_llm(error=error)
    orchestrator = AnalysisOrchestrator(store, settings, client=client)

    run = asyncio.run(orchestrator.run(AnalysisRequest(owner_id="owner", question="anything")))

    assert run.state == AnalysisState.DONE
    assert run.outcome == AnalysisOutcome.FAILURE
    assert run.result.message == APOLOGY_MESSAGE
    assert run.result.insights == [ERROR_INSIGHT]
    assert "APIStatusError" in run.error
    assert len(client.calls) == 1


def test_analyze_never_raises_on_network_error(store, settings, fake_llm) -> None:
    orchestrator = AnalysisOrchestrator(store, settings, client=fake_llm(error=ConnectionError("offline")))
    result = asyncio.run(orchestrator.analyze("owner", "question"))
    assert result.message == APOLOGY_MESSAGE
    assert len(result.insights) == 1


def test_missing_credential_is_raised_before_any_call(store, fake_llm) -> None:
    client = fake_llm(reply="{}")
    orchestrator = AnalysisOrchestrator(store, ModelSettings(api_key=""), client=client)
    with pytest.raises(ModelNotConfiguredError):
        asyncio.run(orchestrator.analyze("owner", "question"))
    assert client.calls == []


def test_no_data_context_is_sent_as_valid_context(store, settings, fake_llm) -> None:
    client = fake_llm(reply="Plain answer without JSON")
    orchestrator = AnalysisOrchestrator(store, settings, client=client)
    result = asyncio.run(orchestrator.analyze("owner-without-data", "hi"))
    assert "No CSV data available for analysis." in client.calls[0][1]
    assert result.message == "Plain answer without JSON"
    assert result.insights == ["Analysis completed"]


def test_selection_restricts_context(store, settings, fake_llm, sales_dataset) -> None:
    store.save_dataset(sales_dataset)
    other = sales_dataset.model_copy(update={"id": "ds-other", "name": "other.csv"})
    store.save_dataset(other)
    client = fake_llm(reply='{"message": "ok"}')
    orchestrator = AnalysisOrchestrator(store, settings, client=client)

    asyncio.run(orchestrator.analyze(sales_dataset.owner_id, "q", [other.id]))

    prompt = client.calls[0][1]
    assert "Dataset 1: other.csv" in prompt
    assert "sales.csv" not in prompt
    assert "Dataset 2:" not in prompt


class _GatedClient(LLMClient):
    """Holds every call until `expected` calls are in flight at once."""

    def __init__(self, expected: int) -> None:
        self.expected = expected
        self.in_flight = 0
        self.peak = 0
        self.release: asyncio.Event | None = None

    async def complete(self, system_prompt: str, user_prompt: str) -> str:
        if self.release is None:
            self.release = asyncio.Event()
        self.in_flight += 1
        self.peak = max(self.peak, self.in_flight)
        if self.in_flight >= self.expected:
            self.release.set()
        await self.release.wait()
        self.in_flight -= 1
        return json.dumps({"message": user_prompt.split("User Question: ")[1].splitlines()[0]})


def test_concurrent_requests_are_not_serialized(store, settings) -> None:
    client = _GatedClient(expected=3)
    orchestrator = AnalysisOrchestrator(store, settings, client=client)

    async def _scenario():
        return await asyncio.wait_for(
            asyncio.gather(*(orchestrator.analyze("owner", f"question {index}") for index in range(3))),
            timeout=5,
        )

    results = asyncio.run(_scenario())
    assert client.peak == 3
    assert [result.message for result in results] == ["question 0", "question 1", "question 2"]


def test_oversized_integer_reply_is_shown_as_text(store, settings, fake_llm) -> None:
    reply = "7" * 5000
    orchestrator = AnalysisOrchestrator(store, settings, client=fake_llm(reply=reply))

    run = asyncio.run(orchestrator.run(AnalysisRequest(owner_id="owner", question="anything")))

    assert run.outcome == AnalysisOutcome.SUCCESS
    assert run.result.message == reply
    assert asyncio.run(orchestrator.analyze("owner", "anything")).message == reply
