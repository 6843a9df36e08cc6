from __future__ import annotations

import json

import pytest

from datachat.llm_client import LLMClient
from datachat.models import Dataset
from datachat.settings import ModelSettings
from datachat.store import JsonFileStore


class FakeLLMClient(LLMClient):
    """Records every prompt and answers with a canned reply (or raises)."""

    def __init__(self, reply: str = "", error: Exception | None = None) -> None:
        self.reply = reply
        self.error = error
        self.calls: list[tuple[str, str]] = []

    async def complete(self, system_prompt: str, user_prompt: str) -> str:
        self.calls.append((system_prompt, user_prompt))
        if self.error is not None:
            raise self.error
        return self.reply


FULL_REPLY = {
    "reformulated_query": "Identify the top-performing sales representatives by total revenue",
    "message": "Ana leads with 9,000.00 LEI in sales.",
    "insights": ["Ana accounts for 19.6% of total sales"],
    "metrics": {"total_sales": "45,900.00 LEI", "top_performer": "Ana - 9,000.00 LEI"},
    "recommendations": ["Pair lower performers with Ana for coaching"],
}


@pytest.fixture
def settings() -> ModelSettings:
    return ModelSettings(api_key="test-key", model="test-model")


@pytest.fixture
def store(tmp_path) -> JsonFileStore:
    return JsonFileStore(tmp_path / "store")


@pytest.fixture
def fake_llm():
    return FakeLLMClient


@pytest.fixture
def full_reply() -> dict:
    return dict(FULL_REPLY)


@pytest.fixture
def full_reply_text() -> str:
    return json.dumps(FULL_REPLY)


@pytest.fixture
def sales_dataset() -> Dataset:
    names = ["Ana", "Bogdan", "Carmen", "Dan", "Elena", "Florin", "Gina", "Horia", "Ioana", "Jean"]
    records = [{"name": name, "sales": 9000 - index * 300} for index, name in enumerate(names)]
    return Dataset(owner_id="owner-0001", name="sales.csv", records=records)
