from __future__ import annotations

import math
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Iterable

import numpy as np
from pydantic import BaseModel, Field

ALL_DATASETS = "all"
DEFAULT_SESSION_TITLE = "New Chat"


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def _new_id() -> str:
    return str(uuid.uuid4())


class CellKind(str, Enum):
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    NULL = "null"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class Cell:
    kind: CellKind
    value: Any

    def to_json(self) -> Any:
        if self.kind == CellKind.NULL:
            return None
        if self.kind == CellKind.BOOLEAN:
            return bool(self.value)
        if self.kind == CellKind.NUMBER:
            number = self.value.item() if isinstance(self.value, np.generic) else self.value
            return number
        if self.kind == CellKind.STRING:
            return self.value
        return str(self.value)


def classify_cell(value: Any) -> Cell:
    if value is None:
        return Cell(CellKind.NULL, None)
    # bool is a subclass of int, so it has to be checked first.
    if isinstance(value, (bool, np.bool_)):
        return Cell(CellKind.BOOLEAN, bool(value))
    if isinstance(value, (int, float, np.integer, np.floating)):
        if isinstance(value, (float, np.floating)) and math.isnan(float(value)):
            return Cell(CellKind.NULL, None)
        return Cell(CellKind.NUMBER, value)
    if isinstance(value, str):
        return Cell(CellKind.STRING, value)
    return Cell(CellKind.UNKNOWN, value)


def infer_column_kinds(records: Iterable[dict[str, Any]]) -> dict[str, CellKind]:
    seen: dict[str, set[CellKind]] = {}
    for record in records:
        for column, value in record.items():
            kinds = seen.setdefault(str(column), set())
            kind = classify_cell(value).kind
            if kind != CellKind.NULL:
                kinds.add(kind)

    inferred: dict[str, CellKind] = {}
    for column, kinds in seen.items():
        if not kinds:
            inferred[column] = CellKind.NULL
        elif len(kinds) == 1:
            inferred[column] = next(iter(kinds))
        else:
            inferred[column] = CellKind.UNKNOWN
    return inferred


class Dataset(BaseModel):
    id: str = Field(default_factory=_new_id)
    owner_id: str
    name: str
    records: list[dict[str, Any]] = Field(default_factory=list)
    created_at: str = Field(default_factory=utc_now_iso)

    @property
    def columns(self) -> list[str]:
        if not self.records:
            return []
        return [str(column) for column in self.records[0].keys()]

    def sample(self, size: int) -> list[dict[str, Cell]]:
        return [
            {str(column): classify_cell(value) for column, value in record.items()}
            for record in self.records[:size]
        ]


class AnalysisRequest(BaseModel):
    owner_id: str
    question: str
    dataset_ids: list[str] | None = None


class AnalysisResult(BaseModel):
    message: str
    reformulated_query: str | None = None
    insights: list[str] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)
    metrics: dict[str, str] = Field(default_factory=dict)


class ChatSession(BaseModel):
    id: str = Field(default_factory=_new_id)
    owner_id: str
    title: str = DEFAULT_SESSION_TITLE
    created_at: str = Field(default_factory=utc_now_iso)
    updated_at: str = Field(default_factory=utc_now_iso)


class ChatMessage(BaseModel):
    id: str = Field(default_factory=_new_id)
    owner_id: str
    session_id: str
    text: str
    is_user_message: bool
    timestamp: str = Field(default_factory=utc_now_iso)
    insights: list[str] | None = None
    recommendations: list[str] | None = None
    reformulated_query: str | None = None
    metrics: dict[str, str] | None = None

    @classmethod
    def from_user(cls, owner_id: str, session_id: str, text: str) -> "ChatMessage":
        return cls(owner_id=owner_id, session_id=session_id, text=text, is_user_message=True)

    @classmethod
    def from_result(cls, owner_id: str, session_id: str, result: AnalysisResult) -> "ChatMessage":
        return cls(
            owner_id=owner_id,
            session_id=session_id,
            text=result.message,
            is_user_message=False,
            insights=list(result.insights),
            recommendations=list(result.recommendations),
            reformulated_query=result.reformulated_query,
            metrics=dict(result.metrics),
        )

    def to_row(self, message_text: str) -> dict[str, Any]:
        return {
            "id": self.id,
            "owner_id": self.owner_id,
            "session_id": self.session_id,
            "message_text": message_text,
            "is_user_message": self.is_user_message,
            "timestamp": self.timestamp,
            "insights": self.insights,
            "recommendations": self.recommendations,
            "reformulated_query": self.reformulated_query,
            "metrics": self.metrics,
        }

    @classmethod
    def from_row(cls, row: dict[str, Any], text: str) -> "ChatMessage":
        return cls(
            id=row["id"],
            owner_id=row["owner_id"],
            session_id=row["session_id"],
            text=text,
            is_user_message=bool(row["is_user_message"]),
            timestamp=row["timestamp"],
            insights=row.get("insights"),
            recommendations=row.get("recommendations"),
            reformulated_query=row.get("reformulated_query"),
            metrics=row.get("metrics"),
        )
