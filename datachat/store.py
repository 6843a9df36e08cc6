from __future__ import annotations

import json
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Iterable

from datachat.llm_gate import validate_schema
from datachat.llm_schemas import CHAT_ROW_SCHEMA
from datachat.models import ChatSession, Dataset, utc_now_iso

DATASETS_FILE = "datasets.json"
SESSIONS_FILE = "chat_sessions.json"
MESSAGES_FILE = "chat_history.json"


class DataStore(ABC):
    """Persistence the chat core depends on. Rows are plain dicts; message text is already encrypted."""

    @abstractmethod
    def save_dataset(self, dataset: Dataset) -> Dataset:
        raise NotImplementedError

    @abstractmethod
    def list_datasets(self, owner_id: str, dataset_ids: Iterable[str] | None = None) -> list[Dataset]:
        raise NotImplementedError

    @abstractmethod
    def get_dataset(self, owner_id: str, dataset_id: str) -> Dataset | None:
        raise NotImplementedError

    @abstractmethod
    def delete_dataset(self, owner_id: str, dataset_id: str) -> bool:
        raise NotImplementedError

    @abstractmethod
    def create_session(self, session: ChatSession) -> ChatSession:
        raise NotImplementedError

    @abstractmethod
    def list_sessions(self, owner_id: str) -> list[ChatSession]:
        raise NotImplementedError

    @abstractmethod
    def get_session(self, owner_id: str, session_id: str) -> ChatSession | None:
        raise NotImplementedError

    @abstractmethod
    def rename_session(self, owner_id: str, session_id: str, title: str) -> ChatSession | None:
        raise NotImplementedError

    @abstractmethod
    def touch_session(self, session_id: str) -> None:
        raise NotImplementedError

    @abstractmethod
    def delete_session(self, owner_id: str, session_id: str) -> bool:
        raise NotImplementedError

    @abstractmethod
    def append_message(self, row: dict[str, Any]) -> dict[str, Any]:
        raise NotImplementedError

    @abstractmethod
    def list_messages(self, session_id: str) -> list[dict[str, Any]]:
        raise NotImplementedError

    @abstractmethod
    def delete_messages(self, session_id: str | None = None, owner_id: str | None = None) -> int:
        raise NotImplementedError


class JsonFileStore(DataStore):
    """One JSON document per collection under ``root``, written atomically."""

    def __init__(self, root: Path | str) -> None:
        self.root = Path(root)

    def _load(self, name: str) -> dict[str, Any]:
        path = self.root / name
        if not path.exists():
            return {}
        with path.open("r", encoding="utf-8") as handle:
            return json.load(handle)

    def _save(self, name: str, items: dict[str, Any]) -> None:
        path = self.root / name
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_suffix(path.suffix + ".tmp")
        with tmp_path.open("w", encoding="utf-8") as handle:
            json.dump(items, handle, ensure_ascii=False, indent=2)
        tmp_path.replace(path)

    def save_dataset(self, dataset: Dataset) -> Dataset:
        datasets = self._load(DATASETS_FILE)
        datasets[dataset.id] = dataset.model_dump()
        self._save(DATASETS_FILE, datasets)
        return dataset

    def list_datasets(self, owner_id: str, dataset_ids: Iterable[str] | None = None) -> list[Dataset]:
        wanted = set(dataset_ids) if dataset_ids is not None else None
        items = [
            Dataset.model_validate(item)
            for item in self._load(DATASETS_FILE).values()
            if item.get("owner_id") == owner_id and (wanted is None or item.get("id") in wanted)
        ]
        return sorted(items, key=lambda dataset: dataset.created_at)

    def get_dataset(self, owner_id: str, dataset_id: str) -> Dataset | None:
        item = self._load(DATASETS_FILE).get(dataset_id)
        if not item or item.get("owner_id") != owner_id:
            return None
        return Dataset.model_validate(item)

    def delete_dataset(self, owner_id: str, dataset_id: str) -> bool:
        datasets = self._load(DATASETS_FILE)
        item = datasets.get(dataset_id)
        if not item or item.get("owner_id") != owner_id:
            return False
        del datasets[dataset_id]
        self._save(DATASETS_FILE, datasets)
        return True

    def create_session(self, session: ChatSession) -> ChatSession:
        sessions = self._load(SESSIONS_FILE)
        sessions[session.id] = session.model_dump()
        self._save(SESSIONS_FILE, sessions)
        return session

    def list_sessions(self, owner_id: str) -> list[ChatSession]:
        items = [
            ChatSession.model_validate(item)
            for item in self._load(SESSIONS_FILE).values()
            if item.get("owner_id") == owner_id
        ]
        return sorted(items, key=lambda session: session.updated_at, reverse=True)

    def get_session(self, owner_id: str, session_id: str) -> ChatSession | None:
        item = self._load(SESSIONS_FILE).get(session_id)
        if not item or item.get("owner_id") != owner_id:
            return None
        return ChatSession.model_validate(item)

    def rename_session(self, owner_id: str, session_id: str, title: str) -> ChatSession | None:
        sessions = self._load(SESSIONS_FILE)
        item = sessions.get(session_id)
        if not item or item.get("owner_id") != owner_id:
            return None
        item["title"] = title
        item["updated_at"] = utc_now_iso()
        self._save(SESSIONS_FILE, sessions)
        return ChatSession.model_validate(item)

    def touch_session(self, session_id: str) -> None:
        sessions = self._load(SESSIONS_FILE)
        if session_id not in sessions:
            return
        sessions[session_id]["updated_at"] = utc_now_iso()
        self._save(SESSIONS_FILE, sessions)

    def delete_session(self, owner_id: str, session_id: str) -> bool:
        sessions = self._load(SESSIONS_FILE)
        item = sessions.get(session_id)
        if not item or item.get("owner_id") != owner_id:
            return False
        del sessions[session_id]
        self._save(SESSIONS_FILE, sessions)
        self.delete_messages(session_id=session_id)
        return True

    def append_message(self, row: dict[str, Any]) -> dict[str, Any]:
        validate_schema(row, CHAT_ROW_SCHEMA)
        messages = self._load(MESSAGES_FILE)
        messages[row["id"]] = row
        self._save(MESSAGES_FILE, messages)
        return row

    def list_messages(self, session_id: str) -> list[dict[str, Any]]:
        rows = [row for row in self._load(MESSAGES_FILE).values() if row.get("session_id") == session_id]
        return sorted(rows, key=lambda row: row.get("timestamp", ""))

    def delete_messages(self, session_id: str | None = None, owner_id: str | None = None) -> int:
        if session_id is None and owner_id is None:
            raise ValueError("delete_messages needs a session_id or an owner_id")
        messages = self._load(MESSAGES_FILE)
        kept = {
            key: row
            for key, row in messages.items()
            if not (
                (session_id is None or row.get("session_id") == session_id)
                and (owner_id is None or row.get("owner_id") == owner_id)
            )
        }
        removed = len(messages) - len(kept)
        if removed:
            self._save(MESSAGES_FILE, kept)
        return removed
