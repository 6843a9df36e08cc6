from __future__ import annotations

import logging
from dataclasses import dataclass

from datachat.encryption import ChatEncryption
from datachat.models import DEFAULT_SESSION_TITLE, ChatMessage, ChatSession
from datachat.orchestrator import AnalysisOrchestrator
from datachat.store import DataStore

logger = logging.getLogger(__name__)


@dataclass
class ChatTurn:
    user_message: ChatMessage
    assistant_message: ChatMessage


class ChatService:
    """Chat turns around the orchestrator; message text is encrypted at rest."""

    def __init__(
        self,
        store: DataStore,
        orchestrator: AnalysisOrchestrator,
        encryption: type[ChatEncryption] = ChatEncryption,
    ) -> None:
        self.store = store
        self.orchestrator = orchestrator
        self.encryption = encryption

    def create_session(self, owner_id: str, title: str | None = None) -> ChatSession:
        return self.store.create_session(ChatSession(owner_id=owner_id, title=title or DEFAULT_SESSION_TITLE))

    def list_sessions(self, owner_id: str) -> list[ChatSession]:
        return self.store.list_sessions(owner_id)

    def rename_session(self, owner_id: str, session_id: str, title: str) -> ChatSession | None:
        return self.store.rename_session(owner_id, session_id, title.strip() or DEFAULT_SESSION_TITLE)

    async def save_message(self, message: ChatMessage) -> ChatMessage:
        encrypted_text = await self.encryption.encrypt_message(message.text, message.owner_id)
        self.store.append_message(message.to_row(encrypted_text))
        self.store.touch_session(message.session_id)
        return message

    async def send_message(
        self,
        owner_id: str,
        session_id: str,
        text: str,
        dataset_ids: list[str] | None = None,
    ) -> ChatTurn:
        """Store the user turn, ask the model, store and return the assistant turn.

        ``ModelNotConfiguredError`` propagates after the user turn is stored.
        """
        user_message = await self.save_message(ChatMessage.from_user(owner_id, session_id, text))
        result = await self.orchestrator.analyze(owner_id, text, dataset_ids)
        assistant_message = await self.save_message(ChatMessage.from_result(owner_id, session_id, result))
        return ChatTurn(user_message=user_message, assistant_message=assistant_message)

    async def load_history(self, owner_id: str, session_id: str) -> list[ChatMessage]:
        rows = self.store.list_messages(session_id)
        texts = await self.encryption.decrypt_messages([row["message_text"] for row in rows], owner_id)
        return [ChatMessage.from_row(row, text) for row, text in zip(rows, texts)]

    def clear_history(self, session_id: str | None = None, owner_id: str | None = None) -> int:
        removed = self.store.delete_messages(session_id=session_id, owner_id=owner_id)
        logger.info("Cleared %d chat messages", removed)
        return removed
