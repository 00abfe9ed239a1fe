"""
Conversation transcript cache for the Salustia assistant.

Keeps the most recent transcript per owner (user id or the guest marker) in a
LocalStore under chat_history_{owner}. The cache is best effort and not
authoritative: persisted QueryRecords are the source of truth.
"""
from typing import Dict, List, Optional
import time

from app.usage.local_store import LocalStore, chat_history_key


class ConversationManager:
    """
    Manages transcript state in a LocalStore.

    Handles:
    - Appending user and assistant messages
    - Rollback of the optimistic user message when generation fails
    - Trimming to the most recent messages
    """

    def __init__(self, store: LocalStore, max_messages: int = 50, ttl_seconds: Optional[float] = None):
        self.store = store
        self.max_messages = max_messages
        self.ttl_seconds = ttl_seconds

    def get_messages(self, user_id: Optional[str] = None) -> List[dict]:
        """Get message history. Returns empty list if nothing is cached."""
        return list(self.store.get(chat_history_key(user_id), []) or [])

    def add_message(self, user_id: Optional[str], role: str, content: str, **extra) -> dict:
        """Append a message; extra keys (query_id, references...) are stored alongside."""
        message = {"role": role, "content": content, "timestamp": time.time()}
        message.update(extra)

        messages = self.get_messages(user_id)
        messages.append(message)
        self._save(user_id, messages[-self.max_messages:])
        return message

    def delete_last_message(self, user_id: Optional[str] = None) -> Dict:
        """Delete the last message for rollback"""
        messages = self.get_messages(user_id)
        if not messages:
            raise ValueError(f"Transcript {chat_history_key(user_id)} has no messages")

        last = messages.pop()
        self._save(user_id, messages)
        return last

    def history_for_prompt(self, user_id: Optional[str] = None, limit: int = 6) -> List[dict]:
        """Last few turns as role/content pairs for the model."""
        return [
            {"role": m["role"], "content": m["content"]}
            for m in self.get_messages(user_id)[-limit:]
        ]

    def clear(self, user_id: Optional[str] = None) -> None:
        self.store.delete(chat_history_key(user_id))

    def _save(self, user_id: Optional[str], messages: List[dict]) -> None:
        self.store.set(chat_history_key(user_id), messages, ttl_seconds=self.ttl_seconds)
