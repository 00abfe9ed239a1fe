"""
Tests for the ConversationManager transcript cache.
"""
import unittest

from app.rag.conversation_manager import ConversationManager
from app.usage.local_store import InMemoryLocalStore, chat_history_key


class TestConversationManager(unittest.TestCase):
    """Test suite for ConversationManager."""

    def setUp(self):
        self.store = InMemoryLocalStore()
        self.manager = ConversationManager(self.store)

    def test_empty_transcript(self):
        """Nothing cached yet returns an empty list."""
        assert self.manager.get_messages("u1") == []
        assert self.manager.get_messages() == []

    def test_add_message(self):
        """Test adding messages to a transcript."""
        self.manager.add_message("u1", "user", "¿Qué es el hallux valgus?")
        self.manager.add_message("u1", "assistant", "Es una deformidad del primer dedo.", query_id="q1")

        messages = self.manager.get_messages("u1")
        assert [m["role"] for m in messages] == ["user", "assistant"]
        assert messages[1]["query_id"] == "q1"
        assert "timestamp" in messages[0]

    def test_owners_are_separate(self):
        """Guest and user transcripts live under different keys."""
        self.manager.add_message(None, "user", "pregunta de invitado")
        self.manager.add_message("u1", "user", "pregunta de usuario")

        assert len(self.manager.get_messages(None)) == 1
        assert len(self.manager.get_messages("u1")) == 1
        assert self.store.get(chat_history_key(None))[0]["content"] == "pregunta de invitado"

    def test_delete_last_message(self):
        """Rollback removes only the optimistic message."""
        self.manager.add_message("u1", "user", "primera")
        self.manager.add_message("u1", "assistant", "respuesta")
        self.manager.add_message("u1", "user", "segunda")

        removed = self.manager.delete_last_message("u1")

        assert removed["content"] == "segunda"
        assert [m["content"] for m in self.manager.get_messages("u1")] == ["primera", "respuesta"]

    def test_delete_last_message_on_empty_transcript(self):
        with self.assertRaises(ValueError):
            self.manager.delete_last_message("u1")

    def test_trims_to_max_messages(self):
        manager = ConversationManager(self.store, max_messages=4)
        for i in range(6):
            manager.add_message("u1", "user", f"m{i}")

        assert [m["content"] for m in manager.get_messages("u1")] == ["m2", "m3", "m4", "m5"]

    def test_history_for_prompt(self):
        """Only role/content of the last turns are passed to the model."""
        for i in range(8):
            self.manager.add_message("u1", "user" if i % 2 == 0 else "assistant", f"m{i}", query_id=f"q{i}")

        history = self.manager.history_for_prompt("u1", limit=4)

        assert history == [
            {"role": "user", "content": "m4"},
            {"role": "assistant", "content": "m5"},
            {"role": "user", "content": "m6"},
            {"role": "assistant", "content": "m7"},
        ]

    def test_clear(self):
        self.manager.add_message("u1", "user", "hola")
        self.manager.clear("u1")
        assert self.manager.get_messages("u1") == []

    def test_ttl_expires_transcript(self):
        now = [0.0]
        store = InMemoryLocalStore(clock=lambda: now[0])
        manager = ConversationManager(store, ttl_seconds=3600)
        manager.add_message("u1", "user", "hola")

        now[0] = 3600.0

        assert manager.get_messages("u1") == []


if __name__ == '__main__':
    unittest.main()
