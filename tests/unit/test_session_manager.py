"""Tests for chats, templates, settings and enabled tools."""

import pytest

from chat_stream.messages import AssistantMessage, ChatSettings, SystemMessage, UserMessage
from chat_stream.session_manager import AiChat, ChatSessionManager
from chat_stream.templates import PRESET_TEMPLATES


@pytest.fixture
def sessions(memory_store):
    return ChatSessionManager(memory_store)


class TestChats:
    def test_create_chat(self, sessions):
        chat = sessions.create_chat("What is Python?")
        assert chat.title == "What is Python?"
        assert chat.messages == []
        assert sessions.get_chat(chat.id) == chat

    def test_long_prompts_are_truncated(self, sessions):
        prompt = "x" * 100
        chat = sessions.create_chat(prompt)
        assert chat.title == "x" * 65 + " ..."

    def test_template_seeds_system_message(self, sessions):
        chat = sessions.create_chat("Help", template_id="code_buddy")
        assert chat.template_id == "code_buddy"
        assert isinstance(chat.messages[0], SystemMessage)
        assert "Code Buddy" in chat.messages[0].content
        assert "{date}" not in chat.messages[0].content

    def test_unknown_template_is_ignored(self, sessions):
        chat = sessions.create_chat("Help", template_id="missing")
        assert chat.template_id is None
        assert chat.messages == []

    def test_list_is_newest_first(self, sessions, memory_store):
        old = AiChat(title="old", created=1, updated=1)
        new = AiChat(title="new", created=2, updated=2)
        memory_store.set("chats", [old.model_dump(), new.model_dump()])
        assert [c.title for c in sessions.list_chats()] == ["new", "old"]

        sessions.update_chat(old.id, {"title": "touched"})
        assert [c.title for c in sessions.list_chats()] == ["touched", "new"]

    def test_update_keeps_id_and_bumps_updated(self, sessions):
        chat = sessions.create_chat("a")
        updated = sessions.update_chat(chat.id, lambda c: {"id": "other", "title": c.title + "!"})
        assert updated.id == chat.id
        assert updated.title == "a!"
        assert updated.updated >= chat.updated

    def test_update_missing_chat(self, sessions):
        assert sessions.update_chat("missing", {"title": "x"}) is None
        assert sessions.update_chat("", {"title": "x"}) is None

    def test_set_chat_messages(self, sessions):
        chat = sessions.create_chat("hi")
        user = UserMessage(content="hi")
        reply = AssistantMessage(content="hello", user_message_id=user.id)
        sessions.set_chat_messages(chat.id, [user, reply])

        stored = sessions.get_chat(chat.id)
        assert stored.messages == [user, reply]

    def test_delete_chat(self, sessions):
        chat = sessions.create_chat("bye")
        assert sessions.delete_chat(chat.id) is True
        assert sessions.get_chat(chat.id) is None
        assert sessions.delete_chat(chat.id) is False


class TestRegeneration:
    def test_returns_user_message_and_prior_history(self, sessions):
        chat = sessions.create_chat("q1")
        system = SystemMessage(content="s")
        first = UserMessage(content="q1")
        reply = AssistantMessage(content="a1", user_message_id=first.id)
        second = UserMessage(content="q2")
        sessions.set_chat_messages(
            chat.id,
            [system, first, reply, second, AssistantMessage(content="a2", user_message_id=second.id)],
        )

        user_message, previous = sessions.regeneration_point(chat.id, second.id)

        assert user_message == second
        assert previous == [system, first, reply]

    def test_unknown_chat_or_message(self, sessions):
        chat = sessions.create_chat("q")
        with pytest.raises(KeyError):
            sessions.regeneration_point("missing", "x")
        with pytest.raises(KeyError):
            sessions.regeneration_point(chat.id, "missing")

    def test_non_user_message_is_not_a_regeneration_point(self, sessions):
        chat = sessions.create_chat("q")
        reply = AssistantMessage(content="a")
        sessions.set_chat_messages(chat.id, [reply])
        with pytest.raises(KeyError):
            sessions.regeneration_point(chat.id, reply.id)


class TestTemplates:
    def test_presets(self, sessions):
        names = [t.name for t in sessions.templates()]
        assert names == ["Code Buddy", "Resume Builder", "Git Assistant"]
        assert all(t.preset for t in PRESET_TEMPLATES)
        assert all("{date}" in t.system for t in PRESET_TEMPLATES)

    def test_custom_template_crud(self, sessions):
        template = sessions.create_template("Poet", "Writes poems", "You write poems on {date}.")
        assert sessions.get_template(template.id).name == "Poet"
        assert len(sessions.templates()) == 4

        edited = sessions.edit_template(template.id, {"name": "Bard", "preset": True})
        assert edited.name == "Bard"
        assert edited.preset is False

        sessions.delete_template(template.id)
        assert sessions.get_template(template.id) is None

    def test_presets_are_read_only(self, sessions):
        assert sessions.edit_template("code_buddy", {"name": "Hacked"}) is None
        assert sessions.get_template("code_buddy").name == "Code Buddy"


class TestPreferences:
    def test_settings_default_and_save(self, sessions):
        assert sessions.get_settings() == ChatSettings(temperature=0.5)
        sessions.save_settings(ChatSettings(temperature=0.2))
        assert sessions.get_settings().temperature == 0.2

    def test_tools(self, sessions):
        assert sessions.get_tools() == []
        sessions.save_tools(["web_search"])
        assert sessions.get_tools() == ["web_search"]

    def test_clear_data(self, sessions):
        sessions.create_chat("x")
        sessions.create_template("t", "", "s")
        sessions.save_settings(ChatSettings(temperature=0.1))
        sessions.save_tools(["a"])

        sessions.clear_data()

        assert sessions.list_chats() == []
        assert len(sessions.templates()) == len(PRESET_TEMPLATES)
        assert sessions.get_settings().temperature == 0.5
        assert sessions.get_tools() == []
