import unittest

from tui_chat.events import LoadConversations, LoadMessagePage
from tui_chat.models import ConversationInfo
from tui_chat.state import MAX_RECENT_FAILURES, AppState

from tests.helpers import msg


def _state_with(*names):
    state = AppState(page_size=30)
    for index, name in enumerate(names, start=1):
        state.add_conversation(ConversationInfo(conv_id=str(index), name=name))
    return state


class AppStateTests(unittest.TestCase):
    def test_discovery_is_idempotent_and_keeps_order(self):
        state = _state_with("Alice", "Bob")
        self.assertFalse(state.add_conversation(ConversationInfo(conv_id="1", name="Alice again")))
        self.assertEqual([c.name for c in state.conversations], ["Alice", "Bob"])
        self.assertEqual(state.index_of("2"), 1)
        self.assertIsNone(state.find("3"))

    def test_placeholder_is_upgraded_by_listing(self):
        state = _state_with("Alice")
        placeholder = state.ensure_conversation("9")
        placeholder.cache.insert(msg(5, "hello"))
        placeholder.preview = "hello"
        self.assertTrue(placeholder.placeholder)
        self.assertEqual(placeholder.name, "9")

        self.assertFalse(state.add_conversation(ConversationInfo(conv_id="9", name="Carol", preview="older")))
        upgraded = state.find("9")
        self.assertIs(upgraded, placeholder)
        self.assertFalse(upgraded.placeholder)
        self.assertEqual(upgraded.name, "Carol")
        self.assertEqual(upgraded.preview, "hello")
        self.assertEqual(len(state.conversations), 2)

    def test_ensure_conversation_returns_existing(self):
        state = _state_with("Alice")
        self.assertIs(state.ensure_conversation("1", "ignored"), state.conversations[0])
        self.assertEqual(len(state.conversations), 1)

    def test_selection_clamps_and_clears_unread(self):
        state = _state_with("Alice", "Bob")
        state.conversations[1].unread = 3
        self.assertIsNone(state.selected_conversation())
        self.assertEqual(state.move_selection(1).conv_id, "1")
        self.assertEqual(state.move_selection(1).conv_id, "2")
        self.assertEqual(state.conversations[1].unread, 0)
        self.assertEqual(state.move_selection(1).conv_id, "2")
        self.assertEqual(state.select(-5).conv_id, "1")

    def test_select_without_conversations(self):
        state = AppState()
        self.assertIsNone(state.move_selection(1))
        self.assertIsNone(state.selected)

    def test_begin_job_refuses_duplicates_per_target(self):
        state = _state_with("Alice", "Bob")
        first = LoadMessagePage(conv_id="1")
        self.assertTrue(state.begin_job(first))
        self.assertTrue(state.conversations[0].loading)
        self.assertFalse(state.begin_job(LoadMessagePage(conv_id="1", before_id=10)))
        self.assertTrue(state.begin_job(LoadMessagePage(conv_id="2")))
        self.assertTrue(state.begin_job(LoadConversations()))
        self.assertFalse(state.begin_job(LoadConversations()))

        state.finish_job(first)
        self.assertFalse(state.conversations[0].loading)
        self.assertFalse(state.is_pending(first))
        self.assertTrue(state.begin_job(first))

    def test_failures_are_bounded(self):
        state = AppState()
        for index in range(MAX_RECENT_FAILURES + 5):
            state.record_failure(f"boom {index}")
        self.assertEqual(len(state.failures), MAX_RECENT_FAILURES)
        self.assertEqual(state.last_error, f"boom {MAX_RECENT_FAILURES + 4}")

    def test_render_snapshot(self):
        state = _state_with("Alice", "Bob")
        state.select(1)
        state.conversations[1].cache.insert(msg(2))
        state.conversations[1].cache.insert(msg(1))
        render = state.render()
        self.assertEqual(render.selected, 1)
        self.assertEqual([m.msg_id for m in render.messages], [1, 2])
        self.assertEqual([v.name for v in render.conversations], ["Alice", "Bob"])
        self.assertFalse(render.history_exhausted)
        self.assertIsNone(render.last_error)

        state.conversations[1].cache.insert(msg(3))
        self.assertEqual(len(render.messages), 2)


if __name__ == "__main__":
    unittest.main()
