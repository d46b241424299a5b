import asyncio
import unittest

from tui_chat.dispatcher import JobDispatcher, pump_live_updates
from tui_chat.events import (
    ConversationDiscovered,
    JobFailed,
    ListingCompleted,
    LiveMessageDeleted,
    LiveMessageEdited,
    LiveMessageNew,
    LoadConversations,
    LoadMessagePage,
    MessagePageItem,
    PageCompleted,
    StreamEnded,
)
from tui_chat.remote import InMemoryRemoteClient, MessageDeleted, MessageEdited, NewMessage

from tests.helpers import msg


def _drain(queue):
    events = []
    while not queue.empty():
        events.append(queue.get_nowait())
    return events


class _BlockingClient(InMemoryRemoteClient):
    """Holds every page open until ``release`` is set."""

    def __init__(self):
        super().__init__()
        self.release = asyncio.Event()
        self.started = 0

    async def list_messages(self, conv_id, limit, before_id=None):
        self.started += 1
        await self.release.wait()
        async for message in super().list_messages(conv_id, limit, before_id):
            yield message


class JobDispatcherTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.client = InMemoryRemoteClient()
        self.client.add_conversation("1", "Alice", [msg(i) for i in range(1, 6)])
        self.client.add_conversation("2", "Bob")
        self.results = asyncio.Queue()
        self.dispatcher = JobDispatcher(self.client, self.results)

    async def asyncTearDown(self):
        await self.dispatcher.shutdown()

    async def test_listing_emits_each_conversation_then_completion(self):
        job = LoadConversations()
        self.assertTrue(self.dispatcher.submit(job))
        await self.dispatcher.wait_idle()
        events = _drain(self.results)
        self.assertEqual([e.conversation.name for e in events[:-1]], ["Alice", "Bob"])
        self.assertTrue(all(isinstance(e, ConversationDiscovered) for e in events[:-1]))
        self.assertEqual(events[-1], ListingCompleted(job))
        self.assertEqual(self.dispatcher.active_jobs, [])

    async def test_page_items_arrive_in_fetch_order_before_completion(self):
        job = LoadMessagePage(conv_id="1", before_id=5, limit=3)
        self.dispatcher.submit(job)
        await self.dispatcher.wait_idle()
        events = _drain(self.results)
        self.assertEqual(
            events,
            [
                MessagePageItem("1", msg(4)),
                MessagePageItem("1", msg(3)),
                MessagePageItem("1", msg(2)),
                PageCompleted(job, received=3, oldest_id=2),
            ],
        )

    async def test_empty_page_reports_no_oldest_id(self):
        job = LoadMessagePage(conv_id="2")
        self.dispatcher.submit(job)
        await self.dispatcher.wait_idle()
        self.assertEqual(_drain(self.results), [PageCompleted(job, received=0, oldest_id=None)])

    async def test_remote_error_becomes_job_failed(self):
        self.client.fail("list_messages", "service unavailable")
        job = LoadMessagePage(conv_id="1")
        self.dispatcher.submit(job)
        await self.dispatcher.wait_idle()
        self.assertEqual(_drain(self.results), [JobFailed(job, "service unavailable")])

        self.client.recover("list_messages")
        self.dispatcher.submit(LoadMessagePage(conv_id="404"))
        await self.dispatcher.wait_idle()
        [failed] = _drain(self.results)
        self.assertIsInstance(failed, JobFailed)
        self.assertIn("404", failed.reason)

    async def test_one_active_job_per_conversation(self):
        client = _BlockingClient()
        client.add_conversation("1", "Alice", [msg(1)])
        client.add_conversation("2", "Bob", [msg(1)])
        dispatcher = JobDispatcher(client, self.results)
        try:
            self.assertTrue(dispatcher.submit(LoadMessagePage(conv_id="1")))
            self.assertFalse(dispatcher.submit(LoadMessagePage(conv_id="1", before_id=9)))
            self.assertTrue(dispatcher.submit(LoadMessagePage(conv_id="2")))
            await asyncio.sleep(0)
            self.assertEqual(client.started, 2)
            self.assertEqual(len(dispatcher.active_jobs), 2)

            client.release.set()
            await dispatcher.wait_idle()
            self.assertTrue(dispatcher.submit(LoadMessagePage(conv_id="1")))
            await dispatcher.wait_idle()
        finally:
            await dispatcher.shutdown()

    async def test_shutdown_cancels_running_jobs(self):
        client = _BlockingClient()
        client.add_conversation("1", "Alice", [msg(1)])
        dispatcher = JobDispatcher(client, self.results)
        job = LoadMessagePage(conv_id="1")
        dispatcher.submit(job)
        await asyncio.sleep(0)
        await dispatcher.shutdown()
        self.assertFalse(dispatcher.is_active(job))
        self.assertTrue(self.results.empty())


class LiveUpdatePumpTests(unittest.IsolatedAsyncioTestCase):
    async def test_updates_are_forwarded_in_order_until_end_of_stream(self):
        client = InMemoryRemoteClient()
        client.add_conversation("1", "Alice", [msg(1)])
        client.push_update(NewMessage("1", msg(2)))
        client.push_update(MessageEdited("1", msg(2, "better")))
        client.push_update(MessageDeleted("1", (1,)))
        client.end_stream()
        results = asyncio.Queue()

        await asyncio.wait_for(pump_live_updates(client, results), timeout=1)

        self.assertEqual(
            _drain(results),
            [
                LiveMessageNew("1", msg(2)),
                LiveMessageEdited("1", msg(2, "better")),
                LiveMessageDeleted("1", (1,)),
                StreamEnded(),
            ],
        )

    async def test_stream_failure_is_reported(self):
        client = InMemoryRemoteClient()
        client.fail("next_live_update", "connection reset")
        results = asyncio.Queue()
        await asyncio.wait_for(pump_live_updates(client, results), timeout=1)
        self.assertEqual(_drain(results), [StreamEnded(reason="connection reset")])


if __name__ == "__main__":
    unittest.main()
