import unittest

from aiohttp import web
from aiohttp.test_utils import TestServer

from tui_chat.gateway_client import GatewayRemoteClient, UnauthorizedError, parse_update
from tui_chat.remote import MessageDeleted, MessageEdited, NewMessage, RemoteError

TOKEN = "st_test"


def _authorized(request: web.Request) -> bool:
    return request.headers.get("Authorization") == f"Bearer {TOKEN}"


def _create_app(frames):
    seen = {"message_params": [], "subscribe": []}

    async def conversations(request):
        if not _authorized(request):
            return web.json_response({"error": "unauthorized"}, status=401)
        if request.query.get("cursor") == "page2":
            return web.json_response({"items": [{"conv_id": "c3", "name": "Carol"}]})
        return web.json_response(
            {
                "items": [
                    {"conv_id": "c1", "name": "Alice", "preview": "hi"},
                    {"conv_id": "c2", "name": "Bob"},
                ],
                "next_cursor": "page2",
            }
        )

    async def messages(request):
        if not _authorized(request):
            return web.json_response({"error": "unauthorized"}, status=401)
        conv_id = request.match_info["conv_id"]
        if conv_id == "broken":
            return web.Response(status=500, text="boom")
        seen["message_params"].append((conv_id, dict(request.query)))
        return web.json_response(
            {
                "items": [
                    {"msg_id": 12, "sender": "alice", "text": "newest", "ts": 1700000012},
                    {"msg_id": 11, "sender": "me", "text": "older", "ts": 1700000011, "outgoing": True},
                ]
            }
        )

    async def ws(request):
        if not _authorized(request):
            return web.Response(status=401)
        socket = web.WebSocketResponse()
        await socket.prepare(request)
        seen["subscribe"].append(await socket.receive_json())
        for frame in frames:
            if isinstance(frame, str):
                await socket.send_str(frame)
            else:
                await socket.send_json(frame)
        await socket.close()
        return socket

    app = web.Application()
    app.router.add_get("/v1/conversations", conversations)
    app.router.add_get("/v1/conversations/{conv_id}/messages", messages)
    app.router.add_get("/v1/ws", ws)
    return app, seen


FRAMES = [
    {"v": 1, "t": "presence.update", "body": {"user_id": "u_bob"}},
    {"v": 1, "t": "message.new", "body": {"conv_id": "c1", "msg_id": 13, "sender": "alice", "text": "yo", "ts": 5}},
    "not json",
    {"v": 1, "t": "message.new", "body": {"conv_id": "c1", "msg_id": "bad"}},
    {"v": 1, "t": "message.edited", "body": {"conv_id": "c1", "msg_id": 13, "sender": "alice", "text": "yo!", "ts": 5}},
    {"v": 1, "t": "message.deleted", "body": {"conv_id": "c1", "msg_ids": [11, 12]}},
]


class GatewayRemoteClientTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        app, self.seen = _create_app(FRAMES)
        self.server = TestServer(app)
        await self.server.start_server()
        self.base_url = str(self.server.make_url("/"))
        self.client = GatewayRemoteClient(self.base_url, TOKEN)

    async def asyncTearDown(self):
        await self.client.close()
        await self.server.close()

    async def test_listing_follows_next_cursor(self):
        names = [info.name async for info in self.client.list_conversations()]
        self.assertEqual(names, ["Alice", "Bob", "Carol"])

    async def test_message_page_passes_limit_and_before(self):
        page = [m async for m in self.client.list_messages("c1", 30, before_id=50)]
        self.assertEqual([m.msg_id for m in page], [12, 11])
        self.assertTrue(page[1].outgoing)
        self.assertEqual(self.seen["message_params"], [("c1", {"limit": "30", "before": "50"})])

        [m async for m in self.client.list_messages("c1", 10)]
        self.assertEqual(self.seen["message_params"][-1], ("c1", {"limit": "10"}))

    async def test_http_errors_become_remote_errors(self):
        with self.assertRaises(RemoteError):
            [m async for m in self.client.list_messages("broken", 30)]

        stranger = GatewayRemoteClient(self.base_url, "wrong")
        try:
            with self.assertRaises(UnauthorizedError):
                [c async for c in stranger.list_conversations()]
            with self.assertRaises(UnauthorizedError):
                await stranger.next_live_update()
        finally:
            await stranger.close()

    async def test_live_updates_skip_noise_and_end_on_close(self):
        updates = []
        while True:
            update = await self.client.next_live_update()
            if update is None:
                break
            updates.append(update)

        self.assertEqual(self.seen["subscribe"], [{"v": 1, "t": "updates.subscribe", "id": "updates"}])
        self.assertEqual(len(updates), 3)
        self.assertIsInstance(updates[0], NewMessage)
        self.assertEqual(updates[0].message.text, "yo")
        self.assertIsInstance(updates[1], MessageEdited)
        self.assertEqual(updates[2], MessageDeleted(conv_id="c1", msg_ids=(11, 12)))
        self.assertIsNone(await self.client.next_live_update())


class ParseUpdateTests(unittest.TestCase):
    def test_frames_without_conversation_are_ignored(self):
        self.assertIsNone(parse_update({"t": "message.new", "body": {"msg_id": 1}}))
        self.assertIsNone(parse_update({"t": "message.new", "body": "nope"}))
        self.assertIsNone(parse_update({"t": "typing", "body": {"conv_id": "c1"}}))

    def test_malformed_message_raises(self):
        with self.assertRaises(RemoteError):
            parse_update({"t": "message.edited", "body": {"conv_id": "c1", "msg_id": None}})

    def test_new_message_carries_conversation_name(self):
        update = parse_update(
            {"t": "message.new", "body": {"conv_id": "c9", "conv_name": "Dana", "msg_id": 3, "text": "hey"}}
        )
        self.assertEqual(update.conv_name, "Dana")
        self.assertEqual(update.message.msg_id, 3)


if __name__ == "__main__":
    unittest.main()
