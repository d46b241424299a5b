"""aiohttp client for a chat gateway exposing HTTP listings and a WebSocket update feed."""

from __future__ import annotations

import json
import logging
from typing import Any, AsyncIterator, Dict, Optional
from urllib.parse import quote

import aiohttp

from tui_chat.models import ConversationInfo, Message
from tui_chat.remote import LiveUpdate, MessageDeleted, MessageEdited, NewMessage, RemoteError

logger = logging.getLogger(__name__)


class UnauthorizedError(RemoteError):
    pass


def _build_url(base_url: str, path: str) -> str:
    return f"{base_url.rstrip('/')}{path}"


def parse_message(body: Dict[str, Any]) -> Message:
    msg_id = body.get("msg_id")
    if not isinstance(msg_id, int):
        raise RemoteError(f"message without integer msg_id: {body!r}")
    ts = body.get("ts", 0)
    return Message(
        msg_id=msg_id,
        sender=str(body.get("sender", "")),
        text=str(body.get("text", "")),
        ts=float(ts) if isinstance(ts, (int, float)) else 0.0,
        outgoing=bool(body.get("outgoing", False)),
        edited=bool(body.get("edited", False)),
    )


def parse_conversation(item: Dict[str, Any]) -> ConversationInfo:
    conv_id = item.get("conv_id")
    if not isinstance(conv_id, str) or not conv_id:
        raise RemoteError(f"conversation without conv_id: {item!r}")
    return ConversationInfo(
        conv_id=conv_id,
        name=str(item.get("name") or conv_id),
        preview=str(item.get("preview", "")),
    )


def parse_update(frame: Dict[str, Any]) -> Optional[LiveUpdate]:
    """Translate one WebSocket frame; ``None`` for frames that are not updates."""

    frame_type = frame.get("t")
    body = frame.get("body", {})
    if not isinstance(body, dict):
        return None
    conv_id = body.get("conv_id")
    if not isinstance(conv_id, str) or not conv_id:
        return None
    if frame_type == "message.new":
        return NewMessage(conv_id=conv_id, message=parse_message(body), conv_name=str(body.get("conv_name", "")))
    if frame_type == "message.edited":
        return MessageEdited(conv_id=conv_id, message=parse_message(body))
    if frame_type == "message.deleted":
        msg_ids = body.get("msg_ids", [])
        if not isinstance(msg_ids, list):
            return None
        return MessageDeleted(conv_id=conv_id, msg_ids=tuple(int(m) for m in msg_ids if isinstance(m, int)))
    return None


class GatewayRemoteClient:
    """Remote client over HTTP JSON listings and a ``/v1/ws`` update socket.

    The client is safe to share between concurrent dispatcher tasks: every
    call uses its own request on the shared :class:`aiohttp.ClientSession`.
    Only the live-update reader owns the WebSocket.
    """

    def __init__(
        self,
        base_url: str,
        session_token: str,
        *,
        session: aiohttp.ClientSession | None = None,
        heartbeat_s: float = 20.0,
        request_timeout_s: float = 15.0,
    ) -> None:
        self.base_url = base_url
        self.session_token = session_token
        self.heartbeat_s = heartbeat_s
        self.request_timeout_s = request_timeout_s
        self._session = session
        self._owns_session = session is None
        self._ws: aiohttp.ClientWebSocketResponse | None = None
        self._stream_closed = False

    async def __aenter__(self) -> "GatewayRemoteClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    def _headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.session_token}"}

    def _client_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.request_timeout_s),
            )
        return self._session

    async def _get_json(self, path: str, params: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
        url = _build_url(self.base_url, path)
        try:
            async with self._client_session().get(url, params=params, headers=self._headers()) as response:
                if response.status in (401, 403):
                    raise UnauthorizedError(f"HTTP {response.status} for {path}")
                if response.status >= 400:
                    raise RemoteError(f"HTTP {response.status} for {path}")
                raw = await response.text()
        except aiohttp.ClientError as exc:
            raise RemoteError(f"request to {path} failed: {exc}") from exc
        try:
            payload = json.loads(raw) if raw else {}
        except json.JSONDecodeError as exc:
            raise RemoteError(f"invalid JSON from {path}") from exc
        if not isinstance(payload, dict):
            raise RemoteError(f"unexpected payload from {path}")
        return payload

    async def list_conversations(self) -> AsyncIterator[ConversationInfo]:
        cursor: Optional[str] = None
        while True:
            params = {"cursor": cursor} if cursor else None
            payload = await self._get_json("/v1/conversations", params)
            items = payload.get("items", [])
            if not isinstance(items, list):
                raise RemoteError("conversation listing without items")
            for item in items:
                if isinstance(item, dict):
                    yield parse_conversation(item)
            next_cursor = payload.get("next_cursor")
            if not next_cursor:
                return
            cursor = str(next_cursor)

    async def list_messages(
        self, conv_id: str, limit: int, before_id: Optional[int] = None
    ) -> AsyncIterator[Message]:
        params = {"limit": str(limit)}
        if before_id is not None:
            params["before"] = str(before_id)
        payload = await self._get_json(f"/v1/conversations/{quote(conv_id, safe='')}/messages", params)
        items = payload.get("items", [])
        if not isinstance(items, list):
            raise RemoteError("message page without items")
        for item in items:
            if isinstance(item, dict):
                yield parse_message(item)

    async def _connect(self) -> aiohttp.ClientWebSocketResponse:
        if self._ws is None:
            try:
                self._ws = await self._client_session().ws_connect(
                    _build_url(self.base_url, "/v1/ws"),
                    headers=self._headers(),
                    heartbeat=self.heartbeat_s,
                )
                await self._ws.send_json({"v": 1, "t": "updates.subscribe", "id": "updates"})
            except aiohttp.WSServerHandshakeError as exc:
                if exc.status in (401, 403):
                    raise UnauthorizedError(f"WebSocket handshake rejected ({exc.status})") from exc
                raise RemoteError(f"WebSocket handshake failed: {exc}") from exc
            except aiohttp.ClientError as exc:
                raise RemoteError(f"WebSocket connect failed: {exc}") from exc
        return self._ws

    async def next_live_update(self) -> Optional[LiveUpdate]:
        if self._stream_closed:
            return None
        ws = await self._connect()
        while True:
            msg = await ws.receive()
            if msg.type == aiohttp.WSMsgType.TEXT:
                try:
                    frame = json.loads(msg.data)
                except json.JSONDecodeError:
                    logger.debug("skipping non-JSON frame")
                    continue
                if not isinstance(frame, dict):
                    continue
                try:
                    update = parse_update(frame)
                except RemoteError as exc:
                    logger.warning("skipping malformed update frame: %s", exc)
                    continue
                if update is not None:
                    return update
            elif msg.type == aiohttp.WSMsgType.ERROR:
                self._stream_closed = True
                raise RemoteError(f"update stream error: {ws.exception()}")
            elif msg.type in (aiohttp.WSMsgType.CLOSE, aiohttp.WSMsgType.CLOSING, aiohttp.WSMsgType.CLOSED):
                self._stream_closed = True
                return None

    async def close(self) -> None:
        if self._ws is not None:
            await self._ws.close()
            self._ws = None
        if self._session is not None and self._owns_session:
            await self._session.close()
        self._session = None
