"""Auto-reload messages and the websocket loop that delivers them to the browser."""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from dataclasses import dataclass
from typing import Any, AsyncIterable

_log = logging.getLogger(__name__)

RELOAD = "reload"
BUILD_FAILURE = "buildFailure"


@dataclass(frozen=True)
class ClientMessage:
    """A message sent to the browser: a reload request or a build failure."""

    kind: str
    reason: str | None = None

    @classmethod
    def reload(cls) -> ClientMessage:
        return cls(RELOAD)

    @classmethod
    def build_failure(cls, reason: str) -> ClientMessage:
        return cls(BUILD_FAILURE, reason)

    def to_json(self) -> str:
        data: dict[str, Any] = {"type": self.kind}
        if self.kind == BUILD_FAILURE:
            data["data"] = {"reason": self.reason}
        return json.dumps(data, separators=(",", ":"))

    @classmethod
    def from_json(cls, text: str) -> ClientMessage:
        data = json.loads(text)
        if not isinstance(data, dict):
            raise ValueError("message must be an object")
        kind = data.get("type")
        if kind == RELOAD:
            return cls.reload()
        if kind == BUILD_FAILURE:
            payload = data.get("data")
            if not isinstance(payload, dict) or not isinstance(payload.get("reason"), str):
                raise ValueError("buildFailure requires data.reason")
            return cls.build_failure(payload["reason"])
        raise ValueError(f"unknown message type: {kind!r}")


@dataclass(frozen=True)
class BuildState:
    """The outcome of the latest build. The default is a successful build."""

    reason: str | None = None

    @property
    def is_ok(self) -> bool:
        return self.reason is None

    @classmethod
    def ok(cls) -> BuildState:
        return cls()

    @classmethod
    def failed(cls, reason: str) -> BuildState:
        return cls(reason)


class ReloadNotifier:
    """Turns build states into client messages, dropping the first successful one."""

    def __init__(self) -> None:
        self._first = True

    def message_for(self, state: BuildState) -> ClientMessage | None:
        if state.is_ok:
            if self._first:
                # A reload right after connecting is pointless; a failure is still worth sending.
                self._first = False
                _log.debug("Discarding first reload trigger")
                return None
            return ClientMessage.reload()
        return ClientMessage.build_failure(state.reason)


async def handle_ws(ws: Any, states: AsyncIterable[BuildState]) -> None:
    """Serve one auto-reload websocket until either side goes away.

    ``ws.recv()`` returns ASGI-style message dicts, ``None`` once the connection is
    lost, and raises on errors; a ``websocket.disconnect`` message is answered with a
    ``websocket.close`` message before ``ws.close()``. Text is sent as
    ``websocket.send`` messages. ``states`` yields the current build state first and
    then every change.
    """
    notifier = ReloadNotifier()
    updates = states.__aiter__()
    incoming: asyncio.Future | None = None
    update: asyncio.Future | None = None
    _log.debug("autoreload websocket opened")

    try:
        while True:
            if incoming is None:
                incoming = asyncio.ensure_future(ws.recv())
            if update is None:
                update = asyncio.ensure_future(updates.__anext__())
            done, _ = await asyncio.wait({incoming, update}, return_when=asyncio.FIRST_COMPLETED)

            if incoming in done:
                task, incoming = incoming, None
                try:
                    message = task.result()
                except Exception as err:  # noqa: BLE001 - any socket error ends the session
                    _log.debug("autoreload websocket closed: %s", err)
                    return
                if message is None:
                    _log.debug("lost websocket")
                    return
                if message.get("type") == "websocket.disconnect":
                    code = message.get("code", 1000)
                    _log.debug("received close from browser: %s", code)
                    with contextlib.suppress(Exception):
                        await ws.send({"type": "websocket.close", "code": code})
                    with contextlib.suppress(Exception):
                        await ws.close()
                    return
                _log.debug("received message from browser: %r (ignoring)", message)

            if update in done:
                task, update = update, None
                try:
                    state = task.result()
                except StopAsyncIteration:
                    _log.debug("state watcher closed")
                    return
                _log.debug("Build state changed: %r", state)
                reply = notifier.message_for(state)
                if reply is not None:
                    try:
                        await ws.send({"type": "websocket.send", "text": reply.to_json()})
                    except Exception as err:  # noqa: BLE001
                        _log.info("autoload websocket failed to send: %s", err)
                        break
    finally:
        for pending in (incoming, update):
            if pending is not None and not pending.done():
                pending.cancel()
                with contextlib.suppress(asyncio.CancelledError, Exception):
                    await pending
        _log.debug("exiting WS handler")