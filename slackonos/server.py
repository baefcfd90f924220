"""HTTP endpoints receiving Slack events and button presses."""

import asyncio
import json
from typing import Any, Awaitable, Dict, List, Optional, Set, Tuple

import structlog
from aiohttp import web

from .actions import ACTION_DOMAIN, PAYLOAD_SEPARATOR
from .callbacks import CallbackCorrelator
from .dispatcher import CommandDispatcher
from .models import ChatEvent

logger = structlog.get_logger()

ButtonPress = Tuple[str, str, str, str]


def chat_event_from_callback(body: Dict[str, Any]) -> Optional[ChatEvent]:
    """Extract a ChatEvent from an Events API ``event_callback`` body.

    Edits, joins and bot messages (including our own replies) are ignored.
    """
    event = body.get("event")
    if not isinstance(event, dict):
        return None
    if event.get("type") != "message" or event.get("subtype") or event.get("bot_id"):
        return None
    channel = event.get("channel")
    if not channel or not isinstance(channel, str):
        return None
    text = event.get("text")
    return ChatEvent(text=text if isinstance(text, str) else "", channel=channel)


def _nested(payload: Dict[str, Any], key: str, field: str) -> str:
    section = payload.get(key)
    return (section.get(field) or "") if isinstance(section, dict) else ""


def button_presses(payload: Dict[str, Any]) -> List[ButtonPress]:
    """``(value, channel, user, message_ts)`` for each of our buttons in a block_actions payload."""
    if payload.get("type") != "block_actions":
        return []

    channel = _nested(payload, "channel", "id")
    user = _nested(payload, "user", "id")
    message_ts = _nested(payload, "container", "message_ts") or _nested(payload, "message", "ts")
    prefix = ACTION_DOMAIN + PAYLOAD_SEPARATOR
    return [
        (action["value"], channel, user, message_ts)
        for action in payload.get("actions") or []
        if isinstance(action, dict)
        and isinstance(action.get("value"), str)
        and action["value"].startswith(prefix)
    ]


class SlackEventServer:
    """aiohttp application that acknowledges Slack at once and works in the background."""

    def __init__(self, dispatcher: CommandDispatcher, correlator: CallbackCorrelator):
        self.dispatcher = dispatcher
        self.correlator = correlator
        self._tasks: Set[asyncio.Task] = set()

    def build_app(self) -> web.Application:
        app = web.Application()
        app.router.add_post("/slack/events", self.handle_events)
        app.router.add_post("/slack/actions", self.handle_actions)
        app.router.add_get("/health", self.handle_health)
        return app

    def _spawn(self, coro: Awaitable[None]) -> None:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def handle_health(self, request: web.Request) -> web.Response:
        return web.Response(text="ok")

    async def handle_events(self, request: web.Request) -> web.Response:
        try:
            body = await request.json()
        except json.JSONDecodeError:
            return web.Response(status=400, text="invalid json")
        if not isinstance(body, dict):
            return web.Response(status=400, text="expected a json object")

        if body.get("type") == "url_verification":
            return web.json_response({"challenge": body.get("challenge", "")})

        if body.get("type") == "event_callback":
            event = chat_event_from_callback(body)
            if event is not None:
                self._spawn(self.dispatcher.handle(event))
        return web.Response()

    async def handle_actions(self, request: web.Request) -> web.Response:
        form = await request.post()
        try:
            payload = json.loads(form.get("payload") or "{}")
        except json.JSONDecodeError:
            return web.Response(status=400, text="invalid payload")
        if not isinstance(payload, dict):
            return web.Response(status=400, text="expected a json object")

        for value, channel, user, message_ts in button_presses(payload):
            logger.info("button_pressed", channel=channel, user=user)
            self._spawn(self.correlator.handle_action(value, channel, user, message_ts))
        return web.Response()

    async def drain(self) -> None:
        """Cancel in-flight handlers and wait for them to finish."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
