"""Slack Web API client used to post and update replies."""

import asyncio
from typing import Any, Dict, List, Optional

import aiohttp
import structlog

from .errors import SlackAPIError

logger = structlog.get_logger()

SLACK_API_URL = "https://slack.com/api"


class SlackClient:
    """Minimal Slack Web API wrapper: post, update, channel lookup."""

    def __init__(self, token: str, api_url: str = SLACK_API_URL, timeout: int = 10):
        self.token = token
        self.api_url = api_url
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self._session: Optional[aiohttp.ClientSession] = None

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create a shared aiohttp session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=self.timeout,
                headers={"Authorization": f"Bearer {self.token}"},
            )
        return self._session

    async def _api(
        self,
        method: str,
        payload: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        """
        Call a Web API method.

        POSTs JSON when a payload is given, otherwise GETs with query params.

        Raises:
            SlackAPIError: on transport errors, non-200 status or ``ok: false``
        """
        session = await self._get_session()
        url = f"{self.api_url}/{method}"
        try:
            if payload is not None:
                request = session.post(url, json=payload)
            else:
                request = session.get(url, params=params)
            async with request as resp:
                if resp.status != 200:
                    raise SlackAPIError(method, f"HTTP {resp.status}")
                data = await resp.json()
        except asyncio.TimeoutError as e:
            raise SlackAPIError(method, "timeout") from e
        except aiohttp.ClientError as e:
            raise SlackAPIError(method, str(e)) from e

        if not data.get("ok"):
            raise SlackAPIError(method, data.get("error", "unknown_error"))
        return data

    async def send_message(self, text: str, channel: str) -> None:
        """Post a plain mrkdwn message."""
        await self._api("chat.postMessage", {"channel": channel, "text": text})

    async def send_blocks(self, blocks: List[Dict[str, Any]], channel: str) -> None:
        """Post a Block Kit message."""
        await self._api("chat.postMessage", {"channel": channel, "blocks": blocks})

    async def update_message(self, blocks: List[Dict[str, Any]], channel: str, ts: str) -> None:
        """Replace the content of an existing message."""
        await self._api("chat.update", {"channel": channel, "ts": ts, "blocks": blocks})

    async def get_channel_name(self, channel: str) -> Optional[str]:
        """Resolve a channel id to its name, or None if the lookup fails."""
        try:
            data = await self._api("conversations.info", params={"channel": channel})
        except SlackAPIError as e:
            logger.error("slack_channel_lookup_failed", channel=channel, error=str(e))
            return None
        return (data.get("channel") or {}).get("name")

    async def close(self) -> None:
        """Close the shared HTTP session."""
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None
