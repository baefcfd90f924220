"""Button presses on search results."""

import structlog

from .actions import SongAction, decode_action
from .blocks import message_with_image
from .catalog import SpotifyCatalog
from .dispatcher import ADD_SONG_FAILURE, queued_message
from .errors import ActionPayloadError, UnknownActionError
from .slack_client import SlackClient
from .sonos_controller import SonosController

logger = structlog.get_logger()

ACTION_FAILURE = f"An error occurred trying to {ADD_SONG_FAILURE}! :("


class CallbackCorrelator:
    """Completes the action behind a pressed button.

    The payload carries the song; channel, user and message timestamp come
    from the interaction, so the confirmation replaces the search results
    message instead of being posted as a new one. Pressing the same button
    twice queues the song twice.
    """

    def __init__(self, player: SonosController, catalog: SpotifyCatalog, replies: SlackClient):
        self.player = player
        self.catalog = catalog
        self.replies = replies

    async def handle_action(self, payload: str, channel: str, user: str, message_ts: str) -> None:
        """Handle one button press. Never raises."""
        try:
            action = decode_action(payload)
        except UnknownActionError as e:
            logger.warning("action_unknown", action_type=e.action_type, channel=channel)
            await self._apologise(channel)
            return
        except ActionPayloadError as e:
            logger.error("action_rejected", payload=(payload or "")[:100], error=str(e))
            await self._apologise(channel)
            return

        try:
            if isinstance(action, SongAction):
                await self._add_song(action, channel, user, message_ts)
        except Exception as e:
            logger.error(
                "action_failed",
                payload=payload[:100],
                error=str(e),
                error_type=type(e).__name__,
            )
            await self._apologise(channel)

    async def _add_song(self, action: SongAction, channel: str, user: str, message_ts: str) -> None:
        result = await self.player.enqueue(str(action.uri))
        track = await self.catalog.get_track(action.uri.item_id)

        logger.info("action_song_queued", uri=str(action.uri), user=user, position=result.position)
        blocks = message_with_image(queued_message(track, result, user), track.image_url)
        await self.replies.update_message(blocks, channel, message_ts)

    async def _apologise(self, channel: str) -> None:
        try:
            await self.replies.send_message(ACTION_FAILURE, channel)
        except Exception as e:
            logger.error("reply_failed", channel=channel, error=str(e))
