"""Chat command dispatcher: parse, validate, call the player, reply."""

import re
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, Optional, Sequence, Tuple

import structlog

from .actions import song_payload
from .blocks import message_with_buttons, message_with_image, message_with_images
from .catalog import SpotifyCatalog
from .config import Config
from .errors import ActionPayloadError
from .formatting import format_seconds, pad_right, start_case
from .models import (
    ChatEvent,
    Command,
    EnqueueResult,
    PlaybackSnapshot,
    PlayMode,
    TrackResult,
    TransportState,
)
from .slack_client import SlackClient
from .sonos_controller import SonosController

logger = structlog.get_logger()

TRIGGER = "!"

ADD_SONG_FAILURE = "add the song to the playlist"

HELP_COMMANDS: Sequence[Tuple[str, str]] = (
    ("!play", "Play/Resume song"),
    ("!stop", "Stop song"),
    ("!pause", "Pause song"),
    ("!next", "Play the next song"),
    ("!previous", "Play the previous song"),
    ("!current", "Display the current song"),
    ("!playlist", "Display the entire playlist"),
    ("!playlists", "Display a list of all saved playlists"),
    ("!setplaylist <number>", "Add a saved playlist to the playlist"),
    ("!createplaylist <name>", "Create a new saved playlist"),
    ("!playmode", "Display the current playmode"),
    ("!playmode <playmode>", "Change the playmode"),
    ("!search <text>", "Search Spotify for a song"),
    ("!searchalbum <text>", "Search Spotify for an album"),
    ("!searchplaylist <text>", "Search Spotify for a playlist"),
    ("!add <text>", "Add the first song result from Spotify to the playlist"),
    ("!remove <position>", "Remove the song at the position from the playlist"),
    ("!volume", "Display current volume level"),
    ("!volume <up/down/number>", "Change volume level"),
)

CommandHandler = Callable[[str, str], Awaitable[None]]


@dataclass(frozen=True)
class CommandSettings:
    """Limits and allow-list the dispatcher enforces."""
    channels: Tuple[str, ...]
    volume_interval: int = 5
    volume_max: int = 75
    playlist_name_max: int = 30

    @classmethod
    def from_config(cls, config: Config) -> "CommandSettings":
        return cls(
            channels=tuple(config.channels),
            volume_interval=config.volume_interval,
            volume_max=config.volume_max,
            playlist_name_max=config.playlist_name_max,
        )


@dataclass(frozen=True)
class Route:
    """A command handler and the action named in its failure reply."""
    handler: CommandHandler
    action: str

    @property
    def failure_message(self) -> str:
        return f"An error occurred trying to {self.action}! :("


def parse_command(text: Optional[str], trigger: str = TRIGGER) -> Optional[Command]:
    """Split ``"!keyword argument..."`` into a Command.

    Returns None for text that is not a command.
    """
    if not text or text[0] != trigger:
        return None
    keyword, _, argument = text[1:].partition(" ")
    return Command(keyword=keyword.lower(), argument=argument)


def parse_position(token: str) -> Optional[int]:
    """Parse a bare non-negative decimal integer; anything else is None."""
    if re.fullmatch(r"[0-9]+", token or ""):
        return int(token)
    return None


def first_token(argument: str) -> str:
    return argument.split(" ")[0] if argument else ""


def queued_message(track: TrackResult, result: EnqueueResult, user: Optional[str] = None) -> str:
    """Confirmation text for a song added to the queue."""
    greeting = f"Sure thing, <@{user}>!" if user else "Sure thing!"
    return "\n".join([
        f"{greeting} *{track.artist}* - *{track.title} ({track.album})* has been added to the queue!",
        "",
        f"Position *{result.position}* out of *{result.queue_length}* in playlist",
    ])


def now_playing(track: PlaybackSnapshot) -> str:
    return f"*{track.artist}* - *{track.title}*"


class CommandDispatcher:
    """Turns chat commands into Sonos/Spotify calls and Slack replies.

    Every handler receives ``(argument, channel)``, fetches the player state it
    needs, validates its argument before any mutating call, and replies once.
    An exception escaping a handler is logged and answered with the route's
    failure message.
    """

    def __init__(
        self,
        player: SonosController,
        catalog: SpotifyCatalog,
        replies: SlackClient,
        settings: CommandSettings,
    ):
        self.player = player
        self.catalog = catalog
        self.replies = replies
        self.settings = settings
        self.routes: Dict[str, Route] = self._build_routes()

    def _build_routes(self) -> Dict[str, Route]:
        table = [
            (("play", "resume"), self._play, "play the song"),
            (("stop",), self._stop, "stop the song"),
            (("pause",), self._pause, "pause the song"),
            (("next",), self._next, "play the next song"),
            (("previous", "prev", "back"), self._previous, "play the previous song"),
            (("current",), self._current, "get the current song"),
            (("playlist", "list", "songs"), self._playlist, "get the playlist"),
            (("playlists",), self._playlists, "get the playlists"),
            (("setplaylist",), self._set_playlist, "load the playlist"),
            (("createplaylist",), self._create_playlist, "create the playlist"),
            (("playmode",), self._playmode, "get/change the playmode"),
            (("search",), self._search_song, "search for the song"),
            (("searchalbum",), self._search_album, "search for the album"),
            (("searchplaylist",), self._search_playlist, "search for the playlist"),
            (("add",), self._add, ADD_SONG_FAILURE),
            (("remove", "rem", "del"), self._remove, "remove the song from the playlist"),
            (("volume", "vol"), self._volume, "get/change the volume"),
            (("help",), self._help, "display the help list"),
        ]
        routes: Dict[str, Route] = {}
        for keywords, handler, action in table:
            route = Route(handler=handler, action=action)
            for keyword in keywords:
                routes[keyword] = route
        return routes

    # -- Entry point ---------------------------------------------------------

    async def handle(self, event: ChatEvent) -> None:
        """Handle one inbound chat message. Never raises."""
        try:
            channel_name = await self.replies.get_channel_name(event.channel)
        except Exception as e:
            logger.error("channel_lookup_error", channel=event.channel, error=str(e))
            return
        if channel_name not in self.settings.channels:
            return

        command = parse_command(event.text)
        if command is None:
            return

        route = self.routes.get(command.keyword)
        if route is None:
            await self._say_safely(f"I'm sorry, but {command.keyword} is not a command", event.channel)
            return

        logger.info(
            "command_received",
            keyword=command.keyword,
            argument=command.argument[:50],
            channel=channel_name,
        )
        try:
            await route.handler(command.argument, event.channel)
        except Exception as e:
            logger.error(
                "command_failed",
                keyword=command.keyword,
                error=str(e),
                error_type=type(e).__name__,
            )
            await self._say_safely(route.failure_message, event.channel)

    # -- Reply helpers -------------------------------------------------------

    async def _say(self, text: str, channel: str) -> None:
        await self.replies.send_message(text, channel)

    async def _say_safely(self, text: str, channel: str) -> None:
        try:
            await self.replies.send_message(text, channel)
        except Exception as e:
            logger.error("reply_failed", channel=channel, error=str(e))

    # -- Transport -----------------------------------------------------------

    async def _play(self, argument: str, channel: str) -> None:
        state = await self.player.get_transport_state()
        if state == TransportState.PLAYING:
            await self._say("A song is already playing!", channel)
            return

        if not await self.player.play():
            await self._say("Sorry! Unable to play the song! :(", channel)
            return

        track = await self.player.get_current_track()
        if not track.has_track:
            await self._say("There is no currently selected song to play!", channel)
            return

        verb = "Started" if state == TransportState.STOPPED else "Resumed"
        await self._say(
            f"{verb} playing: {now_playing(track)} ({format_seconds(track.duration_seconds)})",
            channel,
        )

    async def _halt(
        self,
        channel: str,
        verb: str,
        past_tense: str,
        halt: Callable[[], Awaitable[bool]],
        show_position: bool,
    ) -> None:
        """Shared body of stop and pause: both need a playing song."""
        state = await self.player.get_transport_state()
        if state != TransportState.PLAYING:
            await self._say(f"A song must be playing to {verb}!", channel)
            return

        if not await halt():
            await self._say(f"Sorry! Unable to {verb} the song! :(", channel)
            return

        track = await self.player.get_current_track()
        if not track.has_track:
            await self._say(f"There is no currently selected song to {verb} playing!", channel)
            return

        message = f"{past_tense} playing: {now_playing(track)}"
        if show_position:
            message += (
                f" ({format_seconds(track.position_seconds)}"
                f" / {format_seconds(track.duration_seconds)})"
            )
        await self._say(message, channel)

    async def _stop(self, argument: str, channel: str) -> None:
        await self._halt(channel, "stop", "Stopped", self.player.stop, show_position=False)

    async def _pause(self, argument: str, channel: str) -> None:
        await self._halt(channel, "pause", "Paused", self.player.pause, show_position=True)

    async def _skip(
        self,
        channel: str,
        direction: str,
        skip: Callable[[], Awaitable[bool]],
    ) -> None:
        """Shared body of next and previous."""
        if not await skip():
            await self._say(f"Sorry! Unable to play the {direction} song! :(", channel)
            return

        track = await self.player.get_current_track()
        if not track.has_track:
            no_song = "no song to play next" if direction == "next" else "no previous song to play"
            await self._say(f"There is {no_song}!", channel)
            return

        await self._say(
            f"Now playing {direction} song in playlist: {now_playing(track)}"
            f" ({format_seconds(track.duration_seconds)})",
            channel,
        )

    async def _next(self, argument: str, channel: str) -> None:
        await self._skip(channel, "next", self.player.next)

    async def _previous(self, argument: str, channel: str) -> None:
        await self._skip(channel, "previous", self.player.previous)

    async def _current(self, argument: str, channel: str) -> None:
        track = await self.player.get_current_track()
        state = await self.player.get_transport_state()

        if not track.has_track:
            await self._say("There is no currently selected song!", channel)
            return

        await self._say(
            "\n".join([
                f":notes: Current song: {now_playing(track)}"
                f" ({format_seconds(track.position_seconds)}"
                f" / {format_seconds(track.duration_seconds)}) :notes:",
                f"Current status: *{start_case(state.value)}*",
            ]),
            channel,
        )

    # -- Queue and playlists -------------------------------------------------

    async def _playlist(self, argument: str, channel: str) -> None:
        queue = await self.player.get_queue()
        if not queue.items:
            await self._say("The playlist is empty!", channel)
            return

        songs = [
            f"{number}. {entry.artist} - {entry.title} ({entry.album})"
            for number, entry in enumerate(queue.items, start=1)
        ]

        track = await self.player.get_current_track()
        if track.has_track:
            header = (
                f":notes: Currently playing #{track.queue_position}: {now_playing(track)}"
                f" ({format_seconds(track.position_seconds)}"
                f" / {format_seconds(track.duration_seconds)}) :notes:"
            )
        else:
            header = ":notes: Nothing is currently playing :notes:"

        await self._say("\n".join([header, "```" + "\n".join(songs) + "```"]), channel)

    async def _remove(self, argument: str, channel: str) -> None:
        token = first_token(argument)
        if not token:
            await self._say("You must specify a playlist position to remove!\n!remove <position>", channel)
            return

        position = parse_position(token)
        if position is None:
            await self._say(f"*{token}* is not a number!", channel)
            return

        index = position - 1
        queue = await self.player.get_queue()
        entry = queue.entry_at(index)
        if entry is None:
            await self._say(f"There is no song at position *{position}*", channel)
            return

        await self.player.remove_from_queue(index)
        await self._say(
            f"*{entry.artist}* - *{entry.title} ({entry.album})* has been removed from the playlist",
            channel,
        )

    async def _playlists(self, argument: str, channel: str) -> None:
        playlists = await self.player.get_playlists()
        if not playlists:
            await self._say("There are no saved playlists!", channel)
            return

        titles = [f"{number}. {playlist.title}" for number, playlist in enumerate(playlists, start=1)]
        await self._say(
            "\n".join([
                f":notebook: There are *{len(playlists)}* playlists saved:",
                "```" + "\n".join(titles) + "```",
            ]),
            channel,
        )

    async def _set_playlist(self, argument: str, channel: str) -> None:
        token = first_token(argument)
        if not token:
            await self._say("You must specify a playlist number to load!\n!setplaylist <number>", channel)
            return

        number = parse_position(token)
        if number is None:
            await self._say(f"*{token}* is not a number!", channel)
            return

        index = number - 1
        playlists = await self.player.get_playlists()
        if not 0 <= index < len(playlists):
            await self._say(f"There is no playlist with number *{number}*!", channel)
            return

        playlist = playlists[index]
        result = await self.player.enqueue_saved_playlist(playlist)
        await self._say(
            f":notes: Playlist *{playlist.title}* has been added to the queue at position"
            f" *{result.position}*, the playlist now has *{result.queue_length}* songs :notes:",
            channel,
        )

    async def _create_playlist(self, argument: str, channel: str) -> None:
        if not argument:
            await self._say("You must specify a playlist name!\n!createplaylist <playlist name>", channel)
            return

        limit = self.settings.playlist_name_max
        if len(argument) > limit:
            await self._say(f"Playlist names are limited to *{limit}* characters!", channel)
            return

        await self.player.create_playlist(argument)
        await self._say(f"Playlist *{argument}* successfully created!", channel)

    # -- Play mode and volume ------------------------------------------------

    async def _playmode(self, argument: str, channel: str) -> None:
        current = await self.player.get_play_mode()
        if not argument.strip():
            await self._say(f"Current playmode is set to: *{current.display_name}*", channel)
            return

        mode = PlayMode.parse(argument)
        if mode == current:
            await self._say("The playmode is already set to that!", channel)
            return

        if mode is None:
            available = ", ".join(f"*{m.display_name}*" for m in PlayMode)
            await self._say(
                f"That playmode is not recognised, the available playmodes are: {available}",
                channel,
            )
            return

        await self.player.set_play_mode(mode)
        await self._say(f"Playmode is now set to: *{mode.display_name}*", channel)

    async def _volume(self, argument: str, channel: str) -> None:
        current = await self.player.get_volume()
        token = first_token(argument)
        if not token:
            await self._say(f"Current volume is set to: *{current}%*", channel)
            return

        ceiling = self.settings.volume_max
        step = token.lower()
        if step == "up":
            volume = current + self.settings.volume_interval
        elif step == "down":
            volume = current - self.settings.volume_interval
        else:
            volume = parse_position(token)
            if volume is None or volume > ceiling:
                await self._say(
                    "You can only turn the volume up/down or set it to a value"
                    f" between *0* and *{ceiling}*!",
                    channel,
                )
                return

        # Steps are clamped; the player may already sit above the ceiling
        volume = max(0, min(volume, ceiling))
        await self.player.set_volume(volume)
        await self._say(f"Volume is now set to: *{volume}%*", channel)

    # -- Catalog -------------------------------------------------------------

    async def _search_song(self, argument: str, channel: str) -> None:
        if not argument:
            await self._say("You must specify a song to search for!\n!search <song name>", channel)
            return

        tracks = await self.catalog.search_tracks(argument)
        options = []
        for track in tracks:
            try:
                payload = song_payload(track.uri)
            except ActionPayloadError as e:
                logger.warning("search_result_skipped", uri=track.uri, error=str(e))
                continue
            text = "\n".join([
                f":musical_note: *{track.artist}* - *{track.title}*",
                f":notebook: {track.album}",
                f":clock3: {track.release_date}",
            ])
            options.append((text, payload))

        if not options:
            await self._say("No songs found! :(", channel)
            return

        await self.replies.send_blocks(message_with_buttons(options), channel)

    async def _search_album(self, argument: str, channel: str) -> None:
        if not argument:
            await self._say("You must specify an album to search for!\n!searchalbum <album name>", channel)
            return

        albums = await self.catalog.search_albums(argument)
        if not albums:
            await self._say("No albums found! :(", channel)
            return

        options = [
            (
                "\n".join([
                    f":cd: *{album.artist}* - *{album.title}*",
                    f":musical_note: {album.total_tracks} songs",
                    f":clock3: Released: {album.release_date}",
                ]),
                album.image_url,
            )
            for album in albums
        ]
        await self.replies.send_blocks(message_with_images(options), channel)

    async def _search_playlist(self, argument: str, channel: str) -> None:
        if not argument:
            await self._say(
                "You must specify a playlist to search for!\n!searchplaylist <playlist name>",
                channel,
            )
            return

        playlists = await self.catalog.search_playlists(argument)
        if not playlists:
            await self._say("No playlists found! :(", channel)
            return

        options = [
            (
                "\n".join([
                    f":notebook: *{playlist.title}*",
                    f":bust_in_silhouette: {playlist.owner}",
                    f":musical_note: {playlist.total_tracks} songs",
                ]),
                playlist.image_url,
            )
            for playlist in playlists
        ]
        await self.replies.send_blocks(message_with_images(options), channel)

    async def _add(self, argument: str, channel: str) -> None:
        if not argument:
            await self._say("You must specify a song to search for!\n!add <song name>", channel)
            return

        tracks = await self.catalog.search_tracks(argument)
        if not tracks:
            await self._say("No songs found! :(", channel)
            return

        track = tracks[0]
        result = await self.player.enqueue(track.uri)
        await self.replies.send_blocks(
            message_with_image(queued_message(track, result), track.image_url), channel
        )

    async def _help(self, argument: str, channel: str) -> None:
        width = max(len(usage) for usage, _ in HELP_COMMANDS) + 2
        lines = [pad_right(usage, width) + description for usage, description in HELP_COMMANDS]
        await self._say("Current commands!\n```" + "\n".join(lines) + "```", channel)
