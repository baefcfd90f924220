"""Tests for the chat command dispatcher."""

from unittest.mock import MagicMock

import pytest

from slackonos.catalog import SpotifyCatalog
from slackonos.dispatcher import (
    CommandDispatcher,
    CommandSettings,
    parse_command,
    parse_position,
)
from slackonos.errors import CatalogError, SlackAPIError, SonosError
from slackonos.models import (
    ChatEvent,
    EnqueueResult,
    PlaybackSnapshot,
    PlayMode,
    Queue,
    QueueEntry,
    SavedPlaylist,
    TrackResult,
    TransportState,
)
from slackonos.slack_client import SlackClient
from slackonos.sonos_controller import SonosController

MUTATING_CALLS = [
    "play",
    "stop",
    "pause",
    "next",
    "previous",
    "set_play_mode",
    "set_volume",
    "remove_from_queue",
    "enqueue",
    "enqueue_saved_playlist",
    "create_playlist",
]

TRACK = TrackResult(
    title="Everlong",
    artist="Foo Fighters",
    album="The Colour and the Shape",
    release_date="1997-05-20",
    uri="spotify:track:5UWwZ5lm5PKu6eKsHAGxOk",
    image_url="https://i.scdn.co/image/small",
)


@pytest.fixture
def player():
    p = MagicMock(spec=SonosController)
    p.get_transport_state.return_value = TransportState.PAUSED
    p.play.return_value = True
    p.stop.return_value = True
    p.pause.return_value = True
    p.next.return_value = True
    p.previous.return_value = True
    p.get_current_track.return_value = PlaybackSnapshot(
        artist="Daft Punk", title="One More Time",
        position_seconds=65, duration_seconds=320, queue_position=2,
    )
    p.get_queue.return_value = Queue(items=[
        QueueEntry("Around the World", "Daft Punk", "Homework"),
        QueueEntry("One More Time", "Daft Punk", "Discovery"),
        QueueEntry("Digital Love", "Daft Punk", "Discovery"),
    ])
    p.get_playlists.return_value = [
        SavedPlaylist("Friday", "file:///jffs/settings/savedqueues.rsq#3"),
        SavedPlaylist("Focus", "file:///jffs/settings/savedqueues.rsq#7"),
    ]
    p.get_play_mode.return_value = PlayMode.NORMAL
    p.get_volume.return_value = 40
    p.enqueue.return_value = EnqueueResult(position=4, queue_length=4)
    p.enqueue_saved_playlist.return_value = EnqueueResult(position=4, queue_length=15)
    return p


@pytest.fixture
def catalog():
    c = MagicMock(spec=SpotifyCatalog)
    c.search_tracks.return_value = [TRACK]
    c.search_albums.return_value = []
    c.search_playlists.return_value = []
    return c


@pytest.fixture
def replies():
    r = MagicMock(spec=SlackClient)
    r.get_channel_name.return_value = "music"
    return r


@pytest.fixture
def dispatcher(player, catalog, replies):
    settings = CommandSettings(
        channels=("music",), volume_interval=5, volume_max=100, playlist_name_max=10
    )
    return CommandDispatcher(player, catalog, replies, settings)


async def send(dispatcher, text):
    await dispatcher.handle(ChatEvent(text=text, channel="C123"))


def last_reply(replies):
    args, _ = replies.send_message.call_args
    return args[0]


def assert_no_mutation(player):
    for name in MUTATING_CALLS:
        getattr(player, name).assert_not_called()


class TestParseCommand:
    def test_plain_chatter_is_not_a_command(self):
        assert parse_command("hello there") is None

    def test_empty_text_is_not_a_command(self):
        assert parse_command("") is None
        assert parse_command(None) is None

    def test_keyword_is_lowercased_argument_verbatim(self):
        command = parse_command("!SEARCH Bohemian  Rhapsody")
        assert command.keyword == "search"
        assert command.argument == "Bohemian  Rhapsody"

    def test_keyword_without_argument(self):
        command = parse_command("!play")
        assert command.keyword == "play"
        assert command.argument == ""


class TestParsePosition:
    @pytest.mark.parametrize("token,expected", [("0", 0), ("2", 2), ("12", 12)])
    def test_accepts_bare_digits(self, token, expected):
        assert parse_position(token) == expected

    @pytest.mark.parametrize("token", ["", "-1", "+1", "3.5", "abc", "1e3", "²"])
    def test_rejects_everything_else(self, token):
        assert parse_position(token) is None


class TestRouting:
    @pytest.mark.asyncio
    async def test_ignores_channels_not_on_allow_list(self, dispatcher, replies, player):
        replies.get_channel_name.return_value = "random"
        await send(dispatcher, "!play")
        replies.send_message.assert_not_called()
        player.get_transport_state.assert_not_called()

    @pytest.mark.asyncio
    async def test_ignores_unresolvable_channel(self, dispatcher, replies):
        replies.get_channel_name.return_value = None
        await send(dispatcher, "!play")
        replies.send_message.assert_not_called()

    @pytest.mark.asyncio
    async def test_ignores_non_command_text(self, dispatcher, replies):
        await send(dispatcher, "anyone up for lunch?")
        replies.send_message.assert_not_called()

    @pytest.mark.asyncio
    async def test_unknown_keyword_is_echoed(self, dispatcher, replies):
        await send(dispatcher, "!frobnicate")
        replies.send_message.assert_called_once_with(
            "I'm sorry, but frobnicate is not a command", "C123"
        )

    @pytest.mark.parametrize("synonyms", [
        ("previous", "prev", "back"),
        ("remove", "rem", "del"),
        ("playlist", "list", "songs"),
        ("volume", "vol"),
        ("play", "resume"),
    ])
    def test_synonyms_share_one_route(self, dispatcher, synonyms):
        routes = {id(dispatcher.routes[keyword]) for keyword in synonyms}
        assert len(routes) == 1

    @pytest.mark.asyncio
    async def test_handler_error_becomes_command_specific_apology(self, dispatcher, player, replies):
        player.get_queue.side_effect = SonosError("boom")
        await send(dispatcher, "!playlist")
        replies.send_message.assert_called_once_with(
            "An error occurred trying to get the playlist! :(", "C123"
        )

    @pytest.mark.asyncio
    async def test_failed_apology_does_not_raise(self, dispatcher, player, replies):
        player.get_volume.side_effect = SonosError("boom")
        replies.send_message.side_effect = SlackAPIError("chat.postMessage", "channel_not_found")
        await send(dispatcher, "!volume")
        assert replies.send_message.call_count == 1


class TestTransport:
    @pytest.mark.asyncio
    async def test_play_when_already_playing(self, dispatcher, player, replies):
        player.get_transport_state.return_value = TransportState.PLAYING
        await send(dispatcher, "!play")
        player.play.assert_not_called()
        assert last_reply(replies) == "A song is already playing!"

    @pytest.mark.asyncio
    async def test_play_from_stopped_says_started(self, dispatcher, player, replies):
        player.get_transport_state.return_value = TransportState.STOPPED
        await send(dispatcher, "!play")
        player.play.assert_called_once()
        assert last_reply(replies) == "Started playing: *Daft Punk* - *One More Time* (05:20)"

    @pytest.mark.asyncio
    async def test_play_from_paused_says_resumed(self, dispatcher, replies):
        await send(dispatcher, "!resume")
        assert last_reply(replies).startswith("Resumed playing:")

    @pytest.mark.asyncio
    async def test_play_failure_reported_by_device(self, dispatcher, player, replies):
        player.play.return_value = False
        await send(dispatcher, "!play")
        assert last_reply(replies) == "Sorry! Unable to play the song! :("
        player.get_current_track.assert_not_called()

    @pytest.mark.asyncio
    async def test_play_without_selected_song(self, dispatcher, player, replies):
        player.get_current_track.return_value = PlaybackSnapshot(artist="", title="")
        await send(dispatcher, "!play")
        assert last_reply(replies) == "There is no currently selected song to play!"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("keyword", ["stop", "pause"])
    async def test_stop_and_pause_require_playing(self, dispatcher, player, replies, keyword):
        await send(dispatcher, f"!{keyword}")
        getattr(player, keyword).assert_not_called()
        assert last_reply(replies) == f"A song must be playing to {keyword}!"

    @pytest.mark.asyncio
    async def test_pause_reports_position(self, dispatcher, player, replies):
        player.get_transport_state.return_value = TransportState.PLAYING
        await send(dispatcher, "!pause")
        player.pause.assert_called_once()
        assert last_reply(replies) == "Paused playing: *Daft Punk* - *One More Time* (01:05 / 05:20)"

    @pytest.mark.asyncio
    async def test_stop(self, dispatcher, player, replies):
        player.get_transport_state.return_value = TransportState.PLAYING
        await send(dispatcher, "!stop")
        player.stop.assert_called_once()
        assert last_reply(replies) == "Stopped playing: *Daft Punk* - *One More Time*"

    @pytest.mark.asyncio
    async def test_next(self, dispatcher, player, replies):
        await send(dispatcher, "!next")
        player.next.assert_called_once()
        assert last_reply(replies) == (
            "Now playing next song in playlist: *Daft Punk* - *One More Time* (05:20)"
        )

    @pytest.mark.asyncio
    async def test_previous_failure(self, dispatcher, player, replies):
        player.previous.return_value = False
        await send(dispatcher, "!back")
        assert last_reply(replies) == "Sorry! Unable to play the previous song! :("

    @pytest.mark.asyncio
    async def test_next_past_end_of_queue(self, dispatcher, player, replies):
        player.get_current_track.return_value = PlaybackSnapshot(artist="", title="")
        await send(dispatcher, "!next")
        assert last_reply(replies) == "There is no song to play next!"

    @pytest.mark.asyncio
    async def test_current(self, dispatcher, replies):
        await send(dispatcher, "!current")
        reply = last_reply(replies)
        assert "*Daft Punk* - *One More Time* (01:05 / 05:20)" in reply
        assert "Current status: *Paused*" in reply


class TestReadOnlyCommands:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("text", [
        "!current", "!current please", "!playlist", "!list everything",
        "!playlists", "!volume", "!playmode", "!help",
    ])
    async def test_no_mutating_calls(self, dispatcher, player, replies, text):
        await send(dispatcher, text)
        assert_no_mutation(player)
        replies.send_message.assert_called_once()


class TestPlaylist:
    @pytest.mark.asyncio
    async def test_lists_queue_one_based(self, dispatcher, replies):
        await send(dispatcher, "!playlist")
        reply = last_reply(replies)
        assert reply.startswith(":notes: Currently playing #2: *Daft Punk* - *One More Time*")
        assert "1. Daft Punk - Around the World (Homework)" in reply
        assert "3. Daft Punk - Digital Love (Discovery)" in reply

    @pytest.mark.asyncio
    async def test_empty_queue(self, dispatcher, player, replies):
        player.get_queue.return_value = Queue(items=[])
        await send(dispatcher, "!songs")
        assert last_reply(replies) == "The playlist is empty!"

    @pytest.mark.asyncio
    async def test_saved_playlists(self, dispatcher, replies):
        await send(dispatcher, "!playlists")
        reply = last_reply(replies)
        assert "There are *2* playlists saved" in reply
        assert "2. Focus" in reply

    @pytest.mark.asyncio
    async def test_no_saved_playlists(self, dispatcher, player, replies):
        player.get_playlists.return_value = []
        await send(dispatcher, "!playlists")
        assert last_reply(replies) == "There are no saved playlists!"


class TestRemove:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("argument", ["-1", "abc", "3.5"])
    async def test_non_numeric_positions_are_rejected(self, dispatcher, player, replies, argument):
        await send(dispatcher, f"!remove {argument}")
        player.remove_from_queue.assert_not_called()
        player.get_queue.assert_not_called()
        assert last_reply(replies) == f"*{argument}* is not a number!"

    @pytest.mark.asyncio
    async def test_empty_argument_shows_usage(self, dispatcher, player, replies):
        await send(dispatcher, "!remove")
        player.remove_from_queue.assert_not_called()
        assert last_reply(replies).startswith("You must specify a playlist position to remove!")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("position", ["0", "4", "99"])
    async def test_out_of_range_positions(self, dispatcher, player, replies, position):
        await send(dispatcher, f"!rem {position}")
        player.remove_from_queue.assert_not_called()
        assert last_reply(replies) == f"There is no song at position *{position}*"

    @pytest.mark.asyncio
    async def test_removes_second_item(self, dispatcher, player, replies):
        await send(dispatcher, "!remove 2")
        player.remove_from_queue.assert_called_once_with(1)
        assert last_reply(replies) == (
            "*Daft Punk* - *One More Time (Discovery)* has been removed from the playlist"
        )

    @pytest.mark.asyncio
    async def test_only_first_token_counts(self, dispatcher, player):
        await send(dispatcher, "!del 3 please")
        player.remove_from_queue.assert_called_once_with(2)


class TestSetPlaylist:
    @pytest.mark.asyncio
    async def test_loads_saved_playlist_by_number(self, dispatcher, player, replies):
        await send(dispatcher, "!setplaylist 2")
        loaded = player.enqueue_saved_playlist.call_args[0][0]
        assert loaded.title == "Focus"
        assert "*Focus*" in last_reply(replies)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("argument", ["0", "3"])
    async def test_unknown_number(self, dispatcher, player, replies, argument):
        await send(dispatcher, f"!setplaylist {argument}")
        player.enqueue_saved_playlist.assert_not_called()
        assert last_reply(replies) == f"There is no playlist with number *{argument}*!"

    @pytest.mark.asyncio
    async def test_not_a_number(self, dispatcher, player, replies):
        await send(dispatcher, "!setplaylist Friday")
        player.get_playlists.assert_not_called()
        assert last_reply(replies) == "*Friday* is not a number!"


class TestCreatePlaylist:
    @pytest.mark.asyncio
    async def test_requires_name(self, dispatcher, player, replies):
        await send(dispatcher, "!createplaylist")
        player.create_playlist.assert_not_called()
        assert last_reply(replies).startswith("You must specify a playlist name!")

    @pytest.mark.asyncio
    async def test_rejects_long_name(self, dispatcher, player, replies):
        await send(dispatcher, "!createplaylist " + "x" * 11)
        player.create_playlist.assert_not_called()
        assert last_reply(replies) == "Playlist names are limited to *10* characters!"

    @pytest.mark.asyncio
    async def test_creates(self, dispatcher, player, replies):
        await send(dispatcher, "!createplaylist Road Trip")
        player.create_playlist.assert_called_once_with("Road Trip")
        assert last_reply(replies) == "Playlist *Road Trip* successfully created!"


class TestPlaymode:
    @pytest.mark.asyncio
    async def test_reports_current_mode(self, dispatcher, player, replies):
        player.get_play_mode.return_value = PlayMode.SHUFFLE_NOREPEAT
        await send(dispatcher, "!playmode")
        assert last_reply(replies) == "Current playmode is set to: *shuffle norepeat*"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("argument", ["repeat all", "RepeatAll", "repeat_all", "REPEAT-ALL"])
    async def test_normalizes_argument(self, dispatcher, player, argument):
        await send(dispatcher, f"!playmode {argument}")
        player.set_play_mode.assert_called_once_with(PlayMode.REPEAT_ALL)

    @pytest.mark.asyncio
    async def test_already_set(self, dispatcher, player, replies):
        player.get_play_mode.return_value = PlayMode.REPEAT_ONE
        await send(dispatcher, "!playmode repeat one")
        player.set_play_mode.assert_not_called()
        assert last_reply(replies) == "The playmode is already set to that!"

    @pytest.mark.asyncio
    async def test_unknown_mode_lists_all_six(self, dispatcher, player, replies):
        await send(dispatcher, "!playmode party")
        player.set_play_mode.assert_not_called()
        reply = last_reply(replies)
        for name in ("normal", "repeat one", "repeat all", "shuffle",
                     "shuffle norepeat", "shuffle repeat one"):
            assert f"*{name}*" in reply


class TestVolume:
    @pytest.mark.asyncio
    async def test_reports_current_volume(self, dispatcher, player, replies):
        await send(dispatcher, "!vol")
        assert last_reply(replies) == "Current volume is set to: *40%*"
        player.set_volume.assert_not_called()

    @pytest.mark.asyncio
    async def test_above_maximum_is_rejected(self, dispatcher, player, replies):
        await send(dispatcher, "!volume 150")
        player.set_volume.assert_not_called()
        reply = last_reply(replies)
        assert "*0*" in reply and "*100*" in reply

    @pytest.mark.asyncio
    @pytest.mark.parametrize("argument", ["-5", "abc", "12.5", "101", "upp", "+10"])
    async def test_invalid_arguments_never_set(self, dispatcher, player, argument):
        await send(dispatcher, f"!volume {argument}")
        player.set_volume.assert_not_called()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("argument,expected", [("0", 0), ("70", 70), ("100", 100)])
    async def test_absolute_values(self, dispatcher, player, replies, argument, expected):
        await send(dispatcher, f"!volume {argument}")
        player.set_volume.assert_called_once_with(expected)
        assert last_reply(replies) == f"Volume is now set to: *{expected}%*"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("current,argument,expected", [
        (40, "up", 45),
        (40, "DOWN", 35),
        (98, "up", 100),
        (3, "down", 0),
    ])
    async def test_relative_steps_are_clamped(self, dispatcher, player, current, argument, expected):
        player.get_volume.return_value = current
        await send(dispatcher, f"!volume {argument}")
        player.set_volume.assert_called_once_with(expected)


class TestCatalogCommands:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("keyword", ["search", "searchalbum", "searchplaylist", "add"])
    async def test_argument_required(self, dispatcher, catalog, replies, keyword):
        await send(dispatcher, f"!{keyword}")
        assert last_reply(replies).startswith("You must specify")
        catalog.search_tracks.assert_not_called()

    @pytest.mark.asyncio
    async def test_search_without_results(self, dispatcher, catalog, replies):
        catalog.search_tracks.return_value = []
        await send(dispatcher, "!search zzzzzz")
        assert last_reply(replies) == "No songs found! :("
        replies.send_blocks.assert_not_called()

    @pytest.mark.asyncio
    async def test_search_renders_buttons(self, dispatcher, catalog, replies):
        second = TrackResult("My Hero", "Foo Fighters", "The Colour and the Shape",
                             "1997-05-20", "spotify:track:4dVbhS6OiYvFikshyaQaCN")
        catalog.search_tracks.return_value = [TRACK, second]
        await send(dispatcher, "!search foo fighters")

        catalog.search_tracks.assert_called_once_with("foo fighters")
        blocks = replies.send_blocks.call_args[0][0]
        assert [b["type"] for b in blocks] == ["section", "divider", "section"]
        assert blocks[0]["accessory"]["value"] == "sonos|song|spotify:track:5UWwZ5lm5PKu6eKsHAGxOk"
        assert "*Foo Fighters* - *Everlong*" in blocks[0]["text"]["text"]
        replies.send_message.assert_not_called()

    @pytest.mark.asyncio
    async def test_search_skips_result_with_unusable_uri(self, dispatcher, catalog, replies):
        local = TrackResult("Demo", "Foo Fighters", "", "", "spotify:local:Foo+Fighters::Demo:200")
        catalog.search_tracks.return_value = [local, TRACK]
        await send(dispatcher, "!search foo fighters")

        blocks = replies.send_blocks.call_args[0][0]
        assert len(blocks) == 1
        assert blocks[0]["accessory"]["value"] == "sonos|song|spotify:track:5UWwZ5lm5PKu6eKsHAGxOk"
        replies.send_message.assert_not_called()

    @pytest.mark.asyncio
    async def test_search_with_only_unusable_results(self, dispatcher, catalog, replies):
        catalog.search_tracks.return_value = [
            TrackResult("Demo", "Foo Fighters", "", "", ""),
        ]
        await send(dispatcher, "!search foo fighters")

        assert last_reply(replies) == "No songs found! :("
        replies.send_blocks.assert_not_called()

    @pytest.mark.asyncio
    async def test_search_album_without_results(self, dispatcher, replies):
        await send(dispatcher, "!searchalbum nothing")
        assert last_reply(replies) == "No albums found! :("

    @pytest.mark.asyncio
    async def test_search_playlist_error(self, dispatcher, catalog, replies):
        catalog.search_playlists.side_effect = CatalogError("rate limited")
        await send(dispatcher, "!searchplaylist chill")
        assert last_reply(replies) == "An error occurred trying to search for the playlist! :("

    @pytest.mark.asyncio
    async def test_add_queues_first_result(self, dispatcher, catalog, player, replies):
        second = TrackResult("My Hero", "Foo Fighters", "X", "1997", "spotify:track:other")
        catalog.search_tracks.return_value = [TRACK, second]
        await send(dispatcher, "!add everlong")

        player.enqueue.assert_called_once_with(TRACK.uri)
        blocks, channel = replies.send_blocks.call_args[0]
        assert channel == "C123"
        text = blocks[0]["text"]["text"]
        assert "*Foo Fighters* - *Everlong (The Colour and the Shape)*" in text
        assert "Position *4* out of *4*" in text
        assert blocks[0]["accessory"]["image_url"] == TRACK.image_url
        replies.update_message.assert_not_called()

    @pytest.mark.asyncio
    async def test_add_without_results(self, dispatcher, catalog, player, replies):
        catalog.search_tracks.return_value = []
        await send(dispatcher, "!add nothing")
        player.enqueue.assert_not_called()
        assert last_reply(replies) == "No songs found! :("
