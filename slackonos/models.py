"""Data models shared by the dispatcher and its collaborators."""

from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

from .formatting import lower_case, screaming_snake_case


class TransportState(Enum):
    """Normalized Sonos transport states."""
    PLAYING = "playing"
    STOPPED = "stopped"
    PAUSED = "paused"
    TRANSITIONING = "transitioning"
    NO_MEDIA = "no_media"
    UNKNOWN = "unknown"

    @classmethod
    def from_device(cls, value: str) -> "TransportState":
        """Map a UPnP ``CurrentTransportState`` value onto the enum."""
        return _DEVICE_STATES.get((value or "").upper(), cls.UNKNOWN)


_DEVICE_STATES = {
    "PLAYING": TransportState.PLAYING,
    "STOPPED": TransportState.STOPPED,
    "PAUSED_PLAYBACK": TransportState.PAUSED,
    "TRANSITIONING": TransportState.TRANSITIONING,
    "NO_MEDIA_PRESENT": TransportState.NO_MEDIA,
}


class PlayMode(Enum):
    """Sonos play modes, valued with the device's own names."""
    NORMAL = "NORMAL"
    REPEAT_ONE = "REPEAT_ONE"
    REPEAT_ALL = "REPEAT_ALL"
    SHUFFLE = "SHUFFLE"
    SHUFFLE_NOREPEAT = "SHUFFLE_NOREPEAT"
    SHUFFLE_REPEAT_ONE = "SHUFFLE_REPEAT_ONE"

    @classmethod
    def parse(cls, text: str) -> Optional["PlayMode"]:
        """Resolve user text ignoring case and word separators.

        Returns None when the text names none of the modes.
        """
        try:
            return cls(screaming_snake_case(text))
        except ValueError:
            return None

    @property
    def display_name(self) -> str:
        return lower_case(self.value)


@dataclass
class ChatEvent:
    """Inbound chat message."""
    text: str
    channel: str


@dataclass
class Command:
    """A chat message split into its keyword and argument."""
    keyword: str
    argument: str = ""


@dataclass(frozen=True)
class TrackResult:
    """A Spotify track search hit."""
    title: str
    artist: str
    album: str
    release_date: str
    uri: str
    image_url: Optional[str] = None


@dataclass(frozen=True)
class AlbumResult:
    """A Spotify album search hit."""
    title: str
    artist: str
    release_date: str
    total_tracks: int
    uri: str
    image_url: Optional[str] = None


@dataclass(frozen=True)
class PlaylistResult:
    """A Spotify playlist search hit."""
    title: str
    owner: str
    total_tracks: int
    uri: str
    image_url: Optional[str] = None


@dataclass
class QueueEntry:
    """One item of the player queue."""
    title: str
    artist: str
    album: str


@dataclass
class SavedPlaylist:
    """A playlist saved on the player."""
    title: str
    uri: str


@dataclass
class PlaybackSnapshot:
    """What the player reports as the current track."""
    artist: str
    title: str
    position_seconds: int = 0
    duration_seconds: int = 0
    queue_position: int = 0

    @property
    def has_track(self) -> bool:
        return bool(self.artist and self.title)


@dataclass
class EnqueueResult:
    """Queue placement echoed back by the player after an enqueue."""
    position: int
    queue_length: int


@dataclass
class Queue:
    """The player queue in storage order."""
    items: List[QueueEntry]

    def entry_at(self, index: int) -> Optional[QueueEntry]:
        """Return the entry at a 0-based storage index, or None."""
        if 0 <= index < len(self.items):
            return self.items[index]
        return None
