"""Button payloads: encoding and validated decoding.

A payload is ``"<domain>|<action type>|<argument>"``. The only action type
today is ``song``, whose argument is a Spotify track uri of the form
``spotify:track:<id>``.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Union

from .errors import ActionPayloadError, UnknownActionError

ACTION_DOMAIN = "sonos"
PAYLOAD_SEPARATOR = "|"
URI_SEPARATOR = ":"
CATALOG_SERVICE = "spotify"


class ActionType(Enum):
    """Button actions understood by the callback handler."""
    SONG = "song"


@dataclass(frozen=True)
class CatalogUri:
    """A provider-scoped identifier such as ``spotify:track:4uLU6hMCjMI75M1A2tKUQC``."""
    service: str
    kind: str
    item_id: str

    @classmethod
    def parse(cls, uri: str) -> "CatalogUri":
        parts = (uri or "").split(URI_SEPARATOR)
        if len(parts) != 3 or not all(parts):
            raise ActionPayloadError(f"Malformed catalog uri: {uri!r}")
        return cls(*parts)

    def __str__(self) -> str:
        return URI_SEPARATOR.join((self.service, self.kind, self.item_id))


@dataclass(frozen=True)
class SongAction:
    """Queue the referenced track."""
    uri: CatalogUri
    action_type = ActionType.SONG


Action = Union[SongAction]


def encode_action(action: Action) -> str:
    """Build the button value for an action."""
    return PAYLOAD_SEPARATOR.join(
        (ACTION_DOMAIN, action.action_type.value, str(action.uri))
    )


def song_payload(uri: str) -> str:
    """Button value that queues the track ``uri`` when pressed."""
    return encode_action(SongAction(CatalogUri.parse(uri)))


def decode_action(payload: str) -> Action:
    """Decode and validate a button value.

    Raises:
        UnknownActionError: the action type is not one of ActionType
        ActionPayloadError: anything else is wrong with the payload
    """
    parts = (payload or "").split(PAYLOAD_SEPARATOR, 2)
    if len(parts) != 3:
        raise ActionPayloadError(f"Malformed action payload: {payload!r}")

    domain, action_type, argument = parts
    if domain != ACTION_DOMAIN:
        raise ActionPayloadError(f"Payload is not for this app: {domain!r}")

    try:
        kind = ActionType(action_type)
    except ValueError:
        raise UnknownActionError(action_type) from None

    if kind == ActionType.SONG:
        uri = CatalogUri.parse(argument)
        if uri.service != CATALOG_SERVICE or uri.kind != "track":
            raise ActionPayloadError(f"Not a {CATALOG_SERVICE} track uri: {argument!r}")
        return SongAction(uri)

    raise UnknownActionError(action_type)
