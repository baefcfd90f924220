"""Sonos UPnP controller for a single zone player."""

import asyncio
import xml.etree.ElementTree as ET
from typing import Dict, List, Optional
from urllib.parse import quote
from xml.sax.saxutils import escape

import aiohttp
import structlog

from .errors import SonosError
from .models import (
    EnqueueResult,
    PlaybackSnapshot,
    PlayMode,
    Queue,
    QueueEntry,
    SavedPlaylist,
    TransportState,
)

logger = structlog.get_logger()

AV_TRANSPORT = ("/MediaRenderer/AVTransport/Control", "urn:schemas-upnp-org:service:AVTransport:1")
RENDERING_CONTROL = ("/MediaRenderer/RenderingControl/Control", "urn:schemas-upnp-org:service:RenderingControl:1")
CONTENT_DIRECTORY = ("/MediaServer/ContentDirectory/Control", "urn:schemas-upnp-org:service:ContentDirectory:1")

SOAP_ENVELOPE = (
    '<?xml version="1.0" encoding="utf-8"?>'
    '<s:Envelope xmlns:s="http://schemas.xmlsoap.org/soap/envelope/" '
    's:encodingStyle="http://schemas.xmlsoap.org/soap/encoding/">'
    '<s:Body><u:{action} xmlns:u="{service}">{arguments}</u:{action}></s:Body>'
    '</s:Envelope>'
)

DIDL_NS = {
    "didl": "urn:schemas-upnp-org:metadata-1-0/DIDL-Lite/",
    "dc": "http://purl.org/dc/elements/1.1/",
    "upnp": "urn:schemas-upnp-org:metadata-1-0/upnp/",
}

# Sonos service descriptors for Spotify; the player rejects tracks whose
# descriptor does not match the account region.
SPOTIFY_REGION_US = "3079"
SPOTIFY_REGION_EU = "2311"

SPOTIFY_TRACK_METADATA = (
    '<DIDL-Lite xmlns:dc="http://purl.org/dc/elements/1.1/" '
    'xmlns:upnp="urn:schemas-upnp-org:metadata-1-0/upnp/" '
    'xmlns:r="urn:schemas-rinconnetworks-com:metadata-1-0/" '
    'xmlns="urn:schemas-upnp-org:metadata-1-0/DIDL-Lite/">'
    '<item id="00032020{encoded_uri}" restricted="true">'
    '<dc:title></dc:title>'
    '<upnp:class>object.item.audioItem.musicTrack</upnp:class>'
    '<desc id="cdudn" nameSpace="urn:schemas-rinconnetworks-com:metadata-1-0/">'
    'SA_RINCON{region}_X_#Svc{region}-0-Token</desc>'
    '</item></DIDL-Lite>'
)

QUEUE_PAGE_SIZE = 100


def parse_duration(value: Optional[str]) -> int:
    """Convert ``H:MM:SS`` (as reported by the player) to seconds."""
    if not value or value == "NOT_IMPLEMENTED":
        return 0
    try:
        seconds = 0
        for part in value.split(":"):
            seconds = seconds * 60 + int(float(part))
        return seconds
    except ValueError:
        return 0


def spotify_region_for_market(market: str) -> str:
    """Only the US market uses the US service descriptor."""
    return SPOTIFY_REGION_US if market.upper() == "US" else SPOTIFY_REGION_EU


def spotify_track_resource(uri: str, region: str) -> Dict[str, str]:
    """Translate ``spotify:track:<id>`` into the player's uri and metadata."""
    encoded = quote(uri, safe="")
    return {
        "uri": f"x-sonos-spotify:{encoded}?sid=9&flags=8224&sn=7",
        "metadata": SPOTIFY_TRACK_METADATA.format(encoded_uri=encoded, region=region),
    }


class SonosController:
    """Controls one Sonos zone player through its SOAP services on port 1400."""

    def __init__(self, ip: str, port: int = 1400, timeout: int = 10, market: str = "US"):
        """
        Initialize the controller.

        Args:
            ip: Address of the zone player
            port: UPnP HTTP port
            timeout: HTTP request timeout in seconds
            market: Spotify market, selects the Spotify service region
        """
        self.base_url = f"http://{ip}:{port}"
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self.spotify_region = spotify_region_for_market(market)
        self._session: Optional[aiohttp.ClientSession] = None

    async def _request(
        self,
        service: tuple,
        action: str,
        arguments: Optional[Dict[str, object]] = None,
    ) -> Optional[Dict[str, str]]:
        """
        Invoke a SOAP action on the player.

        Args:
            service: (control path, service type) pair
            action: SOAP action name, e.g. "Play"
            arguments: Ordered action arguments

        Returns:
            Response arguments by name, or None on error
        """
        path, service_type = service
        body = SOAP_ENVELOPE.format(
            action=action,
            service=service_type,
            arguments="".join(
                f"<{name}>{escape(str(value))}</{name}>"
                for name, value in (arguments or {}).items()
            ),
        )
        headers = {
            "Content-Type": 'text/xml; charset="utf-8"',
            "SOAPAction": f'"{service_type}#{action}"',
        }
        try:
            if self._session is None or self._session.closed:
                self._session = aiohttp.ClientSession(timeout=self.timeout)
            async with self._session.post(
                f"{self.base_url}{path}", data=body.encode("utf-8"), headers=headers
            ) as resp:
                text = await resp.text()
                if resp.status != 200:
                    logger.warning(
                        "sonos_request_failed",
                        action=action,
                        status=resp.status,
                        fault=self._fault_code(text),
                    )
                    return None
                return self._parse_response(text, action)
        except asyncio.TimeoutError:
            logger.error("sonos_timeout", action=action)
            return None
        except aiohttp.ClientError as e:
            logger.error("sonos_client_error", action=action, error=str(e))
            return None

    async def _call(
        self,
        service: tuple,
        action: str,
        arguments: Optional[Dict[str, object]] = None,
    ) -> Dict[str, str]:
        """Like _request, but a failure raises SonosError."""
        response = await self._request(service, action, arguments)
        if response is None:
            raise SonosError(f"Sonos {action} request failed")
        return response

    def _parse_xml(self, xml_str: str) -> Optional[ET.Element]:
        """Parse XML, rejecting DTD/entity declarations."""
        if "<!DOCTYPE" in xml_str or "<!ENTITY" in xml_str:
            logger.error("sonos_xml_rejected_dtd", reason="DTD or ENTITY declaration found")
            return None
        try:
            return ET.fromstring(xml_str)
        except ET.ParseError as e:
            logger.error("sonos_xml_parse_error", error=str(e))
            return None

    def _parse_response(self, xml_str: str, action: str) -> Optional[Dict[str, str]]:
        """Extract ``<u:{action}Response>`` children as a dict."""
        root = self._parse_xml(xml_str)
        if root is None:
            return None
        for element in root.iter():
            if element.tag.endswith(f"{action}Response"):
                return {child.tag.split("}")[-1]: (child.text or "") for child in element}
        logger.error("sonos_response_missing", action=action)
        return None

    def _fault_code(self, xml_str: str) -> str:
        """UPnP error code from a SOAP fault body, if there is one."""
        root = self._parse_xml(xml_str) if xml_str else None
        if root is None:
            return ""
        for element in root.iter():
            if element.tag.endswith("errorCode"):
                return element.text or ""
        return ""

    def _parse_didl(self, didl: str) -> List[ET.Element]:
        """Return the item/container elements of a DIDL-Lite document."""
        # Players answer "NOT_IMPLEMENTED" instead of metadata for some sources
        if not didl or not didl.startswith("<"):
            return []
        root = self._parse_xml(didl)
        if root is None:
            return []
        return [
            child for child in root
            if child.tag.split("}")[-1] in ("item", "container")
        ]

    @staticmethod
    def _didl_text(element: ET.Element, path: str) -> str:
        return element.findtext(path, "", DIDL_NS) or ""

    # -- Transport -----------------------------------------------------------

    async def _transport(self, action: str, **extra) -> bool:
        response = await self._request(AV_TRANSPORT, action, {"InstanceID": 0, **extra})
        if response is not None:
            logger.info("sonos_transport", action=action.lower())
            return True
        return False

    async def play(self) -> bool:
        """Start or resume playback."""
        return await self._transport("Play", Speed=1)

    async def stop(self) -> bool:
        """Stop playback."""
        return await self._transport("Stop")

    async def pause(self) -> bool:
        """Pause playback."""
        return await self._transport("Pause")

    async def next(self) -> bool:
        """Skip to the next queue item."""
        return await self._transport("Next")

    async def previous(self) -> bool:
        """Go back to the previous queue item."""
        return await self._transport("Previous")

    async def get_transport_state(self) -> TransportState:
        """Current transport state."""
        response = await self._call(AV_TRANSPORT, "GetTransportInfo", {"InstanceID": 0})
        return TransportState.from_device(response.get("CurrentTransportState", ""))

    async def get_current_track(self) -> PlaybackSnapshot:
        """
        Fetch the current track and playback position.

        Artist and title are empty when nothing is selected.
        """
        response = await self._call(AV_TRANSPORT, "GetPositionInfo", {"InstanceID": 0})
        snapshot = PlaybackSnapshot(
            artist="",
            title="",
            position_seconds=parse_duration(response.get("RelTime")),
            duration_seconds=parse_duration(response.get("TrackDuration")),
            queue_position=int(response.get("Track") or 0),
        )
        items = self._parse_didl(response.get("TrackMetaData", ""))
        if items:
            item = items[0]
            snapshot.title = self._didl_text(item, "dc:title")
            snapshot.artist = self._didl_text(item, "dc:creator")
        return snapshot

    # -- Play mode and volume ------------------------------------------------

    async def get_play_mode(self) -> PlayMode:
        response = await self._call(AV_TRANSPORT, "GetTransportSettings", {"InstanceID": 0})
        mode = PlayMode.parse(response.get("PlayMode", ""))
        if mode is None:
            raise SonosError(f"Unexpected play mode {response.get('PlayMode')!r}")
        return mode

    async def set_play_mode(self, mode: PlayMode) -> None:
        await self._call(AV_TRANSPORT, "SetPlayMode", {"InstanceID": 0, "NewPlayMode": mode.value})
        logger.info("sonos_play_mode_set", mode=mode.value)

    async def get_volume(self) -> int:
        response = await self._call(
            RENDERING_CONTROL, "GetVolume", {"InstanceID": 0, "Channel": "Master"}
        )
        return int(response.get("CurrentVolume") or 0)

    async def set_volume(self, level: int) -> None:
        """
        Set the master volume.

        Args:
            level: Volume level, clamped to 0-100
        """
        level = max(0, min(100, level))
        await self._call(
            RENDERING_CONTROL,
            "SetVolume",
            {"InstanceID": 0, "Channel": "Master", "DesiredVolume": level},
        )
        logger.info("sonos_volume_set", level=level)

    # -- Queue and playlists -------------------------------------------------

    async def _browse(self, object_id: str) -> List[ET.Element]:
        """Browse all children of a ContentDirectory container, page by page."""
        elements: List[ET.Element] = []
        start = 0
        while True:
            response = await self._call(
                CONTENT_DIRECTORY,
                "Browse",
                {
                    "ObjectID": object_id,
                    "BrowseFlag": "BrowseDirectChildren",
                    "Filter": "dc:title,dc:creator,upnp:album,res",
                    "StartingIndex": start,
                    "RequestedCount": QUEUE_PAGE_SIZE,
                    "SortCriteria": "",
                },
            )
            page = self._parse_didl(response.get("Result", ""))
            elements.extend(page)
            returned = int(response.get("NumberReturned") or 0)
            total = int(response.get("TotalMatches") or 0)
            start += returned
            if returned == 0 or start >= total:
                return elements

    async def get_queue(self) -> Queue:
        """Fetch the whole queue in storage (0-based) order."""
        items = [
            QueueEntry(
                title=self._didl_text(element, "dc:title"),
                artist=self._didl_text(element, "dc:creator"),
                album=self._didl_text(element, "upnp:album"),
            )
            for element in await self._browse("Q:0")
        ]
        return Queue(items=items)

    async def remove_from_queue(self, index: int) -> None:
        """
        Remove one queue item.

        Args:
            index: 0-based storage index of the item
        """
        if index < 0:
            raise SonosError(f"Invalid queue index {index}")
        # Queue object ids are numbered from 1 on the player
        await self._call(
            AV_TRANSPORT,
            "RemoveTrackFromQueue",
            {"InstanceID": 0, "ObjectID": f"Q:0/{index + 1}", "UpdateID": 0},
        )
        logger.info("sonos_queue_item_removed", index=index)

    async def _add_to_queue(self, uri: str, metadata: str) -> EnqueueResult:
        response = await self._call(
            AV_TRANSPORT,
            "AddURIToQueue",
            {
                "InstanceID": 0,
                "EnqueuedURI": uri,
                "EnqueuedURIMetaData": metadata,
                "DesiredFirstTrackNumberEnqueued": 0,
                "EnqueueAsNext": 0,
            },
        )
        result = EnqueueResult(
            position=int(response.get("FirstTrackNumberEnqueued") or 0),
            queue_length=int(response.get("NewQueueLength") or 0),
        )
        logger.info("sonos_enqueued", position=result.position, queue_length=result.queue_length)
        return result

    async def enqueue(self, uri: str) -> EnqueueResult:
        """Append a Spotify track to the end of the queue."""
        resource = spotify_track_resource(uri, self.spotify_region)
        return await self._add_to_queue(resource["uri"], resource["metadata"])

    async def enqueue_saved_playlist(self, playlist: SavedPlaylist) -> EnqueueResult:
        """Append every track of a saved playlist to the queue."""
        return await self._add_to_queue(playlist.uri, "")

    async def get_playlists(self) -> List[SavedPlaylist]:
        """Playlists saved on the player (Sonos favourites are not included)."""
        return [
            SavedPlaylist(
                title=self._didl_text(element, "dc:title"),
                uri=self._didl_text(element, "didl:res"),
            )
            for element in await self._browse("SQ:")
        ]

    async def create_playlist(self, name: str) -> None:
        """Create an empty saved playlist."""
        await self._call(
            AV_TRANSPORT,
            "CreateSavedQueue",
            {"InstanceID": 0, "Title": name, "EnqueuedURI": "", "EnqueuedURIMetaData": ""},
        )
        logger.info("sonos_playlist_created", name=name)

    async def close(self) -> None:
        """Close the shared HTTP session."""
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None
