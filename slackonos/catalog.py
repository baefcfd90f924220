"""Spotify catalog search."""

import asyncio
from typing import Any, Callable, Dict, List, Optional

import requests
import spotipy
import structlog
from spotipy.exceptions import SpotifyException
from spotipy.oauth2 import SpotifyClientCredentials, SpotifyOauthError

from .errors import CatalogError
from .models import AlbumResult, PlaylistResult, TrackResult

logger = structlog.get_logger()


def _first_artist(item: Dict[str, Any]) -> str:
    artists = item.get("artists") or []
    return artists[0].get("name", "") if artists else ""


def _image(images: Optional[List[Dict[str, Any]]], index: int) -> Optional[str]:
    """URL of images[index], falling back to the last image available."""
    if not images:
        return None
    return images[min(index, len(images) - 1)].get("url")


def track_from_item(item: Dict[str, Any]) -> TrackResult:
    """Normalize a Spotify track object."""
    album = item.get("album") or {}
    return TrackResult(
        title=item.get("name", ""),
        artist=_first_artist(item),
        album=album.get("name", ""),
        release_date=album.get("release_date", ""),
        uri=item.get("uri", ""),
        # Spotify lists album art largest first; the 64px copy suits a chat thumbnail
        image_url=_image(album.get("images"), 2),
    )


def album_from_item(item: Dict[str, Any]) -> AlbumResult:
    """Normalize a Spotify album object."""
    return AlbumResult(
        title=item.get("name", ""),
        artist=_first_artist(item),
        release_date=item.get("release_date", ""),
        total_tracks=int(item.get("total_tracks") or 0),
        uri=item.get("uri", ""),
        image_url=_image(item.get("images"), 2),
    )


def playlist_from_item(item: Dict[str, Any]) -> PlaylistResult:
    """Normalize a Spotify playlist object."""
    owner = item.get("owner") or {}
    tracks = item.get("tracks") or {}
    return PlaylistResult(
        title=item.get("name", ""),
        owner=owner.get("display_name") or owner.get("id", ""),
        total_tracks=int(tracks.get("total") or 0),
        uri=item.get("uri", ""),
        image_url=_image(item.get("images"), 0),
    )


class SpotifyCatalog:
    """Searches Spotify with client-credentials auth."""

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        market: str = "US",
        limit: int = 5,
        client: Optional[spotipy.Spotify] = None,
    ):
        """
        Initialize the catalog.

        Args:
            client_id: Spotify application id
            client_secret: Spotify application secret
            market: ISO country code results must be playable in
            limit: Maximum results per search
            client: Pre-built spotipy client (tests)
        """
        self.market = market
        self.limit = limit
        self._sp = client or spotipy.Spotify(
            auth_manager=SpotifyClientCredentials(
                client_id=client_id, client_secret=client_secret
            )
        )

    async def _run(self, fn: Callable[..., Any], *args, **kwargs) -> Any:
        """Run a blocking spotipy call in a worker thread."""
        try:
            return await asyncio.to_thread(fn, *args, **kwargs)
        except (SpotifyException, SpotifyOauthError, requests.exceptions.RequestException) as e:
            logger.error(
                "spotify_request_failed",
                status=getattr(e, "http_status", None),
                error=str(e),
                error_type=type(e).__name__,
            )
            raise CatalogError(str(e)) from e

    async def _search(self, query: str, search_type: str) -> List[Dict[str, Any]]:
        results = await self._run(
            self._sp.search, q=query, type=search_type, limit=self.limit, market=self.market
        )
        section = (results or {}).get(f"{search_type}s") or {}
        # Spotify pads some result pages with nulls
        items = [item for item in section.get("items") or [] if item]
        logger.info("spotify_search", type=search_type, query=query[:50], results=len(items))
        return items

    async def search_tracks(self, query: str) -> List[TrackResult]:
        return [track_from_item(item) for item in await self._search(query, "track")]

    async def search_albums(self, query: str) -> List[AlbumResult]:
        return [album_from_item(item) for item in await self._search(query, "album")]

    async def search_playlists(self, query: str) -> List[PlaylistResult]:
        return [playlist_from_item(item) for item in await self._search(query, "playlist")]

    async def get_track(self, track_id: str) -> TrackResult:
        """Fetch one track by its Spotify id."""
        item = await self._run(self._sp.track, track_id, market=self.market)
        if not item:
            raise CatalogError(f"Track {track_id} not found")
        return track_from_item(item)
