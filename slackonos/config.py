"""Configuration loading for slackonos."""

import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import structlog
import yaml

logger = structlog.get_logger()

DEFAULT_CONFIG_PATH = Path(__file__).resolve().parent.parent / "config" / "settings.yaml"


class Config:
    """Settings from ``config/settings.yaml`` plus secrets from the environment."""

    def __init__(self, path: Optional[Path] = None, env: Optional[Dict[str, str]] = None):
        self.path = Path(path or os.environ.get("SLACKONOS_CONFIG", DEFAULT_CONFIG_PATH))
        self.env = env if env is not None else dict(os.environ)
        self.settings: Dict[str, Any] = self._load(self.path)

    @staticmethod
    def _load(path: Path) -> Dict[str, Any]:
        if not path.exists():
            logger.warning("config_file_missing", path=str(path))
            return {}
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError(f"{path} must contain a mapping at the top level")
        return data

    def _section(self, name: str) -> Dict[str, Any]:
        return self.settings.get(name) or {}

    # -- Slack ---------------------------------------------------------------

    @property
    def slack_bot_token(self) -> str:
        return self.env.get("SLACK_BOT_TOKEN", "")

    @property
    def channels(self) -> List[str]:
        return list(self._section("slack").get("channels", []))

    # -- Sonos ---------------------------------------------------------------

    @property
    def sonos_ip(self) -> str:
        return self.env.get("SONOS_IP") or self._section("sonos").get("ip", "")

    @property
    def sonos_port(self) -> int:
        return int(self._section("sonos").get("port", 1400))

    @property
    def sonos_timeout(self) -> int:
        return int(self._section("sonos").get("timeout", 10))

    @property
    def volume_interval(self) -> int:
        return int(self._section("volume").get("interval", 5))

    @property
    def volume_max(self) -> int:
        return int(self._section("volume").get("max", 75))

    @property
    def playlist_name_max(self) -> int:
        return int(self.settings.get("playlist_name_max", 30))

    # -- Spotify -------------------------------------------------------------

    @property
    def spotify_client_id(self) -> str:
        return self.env.get("SPOTIFY_CLIENT_ID", "")

    @property
    def spotify_client_secret(self) -> str:
        return self.env.get("SPOTIFY_CLIENT_SECRET", "")

    @property
    def spotify_market(self) -> str:
        return str(self._section("spotify").get("market", "US")).upper()

    @property
    def spotify_search_limit(self) -> int:
        return int(self._section("spotify").get("search_limit", 5))

    # -- HTTP server ---------------------------------------------------------

    @property
    def server_host(self) -> str:
        return self._section("server").get("host", "0.0.0.0")

    @property
    def server_port(self) -> int:
        return int(self._section("server").get("port", 3000))

    def validate(self) -> None:
        """Raise ValueError naming every missing required setting."""
        missing = []
        if not self.slack_bot_token:
            missing.append("SLACK_BOT_TOKEN")
        if not self.spotify_client_id:
            missing.append("SPOTIFY_CLIENT_ID")
        if not self.spotify_client_secret:
            missing.append("SPOTIFY_CLIENT_SECRET")
        if not self.sonos_ip:
            missing.append("sonos.ip")
        if not self.channels:
            missing.append("slack.channels")
        if missing:
            raise ValueError(f"Missing required configuration: {', '.join(missing)}")
        if not 0 <= self.volume_max <= 100:
            raise ValueError("volume.max must be between 0 and 100")


_config: Optional[Config] = None


def get_config() -> Config:
    """Return the process-wide Config, loading it on first use."""
    global _config
    if _config is None:
        _config = Config()
    return _config
