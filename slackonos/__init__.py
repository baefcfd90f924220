"""Slack-driven Sonos controller with Spotify search."""

__version__ = "1.0.0"
