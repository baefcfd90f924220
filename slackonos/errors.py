"""Exception types raised by slackonos collaborators."""


class SlackonosError(Exception):
    """Base class for all slackonos errors."""


class SonosError(SlackonosError):
    """The Sonos player rejected a request or could not be reached."""


class CatalogError(SlackonosError):
    """The Spotify catalog request failed."""


class SlackAPIError(SlackonosError):
    """Slack Web API returned an error or could not be reached."""

    def __init__(self, method: str, error: str):
        super().__init__(f"{method} failed: {error}")
        self.method = method
        self.error = error


class ActionPayloadError(SlackonosError):
    """A button payload could not be decoded."""


class UnknownActionError(ActionPayloadError):
    """A button payload named an action type nobody handles."""

    def __init__(self, action_type: str):
        super().__init__(f"Unknown action type: {action_type}")
        self.action_type = action_type
