"""
Exception hierarchy for slack-rtm-core.
"""

from typing import Any, Dict, Optional


class SlackRTMError(Exception):
    """Base class for errors raised by the bot runtime."""


class NotConnectedError(SlackRTMError):
    """A real-time call was made before the duplex channel was open."""


class UnresolvableReference(SlackRTMError, LookupError):
    """A name or id could not be resolved against the roster."""

    def __init__(self, token: str):
        super().__init__(f"Could not resolve {token!r} to a user, channel, group or IM")
        self.token = token


class RemoteError(SlackRTMError):
    """The service answered a call with a failure.

    The full reply is kept on ``payload`` so callers can inspect it.
    """

    def __init__(self, payload: Dict[str, Any], message: Optional[str] = None):
        self.payload = payload
        self.error = payload.get("error") if isinstance(payload, dict) else None
        super().__init__(message or f"Slack returned an error: {self.error or payload}")


class SlackApiError(RemoteError):
    """A web API call failed at the HTTP level or returned ``ok: false``."""

    def __init__(self, payload: Dict[str, Any], status_code: int):
        self.status_code = status_code
        super().__init__(
            payload,
            f"Slack API error (HTTP {status_code}): "
            f"{payload.get('error') if isinstance(payload, dict) else payload}",
        )


class HookVeto(SlackRTMError):
    """Raised by a hook handler to reject the operation it is guarding."""
