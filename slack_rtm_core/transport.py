"""
Slack Web API transport - async HTTP calls with httpx.
"""

import json
import logging
from typing import Any, Dict, Optional

import httpx

from .errors import SlackApiError

logger = logging.getLogger(__name__)

API_URL = "https://slack.com/api/"


def encode_params(params: Dict[str, Any]) -> Dict[str, Any]:
    """
    Prepare parameters for the query string.

    Lists and dicts (``attachments``, ``blocks``) are JSON-encoded, None is
    dropped, everything else is passed through for httpx to stringify.
    """
    encoded = {}
    for key, value in params.items():
        if value is None:
            continue
        if isinstance(value, (dict, list, tuple)):
            encoded[key] = json.dumps(value)
        else:
            encoded[key] = value
    return encoded


class SlackWebClient:
    """Calls Web API methods with the bot token."""

    def __init__(
        self,
        token: Optional[str],
        api_url: str = API_URL,
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.token = token
        self.api_url = api_url if api_url.endswith("/") else api_url + "/"
        self.client = client or httpx.AsyncClient(timeout=timeout)

    async def call(self, method: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Call ``method`` and return the decoded response body.

        Raises SlackApiError when the response is not 2xx or the body says
        ``ok: false``.
        """
        headers = {"Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"

        response = await self.client.get(
            self.api_url + method,
            headers=headers,
            params=encode_params(params or {}),
        )

        try:
            data = response.json()
        except ValueError:
            data = {"ok": False, "error": response.text}

        if not response.is_success or (isinstance(data, dict) and data.get("ok") is False):
            logger.warning(f"Slack API error in {method}: {data.get('error') if isinstance(data, dict) else data}")
            raise SlackApiError(data, response.status_code)

        logger.debug(f"Slack API {method} succeeded")
        return data

    async def aclose(self):
        await self.client.aclose()
