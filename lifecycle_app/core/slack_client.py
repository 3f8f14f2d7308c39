"""Slack Web API client for direct messages and admin/status channel posts."""

from __future__ import annotations

import logging
from typing import Any

import requests

from .config import SLACK_API_URL, SLACK_CHANNEL_ROLES
from .errors import DeliveryError

logger = logging.getLogger(__name__)


class SlackClient:
    def __init__(
        self,
        token: str,
        channels: dict[str, str] | None = None,
        *,
        api_url: str = SLACK_API_URL,
        session: requests.Session | None = None,
        timeout: float = 30.0,
    ):
        self.api_url = api_url.rstrip("/")
        self.channels = dict(channels or {})
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers["Authorization"] = f"Bearer {token}"
        # e-mail -> Slack user id
        self._user_ids: dict[str, str] = {}

    def _call(self, method: str, *, params: dict[str, Any] | None = None, json: dict[str, Any] | None = None):
        url = f"{self.api_url}/{method}"
        try:
            if json is None:
                resp = self.session.get(url, params=params, timeout=self.timeout)
            else:
                resp = self.session.post(url, json=json, timeout=self.timeout)
            resp.raise_for_status()
            data = resp.json()
        except (requests.RequestException, ValueError) as exc:
            raise DeliveryError(f"{method} failed: {exc}") from exc
        if not data.get("ok"):
            raise DeliveryError(f"{method} failed: {data.get('error', 'unknown error')}")
        return data

    def user_id(self, email: str) -> str:
        if email not in self._user_ids:
            data = self._call("users.lookupByEmail", params={"email": email})
            self._user_ids[email] = data["user"]["id"]
        return self._user_ids[email]

    def post(self, channel: str, text: str) -> None:
        self._call("chat.postMessage", json={"channel": channel, "text": text, "mrkdwn": True})

    def message_user(self, email: str, text: str) -> None:
        """Send ``text`` as a direct message to the Slack user owning ``email``."""
        if not email:
            raise DeliveryError("no recipient")
        self.post(self.user_id(email), text)
        logger.debug("Message delivered to %s", email)

    def message_channel(self, role: str, text: str) -> None:
        if role not in SLACK_CHANNEL_ROLES:
            raise ValueError(f"unknown channel role {role!r}")
        channel = self.channels.get(role)
        if not channel:
            raise DeliveryError(f"no Slack channel configured for {role!r}")
        self.post(channel, text)

    def message_admin_channel(self, text: str) -> None:
        self.message_channel("admin", text)

    def message_status_channel(self, text: str) -> None:
        self.message_channel("status", text)
