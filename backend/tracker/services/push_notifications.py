from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol

import httpx
from google.auth.exceptions import GoogleAuthError
from google.auth.transport.requests import Request
from google.oauth2 import service_account

from tracker.core.config import Settings
from tracker.core.exceptions import ChannelFailure, PermanentChannelFailure, TransientChannelFailure

logger = logging.getLogger(__name__)

# FCM API endpoint
FCM_API_URL = "https://fcm.googleapis.com/v1/projects/{project_id}/messages:send"

# OAuth2 scopes required for FCM
FCM_SCOPES = ["https://www.googleapis.com/auth/firebase.messaging"]

# FCM error codes meaning the registration token will never work again
PERMANENT_FCM_ERRORS = {"UNREGISTERED"}


@dataclass
class PushResult:
    token: str
    success: bool
    # True when the token is invalid for good and should be pruned
    permanent: bool = False
    error: Optional[str] = None


class PushTransport(Protocol):
    async def send_multicast(
        self,
        tokens: Sequence[str],
        title: str,
        body: str,
        link: Optional[str] = None,
    ) -> list[PushResult]:
        """Send one notification to many tokens, reporting the outcome per token."""


def _fcm_error_code(response: httpx.Response) -> Optional[str]:
    try:
        payload = response.json()
    except ValueError:
        return None
    error = payload.get("error") if isinstance(payload, dict) else None
    if not isinstance(error, dict):
        return None
    for detail in error.get("details") or []:
        if isinstance(detail, dict) and detail.get("errorCode"):
            return detail["errorCode"]
    return error.get("status")


def build_fcm_message(token: str, title: str, body: str, link: Optional[str] = None) -> Dict[str, Any]:
    message: Dict[str, Any] = {
        "message": {
            "token": token,
            "notification": {
                "title": title,
                "body": body,
            },
        }
    }
    if link:
        # Web clients open the link on click; mobile clients read it from data
        message["message"]["webpush"] = {"fcm_options": {"link": link}}
        message["message"]["data"] = {"link": link}
    return message


class FcmPushTransport:
    """Push delivery through the FCM HTTP v1 API.

    HTTP v1 has no batch endpoint, so a multicast is one request per token,
    issued concurrently over a shared client.
    """

    def __init__(
        self,
        *,
        project_id: str,
        credentials: service_account.Credentials,
        request_timeout: float = 10.0,
    ) -> None:
        self.project_id = project_id
        self.credentials = credentials
        self.request_timeout = request_timeout

    def _get_access_token(self) -> str:
        if not self.credentials.valid:
            self.credentials.refresh(Request())
        return self.credentials.token

    async def _post(self, client: httpx.AsyncClient, url: str, access_token: str, message: Dict[str, Any]) -> None:
        token = message["message"]["token"]
        headers = {
            "Authorization": f"Bearer {access_token}",
            "Content-Type": "application/json",
        }
        try:
            response = await client.post(url, json=message, headers=headers)
        except httpx.TimeoutException as exc:
            raise TransientChannelFailure(f"FCM request timed out for token {token[:20]}...") from exc
        except httpx.HTTPError as exc:
            raise TransientChannelFailure(f"FCM request failed: {exc}") from exc

        if response.status_code == 200:
            return
        error_code = _fcm_error_code(response)
        if response.status_code in (404, 410) or error_code in PERMANENT_FCM_ERRORS:
            raise PermanentChannelFailure(
                f"FCM token invalid (status {response.status_code}, {error_code})",
                token=token,
            )
        if response.status_code == 401:
            # Credentials issue
            logger.error("FCM authentication failed (status %s): %s", response.status_code, response.text)
        raise TransientChannelFailure(f"FCM request failed (status {response.status_code}, {error_code})")

    async def _send_one(
        self,
        client: httpx.AsyncClient,
        url: str,
        access_token: str,
        token: str,
        title: str,
        body: str,
        link: Optional[str],
    ) -> PushResult:
        try:
            await self._post(client, url, access_token, build_fcm_message(token, title, body, link))
        except PermanentChannelFailure as exc:
            return PushResult(token=token, success=False, permanent=True, error=str(exc))
        except ChannelFailure as exc:
            return PushResult(token=token, success=False, error=str(exc))
        return PushResult(token=token, success=True)

    async def send_multicast(
        self,
        tokens: Sequence[str],
        title: str,
        body: str,
        link: Optional[str] = None,
    ) -> list[PushResult]:
        if not tokens:
            return []
        try:
            access_token = await asyncio.to_thread(self._get_access_token)
        except GoogleAuthError as exc:
            raise TransientChannelFailure(f"Failed to get FCM access token: {exc}") from exc

        url = FCM_API_URL.format(project_id=self.project_id)
        async with httpx.AsyncClient(timeout=self.request_timeout) as client:
            results = await asyncio.gather(
                *(self._send_one(client, url, access_token, token, title, body, link) for token in tokens)
            )
        return list(results)


def build_push_transport(settings: Settings) -> FcmPushTransport | None:
    """FCM transport from configuration, or None when push is disabled.

    Enabling FCM without usable credentials is a configuration error and
    raises immediately rather than silently disabling push.
    """
    if not settings.FCM_ENABLED:
        logger.info("FCM disabled; push notifications disabled")
        return None
    if not settings.FCM_PROJECT_ID or not settings.FCM_SERVICE_ACCOUNT_JSON:
        raise ValueError("FCM_ENABLED requires FCM_PROJECT_ID and FCM_SERVICE_ACCOUNT_JSON")
    service_account_info = json.loads(settings.FCM_SERVICE_ACCOUNT_JSON)
    credentials = service_account.Credentials.from_service_account_info(
        service_account_info,
        scopes=FCM_SCOPES,
    )
    return FcmPushTransport(
        project_id=settings.FCM_PROJECT_ID,
        credentials=credentials,
        request_timeout=settings.NOTIFICATION_CHANNEL_TIMEOUT_SECONDS,
    )
