import asyncio
from typing import Optional

import google.auth.exceptions
import google.auth.transport.requests
import httpx
from google.oauth2 import service_account

from constants import FCM_CREDENTIALS_FILE, FCM_PROJECT_ID, FCM_SCOPES, FCM_SEND_URL, FCM_TIMEOUT_SECONDS
from errors import DeliveryFailure
from logging_config import get_logger
from schemas.events import NotificationPayload

logger = get_logger(__name__)


def to_fcm_message(address: str, payload: NotificationPayload) -> dict:
    """Render a payload as an FCM HTTP v1 `message` object."""
    android_notification = {
        "channel_id": payload.android.channel_id,
        "notification_priority": f"PRIORITY_{payload.android.notification_priority.upper()}",
    }
    if payload.android.click_action:
        android_notification["click_action"] = payload.android.click_action
    return {
        "token": address,
        "notification": {"title": payload.title, "body": payload.body},
        "data": dict(payload.data),
        "android": {
            "priority": payload.android.priority.upper(),
            "notification": android_notification,
        },
        "apns": {
            "payload": {
                "aps": {
                    "alert": {"title": payload.title, "body": payload.body},
                    "sound": payload.apns.sound,
                    "badge": payload.apns.badge,
                }
            }
        },
    }


def load_credentials(credentials_file: str = FCM_CREDENTIALS_FILE):
    """Service-account credentials scoped for FCM, or None when unconfigured."""
    if not credentials_file:
        logger.warning("No FCM service-account file configured, notifications will fail")
        return None
    return service_account.Credentials.from_service_account_file(credentials_file, scopes=FCM_SCOPES)


class FcmPushClient:
    """Sends notifications through the Firebase Cloud Messaging HTTP v1 API.

    OAuth2 access tokens are short-lived (about an hour); the credentials are
    refreshed whenever they are missing or expired before a send. One HTTP
    request per `send`; retries are left to FCM and the caller's runtime.
    """

    def __init__(
        self,
        credentials=None,
        project_id: str = FCM_PROJECT_ID,
        timeout_s: float = FCM_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.credentials = credentials
        self.project_id = project_id or getattr(credentials, "project_id", None) or ""
        self.timeout_s = timeout_s
        self._transport = transport
        logger.info(f"Initializing FcmPushClient for project {self.project_id or '<unset>'}")

    async def _access_token(self) -> str:
        if not self.credentials.valid:
            logger.debug("Refreshing FCM access token")
            loop = asyncio.get_running_loop()
            try:
                await loop.run_in_executor(None, self.credentials.refresh, google.auth.transport.requests.Request())
            except google.auth.exceptions.GoogleAuthError as e:
                raise DeliveryFailure(f"FCM credential refresh failed: {e}") from e
        return self.credentials.token

    async def send(self, address: str, payload: NotificationPayload) -> str:
        """Submit one message; returns the FCM message name on acceptance."""
        if not self.project_id or self.credentials is None:
            raise DeliveryFailure("FCM project id or credentials are not configured")

        url = FCM_SEND_URL.format(project_id=self.project_id)
        headers = {"Authorization": f"Bearer {await self._access_token()}"}
        body = {"message": to_fcm_message(address, payload)}

        try:
            async with httpx.AsyncClient(timeout=self.timeout_s, transport=self._transport) as client:
                response = await client.post(url, json=body, headers=headers)
        except httpx.HTTPError as e:
            raise DeliveryFailure(f"FCM request failed: {e}") from e

        if response.status_code >= 400:
            try:
                detail = response.json().get("error", {}).get("message") or response.text[:200]
            except ValueError:
                detail = response.text[:200]
            raise DeliveryFailure(
                f"FCM send failed (HTTP {response.status_code}): {detail}",
                status_code=response.status_code,
            )

        try:
            message_name = response.json()["name"]
        except (ValueError, KeyError) as e:
            raise DeliveryFailure(f"FCM returned an unexpected body (HTTP {response.status_code}): {response.text[:200]}") from e

        logger.debug(f"FCM accepted message {message_name}")
        return message_name
