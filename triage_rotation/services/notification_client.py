# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Service: Notification client — inter-service communication.
Handles HTTP calls to the notification-service with timeout & fault tolerance.
"""

from typing import Optional

import httpx

from triage_rotation.core.config import settings
from triage_rotation.core.logging import get_logger
from triage_rotation.metrics.prometheus import ADMIN_MESSAGES, DIRECT_MESSAGES

logger = get_logger(__name__)


class NotificationClient:
    """Best-effort sender for direct messages and admin summaries."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        admin_channel: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> None:
        self._base_url = base_url or settings.NOTIFICATION_SERVICE_URL
        self._admin_channel = (
            admin_channel if admin_channel is not None else settings.ADMIN_CHANNEL_ID
        )
        self._timeout = timeout or settings.NOTIFICATION_TIMEOUT

    async def send_direct(self, user_id: str, text: str, kind: str = "direct") -> bool:
        """DM one user. Failures are logged and reported, never raised."""
        if not user_id:
            return False
        try:
            await self._post(user_id, text, reference="rotation")
        except Exception as exc:
            DIRECT_MESSAGES.labels(kind=kind, status="failed").inc()
            logger.warning("Failed to DM user %s: %s", user_id, exc)
            await self.send_admin_summary(f"Failed to DM <@{user_id}>: {exc}")
            return False
        DIRECT_MESSAGES.labels(kind=kind, status="sent").inc()
        logger.info("Direct message sent: user=%s, kind=%s", user_id, kind)
        return True

    async def send_admin_summary(self, text: str) -> bool:
        """Post to the admin channel. Failures are logged, never raised."""
        if not self._admin_channel:
            ADMIN_MESSAGES.labels(status="skipped").inc()
            logger.error("No ADMIN_CHANNEL_ID configured. Message: %s", text)
            return False
        try:
            await self._post(self._admin_channel, text, reference="admin")
        except Exception as exc:
            ADMIN_MESSAGES.labels(status="failed").inc()
            logger.error("Failed to notify admins: %s", exc)
            return False
        ADMIN_MESSAGES.labels(status="sent").inc()
        return True

    async def _post(self, recipient: str, message: str, reference: str) -> None:
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            resp = await client.post(
                f"{self._base_url}/api/v1/notify",
                json={
                    "channel": settings.NOTIFICATION_CHANNEL,
                    "recipient": recipient,
                    "message": message,
                    "incident_id": reference,
                },
            )
        if resp.status_code >= 300:
            raise RuntimeError(f"notification-service returned {resp.status_code}")
