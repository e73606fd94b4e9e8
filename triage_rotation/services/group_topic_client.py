# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Service: Group/topic client — mirrors the on-duty users into the chat
user group and the triage channel topic.
"""

from typing import Optional, Sequence

import httpx

from triage_rotation.core.config import settings
from triage_rotation.core.logging import get_logger
from triage_rotation.metrics.prometheus import GROUP_SYNCS
from triage_rotation.services.notification_client import NotificationClient

logger = get_logger(__name__)


def render_topic(user_ids: Sequence[str], prefix: Optional[str] = None) -> str:
    mentions = ", ".join(f"<@{uid}>" for uid in user_ids)
    return f"{prefix or settings.TOPIC_PREFIX}\nTriage Team: {mentions}"


class GroupTopicClient:
    """Fire-and-forget membership sync via the configured sync endpoint."""

    def __init__(
        self,
        notifications: NotificationClient,
        sync_url: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> None:
        self._notifications = notifications
        self._sync_url = sync_url if sync_url is not None else settings.GROUP_SYNC_URL
        self._timeout = timeout or settings.NOTIFICATION_TIMEOUT

    async def set_active_members(self, user_ids: Sequence[str]) -> bool:
        """Replace group members and topic. Failures are reported, never raised."""
        members = list(dict.fromkeys(u for u in user_ids if u))
        if not self._sync_url:
            GROUP_SYNCS.labels(status="skipped").inc()
            logger.warning("GROUP_SYNC_URL is missing. Skipping group update: %s", members)
            return False
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.post(
                    self._sync_url,
                    json={
                        "usergroup": settings.USERGROUP_ID,
                        "channel": settings.TRIAGE_CHANNEL_ID,
                        "users": members,
                        "topic": render_topic(members),
                    },
                )
            if resp.status_code >= 300:
                raise RuntimeError(f"group sync returned {resp.status_code}")
        except Exception as exc:
            GROUP_SYNCS.labels(status="failed").inc()
            logger.error("Failed to update user group: %s", exc)
            await self._notifications.send_admin_summary(
                f"Error updating triage user group and topic: {exc}"
            )
            return False
        GROUP_SYNCS.labels(status="updated").inc()
        logger.info("User group updated: members=%s", members)
        return True
