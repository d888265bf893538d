import logging
import os
from typing import List, Optional

import httpx

from .schemas import ReminderInstance

logger = logging.getLogger(__name__)

REMINDER_DISPATCH_URL = os.getenv("REMINDER_DISPATCH_URL")
REMINDER_DISPATCH_TOKEN = os.getenv("REMINDER_DISPATCH_TOKEN")
DISPATCH_TIMEOUT_SECONDS = float(os.getenv("REMINDER_DISPATCH_TIMEOUT", "10"))


def reminder_payload(organization_id: str, reminders: List[ReminderInstance]) -> dict:
    return {
        "organization_id": organization_id,
        "reminders": [r.model_dump(mode="json") for r in reminders],
    }


async def dispatch_reminders(
    organization_id: str,
    reminders: List[ReminderInstance],
    url: Optional[str] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> int:
    """
    Hand reminders to the notification service. Delivery (email, SMS) is
    that service's job; this only posts the batch. Returns how many were
    handed over, 0 when no dispatch URL is configured.
    """
    url = url or REMINDER_DISPATCH_URL
    if not url or not reminders:
        return 0

    headers = {}
    if REMINDER_DISPATCH_TOKEN:
        headers["Authorization"] = f"Bearer {REMINDER_DISPATCH_TOKEN}"

    async with httpx.AsyncClient(timeout=DISPATCH_TIMEOUT_SECONDS, transport=transport) as client:
        response = await client.post(
            url, json=reminder_payload(organization_id, reminders), headers=headers
        )
        response.raise_for_status()

    logger.info("Dispatched %d reminder(s) for %s", len(reminders), organization_id)
    return len(reminders)
