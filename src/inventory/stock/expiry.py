"""Reservation expiry: give back stock held by abandoned checkouts.

Designed to be triggered periodically by an external scheduler (cron, K8s
CronJob) via ``manage.py expire-reservations`` or the maintenance API
endpoint. Releasing is idempotent, so a sweep racing a checkout's own
release restores the quantities exactly once.
"""

from datetime import datetime

import structlog

from inventory.service import InventoryService
from shared.clock import utcnow
from shared.errors import DependencyError

logger = structlog.get_logger(__name__)


async def expire_stale_reservations(inventory: InventoryService, as_of: datetime | None = None) -> int:
    """Release every reservation past its expiry time. Returns how many were released."""
    as_of = as_of or utcnow()

    expired = await inventory.expired_reservation_ids(as_of)
    if not expired:
        logger.info("No stale reservations found", as_of=as_of.isoformat())
        return 0

    expired_count = 0
    for reservation_id in expired:
        try:
            if await inventory.restore_reservation(reservation_id):
                expired_count += 1
                logger.info("Released stale reservation", reservation_id=reservation_id)
        except DependencyError as exc:
            logger.warning(
                "Failed to release stale reservation",
                reservation_id=reservation_id,
                error=exc.message,
            )

    logger.info("Reservation expiry complete", expired_count=expired_count, candidates=len(expired))
    return expired_count
