import uuid
from datetime import datetime

from errors import StoreDeleteFailure, StoreQueryFailure
from logging_config import get_logger
from schemas.events import SweepResult
from schemas.rooms import RECLAIMABLE_STATUSES

logger = get_logger(__name__)


class ExpirySweeper:
    """Deletes rooms whose expiresAt has passed while still in matchmaking.

    The query predicate is the only gate: a room that turns `active` between
    the query and the batch delete can still be deleted (accepted risk, the
    sweep interval is long compared with the query-to-delete window). Set
    `conditional_delete` to re-check statuses inside the delete transaction.

    Holds no timer and no state between calls; the scheduler owns the cadence.
    """

    def __init__(self, store, conditional_delete: bool = False):
        self.store = store
        self.conditional_delete = conditional_delete

    def sweep(self, now: datetime) -> SweepResult:
        sweep_id = uuid.uuid4().hex[:12]
        logger.info(f"Sweep {sweep_id} started for rooms expired before {now.isoformat()}")

        # StoreQueryFailure / StoreDeleteFailure propagate to the scheduler;
        # the next run re-queries whatever was missed.
        try:
            expired = self.store.query_expired_rooms(now, RECLAIMABLE_STATUSES)
        except StoreQueryFailure as e:
            logger.error(f"Sweep {sweep_id} query failed: {e}")
            raise
        if not expired:
            logger.info(f"Sweep {sweep_id}: cleaned up 0 expired rooms")
            return SweepResult(sweep_id=sweep_id, deleted_count=0)

        only_statuses = RECLAIMABLE_STATUSES if self.conditional_delete else None
        try:
            deleted = self.store.delete_rooms(expired, only_statuses=only_statuses)
        except StoreDeleteFailure as e:
            logger.error(f"Sweep {sweep_id} batch delete of {len(expired)} rooms failed: {e}")
            raise
        if len(deleted) < len(expired):
            logger.info(f"Sweep {sweep_id}: {len(expired) - len(deleted)} matched rooms were gone or no longer reclaimable")

        logger.info(f"Sweep {sweep_id}: cleaned up {len(deleted)} expired rooms")
        return SweepResult(sweep_id=sweep_id, deleted_count=len(deleted), room_ids=deleted)
