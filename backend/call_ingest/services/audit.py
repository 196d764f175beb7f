from datetime import datetime
from typing import Any, Dict, Optional
import logging

from ..models.db_models import PROVIDER_BATCH
from ..schemas.pydantic_schemas import Resolution

logger = logging.getLogger(__name__)


class AuditTrail:
    """One webhook_events row per authenticated delivery.

    Fields are filled in as the pipeline learns them; write() inserts the row
    at most once, so it can be called early and again from a finally block.
    """

    def __init__(self, signature: Optional[str], received_at: datetime) -> None:
        self.row: Dict[str, Any] = {
            "provider": PROVIDER_BATCH,
            "provider_call_id": None,
            "household_id": None,
            "payload": None,
            "signature": signature,
            "resolution_status": "error",
            "resolution_strategy": None,
            "low_confidence": False,
            "received_at": received_at.isoformat(),
        }
        self.written = False

    def update(self, **fields: Any) -> None:
        self.row.update(fields)

    def resolved(self, resolution: Resolution) -> None:
        self.update(
            household_id=resolution.identity.household_id,
            resolution_status="resolved",
            resolution_strategy=resolution.strategy,
            low_confidence=resolution.low_confidence,
        )

    def write(self, db: Any) -> bool:
        if self.written:
            return True
        self.written = True
        try:
            db.insert_webhook_event(self.row)
        except Exception as e:
            logger.error(f"webhook_events insert failed for {self.row.get('provider_call_id')}: {e}")
            return False
        return True
