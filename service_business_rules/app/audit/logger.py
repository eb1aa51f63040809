"""
Rule audit trail for the Business Rules Service.

Writes are best effort: a failed insert is logged and dropped so that an
audit outage never fails pricing, availability or loyalty operations.
"""

import json
import uuid
from typing import Any, Dict, List, Optional

from shared.logging import get_logger
from ..models import AuditRecord


class AuditLogger:
    """Appends rule applications to the rule_audit_log table."""

    def __init__(self, persistence):
        self.persistence = persistence
        self.logger = get_logger("business_rules.audit")

    async def log_availability_check(self, order_id: uuid.UUID, rule_data: Dict[str, Any], effect: str):
        await self._record(order_id, "availability", None, rule_data, effect)

    async def log_pricing_application(
        self,
        order_id: uuid.UUID,
        rule_id: Optional[uuid.UUID],
        rule_data: Dict[str, Any],
        effect: str
    ):
        await self._record(order_id, "pricing", rule_id, rule_data, effect)

    async def log_loyalty_award(self, order_id: uuid.UUID, rule_data: Dict[str, Any], effect: str):
        await self._record(order_id, "loyalty", None, rule_data, effect)

    async def _record(
        self,
        order_id: uuid.UUID,
        rule_type: str,
        rule_id: Optional[uuid.UUID],
        rule_data: Dict[str, Any],
        effect: str
    ):
        try:
            await self.persistence.insert_audit_record(order_id, rule_type, rule_id, rule_data, effect)
        except Exception as e:
            self.logger.error(
                "Failed to write audit record",
                order_id=str(order_id),
                rule_type=rule_type,
                effect=effect,
                error=str(e)
            )

    async def get_audit_records(self, order_id: uuid.UUID) -> List[AuditRecord]:
        """Audit rows for an order, oldest first."""
        rows = await self.persistence.fetch_audit_rows(order_id)

        records = []
        for row in rows:
            rule_data = row["rule_data"]
            if isinstance(rule_data, (str, bytes)):
                rule_data = json.loads(rule_data)
            records.append(AuditRecord(
                audit_id=row["audit_id"],
                order_id=row["order_id"],
                rule_type=row["rule_type"],
                rule_id=row["rule_id"],
                rule_data=rule_data,
                effect=row["effect"],
                created_at=row["created_at"]
            ))

        return records
