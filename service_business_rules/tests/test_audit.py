"""
Unit tests for the rule audit logger.
"""

import json
import uuid
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from service_business_rules.app.audit.logger import AuditLogger
from shared.test_helpers import InMemoryPersistence, utc


class TestAuditLogger:
    """Test cases for AuditLogger."""

    @pytest.fixture
    def persistence(self):
        return InMemoryPersistence()

    @pytest.fixture
    def audit_logger(self, persistence):
        return AuditLogger(persistence)

    @pytest.mark.asyncio
    async def test_records_are_written_by_rule_type(self, audit_logger, persistence):
        order_id = uuid.uuid4()
        rule_id = uuid.uuid4()

        await audit_logger.log_availability_check(order_id, {"items_checked": 2}, "All items available")
        await audit_logger.log_pricing_application(order_id, rule_id, {"description": "Happy hour"}, "Applied: Happy hour")
        await audit_logger.log_loyalty_award(order_id, {"total_points": 5}, "Awarded 5 points (base: 5, bonus: 0)")

        rows = persistence.audit_rows
        assert [row["rule_type"] for row in rows] == ["availability", "pricing", "loyalty"]
        assert [row["rule_id"] for row in rows] == [None, rule_id, None]
        assert rows[1]["effect"] == "Applied: Happy hour"

    @pytest.mark.asyncio
    async def test_write_failure_is_swallowed(self, audit_logger, persistence):
        """Test an audit outage is logged and not raised."""
        persistence.fail_on.add("insert_audit_record")

        with patch.object(audit_logger, "logger") as mock_logger:
            await audit_logger.log_availability_check(uuid.uuid4(), {}, "All items available")

        mock_logger.error.assert_called_once()
        assert mock_logger.error.call_args.kwargs["rule_type"] == "availability"
        assert persistence.audit_rows == []

    @pytest.mark.asyncio
    async def test_unexpected_failure_is_swallowed(self):
        persistence = MagicMock()
        persistence.insert_audit_record = AsyncMock(side_effect=RuntimeError("connection reset"))
        audit_logger = AuditLogger(persistence)

        await audit_logger.log_loyalty_award(uuid.uuid4(), {}, "Awarded 0 points (base: 0, bonus: 0)")

        persistence.insert_audit_record.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_get_audit_records_in_order(self, audit_logger):
        order_id = uuid.uuid4()
        other_order_id = uuid.uuid4()

        await audit_logger.log_availability_check(order_id, {"is_valid": True}, "All items available")
        await audit_logger.log_availability_check(other_order_id, {"is_valid": True}, "All items available")
        await audit_logger.log_pricing_application(order_id, None, {"rules_applied": 0}, "Applied 0 rules, discount: $0.00")

        records = await audit_logger.get_audit_records(order_id)

        assert [record.effect for record in records] == [
            "All items available",
            "Applied 0 rules, discount: $0.00",
        ]
        assert records[0].created_at <= records[1].created_at

    @pytest.mark.asyncio
    async def test_get_audit_records_decodes_json_text(self):
        order_id = uuid.uuid4()
        persistence = MagicMock()
        persistence.fetch_audit_rows = AsyncMock(return_value=[{
            "audit_id": uuid.uuid4(),
            "order_id": order_id,
            "rule_type": "pricing",
            "rule_id": None,
            "rule_data": json.dumps({"rules_applied": 1}),
            "effect": "Applied 1 rules, discount: $1.00",
            "created_at": utc(2024, 6, 1, 12, 0),
        }])

        records = await AuditLogger(persistence).get_audit_records(order_id)

        assert records[0].rule_data == {"rules_applied": 1}
        assert records[0].to_dict()["created_at"] == "2024-06-01T12:00:00+00:00"
