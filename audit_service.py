"""
Audit trail for state transitions of coupons, claims, partners, donations
and wallets.

Entries are written as single ``AUDIT: {...}`` JSON log lines so that any
log shipper can index them. Writing an entry never raises.
"""

import json
import logging
from datetime import datetime
from typing import Any, Dict, Optional

log = logging.getLogger(__name__)


def _status(value: Optional[str]) -> Optional[Dict[str, str]]:
    return {"status": value} if value else None


class AuditService:

    @staticmethod
    async def log_action(
        action: str,
        entity_type: str,
        entity_id: Any,
        user_id: Optional[int] = None,
        old_value: Optional[Dict[str, Any]] = None,
        new_value: Optional[Dict[str, Any]] = None,
        reason: Optional[str] = None,
    ) -> bool:
        """Append one entry; returns False when it could not be serialised."""
        entry = {
            "at": datetime.utcnow().isoformat(),
            "action": action,
            "entity": f"{entity_type}:{entity_id}",
            "actor": user_id,
            "before": old_value,
            "after": new_value,
        }
        if reason:
            entry["reason"] = reason
        try:
            line = json.dumps(entry, default=str, sort_keys=True)
        except (TypeError, ValueError) as e:
            log.error(f"Audit entry for {entity_type}:{entity_id} could not be written: {e}")
            return False
        log.info(f"AUDIT: {line}")
        return True

    @staticmethod
    async def log_claim_transition(
        claim_id: int,
        old_status: Optional[str],
        new_status: str,
        actor_id: Optional[int],
        reason: Optional[str] = None,
    ) -> bool:
        return await AuditService.log_action(
            new_status if old_status else "create",
            "claim",
            claim_id,
            user_id=actor_id,
            old_value=_status(old_status),
            new_value=_status(new_status),
            reason=reason,
        )

    @staticmethod
    async def log_coupon_transition(
        coupon_id: int,
        old_status: Optional[str],
        new_status: str,
        actor_id: Optional[int] = None,
        reason: Optional[str] = None,
    ) -> bool:
        """Mint (no old status), use, or lazy expiry"""
        return await AuditService.log_action(
            "status_change" if old_status else "create",
            "coupon",
            coupon_id,
            user_id=actor_id,
            old_value=_status(old_status),
            new_value=_status(new_status),
            reason=reason,
        )
