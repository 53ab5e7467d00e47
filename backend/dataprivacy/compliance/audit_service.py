"""
Privacy Audit Service

Records registry changes and data request transitions in the privacy audit
trail so that DPO decisions can be reviewed later.
"""

from typing import List, Dict, Any, Optional
from sqlalchemy.orm import Session
from sqlalchemy import desc
import json
import logging
from enum import Enum

from dataprivacy.core.config import settings
from dataprivacy.models.audit_log import PrivacyAuditLog

logger = logging.getLogger(__name__)


class AuditSeverity(str, Enum):
    """Severity levels for audit events"""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class AuditCategory(str, Enum):
    REGISTRY = "registry"
    REQUEST = "request"
    PROTECTION = "protection"


class PrivacyAuditService:
    """Writes and queries privacy audit events."""

    def __init__(self, db: Session, enabled: Optional[bool] = None):
        self.db = db
        self.enabled = settings.AUDIT_ENABLED if enabled is None else enabled

    def log_event(
        self,
        event_type: str,
        event_category: AuditCategory,
        description: str,
        severity_level: AuditSeverity = AuditSeverity.INFO,
        user_id: int = None,
        affected_user_id: int = None,
        technical_details: Dict[str, Any] = None
    ) -> Optional[PrivacyAuditLog]:
        """
        Add an audit event to the current transaction.

        The caller owns the commit so the event lands together with the
        change it describes.
        """
        logger.debug(f"Audit {event_category.value}/{event_type}: {description}")

        if not self.enabled:
            return None

        audit_log = PrivacyAuditLog(
            event_type=event_type,
            event_category=event_category.value,
            severity_level=severity_level.value,
            user_id=user_id,
            affected_user_id=affected_user_id,
            description=description,
            technical_details=json.dumps(technical_details, default=str, sort_keys=True) if technical_details else None
        )
        self.db.add(audit_log)
        return audit_log

    def get_events(
        self,
        event_category: AuditCategory = None,
        event_type: str = None,
        affected_user_id: int = None,
        limit: int = 100
    ) -> List[PrivacyAuditLog]:
        query = self.db.query(PrivacyAuditLog)

        if event_category:
            query = query.filter(PrivacyAuditLog.event_category == event_category.value)

        if event_type:
            query = query.filter(PrivacyAuditLog.event_type == event_type)

        if affected_user_id is not None:
            query = query.filter(PrivacyAuditLog.affected_user_id == affected_user_id)

        return query.order_by(desc(PrivacyAuditLog.id)).limit(limit).all()
