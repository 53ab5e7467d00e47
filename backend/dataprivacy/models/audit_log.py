from sqlalchemy import Column, Integer, String, DateTime, Text
from sqlalchemy.sql import func

from dataprivacy.core.database import Base


class PrivacyAuditLog(Base):
    """Model for registry and data request audit events"""
    __tablename__ = "privacy_audit_logs"

    id = Column(Integer, primary_key=True, index=True)

    # Audit event identification
    event_type = Column(String(100), nullable=False)  # "purpose_created", "request_approved", ...
    event_category = Column(String(50), nullable=False)  # "registry", "request", "protection"
    severity_level = Column(String(20), default="info")  # "info", "warning", "error"

    # Context
    user_id = Column(Integer, nullable=True)  # acting user
    affected_user_id = Column(Integer, nullable=True)  # data subject

    # Event details
    description = Column(Text, nullable=False)
    technical_details = Column(Text, nullable=True)  # JSON object

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now())
