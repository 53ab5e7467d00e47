from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Text, Index, Enum as SQLEnum
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
import enum

from dataprivacy.core.database import Base


class DataRequestType(str, enum.Enum):
    EXPORT = "export"
    DELETE = "delete"
    OTHERS = "others"


class DataRequestStatus(str, enum.Enum):
    PENDING = "pending"
    PREPROCESSING = "preprocessing"
    AWAITING_APPROVAL = "awaiting_approval"
    APPROVED = "approved"
    PROCESSING = "processing"
    COMPLETE = "complete"
    CANCELLED = "cancelled"
    REJECTED = "rejected"
    DOWNLOAD_READY = "download_ready"
    EXPIRED = "expired"
    DELETED = "deleted"


# Requests in these states are still being worked on
ACTIVE_REQUEST_STATUSES = frozenset({
    DataRequestStatus.PENDING,
    DataRequestStatus.PREPROCESSING,
    DataRequestStatus.AWAITING_APPROVAL,
    DataRequestStatus.APPROVED,
    DataRequestStatus.PROCESSING,
})


class ContextListStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class DataRequest(Base):
    """Model for data subject requests (export/delete)"""
    __tablename__ = "privacy_data_requests"

    id = Column(Integer, primary_key=True, index=True)

    # Subject and actors
    user_id = Column(Integer, nullable=False, index=True)
    requested_by = Column(Integer, nullable=False)
    dpo_id = Column(Integer, nullable=True)

    # Request details
    type = Column(SQLEnum(DataRequestType), nullable=False)
    status = Column(SQLEnum(DataRequestStatus), nullable=False, default=DataRequestStatus.PENDING)
    comments = Column(Text, nullable=True)
    dpo_comment = Column(Text, nullable=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    # Relationships
    request_contextlists = relationship("RequestContextList", back_populates="request", cascade="all, delete-orphan")

    __table_args__ = (
        Index("idx_data_request_user_status", "user_id", "status"),
    )


class ContextList(Base):
    """Model for the contexts one component reported for a request"""
    __tablename__ = "privacy_contextlists"

    id = Column(Integer, primary_key=True, index=True)
    component = Column(String(100), nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    contexts = relationship("ContextListContext", back_populates="contextlist", cascade="all, delete-orphan")


class ContextListContext(Base):
    """Model for a single context in a context list, with its approval status"""
    __tablename__ = "privacy_contextlist_contexts"

    id = Column(Integer, primary_key=True, index=True)
    context_id = Column(Integer, nullable=False)
    contextlist_id = Column(Integer, ForeignKey("privacy_contextlists.id"), nullable=False)
    status = Column(SQLEnum(ContextListStatus), nullable=False, default=ContextListStatus.PENDING)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    # Relationships
    contextlist = relationship("ContextList", back_populates="contexts")

    __table_args__ = (
        Index("idx_contextlist_context_list_status", "contextlist_id", "status"),
    )


class RequestContextList(Base):
    """Join between a data request and its context lists"""
    __tablename__ = "privacy_request_contextlists"

    id = Column(Integer, primary_key=True, index=True)
    request_id = Column(Integer, ForeignKey("privacy_data_requests.id"), nullable=False)
    contextlist_id = Column(Integer, ForeignKey("privacy_contextlists.id"), nullable=False)

    # Relationships
    request = relationship("DataRequest", back_populates="request_contextlists")
    contextlist = relationship("ContextList")

    __table_args__ = (
        Index("idx_request_contextlist_unique", "request_id", "contextlist_id", unique=True),
    )
