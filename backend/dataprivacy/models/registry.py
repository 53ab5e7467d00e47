"""
Data Registry Models

This module defines SQLAlchemy models for the data registry including:
- Purposes (why data is processed and how long it is kept)
- Categories (classification labels)
- Context level defaults
- Context instance overrides
"""

from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, Text, UniqueConstraint, Index, Enum as SQLEnum
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
import enum

from dataprivacy.core.database import Base
from dataprivacy.models.policy_ref import PolicyRef


class ContextLevel(str, enum.Enum):
    """Levels of the context hierarchy"""
    SYSTEM = "system"
    USER = "user"
    COURSECAT = "coursecat"
    COURSE = "course"
    MODULE = "module"
    BLOCK = "block"


class LawfulBasis(str, enum.Enum):
    """GDPR Art. 6(1) lawful bases for processing"""
    CONSENT = "gdpr_art_6_1_a"
    CONTRACT = "gdpr_art_6_1_b"
    LEGAL_OBLIGATION = "gdpr_art_6_1_c"
    VITAL_INTERESTS = "gdpr_art_6_1_d"
    PUBLIC_TASK = "gdpr_art_6_1_e"
    LEGITIMATE_INTERESTS = "gdpr_art_6_1_f"


class SensitiveDataReason(str, enum.Enum):
    """GDPR Art. 9(2) conditions for special category data"""
    EXPLICIT_CONSENT = "gdpr_art_9_2_a"
    EMPLOYMENT_LAW = "gdpr_art_9_2_b"
    VITAL_INTERESTS = "gdpr_art_9_2_c"
    NOT_FOR_PROFIT = "gdpr_art_9_2_d"
    MADE_PUBLIC = "gdpr_art_9_2_e"
    LEGAL_CLAIMS = "gdpr_art_9_2_f"
    PUBLIC_INTEREST = "gdpr_art_9_2_g"
    MEDICINE = "gdpr_art_9_2_h"
    PUBLIC_HEALTH = "gdpr_art_9_2_i"
    ARCHIVING = "gdpr_art_9_2_j"


class Purpose(Base):
    """Model for processing purposes and their retention rules"""
    __tablename__ = "privacy_purposes"

    id = Column(Integer, primary_key=True, index=True)

    name = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)

    # Retention rules
    retention_period = Column(String(50), nullable=False)  # ISO-8601 duration, e.g. "P1Y"
    protected = Column(Boolean, default=False, nullable=False)

    # Legal basis
    lawful_bases = Column(Text, nullable=False)  # comma separated LawfulBasis values
    sensitive_data_reasons = Column(Text, nullable=True)  # comma separated SensitiveDataReason values

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    @property
    def lawful_basis_list(self):
        return [b for b in (self.lawful_bases or "").split(",") if b]

    @property
    def sensitive_data_reason_list(self):
        return [r for r in (self.sensitive_data_reasons or "").split(",") if r]


class Category(Base):
    """Model for data categories"""
    __tablename__ = "privacy_categories"

    id = Column(Integer, primary_key=True, index=True)

    name = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())


class _PolicyRefColumns:
    """Purpose/category reference columns shared by defaults and overrides"""

    @property
    def purpose_ref(self) -> PolicyRef:
        return PolicyRef.from_columns(self.purpose_id, bool(self.purpose_inherits))

    @purpose_ref.setter
    def purpose_ref(self, ref: PolicyRef):
        self.purpose_id, self.purpose_inherits = PolicyRef.coerce(ref).to_columns()

    @property
    def category_ref(self) -> PolicyRef:
        return PolicyRef.from_columns(self.category_id, bool(self.category_inherits))

    @category_ref.setter
    def category_ref(self, ref: PolicyRef):
        self.category_id, self.category_inherits = PolicyRef.coerce(ref).to_columns()


class ContextLevelDefault(_PolicyRefColumns, Base):
    """Model for purpose/category defaults per context level (and module subtype)"""
    __tablename__ = "privacy_contextlevel_defaults"

    id = Column(Integer, primary_key=True, index=True)

    context_level = Column(SQLEnum(ContextLevel), nullable=False)
    subtype = Column(String(100), nullable=False, default="")  # "" = whole level

    purpose_id = Column(Integer, ForeignKey("privacy_purposes.id"), nullable=True)
    purpose_inherits = Column(Boolean, default=False, nullable=False)
    category_id = Column(Integer, ForeignKey("privacy_categories.id"), nullable=True)
    category_inherits = Column(Boolean, default=False, nullable=False)

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    # Relationships
    purpose = relationship("Purpose", foreign_keys=[purpose_id])
    category = relationship("Category", foreign_keys=[category_id])

    __table_args__ = (
        UniqueConstraint("context_level", "subtype", name="uq_privacy_contextlevel_defaults_level_subtype"),
    )


class ContextInstance(_PolicyRefColumns, Base):
    """Model for purpose/category overrides on a single context"""
    __tablename__ = "privacy_context_instances"

    id = Column(Integer, primary_key=True, index=True)

    context_id = Column(Integer, nullable=False, unique=True)

    # Denormalised from the context graph at write time
    context_level = Column(SQLEnum(ContextLevel), nullable=False)
    subtype = Column(String(100), nullable=False, default="")

    purpose_id = Column(Integer, ForeignKey("privacy_purposes.id"), nullable=True)
    purpose_inherits = Column(Boolean, default=False, nullable=False)
    category_id = Column(Integer, ForeignKey("privacy_categories.id"), nullable=True)
    category_inherits = Column(Boolean, default=False, nullable=False)

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    # Relationships
    purpose = relationship("Purpose", foreign_keys=[purpose_id])
    category = relationship("Category", foreign_keys=[category_id])

    __table_args__ = (
        # Level-wide cascades when defaults are overridden
        Index("idx_context_instance_level_subtype", "context_level", "subtype"),
    )
