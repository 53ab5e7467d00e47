"""
Pydantic schemas for data registry operations
"""

from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import List, Optional, Union

from dataprivacy.models.policy_ref import PolicyRef
from dataprivacy.models.registry import ContextLevel, LawfulBasis, SensitiveDataReason
from dataprivacy.utils.duration import parse_retention_period


def _split_csv(value):
    if value is None:
        return value
    if isinstance(value, str):
        return [item.strip() for item in value.split(",") if item.strip()]
    return value


class PurposeBase(BaseModel):
    description: Optional[str] = None
    sensitive_data_reasons: List[SensitiveDataReason] = Field(default_factory=list)

    @field_validator("sensitive_data_reasons", mode="before")
    @classmethod
    def parse_sensitive_data_reasons(cls, v):
        return _split_csv(v) or []


class PurposeCreate(PurposeBase):
    """Input for creating a purpose"""
    name: str = Field(min_length=1, max_length=200)
    retention_period: str
    lawful_bases: List[LawfulBasis] = Field(min_length=1)
    protected: bool = False

    @field_validator("retention_period")
    @classmethod
    def validate_retention_period(cls, v):
        parse_retention_period(v)
        return v.strip().upper()

    @field_validator("lawful_bases", mode="before")
    @classmethod
    def parse_lawful_bases(cls, v):
        return _split_csv(v)


class PurposeUpdate(BaseModel):
    """Partial update for a purpose; only provided fields are written"""
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = None
    retention_period: Optional[str] = None
    lawful_bases: Optional[List[LawfulBasis]] = None
    sensitive_data_reasons: Optional[List[SensitiveDataReason]] = None
    protected: Optional[bool] = None

    @field_validator("retention_period")
    @classmethod
    def validate_retention_period(cls, v):
        if v is None:
            return v
        parse_retention_period(v)
        return v.strip().upper()

    @field_validator("lawful_bases", "sensitive_data_reasons", mode="before")
    @classmethod
    def parse_csv(cls, v):
        return _split_csv(v)

    @field_validator("lawful_bases")
    @classmethod
    def lawful_bases_not_empty(cls, v):
        if v is not None and not v:
            raise ValueError("At least one lawful basis is required")
        return v


class CategoryCreate(BaseModel):
    """Input for creating a category"""
    name: str = Field(min_length=1, max_length=200)
    description: Optional[str] = None


class CategoryUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = None


PolicyRefInput = Union[PolicyRef, int, None]


class _PolicyAssignment(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    purpose: PolicyRef = PolicyRef.unset()
    category: PolicyRef = PolicyRef.unset()

    @field_validator("purpose", "category", mode="before")
    @classmethod
    def coerce_ref(cls, v):
        return PolicyRef.coerce(v)


class ContextInstanceIn(_PolicyAssignment):
    """Purpose/category override for a single context"""
    context_id: int = Field(gt=0)


class ContextLevelIn(_PolicyAssignment):
    """Purpose/category default for a context level"""
    context_level: ContextLevel
    subtype: Optional[str] = Field(default=None, max_length=100)

    @field_validator("subtype")
    @classmethod
    def normalise_subtype(cls, v):
        if v is None:
            return v
        return v.strip() or None
