"""
Pydantic schemas for data requests
"""

from pydantic import BaseModel, Field, field_validator
from typing import Optional

from dataprivacy.models.data_request import DataRequestType, DataRequestStatus


class DataRequestCreate(BaseModel):
    """Input for a new data subject request"""
    user_id: int = Field(gt=0)
    type: DataRequestType
    comments: str = ""
    requested_by: Optional[int] = Field(default=None, gt=0)
    dpo_id: Optional[int] = Field(default=None, gt=0)

    @field_validator("comments", mode="before")
    @classmethod
    def strip_comments(cls, v):
        return (v or "").strip()


class DataRequestStatusUpdate(BaseModel):
    """Status transition for an existing request"""
    status: DataRequestStatus
    dpo_id: Optional[int] = Field(default=None, gt=0)
    comment: str = ""

    @field_validator("comment", mode="before")
    @classmethod
    def default_comment(cls, v):
        return v or ""
