from .policy_ref import PolicyRef, PolicyRefKind, UNSET, INHERIT
from .registry import (
    ContextLevel, LawfulBasis, SensitiveDataReason,
    Purpose, Category, ContextLevelDefault, ContextInstance
)
from .data_request import (
    DataRequest, DataRequestType, DataRequestStatus, ACTIVE_REQUEST_STATUSES,
    ContextList, ContextListContext, ContextListStatus, RequestContextList
)
from .audit_log import PrivacyAuditLog

__all__ = [
    "PolicyRef",
    "PolicyRefKind",
    "UNSET",
    "INHERIT",
    "ContextLevel",
    "LawfulBasis",
    "SensitiveDataReason",
    "Purpose",
    "Category",
    "ContextLevelDefault",
    "ContextInstance",
    "DataRequest",
    "DataRequestType",
    "DataRequestStatus",
    "ACTIVE_REQUEST_STATUSES",
    "ContextList",
    "ContextListContext",
    "ContextListStatus",
    "RequestContextList",
    "PrivacyAuditLog",
]
