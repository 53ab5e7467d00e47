"""
Data Privacy Compliance Module

Purpose and category registry for the context tree, with the rules that
decide which data a subject request may touch.

Key Components:
- Policy store for purposes, categories, level defaults and context overrides
- Resolver for the effective purpose and category of any context
- Protection filter keeping protected, unexpired data out of deletions
- Privacy audit trail
"""

from .exceptions import DataPrivacyError, PreconditionViolation
from .audit_service import PrivacyAuditService, AuditCategory, AuditSeverity
from .contexts import ContextGraph, ContextInfo, ContextNotFoundError, InMemoryContextGraph
from .policy_store import PolicyStore
from .resolver import PolicyResolver
from .expiry import ExpiryAnchorPolicy
from .protection import (
    ProtectionFilter, ComponentContextList, ApprovedContextList, ContextListCollection
)
from .data_registry import DataRegistry

__all__ = [
    "DataPrivacyError",
    "PreconditionViolation",
    "PrivacyAuditService",
    "AuditCategory",
    "AuditSeverity",
    "ContextGraph",
    "ContextInfo",
    "ContextNotFoundError",
    "InMemoryContextGraph",
    "PolicyStore",
    "PolicyResolver",
    "ExpiryAnchorPolicy",
    "ProtectionFilter",
    "ComponentContextList",
    "ApprovedContextList",
    "ContextListCollection",
    "DataRegistry",
]
