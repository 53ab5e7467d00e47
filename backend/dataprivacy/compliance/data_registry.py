"""
Data Registry

Administrative entry points for assigning purposes and categories to
contexts and context levels, and for reading back what is in effect.
"""

from typing import Any, Dict, Optional, Tuple, Union
from sqlalchemy.orm import Session
import logging

from dataprivacy.models.policy_ref import PolicyRef
from dataprivacy.models.registry import (
    ContextLevel, ContextLevelDefault, ContextInstance, Purpose, Category
)
from dataprivacy.schemas.registry import ContextInstanceIn, ContextLevelIn, PolicyRefInput
from dataprivacy.compliance.audit_service import PrivacyAuditService
from dataprivacy.compliance.contexts import ContextGraph, ContextInfo, require_context
from dataprivacy.compliance.exceptions import PreconditionViolation
from dataprivacy.compliance.policy_store import PolicyStore
from dataprivacy.compliance.resolver import PolicyResolver

logger = logging.getLogger(__name__)

# Levels whose default may be set on its own; the rest go through set_context_defaults
DIRECTLY_CONFIGURABLE_LEVELS = (ContextLevel.SYSTEM, ContextLevel.USER)


class DataRegistry:
    """Registry of purposes and categories across the context tree."""

    def __init__(self, db: Session, graph: ContextGraph, audit_service: PrivacyAuditService = None):
        self.db = db
        self.graph = graph
        self.store = PolicyStore(db, audit_service)
        self.resolver = PolicyResolver(self.store, graph)

    # === ASSIGNMENTS ===

    def set_contextlevel(self, data: Union[ContextLevelIn, Dict[str, Any]], user_id: int = None) -> ContextLevelDefault:
        """
        Set the default purpose and category of the system or user level.

        Other levels depend on the course hierarchy and must be configured
        with set_context_defaults.
        """
        if not isinstance(data, ContextLevelIn):
            data = ContextLevelIn.model_validate(data)

        if data.context_level not in DIRECTLY_CONFIGURABLE_LEVELS:
            raise PreconditionViolation(
                f"Only system and user level defaults can be set directly, not {data.context_level.value}",
                details={"context_level": data.context_level.value}
            )
        if data.subtype:
            raise PreconditionViolation(
                f"The {data.context_level.value} level has no subtypes",
                details={"context_level": data.context_level.value, "subtype": data.subtype}
            )

        return self.store.set_level_default(
            data.context_level, None, data.purpose, data.category, user_id=user_id
        )

    def set_context_defaults(
        self,
        context_level: ContextLevel,
        category_ref: PolicyRefInput,
        purpose_ref: PolicyRefInput,
        subtype: Optional[str] = None,
        override_instances: bool = False,
        user_id: int = None
    ) -> bool:
        """
        Set the default purpose and category for a context level.

        ``subtype`` narrows a module level default to one activity type.
        With ``override_instances`` the existing instance overrides at the
        level (of that subtype only, if given) are removed so they pick up
        the new default.
        """
        context_level = ContextLevel(context_level)
        self.store.set_level_default(
            context_level,
            subtype,
            PolicyRef.coerce(purpose_ref),
            PolicyRef.coerce(category_ref),
            override_existing=override_instances,
            user_id=user_id
        )
        return True

    def set_context_instance(
        self,
        data: Union[ContextInstanceIn, Dict[str, Any]],
        user_id: int = None
    ) -> ContextInstance:
        """Override purpose and category for one context"""
        if not isinstance(data, ContextInstanceIn):
            data = ContextInstanceIn.model_validate(data)

        context = require_context(self.graph, data.context_id)
        subtype = context.subtype if context.level == ContextLevel.MODULE else None

        return self.store.set_instance_override(
            context.id,
            data.purpose,
            data.category,
            context_level=context.level,
            subtype=subtype,
            user_id=user_id
        )

    def unset_context_instance(self, context_id: int, user_id: int = None) -> bool:
        return self.store.delete_instance_override(context_id, user_id=user_id)

    # === EFFECTIVE VALUES ===

    def get_effective_context_purpose(self, context: Union[ContextInfo, int], forced_value: PolicyRefInput = None) -> Optional[Purpose]:
        return self.resolver.get_effective_context_purpose(context, forced_value)

    def get_effective_context_category(self, context: Union[ContextInfo, int], forced_value: PolicyRefInput = None) -> Optional[Category]:
        return self.resolver.get_effective_context_category(context, forced_value)

    def get_effective_contextlevel_purpose(
        self,
        context_level: ContextLevel,
        subtype: Optional[str] = None,
        forced_value: PolicyRefInput = None
    ) -> Optional[Purpose]:
        return self.resolver.get_effective_contextlevel_purpose(context_level, subtype, forced_value)

    def get_effective_contextlevel_category(
        self,
        context_level: ContextLevel,
        subtype: Optional[str] = None,
        forced_value: PolicyRefInput = None
    ) -> Optional[Category]:
        return self.resolver.get_effective_contextlevel_category(context_level, subtype, forced_value)

    def get_defaults(self, context_level: ContextLevel, subtype: Optional[str] = None) -> Tuple[PolicyRef, PolicyRef]:
        """Stored (purpose, category) default of a level; unset when none is stored"""
        pair = self.store.get_level_default(ContextLevel(context_level), subtype)
        if pair is None:
            return PolicyRef.unset(), PolicyRef.unset()
        return pair
