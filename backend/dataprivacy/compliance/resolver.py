"""
Effective Policy Resolver

Resolves the purpose and the category that apply to a context. The two are
resolved independently with the same rules:

1. a concrete instance override on the context wins;
2. otherwise the default for the context's level (module subtype first,
   then the whole module level);
3. otherwise the parent context is resolved the same way, up to the system
   context, where nothing configured means no policy.

An unset override and an INHERIT override behave the same: both defer.
"""

from typing import Optional, Tuple, Union
import logging

from dataprivacy.models.policy_ref import PolicyRef
from dataprivacy.models.registry import ContextLevel, Purpose, Category
from dataprivacy.compliance.contexts import (
    ContextGraph, ContextInfo, LEVEL_PARENTS, iter_ancestors, require_context
)
from dataprivacy.compliance.policy_store import PolicyStore

logger = logging.getLogger(__name__)

PURPOSE = "purpose"
CATEGORY = "category"

ForcedValue = Union[PolicyRef, int, None]


def _pick(pair: Optional[Tuple[PolicyRef, PolicyRef]], field: str) -> PolicyRef:
    if pair is None:
        return PolicyRef.unset()
    return pair[0] if field == PURPOSE else pair[1]


class PolicyResolver:
    """Computes effective purposes and categories from the policy store."""

    def __init__(self, store: PolicyStore, graph: ContextGraph):
        self.store = store
        self.graph = graph

    # === CONTEXT RESOLUTION ===

    def get_effective_context_purpose(self, context: Union[ContextInfo, int], forced_value: ForcedValue = None) -> Optional[Purpose]:
        """
        Effective purpose of a context, or None when nothing applies.

        ``forced_value`` previews a change to this context's override without
        saving it: a purpose id is returned as is, INHERIT skips the stored
        override of this context only.
        """
        purpose_id = self.resolve_id(context, PURPOSE, forced_value)
        return self.store.find_purpose(purpose_id) if purpose_id else None

    def get_effective_context_category(self, context: Union[ContextInfo, int], forced_value: ForcedValue = None) -> Optional[Category]:
        """Effective category of a context, or None when nothing applies."""
        category_id = self.resolve_id(context, CATEGORY, forced_value)
        return self.store.find_category(category_id) if category_id else None

    def resolve_id(self, context: Union[ContextInfo, int], field: str, forced_value: ForcedValue = None) -> Optional[int]:
        if field not in (PURPOSE, CATEGORY):
            raise ValueError(f"Unknown policy field: {field}")

        if not isinstance(context, ContextInfo):
            context = require_context(self.graph, context)
        forced = self._coerce_forced(forced_value, field)

        if forced.is_value:
            logger.debug(f"Context {context.id}: forced {field} {forced.value}")
            return forced.value

        for node in iter_ancestors(self.graph, context):
            is_target = node.id == context.id

            if not (is_target and forced.is_inherit):
                ref = _pick(self.store.get_instance_override(node.id), field)
                if ref.is_value:
                    logger.debug(f"Context {context.id}: {field} {ref.value} from override on context {node.id}")
                    return ref.value

            ref = self._level_default(node.level, node.subtype, field)
            if ref.is_value:
                logger.debug(f"Context {context.id}: {field} {ref.value} from {node.level.value} default via context {node.id}")
                return ref.value

        logger.debug(f"Context {context.id}: no {field} defined")
        return None

    # === CONTEXT LEVEL RESOLUTION ===

    def get_effective_contextlevel_purpose(
        self,
        context_level: ContextLevel,
        subtype: Optional[str] = None,
        forced_value: ForcedValue = None
    ) -> Optional[Purpose]:
        """Purpose a brand new context at this level would get"""
        purpose_id = self.resolve_level_id(context_level, PURPOSE, subtype, forced_value)
        return self.store.find_purpose(purpose_id) if purpose_id else None

    def get_effective_contextlevel_category(
        self,
        context_level: ContextLevel,
        subtype: Optional[str] = None,
        forced_value: ForcedValue = None
    ) -> Optional[Category]:
        category_id = self.resolve_level_id(context_level, CATEGORY, subtype, forced_value)
        return self.store.find_category(category_id) if category_id else None

    def get_effective_default_ids(self, context_level: ContextLevel, subtype: Optional[str] = None) -> Tuple[Optional[int], Optional[int]]:
        """(purpose id, category id) defaults in effect for a level"""
        return (
            self.resolve_level_id(context_level, PURPOSE, subtype),
            self.resolve_level_id(context_level, CATEGORY, subtype),
        )

    def resolve_level_id(
        self,
        context_level: ContextLevel,
        field: str,
        subtype: Optional[str] = None,
        forced_value: ForcedValue = None
    ) -> Optional[int]:
        forced = self._coerce_forced(forced_value, field)
        if forced.is_value:
            return forced.value

        level: Optional[ContextLevel] = context_level
        skip_first = forced.is_inherit
        while level is not None:
            if not skip_first:
                ref = self._level_default(level, subtype if level == ContextLevel.MODULE else None, field)
                if ref.is_value:
                    return ref.value
            skip_first = False
            level = LEVEL_PARENTS[level]
        return None

    # === HELPERS ===

    def _coerce_forced(self, forced_value: ForcedValue, field: str) -> PolicyRef:
        forced = PolicyRef.coerce(forced_value)
        if forced.is_value:
            if field == PURPOSE and not self.store.find_purpose(forced.value):
                raise ValueError(f"Purpose {forced.value} not found")
            if field == CATEGORY and not self.store.find_category(forced.value):
                raise ValueError(f"Category {forced.value} not found")
        return forced

    def _level_default(self, context_level: ContextLevel, subtype: Optional[str], field: str) -> PolicyRef:
        if context_level == ContextLevel.MODULE and subtype:
            ref = _pick(self.store.get_level_default(context_level, subtype), field)
            if ref.is_value:
                return ref
        return _pick(self.store.get_level_default(context_level), field)
