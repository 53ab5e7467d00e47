"""
Context Graph

Read-only view of the platform's context tree. The registry only ever asks
for a context's level, parent, module subtype and natural end date; the
tree itself is owned by the surrounding platform.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterator, Optional, Protocol, runtime_checkable
import logging

from dataprivacy.models.registry import ContextLevel

logger = logging.getLogger(__name__)


# Level-only inheritance used when resolving defaults without a concrete context
LEVEL_PARENTS: Dict[ContextLevel, Optional[ContextLevel]] = {
    ContextLevel.SYSTEM: None,
    ContextLevel.USER: ContextLevel.SYSTEM,
    ContextLevel.COURSECAT: ContextLevel.SYSTEM,
    ContextLevel.COURSE: ContextLevel.COURSECAT,
    ContextLevel.MODULE: ContextLevel.COURSE,
    ContextLevel.BLOCK: ContextLevel.COURSE,
}

# Deepest chain is block/module -> course -> coursecat(s) -> system; a few
# nested course categories are tolerated before treating the graph as cyclic
MAX_CONTEXT_DEPTH = 16


@dataclass(frozen=True)
class ContextInfo:
    """Snapshot of a context node"""
    id: int
    level: ContextLevel
    parent_id: Optional[int] = None
    subtype: Optional[str] = None  # module name for MODULE contexts, e.g. "assign"
    end_date: Optional[datetime] = None  # course end date, user last access


@runtime_checkable
class ContextGraph(Protocol):
    """Protocol every context provider must follow."""

    def get_context(self, context_id: int) -> Optional[ContextInfo]:
        """Return the context node, or None if it does not exist."""
        ...

    def get_system_context(self) -> ContextInfo:
        """Return the root context."""
        ...


class ContextNotFoundError(LookupError):
    """Raised when a context id is unknown to the graph"""

    def __init__(self, context_id: int):
        super().__init__(f"Context {context_id} not found")
        self.context_id = context_id


def require_context(graph: ContextGraph, context_id: int) -> ContextInfo:
    context = graph.get_context(context_id)
    if context is None:
        raise ContextNotFoundError(context_id)
    return context


def iter_ancestors(graph: ContextGraph, context: ContextInfo, include_self: bool = True) -> Iterator[ContextInfo]:
    """Walk from ``context`` up to the system context"""
    current: Optional[ContextInfo] = context if include_self else None
    if current is None and context.parent_id is not None:
        current = require_context(graph, context.parent_id)

    depth = 0
    while current is not None:
        depth += 1
        if depth > MAX_CONTEXT_DEPTH:
            raise RuntimeError(f"Context hierarchy above {context.id} is deeper than {MAX_CONTEXT_DEPTH}; cycle?")
        yield current
        if current.parent_id is None:
            return
        current = require_context(graph, current.parent_id)


def find_ancestor(graph: ContextGraph, context: ContextInfo, level: ContextLevel) -> Optional[ContextInfo]:
    """Closest context at ``level`` on the path to the root (self included)"""
    for node in iter_ancestors(graph, context):
        if node.level == level:
            return node
    return None


class InMemoryContextGraph:
    """
    Dict-backed ContextGraph.

    Builds the usual shapes (categories, courses, modules, blocks, users)
    with sequential ids; the system context is always id 1.
    """

    SYSTEM_CONTEXT_ID = 1

    def __init__(self):
        self._contexts: Dict[int, ContextInfo] = {}
        self._next_id = self.SYSTEM_CONTEXT_ID
        self.system = self._add(ContextLevel.SYSTEM, parent=None)

    # === ContextGraph protocol ===

    def get_context(self, context_id: int) -> Optional[ContextInfo]:
        return self._contexts.get(context_id)

    def get_system_context(self) -> ContextInfo:
        return self.system

    # === Builders ===

    def add_user(self, last_access: Optional[datetime] = None) -> ContextInfo:
        return self._add(ContextLevel.USER, parent=self.system, end_date=last_access)

    def add_category(self, parent: Optional[ContextInfo] = None) -> ContextInfo:
        parent = parent or self.system
        if parent.level not in (ContextLevel.SYSTEM, ContextLevel.COURSECAT):
            raise ValueError(f"Course categories cannot live under a {parent.level.value} context")
        return self._add(ContextLevel.COURSECAT, parent=parent)

    def add_course(self, category: Optional[ContextInfo] = None, end_date: Optional[datetime] = None) -> ContextInfo:
        parent = category or self.system
        if parent.level not in (ContextLevel.SYSTEM, ContextLevel.COURSECAT):
            raise ValueError(f"Courses cannot live under a {parent.level.value} context")
        return self._add(ContextLevel.COURSE, parent=parent, end_date=end_date)

    def add_module(self, course: ContextInfo, subtype: str) -> ContextInfo:
        if course.level != ContextLevel.COURSE:
            raise ValueError("Modules must belong to a course context")
        if not subtype:
            raise ValueError("Module contexts need a subtype")
        return self._add(ContextLevel.MODULE, parent=course, subtype=subtype)

    def add_block(self, parent: Optional[ContextInfo] = None) -> ContextInfo:
        return self._add(ContextLevel.BLOCK, parent=parent or self.system)

    def _add(
        self,
        level: ContextLevel,
        parent: Optional[ContextInfo],
        subtype: Optional[str] = None,
        end_date: Optional[datetime] = None
    ) -> ContextInfo:
        context = ContextInfo(
            id=self._next_id,
            level=level,
            parent_id=parent.id if parent else None,
            subtype=subtype,
            end_date=end_date,
        )
        self._contexts[context.id] = context
        self._next_id += 1
        logger.debug(f"Added {level.value} context {context.id} under {context.parent_id}")
        return context
