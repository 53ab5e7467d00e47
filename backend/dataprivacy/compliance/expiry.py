"""
Expiry anchors for retention checks.

A context has expired once its purpose's retention period has run from the
context's anchor. Courses anchor on their end date, activities and blocks on
their course, users on their last access. Anything without a natural end
anchors on "now" and so never counts as expired.
"""

from datetime import datetime
from typing import Optional
import logging

from dataprivacy.models.registry import ContextLevel, Purpose
from dataprivacy.utils.clock import Clock, utcnow, as_naive_utc
from dataprivacy.utils.duration import has_elapsed
from dataprivacy.compliance.contexts import ContextGraph, ContextInfo, find_ancestor

logger = logging.getLogger(__name__)


class ExpiryAnchorPolicy:
    """Decides when a context's retention period starts running"""

    def __init__(self, graph: ContextGraph, clock: Optional[Clock] = None):
        self.graph = graph
        self.clock = clock or utcnow

    def now(self) -> datetime:
        return as_naive_utc(self.clock())

    def anchor_for(self, context: ContextInfo) -> datetime:
        if context.level in (ContextLevel.COURSE, ContextLevel.USER):
            return self._end_or_now(context)

        if context.level in (ContextLevel.MODULE, ContextLevel.BLOCK):
            course = find_ancestor(self.graph, context, ContextLevel.COURSE)
            if course is not None:
                return self._end_or_now(course)

        return self.now()

    def is_expired(self, context: ContextInfo, purpose: Purpose) -> bool:
        now = self.now()
        anchor = self.anchor_for(context)
        expired = has_elapsed(anchor, purpose.retention_period, now)
        logger.debug(
            f"Context {context.id}: anchor {anchor.isoformat()}, retention {purpose.retention_period}, "
            f"expired={expired}"
        )
        return expired

    def _end_or_now(self, context: ContextInfo) -> datetime:
        if context.end_date is None:
            return self.now()
        return as_naive_utc(context.end_date)
