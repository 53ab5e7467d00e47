"""
Protection Filter

Attaches the contexts found for a data request to that request, grouped per
component, and keeps protected data out of deletion. A context is withheld
from a delete request while its effective purpose is protected and its
retention period has not yet run out. Export requests take every context.
"""

from typing import Dict, Iterable, Iterator, List, Optional, Union
from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError
import logging

from dataprivacy.models.data_request import (
    DataRequest, DataRequestType, ContextList, ContextListContext,
    ContextListStatus, RequestContextList
)
from dataprivacy.compliance.audit_service import PrivacyAuditService, AuditCategory, AuditSeverity
from dataprivacy.compliance.contexts import ContextGraph, require_context
from dataprivacy.compliance.expiry import ExpiryAnchorPolicy
from dataprivacy.compliance.resolver import PolicyResolver

logger = logging.getLogger(__name__)


class ComponentContextList:
    """Context ids one component holds data in, in insertion order"""

    def __init__(self, component: str, context_ids: Iterable[int] = ()):
        if not component:
            raise ValueError("A context list needs a component")
        self.component = component
        self._context_ids: List[int] = []
        for context_id in context_ids:
            self.add_context(context_id)

    def add_context(self, context_id: int):
        if context_id not in self._context_ids:
            self._context_ids.append(context_id)

    @property
    def context_ids(self) -> List[int]:
        return list(self._context_ids)

    def __iter__(self) -> Iterator[int]:
        return iter(self._context_ids)

    def __len__(self) -> int:
        return len(self._context_ids)

    def __repr__(self):
        return f"{self.__class__.__name__}({self.component!r}, {self._context_ids!r})"


class ApprovedContextList(ComponentContextList):
    """Context list whose contexts were approved for processing"""


class ContextListCollection:
    """
    Per-component context lists for one user.

    ``len()`` counts component lists, so an empty collection is falsy.
    """

    def __init__(self, user_id: Optional[int] = None):
        self.user_id = user_id
        self._lists: Dict[str, ComponentContextList] = {}

    def add_contextlist(self, contextlist: ComponentContextList):
        if contextlist.component in self._lists:
            raise ValueError(f"A context list for component '{contextlist.component}' already exists")
        self._lists[contextlist.component] = contextlist

    def get_contextlist_for_component(self, component: str) -> Optional[ComponentContextList]:
        return self._lists.get(component)

    def __iter__(self) -> Iterator[ComponentContextList]:
        return iter(self._lists.values())

    def __len__(self) -> int:
        return len(self._lists)


class ProtectionFilter:
    """Persists request contexts and strips protected ones from deletions."""

    def __init__(
        self,
        db: Session,
        resolver: PolicyResolver,
        expiry_policy: ExpiryAnchorPolicy,
        audit_service: PrivacyAuditService = None
    ):
        self.db = db
        self.resolver = resolver
        self.expiry_policy = expiry_policy
        self.audit_service = audit_service or PrivacyAuditService(db)

    @property
    def graph(self) -> ContextGraph:
        return self.resolver.graph

    def is_protected_and_unexpired(self, context_id: int) -> bool:
        """True when the context's purpose is protected and still within retention"""
        context = require_context(self.graph, context_id)
        purpose = self.resolver.get_effective_context_purpose(context)

        if purpose is None or not purpose.protected:
            return False

        return not self.expiry_policy.is_expired(context, purpose)

    def filter_protected_contexts(
        self,
        contextlist: ComponentContextList,
        request: DataRequest,
        audit: bool = True
    ) -> ComponentContextList:
        """Copy of ``contextlist`` without the contexts a delete request may not touch"""
        kept = contextlist.__class__(contextlist.component)

        for context_id in contextlist:
            if request.type == DataRequestType.DELETE and self.is_protected_and_unexpired(context_id):
                logger.warning(
                    f"Request {request.id}: context {context_id} ({contextlist.component}) is protected "
                    f"and not expired; excluded from deletion"
                )
                if audit:
                    self.audit_service.log_event(
                        "protected_context_excluded",
                        AuditCategory.PROTECTION,
                        f"Context {context_id} withheld from delete request {request.id}",
                        severity_level=AuditSeverity.WARNING,
                        affected_user_id=request.user_id,
                        technical_details={"request_id": request.id, "context_id": context_id, "component": contextlist.component}
                    )
                continue
            kept.add_context(context_id)

        return kept

    def add_request_contexts_with_status(
        self,
        collection: ContextListCollection,
        request_id: int,
        status: Union[ContextListStatus, str]
    ) -> ContextListCollection:
        """
        Attach the contexts of ``collection`` to a request with ``status``.

        Returns what was stored. Components left without contexts after
        filtering are not stored.
        """
        status = ContextListStatus(status)
        request = self._get_request(request_id)
        stored = ContextListCollection(request.user_id)

        for contextlist in collection:
            kept = self.filter_protected_contexts(contextlist, request)
            if not len(kept):
                logger.info(f"Request {request_id}: no contexts left for component {contextlist.component}")
                continue

            record = ContextList(component=kept.component)
            record.contexts = [
                ContextListContext(context_id=context_id, status=status) for context_id in kept
            ]
            self.db.add(record)
            request.request_contextlists.append(RequestContextList(contextlist=record))
            stored.add_contextlist(kept)

        self.audit_service.log_event(
            "request_contexts_added",
            AuditCategory.PROTECTION,
            f"Contexts attached to request {request_id}",
            affected_user_id=request.user_id,
            technical_details={
                "request_id": request_id,
                "status": status.value,
                "components": {cl.component: cl.context_ids for cl in stored},
            }
        )
        self._commit(f"add contexts to request {request_id}")

        logger.info(
            f"Request {request_id}: stored {sum(len(cl) for cl in stored)} context(s) "
            f"in {len(stored)} component list(s) as {status.value}"
        )
        return stored

    def update_request_contexts_with_status(
        self,
        request_id: int,
        status: Union[ContextListStatus, str],
        commit: bool = True
    ) -> int:
        """
        Move every context attached to the request to ``status``; returns the count.

        With ``commit=False`` the change is left in the session for the caller
        to commit together with its own writes.
        """
        status = ContextListStatus(status)
        request = self._get_request(request_id)

        updated = 0
        for link in request.request_contextlists:
            for item in link.contextlist.contexts:
                item.status = status
                updated += 1

        if commit:
            self._commit(f"update contexts of request {request_id}")
        logger.info(f"Request {request_id}: {updated} context(s) set to {status.value}")
        return updated

    def get_approved_contextlist_collection_for_request(self, request: Union[DataRequest, int]) -> ContextListCollection:
        """Rebuild the approved contexts of a request, dropping protected ones for deletions"""
        if not isinstance(request, DataRequest):
            request = self._get_request(request)

        approved: Dict[str, ApprovedContextList] = {}
        rows = self.db.query(ContextList.component, ContextListContext.context_id).join(
            ContextListContext, ContextListContext.contextlist_id == ContextList.id
        ).join(
            RequestContextList, RequestContextList.contextlist_id == ContextList.id
        ).filter(
            RequestContextList.request_id == request.id,
            ContextListContext.status == ContextListStatus.APPROVED
        ).order_by(ContextList.id, ContextListContext.id).all()

        for component, context_id in rows:
            approved.setdefault(component, ApprovedContextList(component)).add_context(context_id)

        collection = ContextListCollection(request.user_id)
        for contextlist in approved.values():
            kept = self.filter_protected_contexts(contextlist, request, audit=False)
            if len(kept):
                collection.add_contextlist(kept)

        logger.debug(f"Request {request.id}: {len(collection)} approved component list(s)")
        return collection

    def _get_request(self, request_id: int) -> DataRequest:
        request = self.db.query(DataRequest).filter(DataRequest.id == request_id).first()
        if not request:
            raise ValueError(f"Data request {request_id} not found")
        return request

    def _commit(self, action: str):
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to {action}: {str(e)}")
            raise
