"""
Data Request Service

Lifecycle of data subject requests: creation, status transitions, DPO
approval and denial, and lookups for a user's ongoing requests.
"""

from typing import List, Optional, Iterable, Union
from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy import desc
import logging

from dataprivacy.core.config import settings
from dataprivacy.models.data_request import (
    DataRequest, DataRequestType, DataRequestStatus, ContextListStatus,
    ACTIVE_REQUEST_STATUSES
)
from dataprivacy.schemas.data_request import DataRequestCreate, DataRequestStatusUpdate
from dataprivacy.compliance.audit_service import PrivacyAuditService, AuditCategory
from dataprivacy.compliance.exceptions import PreconditionViolation
from dataprivacy.compliance.protection import ProtectionFilter

logger = logging.getLogger(__name__)


class DataRequestService:
    """Creates data requests and moves them through their statuses."""

    def __init__(self, db: Session, protection_filter: ProtectionFilter, audit_service: PrivacyAuditService = None):
        self.db = db
        self.protection_filter = protection_filter
        self.audit_service = audit_service or PrivacyAuditService(db)

    @staticmethod
    def is_active(status: Union[DataRequestStatus, str]) -> bool:
        """Whether a request in this status is still being worked on"""
        return DataRequestStatus(status) in ACTIVE_REQUEST_STATUSES

    def create_data_request(
        self,
        user_id: int,
        type: Union[DataRequestType, str],
        comments: str = "",
        requested_by: Optional[int] = None,
        dpo_id: Optional[int] = None
    ) -> DataRequest:
        """Create a pending request for ``user_id``; requested_by defaults to the subject"""
        data = DataRequestCreate(
            user_id=user_id,
            type=type,
            comments=comments,
            requested_by=requested_by,
            dpo_id=dpo_id
        )

        request = DataRequest(
            user_id=data.user_id,
            requested_by=data.requested_by or data.user_id,
            dpo_id=data.dpo_id,
            type=data.type,
            status=DataRequestStatus.PENDING,
            comments=data.comments or None
        )
        self.db.add(request)
        self._flush("create data request")
        self._audit(
            "data_request_created",
            f"{data.type.value.capitalize()} request {request.id} created",
            request,
            user_id=request.requested_by
        )
        self._commit("create data request")
        self.db.refresh(request)

        logger.info(f"Created {request.type.value} request {request.id} for user {request.user_id} (by {request.requested_by})")
        return request

    def get_data_request(self, request_id: int) -> DataRequest:
        request = self.db.query(DataRequest).filter(DataRequest.id == request_id).first()
        if not request:
            raise ValueError(f"Data request {request_id} not found")
        return request

    def update_request_status(
        self,
        request_id: int,
        status: Union[DataRequestStatus, str],
        dpo_id: Optional[int] = None,
        comment: Optional[str] = None
    ) -> bool:
        """
        Move a request to ``status``.

        A comment that is not blank is appended, as given, to the DPO comment
        history; blank comments are ignored.
        """
        update = DataRequestStatusUpdate(status=status, dpo_id=dpo_id, comment=comment)
        request = self.get_data_request(request_id)

        previous = self._apply_status(request, update)
        self._commit("update data request status")

        logger.info(f"Request {request_id}: {previous.value} -> {update.status.value}")
        return True

    def approve_data_request(self, request_id: int, dpo_id: Optional[int] = None) -> bool:
        """Approve a request awaiting approval, together with its attached contexts"""
        return self._decide(request_id, DataRequestStatus.APPROVED, ContextListStatus.APPROVED, dpo_id, "approve")

    def deny_data_request(self, request_id: int, dpo_id: Optional[int] = None) -> bool:
        return self._decide(request_id, DataRequestStatus.REJECTED, ContextListStatus.REJECTED, dpo_id, "deny")

    def get_data_requests(
        self,
        user_id: Optional[int] = None,
        statuses: Optional[Iterable[Union[DataRequestStatus, str]]] = None,
        types: Optional[Iterable[Union[DataRequestType, str]]] = None
    ) -> List[DataRequest]:
        """Requests, newest first, optionally narrowed by subject, status and type"""
        query = self._filtered_query(user_id, statuses, types)
        return query.order_by(desc(DataRequest.created_at), desc(DataRequest.id)).all()

    def get_data_requests_count(
        self,
        user_id: Optional[int] = None,
        statuses: Optional[Iterable[Union[DataRequestStatus, str]]] = None,
        types: Optional[Iterable[Union[DataRequestType, str]]] = None
    ) -> int:
        return self._filtered_query(user_id, statuses, types).count()

    def has_ongoing_request(self, user_id: int, type: Union[DataRequestType, str]) -> bool:
        """Whether the user already has an active request of this type"""
        return self.get_data_requests_count(user_id, ACTIVE_REQUEST_STATUSES, [type]) > 0

    # === HELPERS ===

    def _apply_status(self, request: DataRequest, update: DataRequestStatusUpdate) -> DataRequestStatus:
        previous = request.status

        request.status = update.status
        if update.dpo_id:
            request.dpo_id = update.dpo_id
        if update.comment.strip():
            if request.dpo_comment:
                request.dpo_comment = f"{request.dpo_comment}{settings.DPO_COMMENT_SEPARATOR}{update.comment}"
            else:
                request.dpo_comment = update.comment

        self._audit(
            "data_request_status_changed",
            f"Request {request.id} moved from {previous.value} to {update.status.value}",
            request,
            user_id=update.dpo_id,
            extra={"from": previous.value, "to": update.status.value}
        )
        return previous

    def _decide(
        self,
        request_id: int,
        status: DataRequestStatus,
        context_status: ContextListStatus,
        dpo_id: Optional[int],
        action: str
    ) -> bool:
        # Request and context statuses land in one transaction
        update = DataRequestStatusUpdate(status=status, dpo_id=dpo_id)
        request = self._require_awaiting_approval(request_id, action)

        self.protection_filter.update_request_contexts_with_status(request_id, context_status, commit=False)
        previous = self._apply_status(request, update)
        self._commit(f"{action} data request")

        logger.info(f"Request {request_id}: {previous.value} -> {status.value}")
        return True

    def _filtered_query(self, user_id, statuses, types):
        query = self.db.query(DataRequest)

        if user_id is not None:
            query = query.filter(DataRequest.user_id == user_id)

        if statuses is not None:
            query = query.filter(DataRequest.status.in_([DataRequestStatus(s) for s in statuses]))

        if types is not None:
            query = query.filter(DataRequest.type.in_([DataRequestType(t) for t in types]))

        return query

    def _require_awaiting_approval(self, request_id: int, action: str):
        request = self.get_data_request(request_id)
        if request.status != DataRequestStatus.AWAITING_APPROVAL:
            logger.warning(f"Cannot {action} request {request_id} in status {request.status.value}")
            raise PreconditionViolation(
                f"Request {request_id} is not awaiting approval",
                details={"request_id": request_id, "status": request.status.value}
            )
        return request

    def _audit(self, event_type: str, description: str, request: DataRequest, user_id: int = None, extra: dict = None):
        details = {"request_id": request.id, "type": request.type.value}
        if extra:
            details.update(extra)
        self.audit_service.log_event(
            event_type,
            AuditCategory.REQUEST,
            description,
            user_id=user_id,
            affected_user_id=request.user_id,
            technical_details=details
        )

    def _flush(self, action: str):
        try:
            self.db.flush()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to {action}: {str(e)}")
            raise

    def _commit(self, action: str):
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to {action}: {str(e)}")
            raise
