"""
Policy Store

Persistence for purposes, categories, context level defaults and context
instance overrides. Every set operation is a full overwrite of the record
it targets; nothing here reads or writes the context graph.
"""

from typing import List, Dict, Any, Optional, Tuple, Union
from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError
import logging

from dataprivacy.models.policy_ref import PolicyRef
from dataprivacy.models.registry import (
    Purpose, Category, ContextLevel, ContextLevelDefault, ContextInstance
)
from dataprivacy.schemas.registry import (
    PurposeCreate, PurposeUpdate, CategoryCreate, CategoryUpdate, PolicyRefInput
)
from dataprivacy.compliance.audit_service import PrivacyAuditService, AuditCategory
from dataprivacy.compliance.exceptions import PreconditionViolation

logger = logging.getLogger(__name__)

PolicyPair = Tuple[PolicyRef, PolicyRef]


def subtype_key(level: ContextLevel, subtype: Optional[str]) -> str:
    """Storage key for a subtype; only module contexts may carry one"""
    subtype = (subtype or "").strip()
    if subtype and level != ContextLevel.MODULE:
        raise PreconditionViolation(
            f"Subtypes only apply to module contexts, not {level.value}",
            details={"context_level": level.value, "subtype": subtype}
        )
    return subtype


class PolicyStore:
    """Repository for registry records backed by a SQLAlchemy session."""

    def __init__(self, db: Session, audit_service: PrivacyAuditService = None):
        self.db = db
        self.audit_service = audit_service or PrivacyAuditService(db)

    # === PURPOSES ===

    def create_purpose(self, data: Union[PurposeCreate, Dict[str, Any]], user_id: int = None) -> Purpose:
        """Create a purpose from validated input"""
        if not isinstance(data, PurposeCreate):
            data = PurposeCreate.model_validate(data)

        purpose = Purpose(
            name=data.name,
            description=data.description,
            retention_period=data.retention_period,
            protected=data.protected,
            lawful_bases=",".join(b.value for b in data.lawful_bases),
            sensitive_data_reasons=",".join(r.value for r in data.sensitive_data_reasons) or None
        )
        self.db.add(purpose)
        self._flush("create purpose")
        self._audit(
            "purpose_created",
            f"Purpose '{purpose.name}' created",
            user_id=user_id,
            details={"purpose_id": purpose.id, "retention_period": purpose.retention_period, "protected": purpose.protected}
        )
        self._commit("create purpose")
        self.db.refresh(purpose)

        logger.info(f"Created purpose {purpose.id} '{purpose.name}' (retention {purpose.retention_period}, protected={purpose.protected})")
        return purpose

    def update_purpose(self, purpose_id: int, data: Union[PurposeUpdate, Dict[str, Any]], user_id: int = None) -> Purpose:
        """Update the provided fields of a purpose"""
        if not isinstance(data, PurposeUpdate):
            data = PurposeUpdate.model_validate(data)

        purpose = self.get_purpose(purpose_id)
        # Only description and sensitive data reasons may be cleared
        changes = {
            key: value for key, value in data.model_dump(exclude_unset=True).items()
            if value is not None or key in ("description", "sensitive_data_reasons")
        }

        for key, value in changes.items():
            if key == "lawful_bases":
                value = ",".join(b.value for b in value)
            elif key == "sensitive_data_reasons":
                value = ",".join(r.value for r in (value or [])) or None
            setattr(purpose, key, value)

        self._audit("purpose_updated", f"Purpose '{purpose.name}' updated", user_id=user_id,
                    details={"purpose_id": purpose.id, "fields": sorted(changes)})
        self._commit("update purpose")
        self.db.refresh(purpose)

        logger.info(f"Updated purpose {purpose.id}: {sorted(changes)}")
        return purpose

    def find_purpose(self, purpose_id: int) -> Optional[Purpose]:
        return self.db.get(Purpose, purpose_id)

    def get_purpose(self, purpose_id: int) -> Purpose:
        purpose = self.find_purpose(purpose_id)
        if not purpose:
            raise ValueError(f"Purpose {purpose_id} not found")
        return purpose

    def get_purposes(self) -> List[Purpose]:
        return self.db.query(Purpose).order_by(Purpose.name, Purpose.id).all()

    def delete_purpose(self, purpose_id: int, user_id: int = None) -> bool:
        """Delete a purpose that no default or override references"""
        purpose = self.get_purpose(purpose_id)

        in_use = (
            self.db.query(ContextLevelDefault).filter(ContextLevelDefault.purpose_id == purpose_id).count()
            + self.db.query(ContextInstance).filter(ContextInstance.purpose_id == purpose_id).count()
        )
        if in_use:
            raise PreconditionViolation(
                f"Purpose {purpose_id} is assigned to {in_use} context(s) and cannot be deleted",
                details={"purpose_id": purpose_id, "assignments": in_use}
            )

        name = purpose.name
        self.db.delete(purpose)
        self._audit("purpose_deleted", f"Purpose '{name}' deleted", user_id=user_id, details={"purpose_id": purpose_id})
        self._commit("delete purpose")

        logger.info(f"Deleted purpose {purpose_id} '{name}'")
        return True

    # === CATEGORIES ===

    def create_category(self, data: Union[CategoryCreate, Dict[str, Any]], user_id: int = None) -> Category:
        if not isinstance(data, CategoryCreate):
            data = CategoryCreate.model_validate(data)

        category = Category(name=data.name, description=data.description)
        self.db.add(category)
        self._flush("create category")
        self._audit("category_created", f"Category '{category.name}' created", user_id=user_id,
                    details={"category_id": category.id})
        self._commit("create category")
        self.db.refresh(category)

        logger.info(f"Created category {category.id} '{category.name}'")
        return category

    def update_category(self, category_id: int, data: Union[CategoryUpdate, Dict[str, Any]], user_id: int = None) -> Category:
        if not isinstance(data, CategoryUpdate):
            data = CategoryUpdate.model_validate(data)

        category = self.get_category(category_id)
        changes = {
            key: value for key, value in data.model_dump(exclude_unset=True).items()
            if value is not None or key == "description"
        }
        for key, value in changes.items():
            setattr(category, key, value)

        self._audit("category_updated", f"Category '{category.name}' updated", user_id=user_id,
                    details={"category_id": category.id, "fields": sorted(changes)})
        self._commit("update category")
        self.db.refresh(category)

        logger.info(f"Updated category {category.id}: {sorted(changes)}")
        return category

    def find_category(self, category_id: int) -> Optional[Category]:
        return self.db.get(Category, category_id)

    def get_category(self, category_id: int) -> Category:
        category = self.find_category(category_id)
        if not category:
            raise ValueError(f"Category {category_id} not found")
        return category

    def get_categories(self) -> List[Category]:
        return self.db.query(Category).order_by(Category.name, Category.id).all()

    def delete_category(self, category_id: int, user_id: int = None) -> bool:
        category = self.get_category(category_id)

        in_use = (
            self.db.query(ContextLevelDefault).filter(ContextLevelDefault.category_id == category_id).count()
            + self.db.query(ContextInstance).filter(ContextInstance.category_id == category_id).count()
        )
        if in_use:
            raise PreconditionViolation(
                f"Category {category_id} is assigned to {in_use} context(s) and cannot be deleted",
                details={"category_id": category_id, "assignments": in_use}
            )

        name = category.name
        self.db.delete(category)
        self._audit("category_deleted", f"Category '{name}' deleted", user_id=user_id, details={"category_id": category_id})
        self._commit("delete category")

        logger.info(f"Deleted category {category_id} '{name}'")
        return True

    # === CONTEXT INSTANCE OVERRIDES ===

    def get_instance_record(self, context_id: int) -> Optional[ContextInstance]:
        return self.db.query(ContextInstance).filter(ContextInstance.context_id == context_id).first()

    def get_instance_override(self, context_id: int) -> Optional[PolicyPair]:
        record = self.get_instance_record(context_id)
        if not record:
            return None
        return record.purpose_ref, record.category_ref

    def set_instance_override(
        self,
        context_id: int,
        purpose_ref: PolicyRefInput,
        category_ref: PolicyRefInput,
        *,
        context_level: ContextLevel,
        subtype: Optional[str] = None,
        user_id: int = None
    ) -> ContextInstance:
        """Upsert the override for a context, replacing any existing values"""
        purpose_ref = PolicyRef.coerce(purpose_ref)
        category_ref = PolicyRef.coerce(category_ref)
        key = subtype_key(context_level, subtype)
        self._check_refs(purpose_ref, category_ref)

        record = self.get_instance_record(context_id)
        created = record is None
        if created:
            record = ContextInstance(context_id=context_id)
            self.db.add(record)

        record.context_level = context_level
        record.subtype = key
        record.purpose_ref = purpose_ref
        record.category_ref = category_ref

        self._audit(
            "context_instance_set",
            f"Context {context_id} override set",
            user_id=user_id,
            details={"context_id": context_id, "purpose": repr(purpose_ref), "category": repr(category_ref), "created": created}
        )
        self._commit("set context instance")
        self.db.refresh(record)

        logger.info(f"{'Created' if created else 'Updated'} override for context {context_id}: purpose={purpose_ref!r} category={category_ref!r}")
        return record

    def delete_instance_override(self, context_id: int, user_id: int = None) -> bool:
        """Remove a context override; returns False when there was none"""
        record = self.get_instance_record(context_id)
        if not record:
            logger.debug(f"No override to delete for context {context_id}")
            return False

        self.db.delete(record)
        self._audit("context_instance_unset", f"Context {context_id} override removed", user_id=user_id,
                    details={"context_id": context_id})
        self._commit("delete context instance")

        logger.info(f"Deleted override for context {context_id}")
        return True

    def count_instance_overrides(self, context_level: ContextLevel = None, subtype: Optional[str] = None) -> int:
        query = self.db.query(ContextInstance)
        if context_level is not None:
            query = query.filter(ContextInstance.context_level == context_level)
        if subtype:
            query = query.filter(ContextInstance.subtype == subtype)
        return query.count()

    # === CONTEXT LEVEL DEFAULTS ===

    def get_level_record(self, context_level: ContextLevel, subtype: Optional[str] = None) -> Optional[ContextLevelDefault]:
        key = subtype_key(context_level, subtype)
        return self.db.query(ContextLevelDefault).filter(
            ContextLevelDefault.context_level == context_level,
            ContextLevelDefault.subtype == key
        ).first()

    def get_level_default(self, context_level: ContextLevel, subtype: Optional[str] = None) -> Optional[PolicyPair]:
        record = self.get_level_record(context_level, subtype)
        if not record:
            return None
        return record.purpose_ref, record.category_ref

    def set_level_default(
        self,
        context_level: ContextLevel,
        subtype: Optional[str],
        purpose_ref: PolicyRefInput,
        category_ref: PolicyRefInput,
        override_existing: bool = False,
        user_id: int = None
    ) -> ContextLevelDefault:
        """
        Upsert the default for a level (and module subtype).

        With ``override_existing`` every instance override at that level is
        removed in the same transaction, restricted to the subtype when one
        is given, so those contexts fall back to the new default.
        """
        purpose_ref = PolicyRef.coerce(purpose_ref)
        category_ref = PolicyRef.coerce(category_ref)
        key = subtype_key(context_level, subtype)
        self._check_refs(purpose_ref, category_ref)

        record = self.get_level_record(context_level, key)
        if record is None:
            record = ContextLevelDefault(context_level=context_level, subtype=key)
            self.db.add(record)

        record.purpose_ref = purpose_ref
        record.category_ref = category_ref

        removed = 0
        if override_existing:
            query = self.db.query(ContextInstance).filter(ContextInstance.context_level == context_level)
            if key:
                query = query.filter(ContextInstance.subtype == key)
            removed = query.delete(synchronize_session="fetch")

        self._audit(
            "contextlevel_default_set",
            f"Default for {context_level.value}{'/' + key if key else ''} set",
            user_id=user_id,
            details={
                "context_level": context_level.value,
                "subtype": key or None,
                "purpose": repr(purpose_ref),
                "category": repr(category_ref),
                "overridden_instances": removed,
            }
        )
        self._commit("set context level default")
        self.db.refresh(record)

        logger.info(
            f"Set default for {context_level.value}{'/' + key if key else ''}: purpose={purpose_ref!r} "
            f"category={category_ref!r}, removed {removed} instance override(s)"
        )
        return record

    # === HELPERS ===

    def _check_refs(self, purpose_ref: PolicyRef, category_ref: PolicyRef):
        if purpose_ref.is_value and not self.find_purpose(purpose_ref.value):
            raise ValueError(f"Purpose {purpose_ref.value} not found")
        if category_ref.is_value and not self.find_category(category_ref.value):
            raise ValueError(f"Category {category_ref.value} not found")

    def _audit(self, event_type: str, description: str, user_id: int = None, details: Dict[str, Any] = None):
        self.audit_service.log_event(
            event_type,
            AuditCategory.REGISTRY,
            description,
            user_id=user_id,
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
