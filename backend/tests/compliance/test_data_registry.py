"""
Test cases for the Data Registry entry points

Validates direct level configuration, per-context overrides and the batch
default setter with its instance override cascade.
"""

import itertools

import pytest
from pydantic import ValidationError
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from dataprivacy.core.database import Base
from dataprivacy.models import ContextLevel, PolicyRef, INHERIT
from dataprivacy.compliance.audit_service import PrivacyAuditService
from dataprivacy.compliance.contexts import ContextNotFoundError, InMemoryContextGraph
from dataprivacy.compliance.data_registry import DataRegistry
from dataprivacy.compliance.exceptions import PreconditionViolation


@pytest.fixture
def db_session():
    """Create test database session"""
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = SessionLocal()

    yield session

    session.close()


@pytest.fixture
def graph():
    graph = InMemoryContextGraph()
    graph.category = graph.add_category()
    graph.course = graph.add_course(graph.category)
    graph.assign = graph.add_module(graph.course, "assign")
    graph.forum = graph.add_module(graph.course, "forum")
    graph.block = graph.add_block(graph.course)
    graph.user = graph.add_user()
    return graph


@pytest.fixture
def registry(db_session, graph):
    return DataRegistry(db_session, graph, PrivacyAuditService(db_session, enabled=True))


@pytest.fixture
def purpose(registry):
    return registry.store.create_purpose({"name": "p1", "retention_period": "PT1H", "lawful_bases": "gdpr_art_6_1_a"})


@pytest.fixture
def category(registry):
    return registry.store.create_category({"name": "c1"})


class TestSetContextLevel:
    """Test direct level configuration"""

    @pytest.mark.parametrize("level", [ContextLevel.SYSTEM, ContextLevel.USER])
    def test_allowed_levels(self, registry, purpose, category, level):
        registry.set_contextlevel({"context_level": level, "purpose": purpose.id, "category": category.id})

        assert registry.get_defaults(level) == (PolicyRef.of(purpose.id), PolicyRef.of(category.id))
        assert registry.get_effective_contextlevel_purpose(level).id == purpose.id

    @pytest.mark.parametrize("level", [
        ContextLevel.COURSECAT, ContextLevel.COURSE, ContextLevel.MODULE, ContextLevel.BLOCK
    ])
    def test_disallowed_levels(self, registry, purpose, category, level):
        with pytest.raises(PreconditionViolation):
            registry.set_contextlevel({"context_level": level, "purpose": purpose.id, "category": category.id})

        assert registry.store.get_level_default(level) is None

    def test_subtype_rejected(self, registry, purpose):
        with pytest.raises(PreconditionViolation):
            registry.set_contextlevel({"context_level": ContextLevel.USER, "subtype": "assign", "purpose": purpose.id})

        assert registry.store.get_level_default(ContextLevel.USER) is None

    def test_unknown_level_rejected(self, registry):
        with pytest.raises(ValidationError):
            registry.set_contextlevel({"context_level": "galaxy", "purpose": None, "category": None})


class TestSetContextInstance:
    """Test per-context overrides"""

    def test_level_and_subtype_taken_from_graph(self, registry, graph, purpose, category):
        record = registry.set_context_instance({
            "context_id": graph.assign.id, "purpose": purpose.id, "category": category.id
        })

        assert record.context_level == ContextLevel.MODULE
        assert record.subtype == "assign"
        assert registry.get_effective_context_purpose(graph.assign).id == purpose.id
        assert registry.get_effective_context_category(graph.assign).id == category.id

    def test_inherit_values(self, registry, graph):
        record = registry.set_context_instance({"context_id": graph.course.id, "purpose": INHERIT, "category": INHERIT})

        assert record.purpose_ref.is_inherit
        assert record.category_ref.is_inherit

    def test_unknown_context(self, registry, purpose):
        with pytest.raises(ContextNotFoundError):
            registry.set_context_instance({"context_id": 999, "purpose": purpose.id})

    def test_invalid_context_id(self, registry):
        with pytest.raises(ValidationError):
            registry.set_context_instance({"context_id": 0})

    def test_unset_context_instance(self, registry, graph, purpose):
        registry.set_context_instance({"context_id": graph.course.id, "purpose": purpose.id})

        assert registry.unset_context_instance(graph.course.id) is True
        assert registry.store.get_instance_override(graph.course.id) is None
        assert registry.get_effective_context_purpose(graph.course) is None


def _defaults_cases():
    levels = [
        (ContextLevel.COURSECAT, None),
        (ContextLevel.COURSE, None),
        (ContextLevel.MODULE, None),
        (ContextLevel.MODULE, "assign"),
        (ContextLevel.BLOCK, None),
    ]
    inherits = [(False, False), (True, True), (True, False), (False, True)]
    for (level, subtype), (purpose_inherits, category_inherits), override in itertools.product(levels, inherits, [False, True]):
        yield pytest.param(
            level, subtype, purpose_inherits, category_inherits, override,
            id=f"{level.value}-{subtype or 'all'}-p{int(purpose_inherits)}c{int(category_inherits)}-override{int(override)}"
        )


class TestSetContextDefaults:
    """Test the batch default setter"""

    def _instances_for(self, graph, level):
        if level == ContextLevel.COURSECAT:
            return [graph.category]
        if level == ContextLevel.COURSE:
            return [graph.course]
        if level == ContextLevel.MODULE:
            return [graph.assign, graph.forum]
        return [graph.block]

    @pytest.mark.parametrize("level,subtype,purpose_inherits,category_inherits,override", list(_defaults_cases()))
    def test_set_context_defaults(self, registry, graph, level, subtype, purpose_inherits, category_inherits, override):
        store = registry.store
        purpose1 = store.create_purpose({"name": "p1", "retention_period": "PT1H", "lawful_bases": "gdpr_art_6_1_a"})
        purpose2 = store.create_purpose({"name": "p2", "retention_period": "PT1H", "lawful_bases": "gdpr_art_6_1_a"})
        category1 = store.create_category({"name": "c1"})
        category2 = store.create_category({"name": "c2"})

        contexts = self._instances_for(graph, level)
        for context in contexts:
            registry.set_context_instance({"context_id": context.id, "purpose": purpose1.id, "category": category1.id})
        # Overrides at other levels are never touched
        registry.set_context_instance({"context_id": graph.user.id, "purpose": purpose1.id, "category": category1.id})

        purpose_ref = INHERIT if purpose_inherits else purpose2.id
        category_ref = INHERIT if category_inherits else category2.id

        result = registry.set_context_defaults(level, category_ref, purpose_ref, subtype, override)
        assert result is True

        stored_purpose, stored_category = registry.get_defaults(level, subtype)
        assert stored_purpose == PolicyRef.coerce(purpose_ref)
        assert stored_category == PolicyRef.coerce(category_ref)

        for context in contexts:
            targeted = subtype is None or context.subtype == subtype
            exists = registry.store.get_instance_override(context.id) is not None
            assert exists == (not (override and targeted))

        assert registry.store.get_instance_override(graph.user.id) is not None

    def test_module_override_without_subtype_clears_every_module(self, registry, graph, purpose, category):
        for context in (graph.assign, graph.forum):
            registry.set_context_instance({"context_id": context.id, "purpose": purpose.id, "category": category.id})

        registry.set_context_defaults(ContextLevel.MODULE, category.id, purpose.id, None, True)

        assert registry.store.count_instance_overrides(ContextLevel.MODULE) == 0

    def test_subtype_override_keeps_other_subtypes(self, registry, graph, purpose, category):
        for context in (graph.assign, graph.forum):
            registry.set_context_instance({"context_id": context.id, "purpose": purpose.id, "category": category.id})

        registry.set_context_defaults(ContextLevel.MODULE, category.id, purpose.id, "assign", True)

        assert registry.store.get_instance_override(graph.assign.id) is None
        assert registry.store.get_instance_override(graph.forum.id) is not None

    def test_new_default_applies_after_override(self, registry, graph, purpose):
        other = registry.store.create_purpose({"name": "p2", "retention_period": "P1D", "lawful_bases": "gdpr_art_6_1_b"})
        registry.set_context_instance({"context_id": graph.course.id, "purpose": purpose.id})

        registry.set_context_defaults(ContextLevel.COURSE, None, other.id, override_instances=False)
        assert registry.get_effective_context_purpose(graph.course).id == purpose.id

        registry.set_context_defaults(ContextLevel.COURSE, None, other.id, override_instances=True)
        assert registry.get_effective_context_purpose(graph.course).id == other.id

    def test_subtype_rejected_outside_modules(self, registry, purpose):
        with pytest.raises(PreconditionViolation):
            registry.set_context_defaults(ContextLevel.COURSE, None, purpose.id, "assign")
