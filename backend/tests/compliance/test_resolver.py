"""
Test cases for effective purpose and category resolution

Validates inheritance through the context tree, precedence of instance
overrides over level defaults, INHERIT handling and forced previews.
"""

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from dataprivacy.core.database import Base
from dataprivacy.models import ContextLevel, INHERIT
from dataprivacy.compliance.audit_service import PrivacyAuditService
from dataprivacy.compliance.contexts import ContextInfo, ContextNotFoundError, InMemoryContextGraph
from dataprivacy.compliance.policy_store import PolicyStore
from dataprivacy.compliance.resolver import PolicyResolver


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
def store(db_session):
    return PolicyStore(db_session, PrivacyAuditService(db_session, enabled=False))


@pytest.fixture
def graph():
    """System > category > course > (assign, forum, block); plus one user"""
    graph = InMemoryContextGraph()
    graph.category = graph.add_category()
    graph.course = graph.add_course(graph.category)
    graph.assign = graph.add_module(graph.course, "assign")
    graph.forum = graph.add_module(graph.course, "forum")
    graph.block = graph.add_block(graph.course)
    graph.user = graph.add_user()
    return graph


@pytest.fixture
def resolver(store, graph):
    return PolicyResolver(store, graph)


@pytest.fixture
def purposes(store):
    """Four purposes keyed by the scope they are meant for"""
    return {
        name: store.create_purpose({"name": name, "retention_period": "P1Y", "lawful_bases": "gdpr_art_6_1_a"})
        for name in ("system", "coursecat", "course", "module")
    }


@pytest.fixture
def categories(store):
    return {
        name: store.create_category({"name": name})
        for name in ("system", "coursecat", "course", "module")
    }


def _all_contexts(graph):
    return [graph.user, graph.category, graph.course, graph.assign, graph.forum, graph.block]


class TestNothingConfigured:
    """Test resolution without any policy"""

    def test_system_resolves_to_nothing(self, resolver, graph):
        assert resolver.get_effective_context_purpose(graph.system) is None
        assert resolver.get_effective_context_category(graph.system) is None

    def test_descendants_resolve_to_nothing(self, resolver, graph):
        for context in _all_contexts(graph):
            assert resolver.get_effective_context_purpose(context) is None
            assert resolver.get_effective_context_category(context) is None

    def test_unknown_context(self, resolver):
        with pytest.raises(ContextNotFoundError):
            resolver.get_effective_context_purpose(999)


class TestInheritance:
    """Test walking defaults and overrides up the tree"""

    def test_system_default_reaches_every_descendant(self, resolver, store, graph, purposes, categories):
        store.set_level_default(ContextLevel.SYSTEM, None, purposes["system"].id, categories["system"].id)

        for context in _all_contexts(graph):
            assert resolver.get_effective_context_purpose(context).id == purposes["system"].id
            assert resolver.get_effective_context_category(context).id == categories["system"].id

    def test_context_ids_accepted(self, resolver, store, graph, purposes):
        store.set_level_default(ContextLevel.SYSTEM, None, purposes["system"].id, None)

        assert resolver.get_effective_context_purpose(graph.assign.id).id == purposes["system"].id

    def test_level_default_beats_ancestor(self, resolver, store, graph, purposes):
        store.set_level_default(ContextLevel.SYSTEM, None, purposes["system"].id, None)
        store.set_level_default(ContextLevel.COURSECAT, None, purposes["coursecat"].id, None)
        store.set_level_default(ContextLevel.COURSE, None, purposes["course"].id, None)

        assert resolver.get_effective_context_purpose(graph.category).id == purposes["coursecat"].id
        assert resolver.get_effective_context_purpose(graph.course).id == purposes["course"].id
        assert resolver.get_effective_context_purpose(graph.assign).id == purposes["course"].id
        assert resolver.get_effective_context_purpose(graph.block).id == purposes["course"].id
        assert resolver.get_effective_context_purpose(graph.user).id == purposes["system"].id

    def test_instance_override_beats_level_default(self, resolver, store, graph, purposes):
        store.set_level_default(ContextLevel.COURSE, None, purposes["course"].id, None)
        store.set_instance_override(graph.course.id, purposes["module"].id, None, context_level=ContextLevel.COURSE)

        assert resolver.get_effective_context_purpose(graph.course).id == purposes["module"].id
        # Children inherit the course's resolution, override included
        assert resolver.get_effective_context_purpose(graph.forum).id == purposes["module"].id

    def test_parent_override_beats_grandparent_default(self, resolver, store, graph, purposes):
        store.set_level_default(ContextLevel.SYSTEM, None, purposes["system"].id, None)
        store.set_instance_override(graph.category.id, purposes["coursecat"].id, None, context_level=ContextLevel.COURSECAT)

        assert resolver.get_effective_context_purpose(graph.assign).id == purposes["coursecat"].id

    def test_purpose_and_category_resolve_independently(self, resolver, store, graph, purposes, categories):
        store.set_level_default(ContextLevel.SYSTEM, None, purposes["system"].id, categories["system"].id)
        store.set_instance_override(graph.course.id, purposes["course"].id, INHERIT, context_level=ContextLevel.COURSE)

        assert resolver.get_effective_context_purpose(graph.course).id == purposes["course"].id
        assert resolver.get_effective_context_category(graph.course).id == categories["system"].id

    def test_inherit_override_equals_no_override(self, resolver, store, graph, purposes):
        store.set_level_default(ContextLevel.SYSTEM, None, purposes["system"].id, None)
        store.set_level_default(ContextLevel.COURSE, None, purposes["course"].id, None)

        without_override = resolver.get_effective_context_purpose(graph.course)
        store.set_instance_override(graph.course.id, INHERIT, INHERIT, context_level=ContextLevel.COURSE)
        with_inherit = resolver.get_effective_context_purpose(graph.course)

        assert without_override.id == with_inherit.id == purposes["course"].id

    def test_inherit_level_default_defers_to_parent(self, resolver, store, graph, purposes):
        store.set_level_default(ContextLevel.COURSECAT, None, purposes["coursecat"].id, None)
        store.set_level_default(ContextLevel.COURSE, None, INHERIT, INHERIT)

        assert resolver.get_effective_context_purpose(graph.course).id == purposes["coursecat"].id
        assert resolver.get_effective_context_category(graph.course) is None

    def test_nested_categories(self, resolver, store, graph, purposes):
        child = graph.add_category(graph.category)
        course = graph.add_course(child)
        store.set_instance_override(graph.category.id, purposes["coursecat"].id, None, context_level=ContextLevel.COURSECAT)

        assert resolver.get_effective_context_purpose(course).id == purposes["coursecat"].id


class TestModuleSubtypes:
    """Test module subtype defaults"""

    def test_subtype_default_beats_module_default(self, resolver, store, graph, purposes):
        store.set_level_default(ContextLevel.MODULE, None, purposes["module"].id, None)
        store.set_level_default(ContextLevel.MODULE, "assign", purposes["course"].id, None)

        assert resolver.get_effective_context_purpose(graph.assign).id == purposes["course"].id
        assert resolver.get_effective_context_purpose(graph.forum).id == purposes["module"].id

    def test_inherit_subtype_falls_back_to_module_default(self, resolver, store, graph, purposes):
        store.set_level_default(ContextLevel.MODULE, None, purposes["module"].id, None)
        store.set_level_default(ContextLevel.MODULE, "assign", INHERIT, INHERIT)

        assert resolver.get_effective_context_purpose(graph.assign).id == purposes["module"].id


class TestForcedValues:
    """Test previewing a change without saving it"""

    def test_forced_id_wins(self, resolver, store, graph, purposes):
        store.set_instance_override(graph.course.id, purposes["course"].id, None, context_level=ContextLevel.COURSE)

        forced = resolver.get_effective_context_purpose(graph.course, forced_value=purposes["module"].id)
        assert forced.id == purposes["module"].id

    def test_forced_inherit_skips_stored_override(self, resolver, store, graph, purposes):
        store.set_level_default(ContextLevel.SYSTEM, None, purposes["system"].id, None)
        store.set_instance_override(graph.course.id, purposes["course"].id, None, context_level=ContextLevel.COURSE)

        forced = resolver.get_effective_context_purpose(graph.course, forced_value=INHERIT)
        assert forced.id == purposes["system"].id
        assert resolver.get_effective_context_purpose(graph.course).id == purposes["course"].id

    def test_forced_inherit_keeps_ancestor_overrides(self, resolver, store, graph, purposes):
        store.set_instance_override(graph.course.id, purposes["course"].id, None, context_level=ContextLevel.COURSE)
        store.set_instance_override(graph.assign.id, purposes["module"].id, None,
                                    context_level=ContextLevel.MODULE, subtype="assign")

        forced = resolver.get_effective_context_purpose(graph.assign, forced_value=INHERIT)
        assert forced.id == purposes["course"].id

    def test_forced_unknown_purpose_rejected(self, resolver, graph, purposes):
        with pytest.raises(ValueError, match="Purpose 999 not found"):
            resolver.get_effective_context_purpose(graph.course, forced_value=999)

    def test_forced_unknown_category_rejected(self, resolver, graph, categories):
        with pytest.raises(ValueError, match="Category 999 not found"):
            resolver.get_effective_context_category(graph.course, forced_value=999)
        with pytest.raises(ValueError, match="Category 999 not found"):
            resolver.get_effective_contextlevel_category(ContextLevel.COURSE, forced_value=999)


class TestContextLevelResolution:
    """Test resolution of level defaults without a concrete context"""

    def test_nothing_configured(self, resolver):
        for level in ContextLevel:
            assert resolver.get_effective_contextlevel_purpose(level) is None

    def test_user_level_inherits_system(self, resolver, store, purposes, categories):
        store.set_level_default(ContextLevel.SYSTEM, None, purposes["system"].id, categories["system"].id)
        store.set_level_default(ContextLevel.USER, None, INHERIT, INHERIT)

        assert resolver.get_effective_contextlevel_purpose(ContextLevel.USER).id == purposes["system"].id
        assert resolver.get_effective_contextlevel_category(ContextLevel.USER).id == categories["system"].id

    def test_level_chain(self, resolver, store, purposes):
        store.set_level_default(ContextLevel.SYSTEM, None, purposes["system"].id, None)
        store.set_level_default(ContextLevel.COURSECAT, None, purposes["coursecat"].id, None)

        assert resolver.get_effective_contextlevel_purpose(ContextLevel.MODULE).id == purposes["coursecat"].id
        assert resolver.get_effective_contextlevel_purpose(ContextLevel.BLOCK).id == purposes["coursecat"].id
        assert resolver.get_effective_contextlevel_purpose(ContextLevel.USER).id == purposes["system"].id

    def test_module_subtype(self, resolver, store, purposes):
        store.set_level_default(ContextLevel.MODULE, "assign", purposes["module"].id, None)
        store.set_level_default(ContextLevel.COURSE, None, purposes["course"].id, None)

        assert resolver.get_effective_contextlevel_purpose(ContextLevel.MODULE, "assign").id == purposes["module"].id
        assert resolver.get_effective_contextlevel_purpose(ContextLevel.MODULE, "forum").id == purposes["course"].id

    def test_forced_inherit_skips_own_level(self, resolver, store, purposes):
        store.set_level_default(ContextLevel.SYSTEM, None, purposes["system"].id, None)
        store.set_level_default(ContextLevel.USER, None, purposes["course"].id, None)

        forced = resolver.get_effective_contextlevel_purpose(ContextLevel.USER, forced_value=INHERIT)
        assert forced.id == purposes["system"].id

    def test_effective_default_ids(self, resolver, store, purposes, categories):
        store.set_level_default(ContextLevel.SYSTEM, None, purposes["system"].id, categories["system"].id)
        store.set_level_default(ContextLevel.COURSE, None, purposes["course"].id, INHERIT)

        assert resolver.get_effective_default_ids(ContextLevel.COURSE) == (purposes["course"].id, categories["system"].id)


class CyclicGraph:
    """Two contexts that are each other's parent"""

    def get_context(self, context_id):
        return ContextInfo(id=context_id, level=ContextLevel.COURSE, parent_id=3 - context_id)

    def get_system_context(self):
        return ContextInfo(id=99, level=ContextLevel.SYSTEM)


def test_cycle_in_graph_detected(store):
    resolver = PolicyResolver(store, CyclicGraph())

    with pytest.raises(RuntimeError, match="cycle"):
        resolver.get_effective_context_purpose(1)
