"""
Shared pytest fixtures for the value chain test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - default_tenant: Pre-created Tenant entity
    - directory: People and units seeded for the default tenant
    - make_chain: Factory persisting a chain with named segments
"""

import pytest

from valuechain import create_app
from valuechain.models import db as _db
from valuechain.models.auth import Tenant
from valuechain.models.directory import DirectoryPerson, DirectoryUnit
from valuechain.models.value_chain import (
    APPROVAL_APPROVED,
    ChainSegment,
    SegmentActor,
    SegmentUnit,
    ValueChain,
)


def _ensure_default_tenant():
    t = Tenant.query.filter_by(slug="test-default").first()
    if not t:
        t = Tenant(name="Test Default", slug="test-default")
        _db.session.add(t)
        _db.session.commit()
    return t.id


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    return create_app("testing")


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        _ensure_default_tenant()
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


@pytest.fixture()
def default_tenant():
    """Return the auto-created default test tenant."""
    return Tenant.query.filter_by(slug="test-default").first()


# ── Convenience fixtures ─────────────────────────────────────────────────


@pytest.fixture()
def other_tenant():
    t = Tenant(name="Other Association", slug="other-assoc")
    _db.session.add(t)
    _db.session.commit()
    return t


@pytest.fixture()
def directory(default_tenant):
    """Seed two people and one unit; returns {"people": [...], "units": [...]}."""
    people = [
        DirectoryPerson(id="p1", tenant_id=default_tenant.id, first_name="Ada", last_name="Lovelace"),
        DirectoryPerson(id="p2", tenant_id=default_tenant.id, first_name="Alan", last_name="Turing",
                        title="Treasurer"),
    ]
    units = [DirectoryUnit(id="u1", tenant_id=default_tenant.id, title="Board")]
    _db.session.add_all(people + units)
    _db.session.commit()
    return {"people": people, "units": units}


@pytest.fixture()
def make_chain(default_tenant):
    """Factory: make_chain("C1", ["Intake", "Review"], actors={0: ["p1"]}) → ValueChain."""

    def _make(title="C1", names=(), *, tenant_id=None, status=APPROVAL_APPROVED,
              description=None, actors=None, units=None):
        chain = ValueChain(
            tenant_id=tenant_id or default_tenant.id,
            title=title,
            description=description,
            approval_status=status,
            created_by="tester",
        )
        for i, name in enumerate(names):
            seg = ChainSegment(tenant_id=chain.tenant_id, function_name=name, display_order=i)
            seg.actor_links = [SegmentActor(person_id=p) for p in (actors or {}).get(i, [])]
            seg.unit_links = [SegmentUnit(unit_id=u) for u in (units or {}).get(i, [])]
            chain.segments.append(seg)
        _db.session.add(chain)
        _db.session.commit()
        return chain

    return _make
