# tests/conftest.py
from datetime import datetime

import pytest

from config import TestConfig
from studiofief import create_app, db
from studiofief.models import (
    Business, BusinessMembership, BusinessRole, BusinessSettings, Client,
    Invoice, InvoiceItem, InvoiceStatus, Project, ProjectService, Service, User,
)
from studiofief.utils import BusinessContext


@pytest.fixture
def app():
    app = create_app(TestConfig)
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def business(app):
    b = Business(name="Studio Test", currency="EUR")
    db.session.add(b)
    db.session.flush()
    db.session.add(BusinessSettings(business_id=b.id, default_deposit_percent=30, payment_terms_days=30))
    db.session.commit()
    return b


def _member(business, email, role):
    u = User(email=email, name=email.split("@")[0].title(), is_active=True)
    u.set_password("secret-pass")
    db.session.add(u)
    db.session.flush()
    db.session.add(BusinessMembership(business_id=business.id, user_id=u.id, role=role))
    db.session.commit()
    return u


@pytest.fixture
def owner(business):
    return _member(business, "owner@test.local", BusinessRole.OWNER)


@pytest.fixture
def admin(business):
    return _member(business, "admin@test.local", BusinessRole.ADMIN)


@pytest.fixture
def viewer(business):
    return _member(business, "viewer@test.local", BusinessRole.VIEWER)


@pytest.fixture
def admin_ctx(business, admin):
    return BusinessContext(business=business, user=admin, role=BusinessRole.ADMIN)


@pytest.fixture
def viewer_ctx(business, viewer):
    return BusinessContext(business=business, user=viewer, role=BusinessRole.VIEWER)


@pytest.fixture
def services(business):
    rows = {
        "DEV": Service(business_id=business.id, code="DEV", name="Développement", default_price_cents=10000),
        "SITE": Service(business_id=business.id, code="SITE", name="Site vitrine", default_price_cents=100000),
        "DAY": Service(business_id=business.id, code="DAY", name="Journée", tjm_cents=50000),
        "FREE": Service(business_id=business.id, code="FREE", name="Sur devis"),
    }
    db.session.add_all(rows.values())
    db.session.commit()
    return rows


@pytest.fixture
def project(business):
    client = Client(business_id=business.id, name="Client Test")
    db.session.add(client)
    db.session.flush()
    p = Project(business_id=business.id, client_id=client.id, name="Projet Test")
    db.session.add(p)
    db.session.commit()
    return p


@pytest.fixture
def add_line(project):
    def _add(service, quantity=1, **fields):
        ps = ProjectService(
            business_id=project.business_id,
            project_id=project.id,
            service_id=service.id,
            quantity=quantity,
            position=len(project.services),
            **fields,
        )
        db.session.add(ps)
        db.session.commit()
        db.session.refresh(project)
        return ps
    return _add


@pytest.fixture
def make_invoice(project):
    def _make(total_cents, status=InvoiceStatus.SENT, paid_at=None):
        inv = Invoice(
            business_id=project.business_id,
            project_id=project.id,
            client_id=project.client_id,
            status=status,
            total_cents=total_cents,
            balance_cents=total_cents,
            issued_at=datetime.utcnow(),
            paid_at=paid_at,
        )
        inv.items.append(InvoiceItem(label="Prestation", quantity=1,
                                     unit_price_cents=total_cents, total_cents=total_cents))
        db.session.add(inv)
        db.session.commit()
        return inv
    return _make


def _login(app, user):
    client = app.test_client()
    with client.session_transaction() as sess:
        sess["_user_id"] = str(user.id)
        sess["_fresh"] = True
    return client


@pytest.fixture
def admin_client(app, admin):
    return _login(app, admin)


@pytest.fixture
def viewer_client(app, viewer):
    return _login(app, viewer)
