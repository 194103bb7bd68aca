"""
Pytest fixtures for retailcore backend tests.

Provides test database setup, a business with one branch, an owner and a
cashier, a small catalog and a test client.
"""

import pytest

from retailcore import create_app
from retailcore.config import TestConfig
from retailcore.context import OperationContext
from retailcore.extensions import db
from retailcore.models import (
    BASE_VARIANT,
    Branch,
    BranchUser,
    Business,
    BusinessUser,
    Product,
    ProductPresentation,
    User,
)


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TestConfig)

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def business(db_session):
    business = Business(name="Almacen Don Pepe", tax_id="20-12345678-9", location="Av. Siempreviva 742")
    db_session.add(business)
    db_session.commit()
    return business


@pytest.fixture(scope='function')
def branch(db_session, business):
    branch = Branch(business_id=business.id, name="Centro", location=business.location)
    db_session.add(branch)
    db_session.commit()
    return branch


@pytest.fixture(scope='function')
def owner(db_session, business):
    """Owner of the business (no cashier membership)."""
    user = User(email="owner@test.local", name="Olga Owner")
    db_session.add(user)
    db_session.flush()
    db_session.add(BusinessUser(business_id=business.id, user_id=user.id, role="owner"))
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def cashier(db_session, branch):
    """Cashier of the branch, accruing bonification."""
    user = User(email="cashier@test.local", name="Carla Cashier")
    db_session.add(user)
    db_session.flush()
    db_session.add(BranchUser(branch_id=branch.id, user_id=user.id, role="cashier"))
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def outsider(db_session):
    """Owner of a second, unrelated business."""
    other = Business(name="Otro Negocio")
    db_session.add(other)
    db_session.flush()
    db_session.add(Branch(business_id=other.id, name="Otra Sucursal"))
    user = User(email="outsider@test.local", name="Oscar Outsider")
    db_session.add(user)
    db_session.flush()
    db_session.add(BusinessUser(business_id=other.id, user_id=user.id, role="owner"))
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def owner_ctx(owner, branch):
    return OperationContext(user_id=owner.id, branch_id=branch.id)


@pytest.fixture(scope='function')
def cashier_ctx(cashier, branch):
    return OperationContext(user_id=cashier.id, branch_id=branch.id)


def make_product(
    session,
    branch,
    name,
    *,
    price_cents=150,
    cost_cents=90,
    stock=10,
    bonification_cents=0,
    extra=(),
    barcode=None,
):
    """Product with its "unidad" presentation plus (variant, units, price) extras."""
    product = Product(
        branch_id=branch.id,
        name=name,
        price_cents=price_cents,
        cost_cents=cost_cents,
        stock=stock,
        bonification_cents=bonification_cents,
        barcode=barcode,
    )
    product.presentations.append(ProductPresentation(variant=BASE_VARIANT, units=1, price_cents=price_cents))
    for variant, units, variant_price in extra:
        product.presentations.append(ProductPresentation(variant=variant, units=units, price_cents=variant_price))
    session.add(product)
    session.commit()
    return product


def presentation_of(product, variant):
    for presentation in product.presentations:
        if presentation.variant == variant:
            return presentation
    raise AssertionError(f"{product.name} has no {variant!r} presentation")


@pytest.fixture(scope='function')
def water(db_session, branch):
    """10 bottles in stock, sold by unit or in packs of 6; 2 cents bonification per bottle."""
    return make_product(
        db_session,
        branch,
        "Agua 500ml",
        price_cents=150,
        stock=10,
        bonification_cents=2,
        extra=[("pack", 6, 800)],
        barcode="7790001000011",
    )


@pytest.fixture(scope='function')
def cookies(db_session, branch):
    return make_product(db_session, branch, "Galletas Maria", price_cents=120, stock=30, bonification_cents=1)


def context_headers(user, branch=None) -> dict:
    """Identity headers set by the external auth collaborator."""
    headers = {'X-User-Id': user.id}
    if branch is not None:
        headers['X-Branch-Id'] = branch.id
    return headers
