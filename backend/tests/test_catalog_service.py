"""
Catalog repository: find-or-create, placeholders, presentations and maintenance.
"""

from datetime import datetime

import pytest

from retailcore.models import BASE_VARIANT, Branch, BusinessUser, Product, ProductPresentation, Sale, SaleItem
from retailcore.services import catalog_service
from retailcore.services.catalog_service import (
    LookupOutcome,
    PresentationMismatchError,
    PresentationNotFoundError,
    ProductSpec,
    ReservedPresentationError,
)
from retailcore.validation import ValidationError

from conftest import presentation_of


class TestFindOrCreateProduct:
    def test_found_by_name_updates_prices_and_mirrors_unidad(self, db_session, branch, water):
        spec = ProductSpec(name="Agua 500ml", price_cents=175, cost_cents=100)

        lookup = catalog_service.find_or_create_product(branch.id, spec, create_if_missing=False)
        db_session.commit()

        assert lookup.outcome is LookupOutcome.FOUND
        assert lookup.product_id == water.id
        assert lookup.presentation_id == presentation_of(water, BASE_VARIANT).id

        db_session.expire_all()
        product = db_session.get(Product, water.id)
        assert product.price_cents == 175
        assert product.cost_cents == 100
        assert product.base_presentation.price_cents == 175

    def test_barcode_match_wins_over_name(self, db_session, branch, water, cookies):
        spec = ProductSpec(name="Galletas Maria", price_cents=160, barcode=water.barcode)

        lookup = catalog_service.find_or_create_product(branch.id, spec, create_if_missing=False)

        assert lookup.product_id == water.id

    def test_inactive_products_are_ignored(self, db_session, branch, water):
        water.is_active = False
        db_session.commit()

        lookup = catalog_service.find_or_create_product(
            branch.id, ProductSpec(name="Agua 500ml", price_cents=150), create_if_missing=False
        )

        assert lookup.is_not_found
        assert lookup.presentation_id is None

    def test_not_found_writes_nothing(self, db_session, branch):
        before = db_session.query(Product).count()

        lookup = catalog_service.find_or_create_product(
            branch.id, ProductSpec(name="Widget", price_cents=300), create_if_missing=False
        )

        assert lookup.outcome is LookupOutcome.NOT_FOUND
        assert db_session.query(Product).count() == before

    def test_created_product_is_active_with_zero_stock(self, db_session, branch, owner):
        spec = ProductSpec(name="Yerba 1kg", price_cents=2500, cost_cents=1800, expiration="2027-03-01")

        lookup = catalog_service.find_or_create_product(
            branch.id, spec, create_if_missing=True, created_by_user_id=owner.id
        )
        db_session.commit()

        assert lookup.outcome is LookupOutcome.CREATED
        product = db_session.get(Product, lookup.product_id)
        assert product.is_active is True
        assert product.stock == 0
        assert product.expiration == datetime(2027, 3, 1)
        assert product.created_by_user_id == owner.id
        assert [p.variant for p in product.presentations] == [BASE_VARIANT]
        assert product.base_presentation.price_cents == 2500

    def test_lookup_is_branch_scoped(self, db_session, business, branch, water):
        other = Branch(business_id=business.id, name="Norte")
        db_session.add(other)
        db_session.commit()

        lookup = catalog_service.find_or_create_product(
            other.id, ProductSpec(name="Agua 500ml", price_cents=150), create_if_missing=False
        )

        assert lookup.is_not_found


def test_placeholder_product_is_inactive(db_session, branch):
    presentation = catalog_service.create_placeholder_product(branch.id, ProductSpec(name="Widget", price_cents=300))
    db_session.commit()

    product = db_session.get(Product, presentation.product_id)
    assert product.is_active is False
    assert product.stock == 0
    assert presentation.is_active is False
    assert presentation.variant == BASE_VARIANT
    assert presentation.units == 1


@pytest.mark.parametrize(
    "value, expected",
    [
        ("2026-12-31", datetime(2026, 12, 31)),
        ("2026-12-31T10:30:00Z", datetime(2026, 12, 31, 10, 30)),
        ("2026-12-31T10:30:00-03:00", datetime(2026, 12, 31, 13, 30)),
        ("not a date", None),
        ("2026-02-30", None),
        ("0001-01-01T00:00:00+05:00", None),
        ("", None),
        (None, None),
        (12345, None),
    ],
)
def test_parse_expiration_is_lenient(value, expected):
    assert catalog_service.parse_expiration(value) == expected


class TestSaleLinePresentation:
    def test_returns_matching_presentation(self, db_session, water):
        pack = presentation_of(water, "pack")
        assert catalog_service.find_presentation_for_sale_line(water.id, pack.id).id == pack.id

    def test_missing_presentation(self, db_session, water):
        with pytest.raises(PresentationNotFoundError):
            catalog_service.find_presentation_for_sale_line(water.id, "does-not-exist")

    def test_presentation_of_another_product(self, db_session, water, cookies):
        pack = presentation_of(water, "pack")
        with pytest.raises(PresentationMismatchError):
            catalog_service.find_presentation_for_sale_line(cookies.id, pack.id)


class TestCatalogMaintenance:
    def test_create_product_with_presentations(self, db_session, owner_ctx, branch):
        product = catalog_service.create_product(owner_ctx, branch.id, {
            "name": "Cafe molido 250g",
            "price_cents": 900,
            "cost_cents": 600,
            "stock": 12,
            "presentations": [{"variant": "caja", "units": 10}],
        })

        db_session.expire_all()
        product = db_session.get(Product, product.id)
        assert product.base_presentation.price_cents == 900
        caja = presentation_of(product, "caja")
        # Missing presentation price falls back to the base price
        assert caja.price_cents == 900
        assert caja.units == 10

    def test_create_product_rejects_foreign_branch(self, db_session, owner_ctx, outsider):
        foreign_business_id = db_session.query(BusinessUser).filter_by(user_id=outsider.id).one().business_id
        foreign_branch = db_session.query(Branch).filter_by(business_id=foreign_business_id).one()

        with pytest.raises(ValidationError):
            catalog_service.create_product(owner_ctx, foreign_branch.id, {"name": "X", "price_cents": 100})

    def test_create_product_requires_name_and_price(self, db_session, owner_ctx, branch):
        with pytest.raises(ValidationError):
            catalog_service.create_product(owner_ctx, branch.id, {"name": "Sin precio"})

    def test_unidad_is_reserved(self, db_session, owner_ctx, branch, water):
        with pytest.raises(ReservedPresentationError):
            catalog_service.create_presentation(water.id, {"variant": "Unidad", "units": 1})
        with pytest.raises(ReservedPresentationError):
            catalog_service.set_presentation_active(presentation_of(water, BASE_VARIANT).id, False)

    def test_update_price_mirrors_unidad(self, db_session, water):
        catalog_service.update_product(water.id, {"price_cents": 199})

        db_session.expire_all()
        assert db_session.get(Product, water.id).base_presentation.price_cents == 199

    def test_update_rejects_negative_stock(self, db_session, water):
        with pytest.raises(ValidationError):
            catalog_service.update_product(water.id, {"stock": -1})

    def test_replace_presentations(self, db_session, water):
        pack = presentation_of(water, "pack")

        items = catalog_service.update_product_presentations(water.id, [
            {"id": pack.id, "variant": "pack", "units": 6, "price_cents": 850},
            {"variant": "caja", "units": 24, "price_cents": 3000},
        ])

        assert [(p.variant, p.units, p.price_cents) for p in items] == [("pack", 6, 850), ("caja", 24, 3000)]

    def test_removed_referenced_presentation_is_deactivated(self, db_session, water, cashier, branch):
        pack = presentation_of(water, "pack")
        sale = Sale(branch_id=branch.id, user_id=cashier.id, payment_method="cash", total_cents=800)
        sale.items.append(SaleItem(
            product_presentation_id=pack.id, quantity=1, unit_price_cents=800, subtotal_cents=800,
        ))
        db_session.add(sale)
        db_session.commit()

        items = catalog_service.update_product_presentations(water.id, [])

        assert items == []
        kept = db_session.get(ProductPresentation, pack.id)
        assert kept is not None
        assert kept.is_active is False
        assert catalog_service.list_additional_presentations(water.id, include_inactive=True) == [kept]

    def test_removed_unreferenced_presentation_is_deleted(self, db_session, water):
        pack_id = presentation_of(water, "pack").id

        catalog_service.update_product_presentations(water.id, [])

        assert db_session.get(ProductPresentation, pack_id) is None
        assert db_session.get(Product, water.id).base_presentation is not None

    def test_deactivate_product_hides_it_from_catalog(self, db_session, branch, water, cookies):
        catalog_service.deactivate_product(water.id)

        listing = catalog_service.list_catalog(branch.id)
        assert [p["name"] for p in listing["items"]] == ["Galletas Maria"]

    def test_list_catalog_search_and_pagination(self, db_session, branch, water, cookies):
        listing = catalog_service.list_catalog(branch.id, search="agua")
        assert listing["count"] == 1
        assert {p["variant"] for p in listing["items"][0]["presentations"]} == {"unidad", "pack"}

        page = catalog_service.list_catalog(branch.id, page=2, per_page=1)
        assert page["count"] == 1
        assert page["pagination"]["total"] == 2
        assert page["pagination"]["has_prev"] is True
        assert page["pagination"]["has_next"] is False
