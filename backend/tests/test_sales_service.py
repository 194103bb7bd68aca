"""
Sale transaction coordinator: validation, stock checks, atomic write and
after-commit bookkeeping.
"""

import pytest

from retailcore.context import OperationContext
from retailcore.models import BranchUser, Product, Sale, SaleItem, User, WorkSession
from retailcore.services import sales_service, work_session_service
from retailcore.services.sales_service import SaleInput, SaleLineInput
from retailcore.validation import ValidationError

from conftest import make_product, presentation_of


def line(product, variant, quantity, unit_price_cents=None, **kwargs):
    presentation = presentation_of(product, variant)
    return SaleLineInput(
        product_id=product.id,
        presentation_id=presentation.id,
        quantity=quantity,
        unit_price_cents=presentation.price_cents if unit_price_cents is None else unit_price_cents,
        **kwargs,
    )


def sell(ctx, *lines, payment_method="cash", customer=None):
    return sales_service.create_sale(ctx, SaleInput(payment_method=payment_method, items=tuple(lines), customer=customer))


def stock_of(session, product):
    session.expire_all()
    return session.get(Product, product.id).stock


class TestSaleHappyPath:
    def test_pack_sale_decrements_base_units(self, db_session, cashier_ctx, water):
        result = sell(cashier_ctx, line(water, "pack", 1))

        assert result.success, result.error
        assert stock_of(db_session, water) == 4

        sale = db_session.get(Sale, result.sale_id)
        assert sale.total_cents == 800
        assert sale.status == "completed"
        assert len(sale.items) == 1
        assert sale.items[0].quantity == 1
        assert sale.items[0].subtotal_cents == 800

    def test_total_is_sum_of_line_subtotals(self, db_session, cashier_ctx, water, cookies):
        result = sell(cashier_ctx, line(water, "unidad", 3), line(cookies, "unidad", 2, unit_price_cents=100))

        assert result.success
        sale = db_session.get(Sale, result.sale_id)
        assert sale.total_cents == 3 * 150 + 2 * 100
        assert sum(item.subtotal_cents for item in sale.items) == sale.total_cents

    def test_receipt_is_denormalized(self, db_session, cashier_ctx, water, business, branch, cashier):
        result = sell(cashier_ctx, line(water, "pack", 1), payment_method="card", customer="Juan")

        receipt = result.sale_data
        assert receipt["sale_id"] == result.sale_id
        assert receipt["sale_number"] == result.sale_id[-8:].upper()
        assert receipt["date"].endswith("Z")
        assert receipt["business"]["name"] == business.name
        assert receipt["business"]["tax_id"] == business.tax_id
        assert receipt["branch"]["name"] == branch.name
        assert receipt["cashier"] == cashier.name
        assert receipt["customer"] == "Juan"
        assert receipt["payment_method"] == "card"
        assert receipt["items"] == [{
            "product_name": "Agua 500ml",
            "variant": "pack",
            "quantity": 1,
            "unit_price_cents": 800,
            "subtotal_cents": 800,
        }]
        assert receipt["total_cents"] == 800

    def test_bonification_snapshot_comes_from_product(self, db_session, cashier_ctx, water):
        result = sell(cashier_ctx, line(water, "unidad", 1, bonification_cents=999))

        item = db_session.query(SaleItem).filter_by(sale_id=result.sale_id).one()
        assert item.bonification_cents == 2

    def test_unknown_branch_falls_back_to_default_branch(self, db_session, cashier, branch, water):
        ctx = OperationContext(user_id=cashier.id, branch_id="no-such-branch")

        result = sell(ctx, line(water, "unidad", 1))

        assert result.success
        assert db_session.get(Sale, result.sale_id).branch_id == branch.id

    def test_business_id_is_accepted_as_branch_alias(self, db_session, cashier, business, branch, water):
        ctx = OperationContext(user_id=cashier.id, branch_id=business.id)

        result = sell(ctx, line(water, "unidad", 1))

        assert result.success
        assert db_session.get(Sale, result.sale_id).branch_id == branch.id


class TestSaleRejections:
    def test_insufficient_stock_in_base_units(self, db_session, cashier_ctx, branch):
        product = make_product(db_session, branch, "Soda", stock=5, extra=[("pack", 6, 800)])

        result = sell(cashier_ctx, line(product, "unidad", 6))

        assert not result.success
        assert result.error_kind == "integrity"
        assert result.details["items"][0]["available"] == 5
        assert result.details["items"][0]["required"] == 6
        assert stock_of(db_session, product) == 5
        assert db_session.query(Sale).count() == 0

    def test_stock_check_aggregates_lines_of_the_same_product(self, db_session, cashier_ctx, water):
        # 6 + 6 = 12 base units against 10 in stock
        result = sell(cashier_ctx, line(water, "pack", 1), line(water, "unidad", 6))

        assert result.error_kind == "integrity"
        assert stock_of(db_session, water) == 10

    def test_presentation_units_mismatch(self, db_session, cashier_ctx, water):
        result = sell(cashier_ctx, line(water, "pack", 1, presentation_units=4))

        assert result.error_kind == "integrity"
        assert stock_of(db_session, water) == 10

    def test_presentation_of_another_product(self, db_session, cashier_ctx, water, cookies):
        pack = presentation_of(water, "pack")
        bad = SaleLineInput(product_id=cookies.id, presentation_id=pack.id, quantity=1, unit_price_cents=800)

        result = sell(cashier_ctx, bad)

        assert result.error_kind == "integrity"

    def test_missing_presentation(self, db_session, cashier_ctx, water):
        bad = SaleLineInput(product_id=water.id, presentation_id="gone", quantity=1, unit_price_cents=150)

        result = sell(cashier_ctx, bad)

        assert result.error_kind == "integrity"

    def test_inactive_product_is_not_sold(self, db_session, cashier_ctx, water):
        water.is_active = False
        db_session.commit()

        result = sell(cashier_ctx, line(water, "unidad", 1))

        assert result.error_kind == "integrity"

    def test_inactive_presentation_is_not_sold(self, db_session, cashier_ctx, water):
        presentation_of(water, "pack").is_active = False
        db_session.commit()

        result = sell(cashier_ctx, line(water, "pack", 1))

        assert result.error_kind == "integrity"

    @pytest.mark.parametrize(
        "payment_method, quantity, unit_price",
        [
            ("bitcoin", 1, 150),
            ("cash", 0, 150),
            ("cash", -2, 150),
            ("cash", 1, -1),
        ],
    )
    def test_validation_failures_touch_nothing(self, db_session, cashier_ctx, water, payment_method, quantity, unit_price):
        presentation = presentation_of(water, "unidad")
        bad = SaleLineInput(
            product_id=water.id, presentation_id=presentation.id, quantity=quantity, unit_price_cents=unit_price
        )

        result = sell(cashier_ctx, bad, payment_method=payment_method)

        assert not result.success
        assert result.error_kind == "validation"
        assert db_session.query(Sale).count() == 0

    def test_empty_cart(self, db_session, cashier_ctx):
        result = sales_service.create_sale(cashier_ctx, SaleInput(payment_method="cash", items=()))

        assert result.error_kind == "validation"

    def test_unknown_user(self, db_session, branch, water):
        ctx = OperationContext(user_id="nobody", branch_id=branch.id)

        result = sell(ctx, line(water, "unidad", 1))

        assert result.error_kind == "validation"

    def test_user_without_business(self, db_session, branch, water):
        loner = User(name="Sin negocio")
        db_session.add(loner)
        db_session.commit()

        result = sell(OperationContext(user_id=loner.id, branch_id=branch.id), line(water, "unidad", 1))

        assert result.error_kind == "integrity"


def test_failure_mid_write_leaves_no_trace(db_session, cashier_ctx, water, monkeypatch):
    def boom(current, delta):
        raise RuntimeError("disk on fire")

    monkeypatch.setattr(sales_service, "apply_stock_delta", boom)

    result = sell(cashier_ctx, line(water, "pack", 1))

    assert not result.success
    assert result.error_kind == "unexpected"
    assert db_session.query(Sale).count() == 0
    assert db_session.query(SaleItem).count() == 0
    assert stock_of(db_session, water) == 10
    assert db_session.query(WorkSession).count() == 0


def test_database_rejection_is_a_storage_error(db_session, cashier_ctx, water, monkeypatch):
    monkeypatch.setattr(sales_service, "resolve_branch_id", lambda business_id, branch_id: "no-such-branch")

    result = sell(cashier_ctx, line(water, "pack", 1))

    assert not result.success
    assert result.error_kind == "storage"
    assert result.error == sales_service.INTEGRITY_MESSAGE
    assert db_session.query(Sale).count() == 0
    assert db_session.query(SaleItem).count() == 0
    assert stock_of(db_session, water) == 10
    assert db_session.query(WorkSession).count() == 0


def test_successive_sales_never_oversell(db_session, cashier_ctx, water):
    results = [sell(cashier_ctx, line(water, "unidad", 4)) for _ in range(3)]

    assert [r.success for r in results] == [True, True, False]
    assert stock_of(db_session, water) == 2


class TestAfterCommitBookkeeping:
    def test_sale_opens_and_feeds_a_work_session(self, db_session, cashier_ctx, cashier, branch, water):
        first = sell(cashier_ctx, line(water, "pack", 1), payment_method="cash")
        second = sell(cashier_ctx, line(water, "unidad", 2), payment_method="card")

        session = db_session.query(WorkSession).filter_by(user_id=cashier.id, branch_id=branch.id).one()
        assert session.is_open
        assert session.created_at == db_session.get(Sale, first.sale_id).created_at
        assert session.total_sales_cents == 800 + 300
        assert session.payment_totals == {"cash": 800, "card": 300}
        # 2 cents per base unit: 6 + 2 units
        assert session.total_bonus_cents == 16
        assert second.success

    def test_cashier_accrues_benefit(self, db_session, cashier_ctx, cashier, branch, water):
        sell(cashier_ctx, line(water, "pack", 1))

        db_session.expire_all()
        membership = db_session.query(BranchUser).filter_by(user_id=cashier.id, branch_id=branch.id).one()
        assert membership.benefit_cents == 12

    def test_failing_receiver_does_not_fail_the_sale(self, db_session, cashier_ctx, water, monkeypatch):
        def broken(*args, **kwargs):
            raise RuntimeError("session store unavailable")

        monkeypatch.setattr(work_session_service, "update_session_on_sale", broken)

        result = sell(cashier_ctx, line(water, "unidad", 1))

        assert result.success
        assert stock_of(db_session, water) == 9
        assert db_session.query(WorkSession).count() == 0


def test_sale_input_from_dict_rejects_decimal_quantities():
    with pytest.raises(ValidationError):
        SaleInput.from_dict({
            "payment_method": "cash",
            "items": [{"product_id": "p", "presentation_id": "x", "quantity": 1.5, "unit_price_cents": 100}],
        })


def test_sale_input_from_dict_accepts_both_presentation_keys():
    parsed = SaleInput.from_dict({
        "payment_method": "cash",
        "items": [
            {"product_id": "p", "product_presentation_id": "a", "quantity": "2", "unit_price_cents": 100},
            {"product_id": "p", "presentation_id": "b", "quantity": 1, "unit_price_cents": 100},
        ],
    })

    assert [item.presentation_id for item in parsed.items] == ["a", "b"]
    assert parsed.items[0].quantity == 2
