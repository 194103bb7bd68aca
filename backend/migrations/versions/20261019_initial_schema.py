"""Initial schema: tenancy, catalog, sales, purchasing and work sessions

Revision ID: 20261019_initial
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261019_initial"
down_revision = None
branch_labels = None
depends_on = None


def _id():
    return sa.Column("id", sa.String(32), nullable=False)


def _created_at():
    return sa.Column("created_at", sa.DateTime(), nullable=False)


def upgrade():
    op.create_table(
        "users",
        _id(),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("phone", sa.String(64), nullable=True),
        _created_at(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email"),
    )

    op.create_table(
        "businesses",
        _id(),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("tax_id", sa.String(64), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("location", sa.String(255), nullable=True),
        _created_at(),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "businesses_users",
        _id(),
        sa.Column("business_id", sa.String(32), nullable=False),
        sa.Column("user_id", sa.String(32), nullable=False),
        sa.Column("role", sa.String(32), nullable=False, server_default="owner"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        _created_at(),
        sa.ForeignKeyConstraint(["business_id"], ["businesses.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("business_id", "user_id", name="uq_businesses_users_business_user"),
    )
    with op.batch_alter_table("businesses_users", schema=None) as batch_op:
        batch_op.create_index("ix_businesses_users_business_id", ["business_id"], unique=False)
        batch_op.create_index("ix_businesses_users_user_id", ["user_id"], unique=False)

    op.create_table(
        "branches",
        _id(),
        sa.Column("business_id", sa.String(32), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("location", sa.String(255), nullable=True),
        sa.Column("phone", sa.String(64), nullable=True),
        _created_at(),
        sa.ForeignKeyConstraint(["business_id"], ["businesses.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    with op.batch_alter_table("branches", schema=None) as batch_op:
        batch_op.create_index("ix_branches_business_id", ["business_id"], unique=False)

    op.create_table(
        "branches_users",
        _id(),
        sa.Column("branch_id", sa.String(32), nullable=False),
        sa.Column("user_id", sa.String(32), nullable=False),
        sa.Column("role", sa.String(32), nullable=False, server_default="cashier"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        sa.Column("benefit_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        _created_at(),
        sa.ForeignKeyConstraint(["branch_id"], ["branches.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("branch_id", "user_id", name="uq_branches_users_branch_user"),
    )
    with op.batch_alter_table("branches_users", schema=None) as batch_op:
        batch_op.create_index("ix_branches_users_branch_id", ["branch_id"], unique=False)
        batch_op.create_index("ix_branches_users_user_id", ["user_id"], unique=False)

    op.create_table(
        "products",
        _id(),
        sa.Column("branch_id", sa.String(32), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("brand", sa.String(120), nullable=True),
        sa.Column("barcode", sa.String(64), nullable=True),
        sa.Column("sku", sa.String(64), nullable=True),
        sa.Column("cost_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("price_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("stock", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("bonification_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("expiration", sa.DateTime(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        sa.Column("created_by_user_id", sa.String(32), nullable=True),
        _created_at(),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint("stock >= 0", name="ck_products_stock_nonnegative"),
        sa.ForeignKeyConstraint(["branch_id"], ["branches.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["created_by_user_id"], ["users.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    with op.batch_alter_table("products", schema=None) as batch_op:
        batch_op.create_index("ix_products_branch_id", ["branch_id"], unique=False)
        batch_op.create_index("ix_products_branch_name", ["branch_id", "name"], unique=False)
        batch_op.create_index("ix_products_branch_barcode", ["branch_id", "barcode"], unique=False)
        batch_op.create_index("ix_products_branch_active", ["branch_id", "is_active"], unique=False)

    op.create_table(
        "product_presentations",
        _id(),
        sa.Column("product_id", sa.String(32), nullable=False),
        sa.Column("variant", sa.String(64), nullable=False),
        sa.Column("units", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("price_cents", sa.Integer(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        _created_at(),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint("units >= 1", name="ck_product_presentations_units_positive"),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    with op.batch_alter_table("product_presentations", schema=None) as batch_op:
        batch_op.create_index("ix_product_presentations_product_id", ["product_id"], unique=False)
        batch_op.create_index(
            "uq_product_presentations_one_base",
            ["product_id"],
            unique=True,
            sqlite_where=sa.text("variant = 'unidad'"),
            postgresql_where=sa.text("variant = 'unidad'"),
        )

    op.create_table(
        "suppliers",
        _id(),
        sa.Column("business_id", sa.String(32), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("tax_id", sa.String(64), nullable=True),
        sa.Column("phone", sa.String(64), nullable=False, server_default=""),
        sa.Column("address", sa.String(255), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        _created_at(),
        sa.ForeignKeyConstraint(["business_id"], ["businesses.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    with op.batch_alter_table("suppliers", schema=None) as batch_op:
        batch_op.create_index("ix_suppliers_business_id", ["business_id"], unique=False)
        batch_op.create_index("ix_suppliers_business_name", ["business_id", "name"], unique=False)

    op.create_table(
        "sales",
        _id(),
        sa.Column("branch_id", sa.String(32), nullable=False),
        sa.Column("user_id", sa.String(32), nullable=False),
        sa.Column("customer", sa.String(255), nullable=True),
        sa.Column("payment_method", sa.String(32), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="completed"),
        sa.Column("total_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        _created_at(),
        sa.ForeignKeyConstraint(["branch_id"], ["branches.id"]),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    with op.batch_alter_table("sales", schema=None) as batch_op:
        batch_op.create_index("ix_sales_branch_created", ["branch_id", "created_at"], unique=False)
        batch_op.create_index("ix_sales_user_branch_created", ["user_id", "branch_id", "created_at"], unique=False)

    op.create_table(
        "sale_items",
        _id(),
        sa.Column("sale_id", sa.String(32), nullable=False),
        sa.Column("product_presentation_id", sa.String(32), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("unit_price_cents", sa.Integer(), nullable=False),
        sa.Column("bonification_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("subtotal_cents", sa.Integer(), nullable=False),
        _created_at(),
        sa.CheckConstraint("quantity > 0", name="ck_sale_items_quantity_positive"),
        sa.ForeignKeyConstraint(["sale_id"], ["sales.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["product_presentation_id"], ["product_presentations.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    with op.batch_alter_table("sale_items", schema=None) as batch_op:
        batch_op.create_index("ix_sale_items_sale_id", ["sale_id"], unique=False)
        batch_op.create_index("ix_sale_items_product_presentation_id", ["product_presentation_id"], unique=False)

    op.create_table(
        "purchases",
        _id(),
        sa.Column("business_id", sa.String(32), nullable=False),
        sa.Column("branch_id", sa.String(32), nullable=True),
        sa.Column("supplier_id", sa.String(32), nullable=False),
        sa.Column("type", sa.String(32), nullable=False, server_default="purchase"),
        sa.Column("status", sa.String(16), nullable=False, server_default="pending"),
        sa.Column("total_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_by", sa.String(32), nullable=True),
        sa.Column("approved_by", sa.String(32), nullable=True),
        sa.Column("approved_at", sa.DateTime(), nullable=True),
        sa.Column("received_at", sa.DateTime(), nullable=True),
        _created_at(),
        sa.ForeignKeyConstraint(["business_id"], ["businesses.id"]),
        sa.ForeignKeyConstraint(["branch_id"], ["branches.id"]),
        sa.ForeignKeyConstraint(["supplier_id"], ["suppliers.id"]),
        sa.ForeignKeyConstraint(["created_by"], ["users.id"]),
        sa.ForeignKeyConstraint(["approved_by"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    with op.batch_alter_table("purchases", schema=None) as batch_op:
        batch_op.create_index("ix_purchases_supplier_id", ["supplier_id"], unique=False)
        batch_op.create_index("ix_purchases_business_status", ["business_id", "status"], unique=False)
        batch_op.create_index("ix_purchases_branch_created", ["branch_id", "created_at"], unique=False)

    op.create_table(
        "purchase_items",
        _id(),
        sa.Column("purchase_id", sa.String(32), nullable=False),
        sa.Column("product_presentation_id", sa.String(32), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("unit_cost_cents", sa.Integer(), nullable=False),
        sa.Column("subtotal_cents", sa.Integer(), nullable=False),
        _created_at(),
        sa.CheckConstraint("quantity > 0", name="ck_purchase_items_quantity_positive"),
        sa.ForeignKeyConstraint(["purchase_id"], ["purchases.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["product_presentation_id"], ["product_presentations.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    with op.batch_alter_table("purchase_items", schema=None) as batch_op:
        batch_op.create_index("ix_purchase_items_purchase_id", ["purchase_id"], unique=False)
        batch_op.create_index("ix_purchase_items_product_presentation_id", ["product_presentation_id"], unique=False)

    op.create_table(
        "user_sessions",
        _id(),
        sa.Column("user_id", sa.String(32), nullable=False),
        sa.Column("branch_id", sa.String(32), nullable=False),
        _created_at(),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.Column("closed_at", sa.DateTime(), nullable=True),
        sa.Column("total_sales_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("total_bonus_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("payment_totals", sa.JSON(), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["branch_id"], ["branches.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    with op.batch_alter_table("user_sessions", schema=None) as batch_op:
        batch_op.create_index("ix_user_sessions_user_id", ["user_id"], unique=False)
        batch_op.create_index("ix_user_sessions_branch_id", ["branch_id"], unique=False)
        batch_op.create_index(
            "uq_user_sessions_one_open",
            ["user_id", "branch_id"],
            unique=True,
            sqlite_where=sa.text("closed_at IS NULL"),
            postgresql_where=sa.text("closed_at IS NULL"),
        )


def downgrade():
    op.drop_table("user_sessions")
    op.drop_table("purchase_items")
    op.drop_table("purchases")
    op.drop_table("sale_items")
    op.drop_table("sales")
    op.drop_table("suppliers")
    op.drop_table("product_presentations")
    op.drop_table("products")
    op.drop_table("branches_users")
    op.drop_table("branches")
    op.drop_table("businesses_users")
    op.drop_table("businesses")
    op.drop_table("users")
