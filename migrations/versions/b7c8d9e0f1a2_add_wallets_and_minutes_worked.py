"""add wallet balances and minutes worked

Revision ID: b7c8d9e0f1a2
Revises: a1b2c3d4e5f6
Create Date: 2026-10-25 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "b7c8d9e0f1a2"
down_revision = "a1b2c3d4e5f6"
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "wallet_balances",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("balance", sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column("currency", sa.String(length=10), nullable=False),
        sa.Column("last_updated", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    with op.batch_alter_table("wallet_balances", schema=None) as batch_op:
        batch_op.create_index(batch_op.f("ix_wallet_balances_user_id"), ["user_id"], unique=True)

    # every existing user gets a wallet; developers start with what they already earned
    op.execute(
        "INSERT INTO wallet_balances (user_id, balance, currency, last_updated) "
        "SELECT u.id, COALESCE(p.total_earnings, 0), 'USDC', CURRENT_TIMESTAMP "
        "FROM users u LEFT JOIN developer_profiles p ON p.user_id = u.id"
    )

    with op.batch_alter_table("developer_profiles", schema=None) as batch_op:
        batch_op.add_column(sa.Column("total_minutes_worked", sa.Integer(), nullable=False, server_default="0"))
    op.execute("UPDATE developer_profiles SET total_minutes_worked = CAST(ROUND(total_hours_worked * 60) AS INTEGER)")
    with op.batch_alter_table("developer_profiles", schema=None) as batch_op:
        batch_op.drop_column("total_hours_worked")


def downgrade():
    with op.batch_alter_table("developer_profiles", schema=None) as batch_op:
        batch_op.add_column(sa.Column("total_hours_worked", sa.Numeric(precision=10, scale=2), nullable=False, server_default="0"))
    op.execute("UPDATE developer_profiles SET total_hours_worked = total_minutes_worked / 60.0")
    with op.batch_alter_table("developer_profiles", schema=None) as batch_op:
        batch_op.drop_column("total_minutes_worked")

    with op.batch_alter_table("wallet_balances", schema=None) as batch_op:
        batch_op.drop_index(batch_op.f("ix_wallet_balances_user_id"))
    op.drop_table("wallet_balances")
