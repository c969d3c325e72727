"""create otp requests and attempts

Revision ID: 20261019_0002
Revises: 20261019_0001
Create Date: 2026-10-19 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

revision = "20261019_0002"
down_revision = "20261019_0001"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "otp_requests",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True, nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("identifier", sa.String(length=64), nullable=False),
        sa.Column("purpose", sa.String(length=32), nullable=False, server_default="WEB_LOGIN"),
        sa.Column("channel", sa.String(length=16), nullable=False, server_default="SMS"),
        sa.Column("otp_hash", sa.String(length=64), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("max_attempts", sa.Integer(), nullable=False, server_default="5"),
        sa.Column("attempt_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("consumed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_attempt_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("ip_address", sa.String(length=64), nullable=True),
        sa.Column("user_agent", sa.String(length=512), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_otp_requests_user_id", "otp_requests", ["user_id"], unique=False)
    op.create_index(
        "ix_otp_requests_lookup",
        "otp_requests",
        ["identifier", "purpose", "created_at"],
        unique=False,
    )

    op.create_table(
        "otp_attempts",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True, nullable=False),
        sa.Column("otp_request_id", sa.Integer(), sa.ForeignKey("otp_requests.id"), nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("identifier", sa.String(length=64), nullable=False),
        sa.Column("purpose", sa.String(length=32), nullable=False),
        sa.Column("succeeded", sa.Boolean(), nullable=False),
        sa.Column("ip_address", sa.String(length=64), nullable=True),
        sa.Column("user_agent", sa.String(length=512), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_otp_attempts_otp_request_id", "otp_attempts", ["otp_request_id"], unique=False)
    op.create_index("ix_otp_attempts_user_id", "otp_attempts", ["user_id"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_otp_attempts_user_id", table_name="otp_attempts")
    op.drop_index("ix_otp_attempts_otp_request_id", table_name="otp_attempts")
    op.drop_table("otp_attempts")
    op.drop_index("ix_otp_requests_lookup", table_name="otp_requests")
    op.drop_index("ix_otp_requests_user_id", table_name="otp_requests")
    op.drop_table("otp_requests")
