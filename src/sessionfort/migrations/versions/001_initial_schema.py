"""Initial SessionFort schema — users, refresh token ledger, OTP challenges.

Revision ID: 001
Create Date: 2026-10-17
"""

import sqlalchemy as sa
from alembic import op

revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # --- sessionfort_users (no FKs — must be first) ---
    op.create_table(
        "sessionfort_users",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("password_hash", sa.String(255), nullable=False),
        sa.Column("role", sa.String(20), nullable=False, server_default="CUSTOMER"),
        sa.Column("login_attempts", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("lock_until", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_sessionfort_users_email", "sessionfort_users", ["email"], unique=True)

    # --- sessionfort_refresh_tokens (FK → sessionfort_users, self-ref FK) ---
    op.create_table(
        "sessionfort_refresh_tokens",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "user_id", sa.Uuid(),
            sa.ForeignKey("sessionfort_users.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("token_hash", sa.String(255), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("revoked", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column(
            "replaced_by", sa.Uuid(),
            sa.ForeignKey("sessionfort_refresh_tokens.id", ondelete="SET NULL"), nullable=True,
        ),
    )
    op.create_index("ix_sessionfort_refresh_tokens_user_id", "sessionfort_refresh_tokens", ["user_id"])
    op.create_index(
        "ix_sessionfort_refresh_tokens_token_hash", "sessionfort_refresh_tokens",
        ["token_hash"], unique=True,
    )
    op.create_index(
        "ix_sessionfort_refresh_tokens_user_id_revoked", "sessionfort_refresh_tokens",
        ["user_id", "revoked"],
    )

    # --- sessionfort_otp_challenges (FK → sessionfort_users) ---
    op.create_table(
        "sessionfort_otp_challenges",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "user_id", sa.Uuid(),
            sa.ForeignKey("sessionfort_users.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("purpose", sa.String(20), nullable=False),
        sa.Column("code_hash", sa.String(255), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("verified_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("user_id", "purpose"),
    )
    op.create_index("ix_sessionfort_otp_challenges_user_id", "sessionfort_otp_challenges", ["user_id"])


def downgrade() -> None:
    # Drop in reverse FK order
    op.drop_table("sessionfort_otp_challenges")
    op.drop_table("sessionfort_refresh_tokens")
    op.drop_table("sessionfort_users")
