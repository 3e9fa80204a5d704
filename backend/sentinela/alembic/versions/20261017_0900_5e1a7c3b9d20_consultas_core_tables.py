"""Create api_keys, consulta_cache and audit_logs tables."""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


revision: str = "5e1a7c3b9d20"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "api_keys",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("key", sa.String(length=64), nullable=False),
        sa.Column("nome", sa.String(length=100), nullable=False),
        sa.Column("tipo", sa.String(length=20), nullable=False, server_default="standard"),
        sa.Column("ativo", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("rate_limit", sa.Integer(), nullable=False, server_default="100"),
        sa.Column("daily_limit", sa.Integer(), nullable=False, server_default="1000"),
        sa.Column("total_requests", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("used_this_hour", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("used_today", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_reset_hour", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_reset_day", sa.DateTime(timezone=True), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_by", sa.String(length=100), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()")),
        sa.PrimaryKeyConstraint("id", name="pk_api_keys"),
    )
    op.create_index("ix_api_keys_key", "api_keys", ["key"], unique=True)
    op.create_index("ix_api_keys_ativo", "api_keys", ["ativo"])

    op.create_table(
        "consulta_cache",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("tipo", sa.String(length=20), nullable=False),
        sa.Column("query", sa.String(length=255), nullable=False),
        sa.Column("resultado", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("sucesso", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("tempo_resposta", sa.Integer(), nullable=True),
        sa.Column("hit_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_consulta_cache"),
        sa.UniqueConstraint("tipo", "query", name="uq_consulta_cache_tipo_query"),
    )
    op.create_index("ix_consulta_cache_tipo", "consulta_cache", ["tipo"])
    op.create_index("ix_consulta_cache_expires_at", "consulta_cache", ["expires_at"])

    op.create_table(
        "audit_logs",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("api_key_ref", sa.String(length=64), nullable=False),
        sa.Column("acao", sa.String(length=80), nullable=False),
        sa.Column("tipo", sa.String(length=20), nullable=True),
        sa.Column("ip", sa.String(length=100), nullable=True),
        sa.Column("user_agent", sa.String(length=500), nullable=True),
        sa.Column("sucesso", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("severity", sa.String(length=20), nullable=False, server_default="info"),
        sa.Column("detalhes", sa.Text(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id", name="pk_audit_logs"),
    )
    op.create_index("ix_audit_logs_acao", "audit_logs", ["acao"])
    op.create_index("ix_audit_logs_created_at", "audit_logs", ["created_at"])
    op.create_index("ix_audit_logs_acao_created_at", "audit_logs", ["acao", "created_at"])


def downgrade() -> None:
    op.drop_index("ix_audit_logs_acao_created_at", table_name="audit_logs")
    op.drop_index("ix_audit_logs_created_at", table_name="audit_logs")
    op.drop_index("ix_audit_logs_acao", table_name="audit_logs")
    op.drop_table("audit_logs")

    op.drop_index("ix_consulta_cache_expires_at", table_name="consulta_cache")
    op.drop_index("ix_consulta_cache_tipo", table_name="consulta_cache")
    op.drop_table("consulta_cache")

    op.drop_index("ix_api_keys_ativo", table_name="api_keys")
    op.drop_index("ix_api_keys_key", table_name="api_keys")
    op.drop_table("api_keys")
