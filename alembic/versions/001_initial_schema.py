"""Initial schema - clients mirror and audit log.

Revision ID: 001
Revises:
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Clients
    op.create_table(
        "clients",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("client_id", sa.String(50), nullable=False, unique=True),
        sa.Column("company_name", sa.String(255), server_default="IRIAS Ironworks"),
        sa.Column("service_type", sa.String(255)),
        sa.Column("urgency_level", sa.String(50), server_default="Medium"),
        sa.Column("customer_type", sa.String(50), server_default="Residential"),
        sa.Column("channel", sa.String(100), server_default="Website"),
        sa.Column("responsable", sa.String(255)),
        sa.Column("client_full_name", sa.String(255), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("phone_number", sa.String(50)),
        sa.Column("project_address", sa.Text),
        sa.Column("technical_description", sa.Text),
        sa.Column("service_requested", sa.Text),
        sa.Column("price", sa.String(50)),
        sa.Column("budget_range", sa.String(100)),
        sa.Column("expected_timeline", sa.String(100)),
        sa.Column("preferred_contact_method", sa.String(50), server_default="Phone"),
        sa.Column("additional_notes", sa.Text),
        sa.Column("special_requirements", sa.Text),
        sa.Column("status", sa.String(50), server_default="New Lead"),
        sa.Column("form_emailer_status", sa.String(50), server_default="Pending"),
        sa.Column("invoice_status", sa.String(50), server_default="Pending"),
        sa.Column("estimate_status", sa.String(50), server_default="Pending"),
        sa.Column("sheet_row_index", sa.Integer),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_clients_company_name", "clients", ["company_name"])
    op.create_index("ix_clients_status", "clients", ["status"])
    op.create_index("ix_clients_created_at", "clients", ["created_at"])

    # Audit log (also holds reports and sync passes)
    op.create_table(
        "audit_log",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("action", sa.String(100), nullable=False),
        sa.Column("table_name", sa.String(100)),
        sa.Column("record_id", sa.String(100)),
        sa.Column("old_values", sa.JSON),
        sa.Column("new_values", sa.JSON),
        sa.Column("user_email", sa.String(255)),
        sa.Column("ip_address", sa.String(45)),
        sa.Column("user_agent", sa.Text),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_audit_log_action", "audit_log", ["action"])
    op.create_index("ix_audit_log_record_id", "audit_log", ["record_id"])
    op.create_index("ix_audit_log_created_at", "audit_log", ["created_at"])


def downgrade() -> None:
    op.drop_table("audit_log")
    op.drop_table("clients")
