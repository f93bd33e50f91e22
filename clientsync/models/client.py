"""
Client model - the relational mirror of the client sheet.
client_id is the reconciliation join key shared with the sheet's "Client ID" column.
"""
from datetime import datetime, timezone
from typing import Optional
from sqlalchemy import String, Text, Integer, DateTime, Index
from sqlalchemy.orm import Mapped, mapped_column
from clientsync.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Client(Base):
    __tablename__ = "clients"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    client_id: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)

    # Categorical
    company_name: Mapped[str] = mapped_column(String(255), default="IRIAS Ironworks")
    service_type: Mapped[Optional[str]] = mapped_column(String(255))
    urgency_level: Mapped[str] = mapped_column(String(50), default="Medium")
    customer_type: Mapped[str] = mapped_column(String(50), default="Residential")
    channel: Mapped[str] = mapped_column(String(100), default="Website")
    responsable: Mapped[Optional[str]] = mapped_column(String(255))

    # Contact
    client_full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    phone_number: Mapped[Optional[str]] = mapped_column(String(50))
    project_address: Mapped[Optional[str]] = mapped_column(Text)

    # Free text
    technical_description: Mapped[Optional[str]] = mapped_column(Text)
    service_requested: Mapped[Optional[str]] = mapped_column(Text)
    price: Mapped[Optional[str]] = mapped_column(String(50))
    budget_range: Mapped[Optional[str]] = mapped_column(String(100))
    expected_timeline: Mapped[Optional[str]] = mapped_column(String(100))
    preferred_contact_method: Mapped[str] = mapped_column(String(50), default="Phone")
    additional_notes: Mapped[Optional[str]] = mapped_column(Text)
    special_requirements: Mapped[Optional[str]] = mapped_column(Text)

    # Workflow
    status: Mapped[str] = mapped_column(
        String(50), default="New Lead"
    )  # New Lead, Contacted, Quoted, Pending Inspection, In Progress, Completed, Cancelled
    form_emailer_status: Mapped[str] = mapped_column(String(50), default="Pending")
    invoice_status: Mapped[str] = mapped_column(String(50), default="Pending")  # Pending, Sent, Paid
    estimate_status: Mapped[str] = mapped_column(
        String(50), default="Pending"
    )  # Pending, Sent, Accepted, Rejected

    # 1-based position in the sheet, assigned on import or when an export appends the row
    sheet_row_index: Mapped[Optional[int]] = mapped_column(Integer)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )

    __table_args__ = (
        Index("ix_clients_company_name", "company_name"),
        Index("ix_clients_status", "status"),
        Index("ix_clients_created_at", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<Client {self.client_id} status={self.status}>"
