"""
Database models - import all models here so Alembic can discover them.
"""
from clientsync.models.client import Client
from clientsync.models.audit_log import AuditLog, AuditAction

__all__ = [
    "Client",
    "AuditLog",
    "AuditAction",
]
