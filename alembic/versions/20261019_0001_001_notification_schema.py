"""Notification engine schema - notification records, invoice schedules, audit log.

Revision ID: 001
Revises: None
Create Date: 2026-10-19

This migration creates:
- notification_records with the (service_type, service_id, notification_type,
  cycle_key) uniqueness constraint and delivery selection indexes
- invoice_schedules for per-invoice reminder configuration
- audit_logs for delivery outcomes and operator actions
"""
from typing import Sequence, Union

from alembic import op

# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Enum labels are the Python member names, as SQLModel persists them
    op.execute("CREATE TYPE servicetype AS ENUM ('DOMAIN', 'HOSTING', 'VPS', 'INVOICE')")
    op.execute("""
        CREATE TYPE notificationtype AS ENUM (
            'EXPIRING_SOON_1', 'EXPIRING_SOON_2', 'EXPIRING_SOON_3',
            'EXPIRED', 'DELETION_WARNING', 'DELETED',
            'INVOICE_REMINDER', 'INVOICE_DUE_SOON'
        )
    """)
    op.execute("CREATE TYPE notificationstatus AS ENUM ('PENDING', 'SENDING', 'SENT', 'FAILED', 'CANCELLED')")
    op.execute("CREATE TYPE reminderfrequency AS ENUM ('WEEKLY', 'BIWEEKLY', 'MONTHLY', 'QUARTERLY', 'YEARLY', 'CUSTOM')")

    # Create notification_records table
    op.execute("""
        CREATE TABLE IF NOT EXISTS notification_records (
            id UUID PRIMARY KEY,
            service_type servicetype NOT NULL,
            service_id VARCHAR(255) NOT NULL,
            notification_type notificationtype NOT NULL,
            cycle_key VARCHAR(100) NOT NULL,
            customer_id VARCHAR(100),
            recipient_email VARCHAR(255) NOT NULL,
            subject VARCHAR(255) NOT NULL,
            content TEXT NOT NULL,
            status notificationstatus NOT NULL DEFAULT 'PENDING',
            scheduled_at TIMESTAMP,
            sent_at TIMESTAMP,
            error_message VARCHAR(500),
            retry_count INTEGER NOT NULL DEFAULT 0,
            metadata JSON NOT NULL,
            created_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
            updated_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
            CONSTRAINT uq_notification_records_dedup_key
                UNIQUE (service_type, service_id, notification_type, cycle_key)
        );
        CREATE INDEX IF NOT EXISTS ix_notification_records_service_type ON notification_records(service_type);
        CREATE INDEX IF NOT EXISTS ix_notification_records_service_id ON notification_records(service_id);
        CREATE INDEX IF NOT EXISTS ix_notification_records_notification_type ON notification_records(notification_type);
        CREATE INDEX IF NOT EXISTS ix_notification_records_status ON notification_records(status);
        CREATE INDEX IF NOT EXISTS ix_notification_records_scheduled_at ON notification_records(scheduled_at);
        CREATE INDEX IF NOT EXISTS ix_notification_records_created_at ON notification_records(created_at);
    """)

    # Create invoice_schedules table
    op.execute("""
        CREATE TABLE IF NOT EXISTS invoice_schedules (
            id SERIAL PRIMARY KEY,
            invoice_id VARCHAR(100) NOT NULL,
            invoice_number VARCHAR(100),
            customer_id VARCHAR(100),
            recipient_email VARCHAR(255) NOT NULL,
            due_date DATE,
            frequency reminderfrequency NOT NULL DEFAULT 'MONTHLY',
            interval_days INTEGER,
            send_time TIME NOT NULL DEFAULT '09:00',
            start_date DATE NOT NULL,
            days_before_due INTEGER NOT NULL DEFAULT 3,
            cc_accounting_team BOOLEAN NOT NULL DEFAULT FALSE,
            enabled BOOLEAN NOT NULL DEFAULT TRUE,
            created_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
            updated_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
        );
        CREATE UNIQUE INDEX IF NOT EXISTS ix_invoice_schedules_invoice_id ON invoice_schedules(invoice_id);
        CREATE INDEX IF NOT EXISTS ix_invoice_schedules_enabled ON invoice_schedules(enabled);
    """)

    # Create audit_logs table
    op.execute("""
        CREATE TABLE IF NOT EXISTS audit_logs (
            id UUID PRIMARY KEY,
            actor VARCHAR(255),
            action VARCHAR(50) NOT NULL,
            entity_type VARCHAR(50) NOT NULL,
            entity_id UUID,
            details JSON,
            timestamp TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
        );
        CREATE INDEX IF NOT EXISTS ix_audit_logs_actor ON audit_logs(actor);
        CREATE INDEX IF NOT EXISTS ix_audit_logs_action ON audit_logs(action);
        CREATE INDEX IF NOT EXISTS ix_audit_logs_entity_type ON audit_logs(entity_type);
        CREATE INDEX IF NOT EXISTS ix_audit_logs_entity_id ON audit_logs(entity_id);
        CREATE INDEX IF NOT EXISTS ix_audit_logs_timestamp ON audit_logs(timestamp);
    """)


def downgrade() -> None:
    # Drop tables in reverse order
    op.execute("DROP TABLE IF EXISTS audit_logs CASCADE")
    op.execute("DROP TABLE IF EXISTS invoice_schedules CASCADE")
    op.execute("DROP TABLE IF EXISTS notification_records CASCADE")

    # Drop enums
    op.execute("DROP TYPE IF EXISTS reminderfrequency")
    op.execute("DROP TYPE IF EXISTS notificationstatus")
    op.execute("DROP TYPE IF EXISTS notificationtype")
    op.execute("DROP TYPE IF EXISTS servicetype")
