"""RMS schema

Revision ID: 001
Revises:
Create Date: 2026-10-19

Creates: users, user_branch_roles, rmas, rma_lines, audit_events,
         fulfillment_integration_logs, event_outbox, processed_events
Enums: rmastatus, dispositiontype, rmsrole, fulfillmentoperation,
       fulfillmentstatus, eventstatus
"""

from collections.abc import Sequence

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.execute("CREATE EXTENSION IF NOT EXISTS pgcrypto;")

    # ── 1. Enum types ─────────────────────────────────────────────────────
    op.execute("""
        CREATE TYPE rmastatus AS ENUM (
            'DRAFT', 'SUBMITTED', 'APPROVED', 'REJECTED', 'INFO_REQUIRED',
            'CONTESTED', 'CANCELLED', 'RECEIVED', 'QC_COMPLETE', 'RESOLVED', 'CLOSED'
        );
    """)
    op.execute("""
        CREATE TYPE dispositiontype AS ENUM ('CREDIT', 'REPLACEMENT', 'SCRAP', 'RTV');
    """)
    op.execute("""
        CREATE TYPE rmsrole AS ENUM (
            'CUSTOMER', 'WAREHOUSE', 'QC', 'FINANCE',
            'RETURNS_AGENT', 'BRANCH_MANAGER', 'ADMIN'
        );
    """)
    op.execute("""
        CREATE TYPE fulfillmentoperation AS ENUM ('CREDIT_MEMO', 'REPLACEMENT_ORDER');
    """)
    op.execute("""
        CREATE TYPE fulfillmentstatus AS ENUM ('CREATED', 'STUB', 'FAILED');
    """)
    op.execute("""
        CREATE TYPE eventstatus AS ENUM ('PENDING', 'PROCESSING', 'COMPLETED', 'FAILED');
    """)

    # ── 2. Users and branch roles ──────────────────────────────────────────
    op.execute("""
        CREATE TABLE users (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            portal_user_id VARCHAR(128) NOT NULL UNIQUE,
            email VARCHAR(255) NOT NULL,
            display_name VARCHAR(255) NOT NULL,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
        );
    """)
    op.execute("""
        CREATE TABLE user_branch_roles (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            user_id UUID NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            branch_id VARCHAR(64) NOT NULL,
            role rmsrole NOT NULL,
            CONSTRAINT uq_user_branch_roles_user_branch UNIQUE (user_id, branch_id)
        );
    """)
    op.execute("CREATE INDEX ix_user_branch_roles_branch_id ON user_branch_roles (branch_id);")

    # ── 3. RMA header and lines ────────────────────────────────────────────
    op.execute("""
        CREATE TABLE rmas (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            rma_number VARCHAR(32) NOT NULL UNIQUE,
            status rmastatus NOT NULL DEFAULT 'DRAFT',
            branch_id VARCHAR(64) NOT NULL,
            customer_id VARCHAR(64),
            submitted_by_id UUID,

            rejection_reason TEXT,
            cancellation_reason TEXT,
            dispute_reason TEXT,
            contested_at TIMESTAMPTZ,
            contest_resolution_note TEXT,

            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
        );
    """)
    op.execute("CREATE INDEX ix_rmas_branch_id ON rmas (branch_id);")
    op.execute("CREATE INDEX ix_rmas_status ON rmas (status);")
    op.execute("CREATE INDEX ix_rmas_created_at ON rmas (created_at);")

    op.execute("""
        CREATE TABLE rma_lines (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            rma_id UUID NOT NULL REFERENCES rmas(id) ON DELETE CASCADE,
            part_number VARCHAR(100) NOT NULL,
            ordered_qty INTEGER NOT NULL CHECK (ordered_qty > 0),
            reason_code VARCHAR(50) NOT NULL,
            disposition dispositiontype,
            unit_cost NUMERIC(15, 2),

            received_qty INTEGER NOT NULL DEFAULT 0 CHECK (received_qty >= 0),
            inspected_qty INTEGER NOT NULL DEFAULT 0 CHECK (inspected_qty >= 0),

            qc_inspected_at TIMESTAMPTZ,
            qc_pass BOOLEAN,
            qc_findings TEXT,
            qc_disposition_recommendation dispositiontype,

            finance_approved_at TIMESTAMPTZ,
            finance_approved_by_id UUID,

            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now(),

            CONSTRAINT ck_rma_lines_inspected_le_received CHECK (inspected_qty <= received_qty)
        );
    """)
    op.execute("CREATE INDEX ix_rma_lines_rma_id ON rma_lines (rma_id);")
    op.execute("CREATE INDEX ix_rma_lines_disposition ON rma_lines (disposition);")

    # ── 4. Audit trail (append-only) ───────────────────────────────────────
    op.execute("""
        CREATE TABLE audit_events (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            rma_id UUID REFERENCES rmas(id) ON DELETE RESTRICT,
            rma_line_id UUID,
            actor_id UUID NOT NULL,
            actor_role VARCHAR(32) NOT NULL,
            action VARCHAR(64) NOT NULL,
            from_status VARCHAR(32),
            to_status VARCHAR(32),
            old_value JSONB,
            new_value JSONB,
            metadata JSONB,
            ip_address VARCHAR(45),
            occurred_at TIMESTAMPTZ NOT NULL DEFAULT now()
        );
    """)
    op.execute("CREATE INDEX ix_audit_events_rma_id ON audit_events (rma_id);")
    op.execute("CREATE INDEX ix_audit_events_occurred_at ON audit_events (occurred_at);")
    op.execute("CREATE INDEX ix_audit_events_action ON audit_events (action);")

    # ── 5. Fulfillment integration log ─────────────────────────────────────
    op.execute("""
        CREATE TABLE fulfillment_integration_logs (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            rma_id UUID NOT NULL REFERENCES rmas(id) ON DELETE RESTRICT,
            operation_type fulfillmentoperation NOT NULL,
            request_payload JSONB NOT NULL,
            response_payload JSONB,
            reference_id VARCHAR(100),
            status fulfillmentstatus NOT NULL,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now()
        );
    """)
    op.execute(
        "CREATE INDEX ix_fulfillment_integration_logs_rma_id "
        "ON fulfillment_integration_logs (rma_id);"
    )

    # ── 6. Event outbox and idempotency ────────────────────────────────────
    op.execute("""
        CREATE TABLE event_outbox (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            event_type VARCHAR(255) NOT NULL,
            aggregate_type VARCHAR(255) NOT NULL,
            aggregate_id VARCHAR(255) NOT NULL,
            payload JSONB NOT NULL,
            status eventstatus NOT NULL DEFAULT 'PENDING',
            retry_count INTEGER NOT NULL DEFAULT 0,
            max_retries INTEGER NOT NULL DEFAULT 3,
            last_error TEXT,
            processed_at TIMESTAMPTZ,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
        );
    """)
    op.execute("CREATE INDEX ix_event_outbox_status ON event_outbox (status);")
    op.execute(
        "CREATE INDEX ix_event_outbox_aggregate ON event_outbox (aggregate_type, aggregate_id);"
    )

    op.execute("""
        CREATE TABLE processed_events (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            event_id UUID NOT NULL UNIQUE,
            event_type VARCHAR(255) NOT NULL,
            handler_name VARCHAR(255) NOT NULL,
            processed_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            expires_at TIMESTAMPTZ NOT NULL
        );
    """)
    op.execute("CREATE INDEX ix_processed_events_expires_at ON processed_events (expires_at);")


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS processed_events CASCADE;")
    op.execute("DROP TABLE IF EXISTS event_outbox CASCADE;")
    op.execute("DROP TABLE IF EXISTS fulfillment_integration_logs CASCADE;")
    op.execute("DROP TABLE IF EXISTS audit_events CASCADE;")
    op.execute("DROP TABLE IF EXISTS rma_lines CASCADE;")
    op.execute("DROP TABLE IF EXISTS rmas CASCADE;")
    op.execute("DROP TABLE IF EXISTS user_branch_roles CASCADE;")
    op.execute("DROP TABLE IF EXISTS users CASCADE;")

    op.execute("DROP TYPE IF EXISTS eventstatus;")
    op.execute("DROP TYPE IF EXISTS fulfillmentstatus;")
    op.execute("DROP TYPE IF EXISTS fulfillmentoperation;")
    op.execute("DROP TYPE IF EXISTS rmsrole;")
    op.execute("DROP TYPE IF EXISTS dispositiontype;")
    op.execute("DROP TYPE IF EXISTS rmastatus;")
