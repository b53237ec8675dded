"""payments core: transactions and balances

Revision ID: 0001_payments_core
Revises:
Create Date: 2026-10-17 00:00:00.000000

"""

from __future__ import annotations

from alembic import op


revision = "0001_payments_core"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.execute("CREATE SCHEMA IF NOT EXISTS app;")
    op.execute(
        """
        CREATE TABLE IF NOT EXISTS app.payment_transactions (
            id uuid PRIMARY KEY,
            user_id uuid NOT NULL,
            amount numeric(18, 2) NOT NULL CHECK (amount > 0),
            kind text NOT NULL CHECK (kind IN ('PAYMENT', 'WITHDRAWAL')),
            status text NOT NULL DEFAULT 'PENDING' CHECK (status IN ('PENDING', 'COMPLETED', 'FAILED')),
            reference text NOT NULL,
            gateway_transaction_id text,
            settled_at timestamptz,
            failure_reason text,
            created_at timestamptz NOT NULL DEFAULT now(),
            updated_at timestamptz NOT NULL DEFAULT now(),
            CONSTRAINT payment_transactions_completed_fields CHECK (
                (status = 'COMPLETED') = (gateway_transaction_id IS NOT NULL AND settled_at IS NOT NULL)
            )
        );
        """
    )
    op.execute(
        "CREATE UNIQUE INDEX IF NOT EXISTS ux_payment_transactions_reference ON app.payment_transactions USING btree (reference);"
    )
    op.execute(
        "CREATE INDEX IF NOT EXISTS ix_payment_transactions_pending_created ON app.payment_transactions USING btree (created_at) WHERE status = 'PENDING';"
    )
    op.execute(
        "CREATE INDEX IF NOT EXISTS ix_payment_transactions_user ON app.payment_transactions USING btree (user_id, created_at DESC);"
    )

    # Terminal rows are immutable, and amount never changes.
    op.execute(
        """
        CREATE OR REPLACE FUNCTION app.payment_transactions_guard() RETURNS trigger AS $$
        BEGIN
            IF OLD.status <> 'PENDING' THEN
                RAISE EXCEPTION 'DB_ERROR: TRANSACTION_TERMINAL %', OLD.reference;
            END IF;
            IF NEW.amount <> OLD.amount OR NEW.kind <> OLD.kind
               OR NEW.user_id <> OLD.user_id OR NEW.reference <> OLD.reference THEN
                RAISE EXCEPTION 'DB_ERROR: TRANSACTION_IMMUTABLE %', OLD.reference;
            END IF;
            RETURN NEW;
        END;
        $$ LANGUAGE plpgsql;
        """
    )
    op.execute("DROP TRIGGER IF EXISTS trg_payment_transactions_guard ON app.payment_transactions;")
    op.execute(
        """
        CREATE TRIGGER trg_payment_transactions_guard
        BEFORE UPDATE ON app.payment_transactions
        FOR EACH ROW EXECUTE FUNCTION app.payment_transactions_guard();
        """
    )
    op.execute(
        """
        CREATE OR REPLACE FUNCTION app.payment_transactions_no_delete() RETURNS trigger AS $$
        BEGIN
            RAISE EXCEPTION 'DB_ERROR: TRANSACTION_DELETE_FORBIDDEN %', OLD.reference;
        END;
        $$ LANGUAGE plpgsql;
        """
    )
    op.execute("DROP TRIGGER IF EXISTS trg_payment_transactions_no_delete ON app.payment_transactions;")
    op.execute(
        """
        CREATE TRIGGER trg_payment_transactions_no_delete
        BEFORE DELETE ON app.payment_transactions
        FOR EACH ROW EXECUTE FUNCTION app.payment_transactions_no_delete();
        """
    )

    op.execute(
        """
        CREATE TABLE IF NOT EXISTS app.user_balances (
            user_id uuid PRIMARY KEY,
            balance numeric(18, 2) NOT NULL DEFAULT 0 CHECK (balance >= 0),
            total_credited numeric(18, 2) NOT NULL DEFAULT 0,
            total_withdrawn numeric(18, 2) NOT NULL DEFAULT 0,
            updated_at timestamptz NOT NULL DEFAULT now()
        );
        """
    )


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS app.user_balances;")
    op.execute("DROP TRIGGER IF EXISTS trg_payment_transactions_no_delete ON app.payment_transactions;")
    op.execute("DROP TRIGGER IF EXISTS trg_payment_transactions_guard ON app.payment_transactions;")
    op.execute("DROP FUNCTION IF EXISTS app.payment_transactions_no_delete();")
    op.execute("DROP FUNCTION IF EXISTS app.payment_transactions_guard();")
    op.execute("DROP TABLE IF EXISTS app.payment_transactions;")
