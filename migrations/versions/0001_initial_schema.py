"""Initial schema — users, invoice numbering and invoices.

Revision ID: 0001
Revises:     (none)
Create Date: 2026-10-17
"""

revision = "0001"
down_revision = None
branch_labels = None
depends_on = None

from alembic import op


def upgrade() -> None:
    # ------------------------------------------------------------------ #
    # users                                                                #
    # ------------------------------------------------------------------ #
    op.execute("""
        CREATE TABLE users (
            id         INT GENERATED BY DEFAULT AS IDENTITY,
            full_name  VARCHAR(200) NOT NULL,
            email      VARCHAR(200),
            role       VARCHAR(20)  NOT NULL,
            is_active  BOOLEAN      NOT NULL DEFAULT TRUE,
            created_at TIMESTAMP    NOT NULL DEFAULT NOW(),
            CONSTRAINT pk_users PRIMARY KEY (id),
            CONSTRAINT uq_users_email UNIQUE (email),
            CONSTRAINT chk_users_role CHECK (
                role IN ('ADMIN', 'STAFF', 'PATIENT', 'PARTNER')
            )
        )
    """)

    # ------------------------------------------------------------------ #
    # invoice_sequences  (one counter row per year, created on first use)  #
    # Written only by app.services.invoice_number under SELECT … FOR UPDATE #
    # ------------------------------------------------------------------ #
    op.execute("""
        CREATE TABLE invoice_sequences (
            year          SMALLINT  NOT NULL,
            last_sequence INT       NOT NULL DEFAULT 0,
            updated_at    TIMESTAMP NOT NULL DEFAULT NOW(),
            CONSTRAINT pk_invoice_sequences PRIMARY KEY (year),
            CONSTRAINT chk_invoice_sequences_year CHECK (year BETWEEN 1000 AND 9999),
            CONSTRAINT chk_invoice_sequences_range CHECK (last_sequence BETWEEN 0 AND 9999)
        )
    """)

    # ------------------------------------------------------------------ #
    # invoices                                                             #
    # ------------------------------------------------------------------ #
    op.execute("""
        CREATE TABLE invoices (
            id                  INT GENERATED BY DEFAULT AS IDENTITY,
            invoice_number      VARCHAR(20)    NOT NULL,
            appointment_id      INT,
            patient_user_id     INT            NOT NULL,
            prepared_by_user_id INT,
            total_amount        NUMERIC(12, 2) NOT NULL DEFAULT 0,
            payment_method      VARCHAR(20)    NOT NULL,
            status              VARCHAR(20)    NOT NULL DEFAULT 'pending',
            invoice_type        VARCHAR(20)    NOT NULL,
            due_date            DATE,
            created_at          TIMESTAMP      NOT NULL DEFAULT NOW(),
            CONSTRAINT pk_invoices PRIMARY KEY (id),
            CONSTRAINT uq_invoices_number UNIQUE (invoice_number),
            CONSTRAINT chk_invoices_number CHECK (invoice_number ~ '^WC-[0-9]{4}-[0-9]{4}$'),
            CONSTRAINT fk_invoices_patient FOREIGN KEY (patient_user_id)
                REFERENCES users (id),
            CONSTRAINT fk_invoices_prepared_by FOREIGN KEY (prepared_by_user_id)
                REFERENCES users (id) ON DELETE SET NULL,
            CONSTRAINT chk_invoices_payment_method CHECK (
                payment_method IN ('cash', 'card', 'bank_transfer', 'medical_aid')
            ),
            CONSTRAINT chk_invoices_status CHECK (
                status IN ('pending', 'paid', 'partially_paid', 'overdue', 'cancelled')
            ),
            CONSTRAINT chk_invoices_type CHECK (
                invoice_type IN ('service', 'consultation', 'procedure', 'other')
            )
        )
    """)

    # ------------------------------------------------------------------ #
    # invoice_items                                                        #
    # ------------------------------------------------------------------ #
    op.execute("""
        CREATE TABLE invoice_items (
            id          INT GENERATED BY DEFAULT AS IDENTITY,
            invoice_id  INT            NOT NULL,
            description VARCHAR(255)   NOT NULL,
            quantity    NUMERIC(10, 2) NOT NULL,
            unit_price  NUMERIC(12, 2) NOT NULL,
            total_price NUMERIC(12, 2) NOT NULL,
            CONSTRAINT pk_invoice_items PRIMARY KEY (id),
            CONSTRAINT fk_invoice_items_invoice FOREIGN KEY (invoice_id)
                REFERENCES invoices (id) ON DELETE CASCADE,
            CONSTRAINT chk_invoice_items_quantity CHECK (quantity > 0),
            CONSTRAINT chk_invoice_items_unit_price CHECK (unit_price >= 0)
        )
    """)

    # ---------------------------------------------------------------------- #
    # Indexes                                                                 #
    # ---------------------------------------------------------------------- #
    op.execute("CREATE INDEX idx_invoices_patient ON invoices (patient_user_id)")
    op.execute("CREATE INDEX idx_invoices_created_at ON invoices (created_at)")
    op.execute("CREATE INDEX idx_invoice_items_invoice ON invoice_items (invoice_id)")


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS invoice_items CASCADE")
    op.execute("DROP TABLE IF EXISTS invoices CASCADE")
    op.execute("DROP TABLE IF EXISTS invoice_sequences CASCADE")
    op.execute("DROP TABLE IF EXISTS users CASCADE")
