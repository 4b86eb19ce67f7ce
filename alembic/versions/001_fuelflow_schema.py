"""FuelFlow dispatch schema

Revision ID: 001
Revises: None
Create Date: 2026-10-19

Creates: depots, depot_prices, drivers, orders, order_transitions,
         dispatch_offers, depot_orders, depot_order_transitions,
         chat_threads, chat_messages, event_outbox
Enums: userrole, fueltype, fulfillmentmode, orderstatus, ordertransitiontype,
       paymentmethod, paymentstatus, offerstatus, depotorderstatus, depotaction,
       depotpaymentstatus, chatmessagetype, eventstatus
Sequences: order_number_seq
"""

from collections.abc import Sequence

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

ENUMS: dict[str, tuple[str, ...]] = {
    "userrole": ("CUSTOMER", "DRIVER", "SUPPLIER", "ADMIN"),
    "fueltype": ("DIESEL", "PETROL_93", "PETROL_95", "PARAFFIN"),
    "fulfillmentmode": ("DIRECT", "DEPOT_PICKUP"),
    "orderstatus": (
        "CREATED", "PENDING_DISPATCH", "OFFERED", "ASSIGNED", "PICKED_UP",
        "EN_ROUTE", "DELIVERED", "CANCELLED", "REFUNDED",
    ),
    "ordertransitiontype": (
        "QUEUE_DISPATCH", "OFFER", "ASSIGN", "REQUEUE", "PICK_UP",
        "START_ROUTE", "DELIVER", "CANCEL", "REFUND",
    ),
    "paymentmethod": ("CARD", "BANK_TRANSFER", "CASH_ON_DELIVERY"),
    "paymentstatus": ("PENDING", "PAID", "FAILED", "REFUNDED"),
    "offerstatus": ("PENDING", "ACCEPTED", "REJECTED", "EXPIRED", "SUPERSEDED"),
    "depotorderstatus": (
        "PENDING", "ACCEPTED", "REJECTED", "PENDING_PAYMENT", "PAID",
        "READY_FOR_PICKUP", "AWAITING_DRIVER_SIGNATURE", "COMPLETED",
    ),
    "depotaction": (
        "ACCEPT", "REJECT", "SUBMIT_PAYMENT_PROOF", "VERIFY_PAYMENT",
        "DISPUTE_PAYMENT", "SUPPLIER_SIGN", "RELEASE", "DRIVER_SIGN",
    ),
    "depotpaymentstatus": ("AWAITING_PROOF", "PROOF_SUBMITTED", "VERIFIED", "DISPUTED"),
    "chatmessagetype": ("TEXT", "IMAGE", "SYSTEM"),
    "eventstatus": ("PENDING", "PROCESSING", "COMPLETED", "FAILED"),
}

TABLES = (
    "event_outbox",
    "chat_messages",
    "chat_threads",
    "depot_order_transitions",
    "depot_orders",
    "dispatch_offers",
    "order_transitions",
    "orders",
    "drivers",
    "depot_prices",
    "depots",
)


def upgrade() -> None:
    # ── 1. Enum types ─────────────────────────────────────────────────────
    for name, values in ENUMS.items():
        labels = ", ".join(f"'{v}'" for v in values)
        op.execute(f"CREATE TYPE {name} AS ENUM ({labels});")

    # ── 2. Order number sequence ──────────────────────────────────────────
    op.execute("CREATE SEQUENCE order_number_seq START WITH 1;")

    # ── 3. Depots and prices ──────────────────────────────────────────────
    op.execute("""
        CREATE TABLE depots (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            owner_id UUID NOT NULL,
            name VARCHAR(255) NOT NULL,
            lat DOUBLE PRECISION NOT NULL,
            lng DOUBLE PRECISION NOT NULL,
            is_active BOOLEAN NOT NULL DEFAULT TRUE,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
        );
    """)
    op.execute("CREATE INDEX ix_depots_owner_id ON depots (owner_id);")

    op.execute("""
        CREATE TABLE depot_prices (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            depot_id UUID NOT NULL REFERENCES depots(id) ON DELETE CASCADE,
            fuel_type fueltype NOT NULL,
            price_per_litre_cents INTEGER NOT NULL CHECK (price_per_litre_cents > 0),
            min_litres NUMERIC(10, 2) NOT NULL DEFAULT 0 CHECK (min_litres >= 0),
            available_litres NUMERIC(12, 2) CHECK (available_litres >= 0),
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            CONSTRAINT uq_depot_prices_depot_fuel_tier UNIQUE (depot_id, fuel_type, min_litres)
        );
    """)

    # ── 4. Driver dispatch profiles ───────────────────────────────────────
    op.execute("""
        CREATE TABLE drivers (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            user_id UUID NOT NULL UNIQUE,
            display_name VARCHAR(255),
            is_available BOOLEAN NOT NULL DEFAULT FALSE,
            is_approved BOOLEAN NOT NULL DEFAULT FALSE,
            is_premium BOOLEAN NOT NULL DEFAULT FALSE,
            current_lat DOUBLE PRECISION,
            current_lng DOUBLE PRECISION,
            location_updated_at TIMESTAMPTZ,
            radius_km DOUBLE PRECISION,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
        );
    """)
    op.execute("CREATE INDEX ix_drivers_available ON drivers (is_available, is_approved);")

    # ── 5. Orders and their audit trail ───────────────────────────────────
    op.execute("""
        CREATE TABLE orders (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            order_number VARCHAR(50) NOT NULL UNIQUE,
            customer_id UUID NOT NULL,
            fuel_type fueltype NOT NULL,
            litres NUMERIC(12, 2) NOT NULL CHECK (litres > 0),
            drop_lat DOUBLE PRECISION NOT NULL,
            drop_lng DOUBLE PRECISION NOT NULL,
            drop_address TEXT,
            depot_id UUID NOT NULL REFERENCES depots(id) ON DELETE RESTRICT,
            supplier_id UUID NOT NULL,
            fulfillment_mode fulfillmentmode NOT NULL DEFAULT 'DIRECT',
            price_per_litre_cents INTEGER NOT NULL,
            fuel_cost_cents BIGINT NOT NULL,
            delivery_fee_cents BIGINT NOT NULL,
            service_fee_cents BIGINT NOT NULL,
            total_cents BIGINT NOT NULL,
            currency VARCHAR(3) NOT NULL DEFAULT 'ZAR',
            status orderstatus NOT NULL DEFAULT 'CREATED',
            driver_id UUID,
            payment_method paymentmethod NOT NULL,
            payment_status paymentstatus NOT NULL DEFAULT 'PENDING',
            payment_reference VARCHAR(100),
            dispatch_candidates JSONB NOT NULL DEFAULT '[]',
            dispatch_round INTEGER NOT NULL DEFAULT 0,
            cancellation_reason TEXT,
            dispatch_requested_at TIMESTAMPTZ,
            assigned_at TIMESTAMPTZ,
            picked_up_at TIMESTAMPTZ,
            en_route_at TIMESTAMPTZ,
            delivered_at TIMESTAMPTZ,
            cancelled_at TIMESTAMPTZ,
            refunded_at TIMESTAMPTZ,
            paid_at TIMESTAMPTZ,
            version INTEGER NOT NULL DEFAULT 1,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            CONSTRAINT ck_orders_total CHECK (
                total_cents = fuel_cost_cents + delivery_fee_cents + service_fee_cents
            )
        );
    """)
    op.execute("CREATE INDEX ix_orders_customer_id ON orders (customer_id);")
    op.execute("CREATE INDEX ix_orders_driver_id ON orders (driver_id);")
    op.execute("CREATE INDEX ix_orders_supplier_id ON orders (supplier_id);")
    op.execute("CREATE INDEX ix_orders_status ON orders (status);")

    op.execute("""
        CREATE TABLE order_transitions (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            order_id UUID NOT NULL REFERENCES orders(id) ON DELETE CASCADE,
            from_status orderstatus NOT NULL,
            to_status orderstatus NOT NULL,
            transition_type ordertransitiontype NOT NULL,
            triggered_by UUID,
            trigger_source VARCHAR(20) NOT NULL DEFAULT 'USER',
            reason TEXT,
            metadata_extra JSONB NOT NULL DEFAULT '{}',
            created_at TIMESTAMPTZ NOT NULL DEFAULT now()
        );
    """)
    op.execute("CREATE INDEX ix_order_transitions_order_id ON order_transitions (order_id);")

    # ── 6. Dispatch offers ────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE dispatch_offers (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            order_id UUID NOT NULL REFERENCES orders(id) ON DELETE CASCADE,
            driver_id UUID NOT NULL,
            status offerstatus NOT NULL DEFAULT 'PENDING',
            dispatch_round INTEGER NOT NULL,
            sequence INTEGER NOT NULL,
            expires_at TIMESTAMPTZ NOT NULL,
            resolved_at TIMESTAMPTZ,
            decline_reason VARCHAR(500),
            version INTEGER NOT NULL DEFAULT 1,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
        );
    """)
    # At most one live offer per order
    op.execute("""
        CREATE UNIQUE INDEX uq_dispatch_offers_one_pending
        ON dispatch_offers (order_id) WHERE status = 'PENDING';
    """)
    op.execute("CREATE INDEX ix_dispatch_offers_driver_id ON dispatch_offers (driver_id);")
    op.execute("""
        CREATE INDEX ix_dispatch_offers_due
        ON dispatch_offers (expires_at) WHERE status = 'PENDING';
    """)

    # ── 7. Depot fulfillment ──────────────────────────────────────────────
    op.execute("""
        CREATE TABLE depot_orders (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            order_id UUID NOT NULL UNIQUE REFERENCES orders(id) ON DELETE CASCADE,
            depot_id UUID NOT NULL REFERENCES depots(id) ON DELETE RESTRICT,
            supplier_id UUID NOT NULL,
            driver_id UUID NOT NULL,
            status depotorderstatus NOT NULL DEFAULT 'PENDING',
            rejection_reason TEXT,
            payment_status depotpaymentstatus NOT NULL DEFAULT 'AWAITING_PROOF',
            payment_proof_ref VARCHAR(500),
            payment_proof_submitted_by UUID,
            payment_proof_submitted_at TIMESTAMPTZ,
            payment_attempts INTEGER NOT NULL DEFAULT 0,
            payment_dispute_reason TEXT,
            payment_verified_by UUID,
            paid_at TIMESTAMPTZ,
            supplier_signature_ref VARCHAR(500),
            supplier_signed_by UUID,
            supplier_signed_at TIMESTAMPTZ,
            released_by UUID,
            released_at TIMESTAMPTZ,
            driver_signature_ref VARCHAR(500),
            driver_signed_by UUID,
            driver_signed_at TIMESTAMPTZ,
            accepted_at TIMESTAMPTZ,
            completed_at TIMESTAMPTZ,
            version INTEGER NOT NULL DEFAULT 1,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
        );
    """)
    op.execute("CREATE INDEX ix_depot_orders_supplier_id ON depot_orders (supplier_id);")
    op.execute("CREATE INDEX ix_depot_orders_driver_id ON depot_orders (driver_id);")
    op.execute("CREATE INDEX ix_depot_orders_status ON depot_orders (status);")

    op.execute("""
        CREATE TABLE depot_order_transitions (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            depot_order_id UUID NOT NULL REFERENCES depot_orders(id) ON DELETE CASCADE,
            from_status depotorderstatus NOT NULL,
            to_status depotorderstatus NOT NULL,
            action depotaction NOT NULL,
            triggered_by UUID NOT NULL,
            evidence_ref VARCHAR(500),
            reason TEXT,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now()
        );
    """)
    op.execute("""
        CREATE INDEX ix_depot_order_transitions_depot_order_id
        ON depot_order_transitions (depot_order_id);
    """)

    # ── 8. Chat ───────────────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE chat_threads (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            order_id UUID NOT NULL UNIQUE REFERENCES orders(id) ON DELETE CASCADE,
            customer_id UUID NOT NULL,
            driver_id UUID NOT NULL,
            last_message_at TIMESTAMPTZ,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
        );
    """)
    op.execute("""
        CREATE TABLE chat_messages (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            thread_id UUID NOT NULL REFERENCES chat_threads(id) ON DELETE CASCADE,
            sender_id UUID NOT NULL,
            sender_role userrole NOT NULL,
            message_type chatmessagetype NOT NULL DEFAULT 'TEXT',
            body TEXT NOT NULL,
            attachment_ref VARCHAR(500),
            read_at TIMESTAMPTZ,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
        );
    """)
    op.execute("""
        CREATE INDEX ix_chat_messages_thread_created
        ON chat_messages (thread_id, created_at);
    """)

    # ── 9. Event outbox ───────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE event_outbox (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            event_type VARCHAR(255) NOT NULL,
            aggregate_type VARCHAR(255) NOT NULL,
            aggregate_id VARCHAR(255) NOT NULL,
            payload JSONB NOT NULL DEFAULT '{}',
            status eventstatus NOT NULL DEFAULT 'PENDING',
            retry_count INTEGER NOT NULL DEFAULT 0,
            max_retries INTEGER NOT NULL DEFAULT 3,
            last_error TEXT,
            processed_at TIMESTAMPTZ,
            schema_version INTEGER NOT NULL DEFAULT 1,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
        );
    """)
    op.execute("CREATE INDEX ix_event_outbox_status ON event_outbox (status);")
    op.execute("CREATE INDEX ix_event_outbox_event_type ON event_outbox (event_type);")
    op.execute("""
        CREATE INDEX ix_event_outbox_aggregate
        ON event_outbox (aggregate_type, aggregate_id);
    """)
    op.execute("""
        CREATE INDEX ix_event_outbox_pending
        ON event_outbox (created_at) WHERE status = 'PENDING';
    """)


def downgrade() -> None:
    for table in TABLES:
        op.execute(f"DROP TABLE IF EXISTS {table} CASCADE;")
    op.execute("DROP SEQUENCE IF EXISTS order_number_seq;")
    for name in reversed(list(ENUMS)):
        op.execute(f"DROP TYPE IF EXISTS {name};")
