"""001 – Initial schema: users, allocations, time off, settings, audit trail.

Revision ID: 001_initial_schema
Revises:
Create Date: 2025-07-15 21:38:36.000000+00:00
"""

from alembic import op

# Revision identifiers
revision = "001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

ENUM_TYPES: list[tuple[str, list[str]]] = [
    ("user_role", ["admin", "manager", "developer", "tester", "qa_manager", "view_only"]),
    ("time_off_status", ["pending", "approved", "rejected", "cancelled"]),
    ("time_off_type", ["vacation", "sick_leave", "personal", "conference", "other"]),
]


def _create_enum(name: str, values: list[str]) -> None:
    vals = ", ".join(f"'{v}'" for v in values)
    op.execute(f"CREATE TYPE {name} AS ENUM ({vals})")


def _drop_enum(name: str) -> None:
    op.execute(f"DROP TYPE IF EXISTS {name}")


# ---------------------------------------------------------------------------
# UPGRADE
# ---------------------------------------------------------------------------


def upgrade() -> None:
    op.execute('CREATE EXTENSION IF NOT EXISTS "uuid-ossp"')

    for name, values in ENUM_TYPES:
        _create_enum(name, values)

    # ── 1. users ──────────────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE users (
            id          UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            email       VARCHAR(255) NOT NULL UNIQUE,
            name        VARCHAR(200) NOT NULL,
            role        user_role NOT NULL DEFAULT 'developer',
            created_at  TIMESTAMPTZ DEFAULT NOW(),
            updated_at  TIMESTAMPTZ DEFAULT NOW()
        )
    """)

    # ── 2. allocations ────────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE allocations (
            id                    UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            user_id               UUID NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            week_start            DATE NOT NULL,
            backend_development   DOUBLE PRECISION NOT NULL DEFAULT 0,
            frontend_development  DOUBLE PRECISION NOT NULL DEFAULT 0,
            code_review           DOUBLE PRECISION NOT NULL DEFAULT 0,
            release_management    DOUBLE PRECISION NOT NULL DEFAULT 0,
            ux                    DOUBLE PRECISION NOT NULL DEFAULT 0,
            technical_analysis    DOUBLE PRECISION NOT NULL DEFAULT 0,
            prod_support          DOUBLE PRECISION NOT NULL DEFAULT 0,
            weekly_priority       VARCHAR(50),
            created_at            TIMESTAMPTZ DEFAULT NOW(),
            updated_at            TIMESTAMPTZ DEFAULT NOW(),
            CONSTRAINT uq_allocation_user_week UNIQUE (user_id, week_start)
        )
    """)
    op.execute("CREATE INDEX ix_allocations_week_start ON allocations(week_start)")

    # ── 3. time_off_requests ──────────────────────────────────────────────
    op.execute("""
        CREATE TABLE time_off_requests (
            id                   UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            user_id              UUID NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            start_date           DATE NOT NULL,
            end_date             DATE NOT NULL,
            type                 time_off_type NOT NULL,
            reason               TEXT,
            status               time_off_status NOT NULL DEFAULT 'pending',
            approved_by          UUID REFERENCES users(id) ON DELETE SET NULL,
            approved_at          TIMESTAMPTZ,
            cancelled_by         UUID REFERENCES users(id) ON DELETE SET NULL,
            cancelled_at         TIMESTAMPTZ,
            cancellation_reason  TEXT,
            created_by           UUID REFERENCES users(id) ON DELETE SET NULL,
            is_admin_created     BOOLEAN NOT NULL DEFAULT FALSE,
            created_at           TIMESTAMPTZ DEFAULT NOW(),
            updated_at           TIMESTAMPTZ DEFAULT NOW(),
            CONSTRAINT ck_time_off_date_order CHECK (start_date <= end_date)
        )
    """)
    op.execute("""
        CREATE INDEX ix_time_off_user_dates
            ON time_off_requests(user_id, start_date, end_date)
    """)
    op.execute("CREATE INDEX ix_time_off_status ON time_off_requests(status)")

    # ── 4. settings ───────────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE settings (
            key         VARCHAR(100) PRIMARY KEY,
            value       TEXT NOT NULL,
            updated_at  TIMESTAMPTZ DEFAULT NOW(),
            updated_by  UUID REFERENCES users(id) ON DELETE SET NULL
        )
    """)

    # ── 5. audit_trail ────────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE audit_trail (
            id          UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            actor_id    UUID REFERENCES users(id) ON DELETE SET NULL,
            action      VARCHAR(50) NOT NULL,
            entity_type VARCHAR(50) NOT NULL,
            entity_id   UUID NOT NULL,
            old_values  JSONB,
            new_values  JSONB,
            created_at  TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP
        )
    """)
    op.execute("""
        CREATE INDEX ix_audit_trail_entity
            ON audit_trail(entity_type, entity_id)
    """)
    op.execute("CREATE INDEX ix_audit_trail_actor_id   ON audit_trail(actor_id)")
    op.execute("CREATE INDEX ix_audit_trail_created_at ON audit_trail(created_at)")

    # ── Seed data ─────────────────────────────────────────────────────────
    op.execute("""
        INSERT INTO settings (key, value) VALUES
        ('PACE_FACTOR',           '0.8'),
        ('WORKING_HOURS_PER_DAY', '8'),
        ('WORKING_DAYS_PER_WEEK', '5')
    """)


# ---------------------------------------------------------------------------
# DOWNGRADE
# ---------------------------------------------------------------------------


def downgrade() -> None:
    # Drop tables in reverse dependency order
    tables = [
        "audit_trail",
        "settings",
        "time_off_requests",
        "allocations",
        "users",
    ]
    for t in tables:
        op.execute(f"DROP TABLE IF EXISTS {t} CASCADE")

    for name, _ in reversed(ENUM_TYPES):
        _drop_enum(name)

    op.execute('DROP EXTENSION IF EXISTS "uuid-ossp"')
