"""Users, manuscripts and cost entries.

Revision ID: 0001
Revises:
"""

from __future__ import annotations

from alembic import op

revision = "0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.execute(
        """
        CREATE TABLE IF NOT EXISTS users (
            id UUID PRIMARY KEY,
            email TEXT UNIQUE,
            role TEXT NOT NULL DEFAULT 'user',
            subscription_tier TEXT NOT NULL DEFAULT 'free',
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
        """
    )
    op.execute(
        """
        CREATE TABLE IF NOT EXISTS manuscripts (
            id UUID PRIMARY KEY,
            user_id UUID NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            filename TEXT NOT NULL,
            storage_key TEXT NOT NULL UNIQUE,
            genre TEXT NOT NULL DEFAULT 'general',
            title TEXT,
            status TEXT NOT NULL DEFAULT 'uploaded'
                CHECK (status IN ('uploaded', 'queued', 'analyzing', 'analyzed', 'failed', 'exported')),
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
        """
    )
    op.execute("CREATE INDEX IF NOT EXISTS idx_manuscripts_user ON manuscripts(user_id)")
    op.execute(
        """
        CREATE TABLE IF NOT EXISTS cost_entries (
            id TEXT PRIMARY KEY,
            user_id TEXT,
            manuscript_id TEXT,
            cost_center TEXT NOT NULL,
            feature_name TEXT NOT NULL,
            operation TEXT NOT NULL,
            cost_usd NUMERIC(12, 6) NOT NULL DEFAULT 0,
            input_tokens INTEGER,
            output_tokens INTEGER,
            model TEXT,
            metadata JSONB NOT NULL DEFAULT '{}'::jsonb,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
        """
    )
    op.execute("CREATE INDEX IF NOT EXISTS idx_cost_entries_created ON cost_entries(created_at)")
    op.execute("CREATE INDEX IF NOT EXISTS idx_cost_entries_center ON cost_entries(cost_center, feature_name)")


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS cost_entries")
    op.execute("DROP TABLE IF EXISTS manuscripts")
    op.execute("DROP TABLE IF EXISTS users")
