"""Gamification core tables.

Creates users, user_stats, achievements, user_achievements, user_streaks,
points_ledger, leaderboard_entries, and notifications.

Revision ID: 001_gamification_core
Revises: None
Create Date: 2026-10-16
"""

from collections.abc import Sequence

from alembic import op

revision: str = "001_gamification_core"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # --- Users (owned by the identity provider) ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS users (
            id VARCHAR(64) PRIMARY KEY,
            name VARCHAR(128),
            image TEXT,
            created_at TIMESTAMPTZ
        )
    """)

    # --- User Stats ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS user_stats (
            user_id VARCHAR(64) PRIMARY KEY,
            total_measurements INTEGER NOT NULL DEFAULT 0,
            rural_measurements INTEGER NOT NULL DEFAULT 0,
            unique_locations INTEGER NOT NULL DEFAULT 0,
            total_distance DOUBLE PRECISION NOT NULL DEFAULT 0,
            contribution_score INTEGER NOT NULL DEFAULT 0,
            quality_score DOUBLE PRECISION NOT NULL DEFAULT 0,
            accuracy_rate DOUBLE PRECISION NOT NULL DEFAULT 0,
            verified_spots INTEGER NOT NULL DEFAULT 0,
            helpful_actions INTEGER NOT NULL DEFAULT 0,
            consecutive_days INTEGER NOT NULL DEFAULT 0,
            points BIGINT NOT NULL DEFAULT 0,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT user_stats_rural_le_total CHECK (rural_measurements <= total_measurements),
            CONSTRAINT user_stats_points_nonneg CHECK (points >= 0)
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_user_stats_points
        ON user_stats(points DESC)
    """)

    # --- Achievements ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS achievements (
            id SERIAL PRIMARY KEY,
            slug VARCHAR(64) UNIQUE NOT NULL,
            title VARCHAR(128) UNIQUE NOT NULL,
            description TEXT NOT NULL,
            icon VARCHAR(32),
            points INTEGER NOT NULL,
            rarity VARCHAR(16) NOT NULL DEFAULT 'common',
            tier VARCHAR(16) NOT NULL DEFAULT 'BRONZE',
            category VARCHAR(32) NOT NULL,
            requirements JSON NOT NULL DEFAULT '[]',
            is_secret BOOLEAN NOT NULL DEFAULT false,
            sort_order INTEGER NOT NULL DEFAULT 0,
            is_active BOOLEAN NOT NULL DEFAULT true
        )
    """)

    # --- User Achievements ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS user_achievements (
            id SERIAL PRIMARY KEY,
            user_id VARCHAR(64) NOT NULL,
            achievement_id INTEGER NOT NULL REFERENCES achievements(id),
            progress INTEGER NOT NULL DEFAULT 0,
            completed BOOLEAN NOT NULL DEFAULT false,
            unlocked_at TIMESTAMPTZ,
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT user_achievements_user_id_achievement_id_key UNIQUE (user_id, achievement_id)
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS ix_user_achievements_user_id
        ON user_achievements(user_id)
    """)

    # --- User Streaks ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS user_streaks (
            user_id VARCHAR(64) PRIMARY KEY,
            current INTEGER NOT NULL DEFAULT 0,
            longest INTEGER NOT NULL DEFAULT 0,
            last_checkin TIMESTAMPTZ NOT NULL,
            CONSTRAINT user_streaks_longest_ge_current CHECK (longest >= current)
        )
    """)

    # --- Points Ledger ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS points_ledger (
            id BIGSERIAL PRIMARY KEY,
            user_id VARCHAR(64) NOT NULL,
            amount INTEGER NOT NULL CHECK (amount >= 0),
            source VARCHAR(32) NOT NULL,
            source_id VARCHAR(128),
            description VARCHAR(256),
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS ix_points_ledger_user_id
        ON points_ledger(user_id)
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS ix_points_ledger_created_at
        ON points_ledger(created_at)
    """)

    # --- Leaderboard Entries ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS leaderboard_entries (
            id SERIAL PRIMARY KEY,
            user_id VARCHAR(64) NOT NULL,
            timeframe VARCHAR(16) NOT NULL,
            score BIGINT NOT NULL DEFAULT 0,
            rank INTEGER,
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT leaderboard_entries_user_id_timeframe_key UNIQUE (user_id, timeframe)
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS ix_leaderboard_entries_timeframe
        ON leaderboard_entries(timeframe, score DESC)
    """)

    # --- Notifications ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS notifications (
            id BIGSERIAL PRIMARY KEY,
            user_id VARCHAR(64) NOT NULL,
            type VARCHAR(32) NOT NULL,
            title VARCHAR(256) NOT NULL,
            description TEXT,
            read BOOLEAN NOT NULL DEFAULT false,
            metadata JSON NOT NULL DEFAULT '{}',
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS ix_notifications_user_id
        ON notifications(user_id)
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS notifications CASCADE")
    op.execute("DROP TABLE IF EXISTS leaderboard_entries CASCADE")
    op.execute("DROP TABLE IF EXISTS points_ledger CASCADE")
    op.execute("DROP TABLE IF EXISTS user_streaks CASCADE")
    op.execute("DROP TABLE IF EXISTS user_achievements CASCADE")
    op.execute("DROP TABLE IF EXISTS achievements CASCADE")
    op.execute("DROP TABLE IF EXISTS user_stats CASCADE")
    op.execute("DROP TABLE IF EXISTS users CASCADE")
