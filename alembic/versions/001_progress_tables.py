"""Progress and social-graph tables.

Creates habit_logs, milestones, achievements, user_achievements, friendships,
best_friends and social_counters. users and habits are owned by the account
and habit services; they are created here only when missing so a fresh
development database is usable.

Revision ID: 001_progress_tables
Revises: None
Create Date: 2026-10-18
"""

from collections.abc import Sequence

from alembic import op

revision: str = "001_progress_tables"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # --- Collaborator tables ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS users (
            id BIGSERIAL PRIMARY KEY,
            username VARCHAR(50) UNIQUE NOT NULL,
            display_name VARCHAR(100),
            status VARCHAR(16) NOT NULL DEFAULT 'active',
            created_at TIMESTAMPTZ DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS habits (
            id BIGSERIAL PRIMARY KEY,
            user_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            name VARCHAR(100) NOT NULL,
            type VARCHAR(16) NOT NULL DEFAULT 'build',
            category VARCHAR(32) NOT NULL DEFAULT 'other',
            is_primary BOOLEAN DEFAULT false,
            start_date DATE NOT NULL,
            end_date DATE,
            is_active BOOLEAN DEFAULT true,
            custom_milestones JSONB DEFAULT '[]',
            created_at TIMESTAMPTZ DEFAULT NOW()
        )
    """)
    op.execute("""
        ALTER TABLE habits ADD COLUMN IF NOT EXISTS custom_milestones JSONB DEFAULT '[]'
    """)

    # --- Habit Logs ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS habit_logs (
            id BIGSERIAL PRIMARY KEY,
            habit_id BIGINT NOT NULL REFERENCES habits(id) ON DELETE CASCADE,
            user_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            date DATE NOT NULL,
            completed BOOLEAN NOT NULL DEFAULT false,
            completion_time TIMESTAMPTZ,
            notes TEXT,
            mood_before VARCHAR(16),
            mood_after VARCHAR(16),
            difficulty_level INTEGER CHECK (difficulty_level >= 1 AND difficulty_level <= 10),
            created_at TIMESTAMPTZ DEFAULT NOW(),
            CONSTRAINT habit_logs_habit_id_date_key UNIQUE (habit_id, date)
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_habit_logs_user_date
        ON habit_logs(user_id, date)
    """)

    # --- Milestones ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS milestones (
            id BIGSERIAL PRIMARY KEY,
            habit_id BIGINT NOT NULL REFERENCES habits(id) ON DELETE CASCADE,
            user_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            milestone_type VARCHAR(16) NOT NULL,
            milestone_value INTEGER NOT NULL,
            achieved_at TIMESTAMPTZ NOT NULL,
            celebrated BOOLEAN NOT NULL DEFAULT false,
            shared_publicly BOOLEAN NOT NULL DEFAULT false,
            created_at TIMESTAMPTZ DEFAULT NOW(),
            CONSTRAINT milestones_user_habit_type_value_key
                UNIQUE (user_id, habit_id, milestone_type, milestone_value)
        )
    """)

    # --- Achievements ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS achievements (
            id SERIAL PRIMARY KEY,
            slug VARCHAR(64) UNIQUE NOT NULL,
            name VARCHAR(100) NOT NULL,
            description TEXT NOT NULL,
            icon_url VARCHAR(500),
            category VARCHAR(50),
            criteria JSONB NOT NULL,
            reward_data JSONB DEFAULT '{}',
            is_active BOOLEAN NOT NULL DEFAULT true,
            created_at TIMESTAMPTZ DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS user_achievements (
            id BIGSERIAL PRIMARY KEY,
            user_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            achievement_id INTEGER NOT NULL REFERENCES achievements(id) ON DELETE CASCADE,
            achieved_at TIMESTAMPTZ NOT NULL,
            progress_data JSONB DEFAULT '{}',
            CONSTRAINT user_achievements_user_id_achievement_id_key UNIQUE (user_id, achievement_id)
        )
    """)

    # --- Friendships ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS friendships (
            id BIGSERIAL PRIMARY KEY,
            requester_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            addressee_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            pair_low_id BIGINT NOT NULL,
            pair_high_id BIGINT NOT NULL,
            status VARCHAR(16) NOT NULL DEFAULT 'pending',
            blocked_by_id BIGINT,
            requested_at TIMESTAMPTZ NOT NULL,
            responded_at TIMESTAMPTZ,
            created_at TIMESTAMPTZ DEFAULT NOW(),
            updated_at TIMESTAMPTZ,
            CONSTRAINT friendships_pair_key UNIQUE (pair_low_id, pair_high_id),
            CONSTRAINT no_self_friendship CHECK (requester_id <> addressee_id),
            CONSTRAINT pair_ordered CHECK (pair_low_id < pair_high_id),
            CONSTRAINT status_valid CHECK (status IN ('pending', 'accepted', 'blocked', 'declined'))
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS idx_friendships_requester ON friendships(requester_id)")
    op.execute("CREATE INDEX IF NOT EXISTS idx_friendships_addressee ON friendships(addressee_id)")
    op.execute("CREATE INDEX IF NOT EXISTS idx_friendships_status ON friendships(status)")

    # --- Best Friends ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS best_friends (
            id BIGSERIAL PRIMARY KEY,
            user_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            friend_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            created_at TIMESTAMPTZ DEFAULT NOW(),
            CONSTRAINT best_friends_user_id_friend_id_key UNIQUE (user_id, friend_id),
            CONSTRAINT no_self_best_friend CHECK (user_id <> friend_id)
        )
    """)

    # --- Social Counters ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS social_counters (
            user_id BIGINT PRIMARY KEY REFERENCES users(id) ON DELETE CASCADE,
            best_friend_count INTEGER NOT NULL DEFAULT 0,
            updated_at TIMESTAMPTZ,
            CONSTRAINT best_friend_count_non_negative CHECK (best_friend_count >= 0)
        )
    """)
    # Existing best-friend rows seed the counters
    op.execute("""
        INSERT INTO social_counters (user_id, best_friend_count)
        SELECT user_id, COUNT(*) FROM best_friends GROUP BY user_id
        ON CONFLICT (user_id) DO UPDATE SET best_friend_count = EXCLUDED.best_friend_count
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS social_counters CASCADE")
    op.execute("DROP TABLE IF EXISTS best_friends CASCADE")
    op.execute("DROP TABLE IF EXISTS friendships CASCADE")
    op.execute("DROP TABLE IF EXISTS user_achievements CASCADE")
    op.execute("DROP TABLE IF EXISTS achievements CASCADE")
    op.execute("DROP TABLE IF EXISTS milestones CASCADE")
    op.execute("DROP TABLE IF EXISTS habit_logs CASCADE")
