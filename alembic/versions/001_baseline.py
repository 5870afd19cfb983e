"""Baseline schema: teams, users, challenge catalog, completions and ledgers.

Revision ID: 001_baseline
Revises: None
Create Date: 2026-10-19
"""

from collections.abc import Sequence

from alembic import op

revision: str = "001_baseline"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # --- Teams ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS teams (
            id BIGSERIAL PRIMARY KEY,
            name VARCHAR(64) NOT NULL,
            name_normalized VARCHAR(64) NOT NULL UNIQUE,
            score INTEGER NOT NULL DEFAULT 0,
            creator_id BIGINT,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)

    # --- Users (challenge session state lives on the row) ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS users (
            id BIGSERIAL PRIMARY KEY,
            username VARCHAR(64) NOT NULL,
            email VARCHAR(320) NOT NULL UNIQUE,
            password_hash VARCHAR(256),
            team_id BIGINT REFERENCES teams(id) ON DELETE SET NULL,
            team_role VARCHAR(16),
            is_admin BOOLEAN NOT NULL DEFAULT false,
            score INTEGER NOT NULL DEFAULT 0,
            session_expiry TIMESTAMPTZ,
            session_started_at TIMESTAMPTZ,
            tab_switch_count INTEGER NOT NULL DEFAULT 0,
            disqualified BOOLEAN NOT NULL DEFAULT false,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            last_login TIMESTAMPTZ
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS ix_users_team_id ON users(team_id)")

    # --- Challenge catalog ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS challenges (
            id VARCHAR(36) PRIMARY KEY,
            title VARCHAR(128) NOT NULL UNIQUE,
            description TEXT NOT NULL DEFAULT '',
            difficulty VARCHAR(16) NOT NULL,
            kind VARCHAR(16) NOT NULL DEFAULT 'generic',
            points INTEGER NOT NULL CHECK (points > 0),
            solution TEXT NOT NULL,
            initial_code TEXT NOT NULL DEFAULT '',
            hints JSONB NOT NULL DEFAULT '[]'::jsonb,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)

    # --- Completed sets: one credit per (user, challenge) ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS challenge_completions (
            id BIGSERIAL PRIMARY KEY,
            user_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            challenge_id VARCHAR(36) NOT NULL REFERENCES challenges(id) ON DELETE CASCADE,
            points INTEGER NOT NULL,
            completed_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_completion_user_challenge UNIQUE (user_id, challenge_id)
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_completions_challenge
        ON challenge_completions(challenge_id, completed_at)
    """)

    # --- Append-only ledgers ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS attempts (
            id BIGSERIAL PRIMARY KEY,
            user_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            challenge_id VARCHAR(36) NOT NULL,
            solution TEXT NOT NULL,
            success BOOLEAN NOT NULL,
            points_earned INTEGER NOT NULL DEFAULT 0,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS idx_attempts_user ON attempts(user_id, created_at)")

    op.execute("""
        CREATE TABLE IF NOT EXISTS security_logs (
            id BIGSERIAL PRIMARY KEY,
            type VARCHAR(32) NOT NULL,
            user_id BIGINT NOT NULL,
            challenge_id VARCHAR(36),
            detail TEXT NOT NULL DEFAULT '',
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS idx_security_logs_created ON security_logs(created_at)")
    op.execute("CREATE INDEX IF NOT EXISTS ix_security_logs_user_id ON security_logs(user_id)")


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS security_logs CASCADE")
    op.execute("DROP TABLE IF EXISTS attempts CASCADE")
    op.execute("DROP TABLE IF EXISTS challenge_completions CASCADE")
    op.execute("DROP TABLE IF EXISTS challenges CASCADE")
    op.execute("DROP TABLE IF EXISTS users CASCADE")
    op.execute("DROP TABLE IF EXISTS teams CASCADE")
