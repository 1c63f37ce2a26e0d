"""Initial schema (workspaces, social accounts, posts, jobs, audit)

Revision ID: 20261001_0900
Revises:
Create Date: 2026-10-01

"""

from __future__ import annotations

from alembic import op

revision = "20261001_0900"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.execute("CREATE EXTENSION IF NOT EXISTS pgcrypto;")

    op.execute(
        """
CREATE TABLE workspaces (
  id uuid PRIMARY KEY DEFAULT gen_random_uuid(),
  name text NOT NULL,
  time_zone text NOT NULL DEFAULT 'UTC',
  owner_user_id uuid NOT NULL,
  created_at timestamptz NOT NULL DEFAULT now()
);
"""
    )
    op.execute(
        """
CREATE TABLE workspace_members (
  id uuid PRIMARY KEY DEFAULT gen_random_uuid(),
  workspace_id uuid NOT NULL REFERENCES workspaces(id) ON DELETE CASCADE,
  user_id uuid NOT NULL,
  role varchar(16) NOT NULL CHECK (role IN ('owner','admin','editor','viewer')),
  created_at timestamptz NOT NULL DEFAULT now(),
  CONSTRAINT workspace_members_user_uniq UNIQUE (workspace_id, user_id)
);
"""
    )

    op.execute(
        """
CREATE TABLE social_accounts (
  id uuid PRIMARY KEY DEFAULT gen_random_uuid(),
  workspace_id uuid NOT NULL REFERENCES workspaces(id) ON DELETE CASCADE,
  network_type varchar(16) NOT NULL
    CHECK (network_type IN ('facebook','instagram','twitter','linkedin')),
  external_account_id text NOT NULL,
  name text NOT NULL,
  username text NULL,
  is_active boolean NOT NULL DEFAULT true,
  requires_reauthorization boolean NOT NULL DEFAULT false,
  created_at timestamptz NOT NULL DEFAULT now(),
  updated_at timestamptz NULL,
  CONSTRAINT social_accounts_external_uniq UNIQUE (workspace_id, network_type, external_account_id)
);
"""
    )
    op.execute(
        """
CREATE TABLE auth_tokens (
  id uuid PRIMARY KEY DEFAULT gen_random_uuid(),
  social_account_id uuid NOT NULL UNIQUE REFERENCES social_accounts(id) ON DELETE CASCADE,
  access_token text NOT NULL,
  refresh_token text NULL,
  expires_at_utc timestamptz NULL,
  scopes jsonb NOT NULL DEFAULT '[]'::jsonb,
  created_at timestamptz NOT NULL DEFAULT now(),
  updated_at timestamptz NULL
);
"""
    )

    op.execute(
        """
CREATE TABLE posts (
  id uuid PRIMARY KEY DEFAULT gen_random_uuid(),
  workspace_id uuid NOT NULL REFERENCES workspaces(id) ON DELETE CASCADE,
  title text NULL,
  notes text NULL,
  created_by_user_id uuid NOT NULL,
  created_at timestamptz NOT NULL DEFAULT now(),
  updated_at timestamptz NULL
);
CREATE INDEX posts_workspace_created_idx ON posts(workspace_id, created_at);
"""
    )
    op.execute(
        """
CREATE TABLE post_variants (
  id uuid PRIMARY KEY DEFAULT gen_random_uuid(),
  post_id uuid NOT NULL REFERENCES posts(id) ON DELETE CASCADE,
  social_account_id uuid NOT NULL REFERENCES social_accounts(id) ON DELETE RESTRICT,
  type varchar(16) NOT NULL CHECK (type IN ('status','link','photo','video')),
  text text NOT NULL,
  link_url text NULL,
  media_asset_id uuid NULL,
  state varchar(16) NOT NULL DEFAULT 'draft'
    CHECK (state IN ('draft','scheduled','published','failed','cancelled')),
  scheduled_at_utc timestamptz NULL,
  published_at_utc timestamptz NULL,
  provider_post_id text NULL,
  last_error_message text NULL,
  created_at timestamptz NOT NULL DEFAULT now(),
  updated_at timestamptz NULL
);
CREATE INDEX post_variants_post_idx ON post_variants(post_id);
CREATE INDEX post_variants_due_idx ON post_variants(state, scheduled_at_utc);
"""
    )

    op.execute(
        """
CREATE TABLE bg_jobs (
  id uuid PRIMARY KEY DEFAULT gen_random_uuid(),
  workspace_id uuid NULL REFERENCES workspaces(id) ON DELETE CASCADE,
  type varchar(32) NOT NULL,
  status varchar(16) NOT NULL DEFAULT 'queued'
    CHECK (status IN ('queued','running','succeeded','failed','cancelled')),
  run_at timestamptz NOT NULL DEFAULT now(),
  attempts integer NOT NULL DEFAULT 0,
  max_attempts integer NOT NULL DEFAULT 10,
  locked_at timestamptz NULL,
  locked_by text NULL,
  last_error text NULL,
  dedupe_key text NULL,
  payload jsonb NOT NULL DEFAULT '{}'::jsonb,
  created_at timestamptz NOT NULL DEFAULT now(),
  updated_at timestamptz NOT NULL DEFAULT now()
);
CREATE INDEX bg_jobs_claim_idx ON bg_jobs(status, run_at);
CREATE INDEX bg_jobs_dedupe_idx ON bg_jobs(dedupe_key, status);
"""
    )

    op.execute(
        """
CREATE TABLE audit_events (
  id uuid PRIMARY KEY DEFAULT gen_random_uuid(),
  workspace_id uuid NOT NULL REFERENCES workspaces(id) ON DELETE CASCADE,
  actor_user_id uuid NULL,
  event_type text NOT NULL,
  event_data jsonb NOT NULL DEFAULT '{}'::jsonb,
  created_at timestamptz NOT NULL DEFAULT now()
);
CREATE INDEX audit_events_workspace_created_idx ON audit_events(workspace_id, created_at);
"""
    )


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS audit_events;")
    op.execute("DROP TABLE IF EXISTS bg_jobs;")
    op.execute("DROP TABLE IF EXISTS post_variants;")
    op.execute("DROP TABLE IF EXISTS posts;")
    op.execute("DROP TABLE IF EXISTS auth_tokens;")
    op.execute("DROP TABLE IF EXISTS social_accounts;")
    op.execute("DROP TABLE IF EXISTS workspace_members;")
    op.execute("DROP TABLE IF EXISTS workspaces;")
