"""reservation schema with table overlap guard

Revision ID: 3c51f0a9d2b7
Revises: 
Create Date: 2025-09-01 12:00:00.000000

"""
from typing import Sequence, Union

from alembic import op


# revision identifiers, used by Alembic.
revision: str = '3c51f0a9d2b7'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("CREATE EXTENSION IF NOT EXISTS btree_gist;")

    op.execute(
        """
        CREATE TABLE restaurant (
          id          text PRIMARY KEY,
          name        text NOT NULL,
          timezone    text NOT NULL,
          shifts      jsonb NOT NULL DEFAULT '[]'::jsonb,
          created_at  timestamptz NOT NULL DEFAULT now(),
          updated_at  timestamptz NOT NULL DEFAULT now()
        );

        CREATE TABLE sector (
          id             text PRIMARY KEY,
          restaurant_id  text NOT NULL REFERENCES restaurant (id) ON DELETE CASCADE,
          name           text NOT NULL
        );

        CREATE TABLE dining_table (
          id         text PRIMARY KEY,
          sector_id  text NOT NULL REFERENCES sector (id) ON DELETE CASCADE,
          name       text NOT NULL,
          min_size   integer NOT NULL CHECK (min_size >= 1),
          max_size   integer NOT NULL CHECK (max_size >= min_size)
        );

        CREATE TABLE reservation (
          id               text PRIMARY KEY,
          restaurant_id    text NOT NULL REFERENCES restaurant (id),
          sector_id        text NOT NULL REFERENCES sector (id),
          party_size       integer NOT NULL CHECK (party_size >= 1),
          start_ts         timestamptz NOT NULL,
          end_ts           timestamptz NOT NULL CHECK (end_ts > start_ts),
          status           text NOT NULL CHECK (status IN ('CONFIRMED', 'PENDING', 'CANCELLED')),
          customer_name    text NOT NULL,
          customer_phone   text NOT NULL,
          customer_email   text NOT NULL,
          notes            text,
          idempotency_key  text,
          created_at       timestamptz NOT NULL DEFAULT now(),
          updated_at       timestamptz NOT NULL DEFAULT now(),
          CONSTRAINT reservation_idempotency_key_uq UNIQUE (idempotency_key)
        );

        CREATE INDEX reservation_sector_status_idx
          ON reservation (restaurant_id, sector_id, status);

        CREATE TABLE reservation_table (
          reservation_id  text NOT NULL REFERENCES reservation (id) ON DELETE CASCADE,
          table_id        text NOT NULL REFERENCES dining_table (id),
          during          tstzrange NOT NULL,
          active          boolean NOT NULL DEFAULT true,
          PRIMARY KEY (reservation_id, table_id),
          CONSTRAINT reservation_table_no_overlap
            EXCLUDE USING gist (table_id WITH =, during WITH &&) WHERE (active)
        );
        """
    )


def downgrade() -> None:
    op.drop_table("reservation_table", schema="public")
    op.drop_table("reservation", schema="public")
    op.drop_table("dining_table", schema="public")
    op.drop_table("sector", schema="public")
    op.drop_table("restaurant", schema="public")
    op.execute("DROP EXTENSION IF EXISTS btree_gist;")
