"""Create the canonical cities table and city reference columns on read models.

Revision ID: 001_cities
Revises:
Create Date: 2026-10-18
"""

from alembic import op
import sqlalchemy as sa

revision = "001_cities"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    is_postgres = op.get_bind().dialect.name == "postgresql"
    if is_postgres:
        # PostGIS for the geography point column
        op.execute("CREATE EXTENSION IF NOT EXISTS postgis")

    op.create_table(
        "cities",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("slug", sa.String(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("countryCode", sa.String(), nullable=False),
        sa.Column("region", sa.String(), nullable=True),
        sa.Column("timezone", sa.String(), nullable=True),
        sa.Column("latitude", sa.Float(), nullable=True),
        sa.Column("longitude", sa.Float(), nullable=True),
        sa.Column("location", sa.String(), nullable=True),
        sa.Column("createdAt", sa.DateTime(), server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.Column("updatedAt", sa.DateTime(), server_default=sa.text("CURRENT_TIMESTAMP")),
    )
    op.create_index("ix_cities_slug", "cities", ["slug"], unique=True)

    if is_postgres:
        op.execute(
            'ALTER TABLE "cities" ALTER COLUMN "location" '
            'TYPE geography(Point, 4326) USING ST_GeogFromText("location")'
        )
        op.create_index("ix_cities_location", "cities", ["location"], postgresql_using="gist")

    # Soft references only: city ids live in an external namespace
    for table in ("event_cards", "user_cards"):
        op.create_table(
            table,
            sa.Column("id", sa.String(), primary_key=True),
            sa.Column("cityId", sa.String(), nullable=True),
            sa.Column("cityName", sa.String(), nullable=True),
        )
        op.create_index(f"ix_{table}_cityId", table, ["cityId"])


def downgrade() -> None:
    for table in ("user_cards", "event_cards"):
        op.drop_index(f"ix_{table}_cityId", table_name=table)
        op.drop_table(table)
    op.drop_index("ix_cities_location", table_name="cities", if_exists=True)
    op.drop_index("ix_cities_slug", table_name="cities")
    op.drop_table("cities")
