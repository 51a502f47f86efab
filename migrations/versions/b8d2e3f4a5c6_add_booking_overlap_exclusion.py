"""Add exclusion constraint against overlapping bookings (PostgreSQL only)

Revision ID: b8d2e3f4a5c6
Revises: a7c1d2e3f4b5
Create Date: 2026-10-05

"""
from alembic import op


revision = 'b8d2e3f4a5c6'
down_revision = 'a7c1d2e3f4b5'
branch_labels = None
depends_on = None


def upgrade():
    # daterange is half-open '[)', matching how bookings are checked in the app
    if op.get_bind().dialect.name != 'postgresql':
        return
    op.execute('CREATE EXTENSION IF NOT EXISTS btree_gist')
    op.execute(
        "ALTER TABLE booking ADD CONSTRAINT ex_booking_no_overlap "
        "EXCLUDE USING gist (device_id WITH =, daterange(start_date, end_date, '[)') WITH &&)"
    )


def downgrade():
    if op.get_bind().dialect.name != 'postgresql':
        return
    op.execute('ALTER TABLE booking DROP CONSTRAINT IF EXISTS ex_booking_no_overlap')
