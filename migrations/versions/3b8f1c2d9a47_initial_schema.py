"""initial schema

Revision ID: 3b8f1c2d9a47
Revises:
Create Date: 2026-10-16 18:02:11.402915

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
import sqlmodel
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '3b8f1c2d9a47'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


ENUM_VALUES = {
    'userrole': (
        'UNASSIGNED', 'FARMER', 'DISTRIBUTOR', 'RETAILER', 'GOVERNMENT', 'ADMIN'),
    'batchstatus': (
        'CREATED', 'IN_TRANSIT_TO_DISTRIBUTOR', 'WITH_DISTRIBUTOR',
        'IN_TRANSIT_TO_RETAILER', 'WITH_RETAILER', 'SOLD'),
    'transactiontype': (
        'CREATION', 'TRANSFER', 'STATUS_UPDATE',
        'LISTING_CREATED', 'BID_PLACED', 'ORDER_CREATED'),
    'listingstatus': ('OPEN', 'LOCKED_IN', 'SOLD'),
    'bidstatus': ('PENDING', 'ACCEPTED', 'REJECTED'),
}


def _enum(name):
    """Enum column type. On Postgres the named type is created once in upgrade()."""
    values = ENUM_VALUES[name]
    return sa.Enum(*values, name=name).with_variant(
        postgresql.ENUM(*values, name=name, create_type=False), 'postgresql')


USER_ROLE = _enum('userrole')
BATCH_STATUS = _enum('batchstatus')
TRANSACTION_TYPE = _enum('transactiontype')
LISTING_STATUS = _enum('listingstatus')
BID_STATUS = _enum('bidstatus')


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
    ]


def upgrade():
    bind = op.get_bind()
    if bind.dialect.name == 'postgresql':
        for name, values in ENUM_VALUES.items():
            postgresql.ENUM(*values, name=name).create(bind, checkfirst=True)

    op.create_table(
        'user',
        *_timestamps(),
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('email', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('name', sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column('role', USER_ROLE, nullable=False),
        sa.Column('phone', sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column('location', sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column('farm_name', sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column('license_number', sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column('verified', sa.Boolean(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_user_created_at', 'user', ['created_at'])
    op.create_index('ix_user_email', 'user', ['email'], unique=True)
    op.create_index('ix_user_role', 'user', ['role'])

    op.create_table(
        'batch',
        *_timestamps(),
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('batch_id', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('farmer_id', sa.Uuid(), nullable=False),
        sa.Column('crop_variety', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('quantity', sa.Float(), nullable=False),
        sa.Column('unit', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('quality_grade', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('harvest_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('expected_price', sa.Float(), nullable=False),
        sa.Column('farm_location', sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column('notes', sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column('shelf_location', sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column('status', BATCH_STATUS, nullable=False),
        sa.Column('current_owner_id', sa.Uuid(), nullable=False),
        sa.Column('pending_owner_id', sa.Uuid(), nullable=True),
        sa.Column('farmer_price', sa.Float(), nullable=True),
        sa.Column('distributor_price', sa.Float(), nullable=True),
        sa.Column('retail_price', sa.Float(), nullable=True),
        sa.Column('qr_code', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.ForeignKeyConstraint(['farmer_id'], ['user.id']),
        sa.ForeignKeyConstraint(['current_owner_id'], ['user.id']),
        sa.ForeignKeyConstraint(['pending_owner_id'], ['user.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_batch_created_at', 'batch', ['created_at'])
    op.create_index('ix_batch_batch_id', 'batch', ['batch_id'], unique=True)
    op.create_index('ix_batch_farmer_id', 'batch', ['farmer_id'])
    op.create_index('ix_batch_crop_variety', 'batch', ['crop_variety'])
    op.create_index('ix_batch_status', 'batch', ['status'])
    op.create_index('ix_batch_current_owner_id', 'batch', ['current_owner_id'])
    op.create_index('ix_batch_pending_owner_id', 'batch', ['pending_owner_id'])

    op.create_table(
        'listing',
        *_timestamps(),
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('batch_id', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('farmer_id', sa.Uuid(), nullable=False),
        sa.Column('quantity', sa.Float(), nullable=False),
        sa.Column('unit', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('expected_price', sa.Float(), nullable=False),
        sa.Column('negotiation_allowed', sa.Boolean(), nullable=True),
        sa.Column('special_terms', sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column('description', sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column('images', sa.JSON(), nullable=True),
        sa.Column('status', LISTING_STATUS, nullable=False),
        sa.Column('accepted_bid_id', sa.Uuid(), nullable=True),
        sa.Column('accepted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('final_price', sa.Float(), nullable=True),
        sa.Column('location', sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column('crop_variety', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.ForeignKeyConstraint(['batch_id'], ['batch.batch_id']),
        sa.ForeignKeyConstraint(['farmer_id'], ['user.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_listing_created_at', 'listing', ['created_at'])
    op.create_index('ix_listing_batch_id', 'listing', ['batch_id'])
    op.create_index('ix_listing_farmer_id', 'listing', ['farmer_id'])
    op.create_index('ix_listing_status', 'listing', ['status'])
    op.create_index('ix_listing_crop_variety', 'listing', ['crop_variety'])
    # At most one OPEN listing per batch
    op.create_index(
        'uq_listing_open_batch', 'listing', ['batch_id'],
        unique=True,
        sqlite_where=sa.text("status = 'OPEN'"),
        postgresql_where=sa.text("status = 'OPEN'"),
    )

    op.create_table(
        'bid',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('listing_id', sa.Uuid(), nullable=False),
        sa.Column('distributor_id', sa.Uuid(), nullable=False),
        sa.Column('price_per_unit', sa.Float(), nullable=False),
        sa.Column('min_quantity', sa.Float(), nullable=True),
        sa.Column('max_quantity', sa.Float(), nullable=True),
        sa.Column('pickup_proposal', sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column('payment_terms', sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column('comments', sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column('status', BID_STATUS, nullable=False),
        sa.Column('timestamp', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['listing_id'], ['listing.id']),
        sa.ForeignKeyConstraint(['distributor_id'], ['user.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_bid_listing_id', 'bid', ['listing_id'])
    op.create_index('ix_bid_distributor_id', 'bid', ['distributor_id'])
    op.create_index('ix_bid_status', 'bid', ['status'])
    op.create_index('ix_bid_timestamp', 'bid', ['timestamp'])
    # At most one ACCEPTED bid per listing
    op.create_index(
        'uq_bid_accepted_listing', 'bid', ['listing_id'],
        unique=True,
        sqlite_where=sa.text("status = 'ACCEPTED'"),
        postgresql_where=sa.text("status = 'ACCEPTED'"),
    )

    op.create_table(
        'batch_transaction',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('batch_id', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('from_user_id', sa.Uuid(), nullable=False),
        sa.Column('to_user_id', sa.Uuid(), nullable=False),
        sa.Column('transaction_type', TRANSACTION_TYPE, nullable=False),
        sa.Column('previous_status', BATCH_STATUS, nullable=True),
        sa.Column('new_status', BATCH_STATUS, nullable=False),
        sa.Column('price', sa.Float(), nullable=True),
        sa.Column('notes', sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column('timestamp', sa.DateTime(timezone=True), nullable=False),
        sa.Column('transport_mode', sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column('storage_info', sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column('destination', sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column('shelf_location', sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column('listing_id', sa.Uuid(), nullable=True),
        sa.Column('bid_id', sa.Uuid(), nullable=True),
        sa.ForeignKeyConstraint(['batch_id'], ['batch.batch_id']),
        sa.ForeignKeyConstraint(['from_user_id'], ['user.id']),
        sa.ForeignKeyConstraint(['to_user_id'], ['user.id']),
        sa.ForeignKeyConstraint(['listing_id'], ['listing.id']),
        sa.ForeignKeyConstraint(['bid_id'], ['bid.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_batch_transaction_batch_id', 'batch_transaction', ['batch_id'])
    op.create_index('ix_batch_transaction_from_user_id', 'batch_transaction', ['from_user_id'])
    op.create_index('ix_batch_transaction_to_user_id', 'batch_transaction', ['to_user_id'])
    op.create_index('ix_batch_transaction_transaction_type', 'batch_transaction', ['transaction_type'])
    op.create_index('ix_batch_transaction_timestamp', 'batch_transaction', ['timestamp'])


def downgrade():
    op.drop_table('batch_transaction')
    op.drop_table('bid')
    op.drop_table('listing')
    op.drop_table('batch')
    op.drop_table('user')

    bind = op.get_bind()
    if bind.dialect.name == 'postgresql':
        # Enum types outlive their tables on Postgres
        for name, values in ENUM_VALUES.items():
            postgresql.ENUM(*values, name=name).drop(bind, checkfirst=True)
