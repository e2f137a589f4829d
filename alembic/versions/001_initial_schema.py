"""Initial schema

Revision ID: 001
Revises: 
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


CATEGORY_COLUMNS = {
    'servers': [
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('primary_ip_address', sa.String(length=64), nullable=True),
        sa.Column('region', sa.String(length=100), nullable=True),
    ],
    'web_services': [
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('production_url', sa.String(length=2048), nullable=True),
        sa.Column('environment', sa.String(length=100), nullable=True),
        sa.Column('git_repo', sa.String(length=2048), nullable=True),
    ],
    'domains': [
        sa.Column('domain_name', sa.String(length=255), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=True),
    ],
    'databases': [
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('engine', sa.String(length=100), nullable=True),
        sa.Column('version', sa.String(length=50), nullable=True),
    ],
}


def _common_columns() -> list:
    return [
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('org_id', sa.String(length=255), nullable=False),
        sa.Column('resource_id', sa.String(length=255), nullable=True),
        sa.Column('dock_id', sa.String(length=255), nullable=True),
        sa.Column('provider', sa.String(length=100), nullable=False),
        sa.Column('provider_resource_id', sa.String(length=255), nullable=False),
        sa.Column('status', sa.String(length=50), nullable=False),
        sa.Column('provisioning_source', sa.String(length=20), nullable=True),
        sa.Column('native_resource_id', sa.String(length=255), nullable=True),
        sa.Column('vendor_resource_id', sa.String(length=255), nullable=True),
        sa.Column('provisioning_state', sa.String(length=30), nullable=True),
        sa.Column('failure_reason', sa.Text(), nullable=True),
        sa.Column('provisioned_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('full_api_data', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
    ]


def upgrade() -> None:
    for table, columns in CATEGORY_COLUMNS.items():
        op.create_table(
            table,
            *_common_columns(),
            *columns,
            sa.PrimaryKeyConstraint('id'),
            sa.UniqueConstraint(
                'org_id', 'provider_resource_id', name=f'uq_{table}_provider_resource'
            ),
        )
        op.create_index(f'idx_{table}_org', table, ['org_id'])


def downgrade() -> None:
    for table in reversed(list(CATEGORY_COLUMNS)):
        op.drop_index(f'idx_{table}_org', table_name=table)
        op.drop_table(table)
