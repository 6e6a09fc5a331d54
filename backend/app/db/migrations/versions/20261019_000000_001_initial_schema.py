############################################################
#
# labchain-directory - LAB Chain Network Directory and Faucet Portal
#
# 001_initial_schema.py: Initial database schema migration
#
# Luke Sheneman
# Research Computing and Data Services (RCDS)
# Institute for Interdisciplinary Data Sciences (IIDS)
# University of Idaho
# sheneman@uidaho.edu
#
############################################################

"""Initial database schema

Revision ID: 001
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    # Users table
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('username', sa.String(100), nullable=False),
        sa.Column('password_hash', sa.String(255), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('username'),
    )
    op.create_index('ix_users_username', 'users', ['username'])

    # Login sessions
    op.create_table(
        'sessions',
        sa.Column('id', sa.String(64), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
    )
    op.create_index('ix_sessions_user_id', 'sessions', ['user_id'])
    op.create_index('ix_sessions_expires_at', 'sessions', ['expires_at'])

    # Directory tables
    op.create_table(
        'rpc_endpoints',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('endpoint', sa.String(500), nullable=False),
        sa.Column('type', sa.Enum('official', 'community', name='rpcendpointtype'), nullable=False),
        sa.Column('location', sa.String(255), nullable=True),
        sa.Column('status', sa.Enum('active', 'inactive', name='rpcendpointstatus'), nullable=False),
        sa.Column('latency', sa.String(50), nullable=True),
        sa.Column('requests', sa.String(50), nullable=True),
        sa.Column('rate_limit', sa.String(100), nullable=True),
        sa.Column('features', sa.Text(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_rpc_endpoints_endpoint', 'rpc_endpoints', ['endpoint'])

    op.create_table(
        'boot_nodes',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('enode', sa.String(1000), nullable=False),
        sa.Column('location', sa.String(255), nullable=True),
        sa.Column('status', sa.Enum('active', 'syncing', 'inactive', name='nodestatus'), nullable=False),
        sa.Column('uptime', sa.String(50), nullable=True),
        sa.Column('peers', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_seen', sa.String(100), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
    )

    op.create_table(
        'beacon_nodes',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('endpoint', sa.String(500), nullable=True),
        sa.Column('enr', sa.String(1000), nullable=True),
        sa.Column('p2p', sa.String(500), nullable=True),
        sa.Column('location', sa.String(255), nullable=True),
        sa.Column('status', sa.Enum('active', 'syncing', 'inactive', name='nodestatus'), nullable=False),
        sa.Column('version', sa.String(100), nullable=True),
        sa.Column('sync_status', sa.String(100), nullable=True),
        sa.Column('slots', sa.String(50), nullable=True),
        sa.Column('epoch', sa.String(50), nullable=True),
        sa.Column('last_update', sa.String(100), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
    )

    # Submission tables
    op.create_table(
        'node_requests',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('tracking_id', sa.String(20), nullable=False),
        sa.Column('node_type', sa.Enum('rpc', 'bootnode', 'beacon', name='nodetype'), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('endpoint', sa.String(700), nullable=False),
        sa.Column('location', sa.String(255), nullable=True),
        sa.Column('contact_email', sa.String(255), nullable=False),
        sa.Column('contact_name', sa.String(255), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('status', sa.Enum('pending', 'approved', 'rejected', name='noderequeststatus'), nullable=False),
        sa.Column('admin_notes', sa.Text(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('tracking_id'),
    )
    op.create_index('ix_node_requests_status', 'node_requests', ['status'])
    op.create_index('ix_node_requests_endpoint', 'node_requests', ['endpoint'])

    op.create_table(
        'token_requests',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('tracking_id', sa.String(20), nullable=False),
        sa.Column('first_name', sa.String(100), nullable=False),
        sa.Column('last_name', sa.String(100), nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('wallet_address', sa.String(100), nullable=False),
        sa.Column('requested_amount', sa.String(78), nullable=False),
        sa.Column('reason', sa.Text(), nullable=False),
        sa.Column('contact_info', sa.String(255), nullable=True),
        sa.Column(
            'status',
            sa.Enum('pending', 'approved', 'rejected', 'transferred', name='tokenrequeststatus'),
            nullable=False,
        ),
        sa.Column('transferred_amount', sa.String(78), nullable=True),
        sa.Column('admin_notes', sa.Text(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('tracking_id'),
    )
    op.create_index('ix_token_requests_status', 'token_requests', ['status'])

    # Runtime settings
    op.create_table(
        'settings',
        sa.Column('key', sa.String(100), nullable=False),
        sa.Column('value', sa.Text(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('key'),
    )


def downgrade() -> None:
    op.drop_table('settings')
    op.drop_index('ix_token_requests_status', table_name='token_requests')
    op.drop_table('token_requests')
    op.drop_index('ix_node_requests_endpoint', table_name='node_requests')
    op.drop_index('ix_node_requests_status', table_name='node_requests')
    op.drop_table('node_requests')
    op.drop_table('beacon_nodes')
    op.drop_table('boot_nodes')
    op.drop_index('ix_rpc_endpoints_endpoint', table_name='rpc_endpoints')
    op.drop_table('rpc_endpoints')
    op.drop_index('ix_sessions_expires_at', table_name='sessions')
    op.drop_index('ix_sessions_user_id', table_name='sessions')
    op.drop_table('sessions')
    op.drop_index('ix_users_username', table_name='users')
    op.drop_table('users')
