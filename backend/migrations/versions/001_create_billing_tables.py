"""Create billing tables

Revision ID: 001
Revises:
Create Date: 2026-10-19 12:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect


# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    ]


def upgrade() -> None:
    # Tables may already exist when Base.metadata.create_all ran first
    conn = op.get_bind()
    existing_tables = inspect(conn).get_table_names()

    if 'users' not in existing_tables:
        op.create_table(
            'users',
            sa.Column('id', sa.String(length=36), nullable=False),
            sa.Column('email', sa.String(length=255), nullable=False),
            sa.Column('first_name', sa.String(length=255), nullable=True),
            sa.Column('last_name', sa.String(length=255), nullable=True),
            sa.Column('stripe_customer_id', sa.String(length=255), nullable=True),
            *_timestamps(),
            sa.PrimaryKeyConstraint('id')
        )
        op.create_index('ix_users_email', 'users', ['email'], unique=True)
        op.create_index('ix_users_stripe_customer_id', 'users', ['stripe_customer_id'], unique=True)

    if 'courses' not in existing_tables:
        op.create_table(
            'courses',
            sa.Column('id', sa.String(length=36), nullable=False),
            sa.Column('title', sa.String(length=255), nullable=False),
            sa.Column('slug', sa.String(length=255), nullable=False),
            sa.Column('price', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('stripe_price_id', sa.String(length=255), nullable=True),
            *_timestamps(),
            sa.PrimaryKeyConstraint('id')
        )
        op.create_index('ix_courses_slug', 'courses', ['slug'], unique=True)

    if 'enrollments' not in existing_tables:
        op.create_table(
            'enrollments',
            sa.Column('id', sa.String(length=36), nullable=False),
            sa.Column('user_id', sa.String(length=36), sa.ForeignKey('users.id'), nullable=False),
            sa.Column('course_id', sa.String(length=36), sa.ForeignKey('courses.id'), nullable=False),
            sa.Column('amount', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('status', sa.String(length=32), nullable=False),
            *_timestamps(),
            sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
            sa.PrimaryKeyConstraint('id'),
            sa.UniqueConstraint('user_id', 'course_id', name='uq_enrollments_user_course')
        )
        op.create_index('ix_enrollments_user_id', 'enrollments', ['user_id'])
        op.create_index('ix_enrollments_course_id', 'enrollments', ['course_id'])

    if 'organizations' not in existing_tables:
        op.create_table(
            'organizations',
            sa.Column('id', sa.String(length=36), nullable=False),
            sa.Column('name', sa.String(length=255), nullable=False),
            sa.Column('owner_user_id', sa.String(length=36), sa.ForeignKey('users.id'), nullable=False),
            *_timestamps(),
            sa.PrimaryKeyConstraint('id')
        )
        op.create_index('ix_organizations_owner_user_id', 'organizations', ['owner_user_id'])

    if 'subscription_plans' not in existing_tables:
        op.create_table(
            'subscription_plans',
            sa.Column('id', sa.String(length=36), nullable=False),
            sa.Column('name', sa.String(length=255), nullable=False),
            sa.Column('slug', sa.String(length=255), nullable=False),
            sa.Column('price_monthly', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('price_yearly', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('trial_days', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('stripe_price_id_monthly', sa.String(length=255), nullable=True),
            sa.Column('stripe_price_id_yearly', sa.String(length=255), nullable=True),
            sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
            *_timestamps(),
            sa.PrimaryKeyConstraint('id')
        )
        op.create_index('ix_subscription_plans_slug', 'subscription_plans', ['slug'], unique=True)

    if 'user_subscriptions' not in existing_tables:
        op.create_table(
            'user_subscriptions',
            sa.Column('id', sa.String(length=36), nullable=False),
            sa.Column('user_id', sa.String(length=36), sa.ForeignKey('users.id'), nullable=False),
            sa.Column('plan_id', sa.String(length=36), sa.ForeignKey('subscription_plans.id'), nullable=False),
            sa.Column('status', sa.String(length=32), nullable=False),
            sa.Column('billing_cycle', sa.String(length=32), nullable=False),
            sa.Column('start_date', sa.DateTime(timezone=True), nullable=False),
            sa.Column('end_date', sa.DateTime(timezone=True), nullable=True),
            sa.Column('next_billing_date', sa.DateTime(timezone=True), nullable=True),
            sa.Column('auto_renew', sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column('stripe_subscription_id', sa.String(length=255), nullable=True),
            sa.Column('stripe_customer_id', sa.String(length=255), nullable=True),
            sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
            *_timestamps(),
            sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
            sa.PrimaryKeyConstraint('id')
        )
        op.create_index('ix_user_subscriptions_user_id', 'user_subscriptions', ['user_id'])
        op.create_index('ix_user_subscriptions_plan_id', 'user_subscriptions', ['plan_id'])
        op.create_index('ix_user_subscriptions_stripe_subscription_id', 'user_subscriptions', ['stripe_subscription_id'], unique=True)
        op.create_index('ix_user_subscriptions_stripe_customer_id', 'user_subscriptions', ['stripe_customer_id'])

    if 'subscriptions' not in existing_tables:
        op.create_table(
            'subscriptions',
            sa.Column('id', sa.String(length=36), nullable=False),
            sa.Column('org_id', sa.String(length=36), sa.ForeignKey('organizations.id'), nullable=False),
            sa.Column('plan_code', sa.String(length=50), nullable=False),
            sa.Column('status', sa.String(length=32), nullable=False),
            sa.Column('current_period_start', sa.DateTime(timezone=True), nullable=True),
            sa.Column('current_period_end', sa.DateTime(timezone=True), nullable=True),
            sa.Column('cancel_at_period_end', sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column('stripe_customer_id', sa.String(length=255), nullable=True),
            sa.Column('stripe_subscription_id', sa.String(length=255), nullable=True),
            sa.Column('stripe_price_id', sa.String(length=255), nullable=True),
            *_timestamps(),
            sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
            sa.PrimaryKeyConstraint('id')
        )
        op.create_index('ix_subscriptions_org_id', 'subscriptions', ['org_id'], unique=True)
        op.create_index('ix_subscriptions_stripe_customer_id', 'subscriptions', ['stripe_customer_id'])
        op.create_index('ix_subscriptions_stripe_subscription_id', 'subscriptions', ['stripe_subscription_id'], unique=True)

    if 'subscription_history' not in existing_tables:
        op.create_table(
            'subscription_history',
            sa.Column('id', sa.String(length=36), nullable=False),
            sa.Column('user_id', sa.String(length=36), sa.ForeignKey('users.id'), nullable=False),
            sa.Column('subscription_id', sa.String(length=36), sa.ForeignKey('user_subscriptions.id'), nullable=False),
            sa.Column('action', sa.String(length=32), nullable=False),
            sa.Column('old_plan_id', sa.String(length=36), nullable=True),
            sa.Column('new_plan_id', sa.String(length=36), nullable=True),
            sa.Column('metadata', sa.JSON(), nullable=True),
            *_timestamps(),
            sa.PrimaryKeyConstraint('id')
        )
        op.create_index('ix_subscription_history_user_id', 'subscription_history', ['user_id'])
        op.create_index('ix_subscription_history_subscription_id', 'subscription_history', ['subscription_id'])

    if 'invoices' not in existing_tables:
        op.create_table(
            'invoices',
            sa.Column('id', sa.String(length=36), nullable=False),
            sa.Column('invoice_number', sa.String(length=64), nullable=False),
            sa.Column('user_id', sa.String(length=36), sa.ForeignKey('users.id'), nullable=False),
            sa.Column('subscription_id', sa.String(length=36), sa.ForeignKey('user_subscriptions.id'), nullable=True),
            sa.Column('plan_name', sa.String(length=255), nullable=False),
            sa.Column('amount', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('total_amount', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('payment_status', sa.String(length=32), nullable=False),
            sa.Column('payment_date', sa.DateTime(timezone=True), nullable=True),
            sa.Column('stripe_invoice_id', sa.String(length=255), nullable=True),
            sa.Column('stripe_payment_intent_id', sa.String(length=255), nullable=True),
            *_timestamps(),
            sa.PrimaryKeyConstraint('id')
        )
        op.create_index('ix_invoices_invoice_number', 'invoices', ['invoice_number'], unique=True)
        op.create_index('ix_invoices_user_id', 'invoices', ['user_id'])
        op.create_index('ix_invoices_subscription_id', 'invoices', ['subscription_id'])
        op.create_index('ix_invoices_stripe_invoice_id', 'invoices', ['stripe_invoice_id'])

    if 'stripe_events' not in existing_tables:
        op.create_table(
            'stripe_events',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('stripe_event_id', sa.String(length=255), nullable=False),
            sa.Column('event_type', sa.String(length=100), nullable=False),
            sa.Column('processed', sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column('payload', sa.JSON(), nullable=False),
            sa.Column('error_message', sa.Text(), nullable=True),
            *_timestamps(),
            sa.Column('processed_at', sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint('id')
        )
        op.create_index('ix_stripe_events_id', 'stripe_events', ['id'])
        op.create_index('ix_stripe_events_stripe_event_id', 'stripe_events', ['stripe_event_id'], unique=True)
        op.create_index('ix_stripe_events_event_type', 'stripe_events', ['event_type'])


def downgrade() -> None:
    conn = op.get_bind()
    existing_tables = inspect(conn).get_table_names()

    # Reverse dependency order
    for table in (
        'stripe_events', 'invoices', 'subscription_history', 'subscriptions',
        'user_subscriptions', 'subscription_plans', 'organizations', 'enrollments',
        'courses', 'users',
    ):
        if table in existing_tables:
            op.drop_table(table)
