"""Initial schema: users, expense claims, salary slips, notifications

Revision ID: 20261019_0900_initial_schema
Revises:
Create Date: 2026-10-19 09:00:00.000000

Tables:
- users: admin and employee accounts with salary base and bank details
- expense_claims / expense_comments: claims with the approval workflow
- salary_slips: one slip per employee per (month, year)
- notifications: per-account feed
"""

from alembic import op
import sqlalchemy as sa

# revision identifiers
revision = '20261019_0900_initial_schema'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def _money(name, nullable=False):
    return sa.Column(name, sa.Numeric(12, 2), server_default='0', nullable=nullable)


def upgrade() -> None:
    """Create all tables."""

    # Enum columns store member names
    user_role = sa.Enum('ADMIN', 'EMPLOYEE', name='userrole')
    expense_category = sa.Enum(
        'TRAVEL', 'FOOD', 'ACCOMMODATION', 'TRANSPORT', 'OFFICE_SUPPLIES',
        'TRAINING', 'MEDICAL', 'OTHER',
        name='expensecategory',
    )
    expense_status = sa.Enum('PENDING', 'APPROVED', 'REJECTED', name='expensestatus')
    slip_status = sa.Enum('DRAFT', 'FINALIZED', 'SENT', name='salaryslipstatus')
    notification_type = sa.Enum(
        'INFO', 'SUCCESS', 'WARNING', 'ERROR', 'EXPENSE', 'SALARY', 'SYSTEM',
        name='notificationtype',
    )
    notification_category = sa.Enum(
        'EXPENSE_SUBMITTED', 'EXPENSE_APPROVED', 'EXPENSE_REJECTED',
        'SALARY_GENERATED', 'SALARY_SENT', 'SYSTEM_UPDATE', 'REMINDER', 'OTHER',
        name='notificationcategory',
    )
    notification_priority = sa.Enum('LOW', 'MEDIUM', 'HIGH', 'URGENT', name='notificationpriority')
    related_model = sa.Enum('EXPENSE', 'SALARY_SLIP', 'USER', name='relatedmodel')

    op.create_table(
        'users',
        sa.Column('id', sa.Uuid(as_uuid=True), nullable=False),
        sa.Column('name', sa.String(50), nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('hashed_password', sa.String(255), nullable=False),
        sa.Column('role', user_role, nullable=False),

        # Employment
        sa.Column('employee_code', sa.String(20), nullable=True, comment='Sequential EMPxxxx code, employees only'),
        sa.Column('department', sa.String(30), nullable=True),
        sa.Column('position', sa.String(50), nullable=True),
        sa.Column('joining_date', sa.Date, nullable=True),
        _money('basic_salary'),
        _money('salary_allowances'),

        # Bank details
        sa.Column('bank_account_number', sa.String(30), nullable=True),
        sa.Column('bank_name', sa.String(100), nullable=True),
        sa.Column('bank_ifsc_code', sa.String(20), nullable=True),

        sa.Column('is_active', sa.Boolean, server_default=sa.true(), nullable=False),
        sa.Column('last_login', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id', name='pk_users'),
        sa.UniqueConstraint('employee_code', name='uq_users_employee_code'),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)
    op.create_index('ix_users_role', 'users', ['role'])
    op.create_index('ix_users_department', 'users', ['department'])

    op.create_table(
        'expense_claims',
        sa.Column('id', sa.Uuid(as_uuid=True), nullable=False),
        sa.Column('owner_id', sa.Uuid(as_uuid=True), nullable=False),
        sa.Column('title', sa.String(100), nullable=False),
        sa.Column('description', sa.String(500), nullable=False),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('category', expense_category, nullable=False),
        sa.Column('expense_date', sa.Date, nullable=False),

        # Workflow
        sa.Column('status', expense_status, server_default='PENDING', nullable=False),
        sa.Column('approved_by_id', sa.Uuid(as_uuid=True), nullable=True,
                  comment='Admin who approved or rejected the claim'),
        sa.Column('approved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('rejection_reason', sa.String(200), nullable=True),

        # Receipt attachment
        sa.Column('receipt_filename', sa.String(255), nullable=True),
        sa.Column('receipt_original_name', sa.String(255), nullable=True),
        sa.Column('receipt_path', sa.String(500), nullable=True),
        sa.Column('receipt_size', sa.Integer, nullable=True),
        sa.Column('receipt_mime_type', sa.String(100), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id', name='pk_expense_claims'),
        sa.ForeignKeyConstraint(['owner_id'], ['users.id'], ondelete='CASCADE',
                                name='fk_expense_claims_owner_id_users'),
        sa.ForeignKeyConstraint(['approved_by_id'], ['users.id'], ondelete='SET NULL',
                                name='fk_expense_claims_approved_by_id_users'),
    )
    op.create_index('ix_expense_claims_owner_id', 'expense_claims', ['owner_id'])
    op.create_index('ix_expense_claims_category', 'expense_claims', ['category'])
    op.create_index('ix_expense_claims_expense_date', 'expense_claims', ['expense_date'])
    op.create_index('ix_expense_claims_status', 'expense_claims', ['status'])

    op.create_table(
        'expense_comments',
        sa.Column('id', sa.Uuid(as_uuid=True), nullable=False),
        sa.Column('claim_id', sa.Uuid(as_uuid=True), nullable=False),
        sa.Column('author_id', sa.Uuid(as_uuid=True), nullable=False),
        sa.Column('message', sa.Text, nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id', name='pk_expense_comments'),
        sa.ForeignKeyConstraint(['claim_id'], ['expense_claims.id'], ondelete='CASCADE',
                                name='fk_expense_comments_claim_id_expense_claims'),
        sa.ForeignKeyConstraint(['author_id'], ['users.id'], ondelete='CASCADE',
                                name='fk_expense_comments_author_id_users'),
    )
    op.create_index('ix_expense_comments_claim_id', 'expense_comments', ['claim_id'])

    op.create_table(
        'salary_slips',
        sa.Column('id', sa.Uuid(as_uuid=True), nullable=False),
        sa.Column('employee_id', sa.Uuid(as_uuid=True), nullable=False),
        sa.Column('generated_by_id', sa.Uuid(as_uuid=True), nullable=True),
        sa.Column('month', sa.Integer, nullable=False),
        sa.Column('year', sa.Integer, nullable=False),
        sa.Column('basic_salary', sa.Numeric(12, 2), nullable=False),

        # Allowances
        _money('allowance_hra'),
        _money('allowance_transport'),
        _money('allowance_medical'),
        _money('allowance_special'),
        _money('allowance_other'),

        # Deductions
        _money('deduction_tax'),
        _money('deduction_pf'),
        _money('deduction_insurance'),
        _money('deduction_other'),

        sa.Column('working_days_total', sa.Integer, nullable=False),
        sa.Column('working_days_worked', sa.Integer, nullable=False),
        sa.Column('net_salary', sa.Numeric(12, 2), nullable=False,
                  comment='Pro-rated basic + allowances - deductions; may be negative'),

        # Workflow
        sa.Column('status', slip_status, server_default='DRAFT', nullable=False),
        sa.Column('finalized_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('sent_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('notes', sa.String(500), nullable=True),
        sa.Column('pdf_path', sa.String(500), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id', name='pk_salary_slips'),
        sa.ForeignKeyConstraint(['employee_id'], ['users.id'], ondelete='CASCADE',
                                name='fk_salary_slips_employee_id_users'),
        sa.ForeignKeyConstraint(['generated_by_id'], ['users.id'], ondelete='SET NULL',
                                name='fk_salary_slips_generated_by_id_users'),
        sa.UniqueConstraint('employee_id', 'month', 'year', name='uq_salary_slips_employee_period'),
    )
    op.create_index('ix_salary_slips_employee_id', 'salary_slips', ['employee_id'])
    op.create_index('ix_salary_slips_year', 'salary_slips', ['year'])
    op.create_index('ix_salary_slips_status', 'salary_slips', ['status'])

    op.create_table(
        'notifications',
        sa.Column('id', sa.Uuid(as_uuid=True), nullable=False),
        sa.Column('user_id', sa.Uuid(as_uuid=True), nullable=False),
        sa.Column('title', sa.String(100), nullable=False),
        sa.Column('message', sa.String(500), nullable=False),
        sa.Column('notification_type', notification_type, nullable=False),
        sa.Column('category', notification_category, nullable=False),
        sa.Column('priority', notification_priority, nullable=False),
        sa.Column('is_read', sa.Boolean, server_default=sa.false(), nullable=False),
        sa.Column('read_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('action_url', sa.String(500), nullable=True),
        sa.Column('action_label', sa.String(50), nullable=True),
        sa.Column('related_model', related_model, nullable=True),
        sa.Column('related_id', sa.Uuid(as_uuid=True), nullable=True),
        sa.Column('extra_data', sa.JSON, nullable=True),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id', name='pk_notifications'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE',
                                name='fk_notifications_user_id_users'),
    )
    op.create_index('ix_notifications_user_id', 'notifications', ['user_id'])
    op.create_index('ix_notifications_category', 'notifications', ['category'])
    op.create_index('ix_notifications_is_read', 'notifications', ['is_read'])


def downgrade() -> None:
    """Drop all tables and enum types."""
    op.drop_table('notifications')
    op.drop_table('salary_slips')
    op.drop_table('expense_comments')
    op.drop_table('expense_claims')
    op.drop_table('users')

    for enum_name in (
        'relatedmodel', 'notificationpriority', 'notificationcategory', 'notificationtype',
        'salaryslipstatus', 'expensestatus', 'expensecategory', 'userrole',
    ):
        sa.Enum(name=enum_name).drop(op.get_bind(), checkfirst=True)
