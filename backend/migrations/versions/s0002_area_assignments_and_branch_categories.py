"""area assignments and branch categories

Revision ID: s0002
Revises: s0001
Create Date: 2026-10-17 00:00:00.000000

- area_user: sales agents assigned to the areas they cover
- branch_product_category: categories enabled per branch (no rows = every branch)
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 's0002'
down_revision = 's0001'
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'area_user',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('area_id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('assigned_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['area_id'], ['areas.id']),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('area_id', 'user_id', name='uq_area_user'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_area_user_area_id', 'area_user', ['area_id'])
    op.create_index('ix_area_user_user_id', 'area_user', ['user_id'])

    op.create_table(
        'branch_product_category',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('branch_id', sa.Integer(), nullable=False),
        sa.Column('product_category_id', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['branch_id'], ['branches.id']),
        sa.ForeignKeyConstraint(['product_category_id'], ['product_categories.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('branch_id', 'product_category_id', name='uq_branch_product_category'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_branch_product_category_branch_id', 'branch_product_category', ['branch_id'])
    op.create_index(
        'ix_branch_product_category_product_category_id', 'branch_product_category', ['product_category_id']
    )


def downgrade():
    op.drop_table('branch_product_category')
    op.drop_table('area_user')
