"""create_care_plan_schema

Revision ID: 3c9d2e7a41b0
Revises:
Create Date: 2026-10-19 09:12:31.402117

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '3c9d2e7a41b0'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps(*, updated: bool = False) -> list:
    columns = [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    ]
    if updated:
        columns.append(
            sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False)
        )
    return columns


def upgrade() -> None:
    bind = op.get_bind()
    existing_tables = sa.inspect(bind).get_table_names()

    # Tables may already exist when scripts/init_db.py ran first
    if 'brands' not in existing_tables:
        op.create_table('brands',
            sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
            sa.Column('name', sa.String(length=200), nullable=False),
            sa.Column('is_active', sa.Boolean(), nullable=False),
            *_timestamps(),
            sa.PrimaryKeyConstraint('id'),
            sa.UniqueConstraint('name'),
        )
        op.create_index(op.f('ix_brands_id'), 'brands', ['id'], unique=False)

    if 'products' not in existing_tables:
        op.create_table('products',
            sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
            sa.Column('brand_id', sa.Integer(), nullable=False),
            sa.Column('name', sa.String(length=300), nullable=False),
            sa.Column('price', sa.Float(), nullable=True),
            sa.Column('step', sa.String(length=50), nullable=True),
            sa.Column('category', sa.String(length=50), nullable=True),
            sa.Column('skin_types', sa.JSON(), nullable=True),
            sa.Column('concerns', sa.JSON(), nullable=True),
            sa.Column('avoid_if', sa.JSON(), nullable=True),
            sa.Column('active_ingredients', sa.JSON(), nullable=True),
            sa.Column('is_hero', sa.Boolean(), nullable=False),
            sa.Column('priority', sa.Integer(), nullable=False),
            sa.Column('published', sa.Boolean(), nullable=False),
            sa.Column('image_url', sa.String(length=500), nullable=True),
            sa.Column('market_links', sa.JSON(), nullable=True),
            *_timestamps(),
            sa.ForeignKeyConstraint(['brand_id'], ['brands.id'], ondelete='CASCADE'),
            sa.PrimaryKeyConstraint('id'),
        )
        op.create_index(op.f('ix_products_id'), 'products', ['id'], unique=False)
        op.create_index(op.f('ix_products_brand_id'), 'products', ['brand_id'], unique=False)
        op.create_index(op.f('ix_products_step'), 'products', ['step'], unique=False)
        op.create_index(op.f('ix_products_category'), 'products', ['category'], unique=False)

    if 'skin_profiles' not in existing_tables:
        op.create_table('skin_profiles',
            sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
            sa.Column('user_id', sa.String(length=64), nullable=False),
            sa.Column('version', sa.Integer(), nullable=False),
            sa.Column('skin_type', sa.String(length=30), nullable=True),
            sa.Column('sensitivity_level', sa.String(length=20), nullable=True),
            sa.Column('acne_level', sa.Integer(), nullable=True),
            sa.Column('age_group', sa.String(length=20), nullable=True),
            sa.Column('has_pregnancy', sa.Boolean(), nullable=False),
            sa.Column('medical_markers', sa.JSON(), nullable=True),
            *_timestamps(updated=True),
            sa.PrimaryKeyConstraint('id'),
            sa.UniqueConstraint('user_id', 'version', name='uq_skin_profile_version'),
        )
        op.create_index(op.f('ix_skin_profiles_id'), 'skin_profiles', ['id'], unique=False)
        op.create_index(op.f('ix_skin_profiles_user_id'), 'skin_profiles', ['user_id'], unique=False)

    if 'questionnaires' not in existing_tables:
        op.create_table('questionnaires',
            sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
            sa.Column('name', sa.String(length=200), nullable=False),
            sa.Column('is_active', sa.Boolean(), nullable=False),
            *_timestamps(),
            sa.PrimaryKeyConstraint('id'),
        )
        op.create_index(op.f('ix_questionnaires_id'), 'questionnaires', ['id'], unique=False)

    if 'user_answers' not in existing_tables:
        op.create_table('user_answers',
            sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
            sa.Column('user_id', sa.String(length=64), nullable=False),
            sa.Column('questionnaire_id', sa.Integer(), nullable=False),
            sa.Column('question_code', sa.String(length=100), nullable=False),
            sa.Column('value', sa.JSON(), nullable=True),
            *_timestamps(),
            sa.ForeignKeyConstraint(['questionnaire_id'], ['questionnaires.id'], ondelete='CASCADE'),
            sa.PrimaryKeyConstraint('id'),
            sa.UniqueConstraint('user_id', 'questionnaire_id', 'question_code', name='uq_user_answer'),
        )
        op.create_index(op.f('ix_user_answers_id'), 'user_answers', ['id'], unique=False)
        op.create_index(op.f('ix_user_answers_user_id'), 'user_answers', ['user_id'], unique=False)

    if 'recommendation_sessions' not in existing_tables:
        op.create_table('recommendation_sessions',
            sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
            sa.Column('user_id', sa.String(length=64), nullable=False),
            sa.Column('profile_id', sa.Integer(), nullable=True),
            sa.Column('product_ids', sa.JSON(), nullable=True),
            *_timestamps(),
            sa.ForeignKeyConstraint(['profile_id'], ['skin_profiles.id'], ondelete='SET NULL'),
            sa.PrimaryKeyConstraint('id'),
        )
        op.create_index(op.f('ix_recommendation_sessions_id'), 'recommendation_sessions', ['id'], unique=False)
        op.create_index(
            op.f('ix_recommendation_sessions_user_id'), 'recommendation_sessions', ['user_id'], unique=False
        )

    if 'cached_plans' not in existing_tables:
        op.create_table('cached_plans',
            sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
            sa.Column('cache_key', sa.String(length=200), nullable=False),
            sa.Column('user_id', sa.String(length=64), nullable=False),
            sa.Column('profile_version', sa.Integer(), nullable=False),
            sa.Column('payload', sa.Text(), nullable=False),
            sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
            *_timestamps(),
            sa.PrimaryKeyConstraint('id'),
        )
        op.create_index(op.f('ix_cached_plans_id'), 'cached_plans', ['id'], unique=False)
        op.create_index(op.f('ix_cached_plans_cache_key'), 'cached_plans', ['cache_key'], unique=True)
        op.create_index(op.f('ix_cached_plans_user_id'), 'cached_plans', ['user_id'], unique=False)


def downgrade() -> None:
    for table in [
        'cached_plans',
        'recommendation_sessions',  # FK → skin_profiles
        'user_answers',             # FK → questionnaires
        'questionnaires',
        'skin_profiles',
        'products',                 # FK → brands
        'brands',
    ]:
        op.drop_table(table)
