"""create user, team, question, match and solution tables

Revision ID: 1a2b3c4d5e6f
Revises:
Create Date: 2026-10-19 00:00:00

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '1a2b3c4d5e6f'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    insp = sa.inspect(bind)
    existing_tables = set(insp.get_table_names())

    if 'user' not in existing_tables:
        op.create_table(
            'user',
            sa.Column('id', sa.String(length=64), primary_key=True),
            sa.Column('username', sa.String(length=64), nullable=False, index=True),
            sa.Column('email', sa.String(length=255), nullable=True),
            sa.Column('points', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('wins', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('matches_played', sa.Integer(), nullable=False, server_default='0'),
        )

    if 'team' not in existing_tables:
        op.create_table(
            'team',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('player_one_id', sa.String(length=64), sa.ForeignKey('user.id'), nullable=False),
            sa.Column('player_two_id', sa.String(length=64), sa.ForeignKey('user.id'), nullable=True),
            sa.Column('join_code', sa.String(length=16), nullable=True, index=True),
            sa.Column('is_private', sa.Boolean(), nullable=False, server_default=sa.true()),
        )

    if 'question' not in existing_tables:
        op.create_table(
            'question',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('title', sa.String(length=255), nullable=False),
            sa.Column('description', sa.Text(), nullable=True),
            sa.Column('difficulty', sa.String(length=32), nullable=False, index=True),
            sa.Column('tags', sa.JSON(), nullable=False),
            sa.Column('test_cases', sa.JSON(), nullable=True),
            sa.Column('expected_time_complexity', sa.String(length=64), nullable=True),
            sa.Column('expected_space_complexity', sa.String(length=64), nullable=True),
        )

    if 'match' not in existing_tables:
        op.create_table(
            'match',
            sa.Column('id', sa.String(length=32), primary_key=True),
            sa.Column('team_id', sa.Integer(), sa.ForeignKey('team.id'), nullable=False),
            sa.Column('question_id', sa.Integer(), sa.ForeignKey('question.id'), nullable=True),
            sa.Column('status', sa.String(length=16), nullable=False, server_default='ACTIVE'),
            sa.Column('winner_id', sa.String(length=64), sa.ForeignKey('user.id'), nullable=True),
            sa.Column('start_time', sa.DateTime(timezone=True), nullable=True),
            sa.Column('end_time', sa.DateTime(timezone=True), nullable=True),
        )

    if 'solution' not in existing_tables:
        op.create_table(
            'solution',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('match_id', sa.String(length=32), sa.ForeignKey('match.id'), nullable=False, index=True),
            sa.Column('user_id', sa.String(length=64), sa.ForeignKey('user.id'), nullable=False, index=True),
            sa.Column('code', sa.Text(), nullable=False),
            sa.Column('language', sa.String(length=32), nullable=False),
            sa.Column('passed_tests', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('total_tests', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('execution_time', sa.Float(), nullable=False, server_default='0'),
            sa.Column('memory_used', sa.Float(), nullable=False, server_default='0'),
            sa.Column('submitted_at', sa.DateTime(timezone=True), nullable=True),
        )


def downgrade():
    op.drop_table('solution')
    op.drop_table('match')
    op.drop_table('question')
    op.drop_table('team')
    op.drop_table('user')
