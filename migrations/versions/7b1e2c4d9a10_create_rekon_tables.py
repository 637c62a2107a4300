"""create rekon tables

Revision ID: 7b1e2c4d9a10
Revises:
Create Date: 2025-10-30 11:48:24.000000
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "7b1e2c4d9a10"
down_revision = None
branch_labels = None
depends_on = None

REKON_INDEXES = (
    ('ix_rekon_sekolah_tahun_bulan', ['sekolah', 'tahun', 'bulan']),
    ('ix_rekon_siswa_tahun_bulan', ['id_siswa', 'tahun', 'bulan']),
    ('ix_rekon_nama_siswa', ['nama_siswa']),
    ('ix_rekon_no_bukti', ['no_bukti']),
    ('idx_rekon_year_month', ['tahun', 'bulan']),
    ('idx_rekon_school_year_month_status', ['sekolah', 'tahun', 'bulan', 'sts_bayar']),
    ('idx_rekon_status_year_month', ['sts_bayar', 'tahun', 'bulan']),
    ('idx_rekon_transaction_date', ['tgl_tx']),
    ('idx_rekon_branch_year', ['kd_cab', 'tahun']),
    ('idx_rekon_search_composite', ['sekolah', 'id_siswa', 'tahun', 'bulan']),
    ('idx_rekon_dana_masyarakat', ['dana_masyarakat']),
)


def upgrade():
    op.create_table(
        'rekon_data',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('sekolah', sa.String(length=255), nullable=False),
        sa.Column('id_siswa', sa.String(length=255), nullable=False),
        sa.Column('nama_siswa', sa.String(length=255), nullable=False),
        sa.Column('alamat', sa.String(length=255), nullable=True),
        sa.Column('kelas', sa.String(length=255), nullable=False, server_default=''),
        sa.Column('jurusan', sa.String(length=255), nullable=False, server_default=''),
        sa.Column('jum_tagihan', sa.Integer(), nullable=False, server_default=sa.text('0')),
        sa.Column('biaya_adm', sa.Integer(), nullable=False, server_default=sa.text('0')),
        sa.Column('tagihan_lain', sa.Integer(), nullable=False, server_default=sa.text('0')),
        sa.Column('ket_tagihan_lain', sa.String(length=255), nullable=True),
        sa.Column('keterangan', sa.String(length=255), nullable=True),
        sa.Column('tahun', sa.Integer(), nullable=False),
        sa.Column('bulan', sa.Integer(), nullable=False),
        sa.Column('dana_masyarakat', sa.String(length=255), nullable=False, server_default=''),
        sa.Column('tgl_tx', sa.DateTime(), nullable=False),
        sa.Column('tgl_tx_formatted', sa.String(length=255), nullable=False, server_default=''),
        sa.Column('sts_bayar', sa.Integer(), nullable=False, server_default=sa.text('1')),
        sa.Column('kd_cab', sa.String(length=255), nullable=False, server_default=''),
        sa.Column('kd_user', sa.String(length=255), nullable=False, server_default='system'),
        sa.Column('sts_reversal', sa.Integer(), nullable=False, server_default=sa.text('0')),
        sa.Column('no_bukti', sa.String(length=255), nullable=False, server_default=''),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    )
    for name, columns in REKON_INDEXES:
        op.create_index(name, 'rekon_data', columns)

    op.create_table(
        'schools',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('display_name', sa.String(length=150), nullable=False),
        sa.Column('address', sa.String(length=255), nullable=True),
        sa.Column('phone', sa.String(length=50), nullable=True),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('1')),
        sa.Column('created_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ux_schools_name', 'schools', ['name'], unique=True)

    op.create_table(
        'import_jobs',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('kind', sa.String(length=20), nullable=False),
        sa.Column('file_name', sa.String(length=255), nullable=False),
        sa.Column('stored_path', sa.String(length=512), nullable=True),
        sa.Column('file_size', sa.Integer(), nullable=False, server_default=sa.text('0')),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('result', sa.Text(), nullable=True),
        sa.Column('error', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('finished_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_import_jobs_status', 'import_jobs', ['status'])
    op.create_index('ix_import_jobs_created_at', 'import_jobs', ['created_at'])


def downgrade():
    op.drop_index('ix_import_jobs_created_at', table_name='import_jobs')
    op.drop_index('ix_import_jobs_status', table_name='import_jobs')
    op.drop_table('import_jobs')
    op.drop_index('ux_schools_name', table_name='schools')
    op.drop_table('schools')
    for name, _ in reversed(REKON_INDEXES):
        op.drop_index(name, table_name='rekon_data')
    op.drop_table('rekon_data')
