"""
models.py
Table definitions and the fixed value lists used across the app.
"""

from sqlalchemy import (
    MetaData, Table, Column, Integer, String, Text, Boolean, Date, DateTime,
    Numeric, ForeignKey, UniqueConstraint, PrimaryKeyConstraint, func,
)

ROLES = ('admin', 'editor', 'viewer')

MEMBER_STATUSES = ('Activ', 'Retras')
PAYMENT_METHODS = ('Numerar', 'Card / Online', 'Transfer Bancar')
PAYMENT_STATUSES = ('Plătită', 'Scadentă', 'Restanță')
PAYMENT_TYPES = ('Taxă de înscriere', 'Cotizație', 'Taxă de reînscriere')
PARTICIPANT_STATUSES = ('invited', 'attended', 'organizer')
ACTIVITY_STATUSES = ('active', 'archived')
GROUP_STATUSES = ('Active', 'Archived')

WITHDRAWAL_REASONS = (
    'Retras la cerere',
    'Plecat în alt județ',
    'Reactivat',
    'Decedat',
    'Exclus disciplinar',
    'Neplată cotizație',
)

PROVENANCE_OPTIONS = (
    'Prin pensionare',
    'Sosit din alt județ',
    'Prin reînscriere',
    'Prin demisie',
)

# Seed values for the generic list managers
DEFAULT_RANKS = (
    'General', 'Amiral', 'General-locotenent', 'Viceamiral', 'General-maior',
    'Contraamiral', 'General de brigadă', 'General de flotilă aeriană',
    'Contraamiral de flotilă', 'Colonel', 'Comandor', 'Locotenent-colonel',
    'Căpitan-comandor', 'Maior', 'Locotenent-comandor', 'Căpitan',
    'Locotenent-major', 'Locotenent', 'Sublocotenent', 'Aspirant',
    'Maistru militar principal', 'Maistru militar clasa I',
    'Maistru militar clasa II', 'Maistru militar clasa III',
    'Maistru militar clasa IV', 'Maistru militar clasa V',
    'Plutonier adjutant șef', 'Plutonier adjutant principal',
    'Plutonier adjutant', 'Plutonier major', 'Plutonier', 'Sergent major',
    'Sergent', 'Caporal clasa I', 'Caporal clasa II', 'Caporal clasa III',
    'Fruntaș', 'Soldat',
)

DEFAULT_PROFILES = ('Comandă', 'Logistică', 'Informații', 'Comunicații', 'Medical', 'Juridic')

VALUE_LISTS = {
    'ranks': DEFAULT_RANKS,
    'profiles': DEFAULT_PROFILES,
}

metadata = MetaData()


def _timestamps():
    return (
        Column('created_at', DateTime(timezone=True), server_default=func.current_timestamp()),
        Column('updated_at', DateTime(timezone=True), server_default=func.current_timestamp()),
    )


members = Table(
    'members', metadata,
    Column('id', String(36), primary_key=True),
    Column('member_code', String(20), nullable=False, unique=True),
    Column('status', String(20), nullable=False, server_default='Activ'),
    Column('rank', String(80)),
    Column('first_name', String(120), nullable=False, server_default=''),
    Column('last_name', String(120), nullable=False, server_default=''),
    Column('date_of_birth', Date),
    Column('cnp', String(13)),
    Column('birthplace', String(120)),
    Column('unit', String(40)),
    Column('main_profile', String(80)),
    Column('retirement_year', Integer),
    Column('retirement_decision_number', String(80)),
    Column('retirement_file_number', String(80)),
    Column('branch_enrollment_year', Integer),
    Column('branch_withdrawal_year', Integer),
    Column('branch_withdrawal_reason', Text),
    Column('withdrawal_reason', String(80)),
    Column('withdrawal_year', Integer),
    Column('provenance', String(80)),
    Column('address', Text),
    Column('phone', String(40)),
    Column('email', String(160)),
    Column('organization_involvement', Text),
    Column('magazine_contributions', Text),
    Column('branch_needs', Text),
    Column('foundation_needs', Text),
    Column('other_needs', Text),
    Column('car_member_status', String(4)),
    Column('foundation_member_status', String(4)),
    Column('foundation_role', String(40)),
    Column('has_current_workplace', String(4)),
    Column('current_workplace', Text),
    Column('other_observations', Text),
    *_timestamps(),
)

payments = Table(
    'payments', metadata,
    Column('id', Integer, primary_key=True, autoincrement=True),
    Column('payment_code', String(20), nullable=False, unique=True),
    Column('member_id', String(36), ForeignKey('members.id', ondelete='CASCADE'), nullable=False),
    Column('date', Date, nullable=False),
    Column('year', Integer),
    Column('amount', Numeric(12, 2), nullable=False),
    Column('method', String(40)),
    Column('status', String(20)),
    Column('payment_type', String(40)),
    Column('contribution_year', Integer),
    Column('observations', Text),
    Column('source', String(40)),
    Column('receipt_number', String(40)),
    Column('legacy_payment_id', String(40)),
    *_timestamps(),
)

activity_types = Table(
    'activity_types', metadata,
    Column('id', Integer, primary_key=True, autoincrement=True),
    Column('name', String(120), nullable=False),
    Column('category', String(120)),
    Column('is_active', Boolean, nullable=False, server_default='1'),
    *_timestamps(),
)

activities = Table(
    'activities', metadata,
    Column('id', String(20), primary_key=True),
    Column('type_id', Integer, ForeignKey('activity_types.id', ondelete='SET NULL')),
    Column('title', String(200)),
    Column('date_from', Date),
    Column('date_to', Date),
    Column('location', String(200)),
    Column('notes', Text),
    Column('status', String(20), nullable=False, server_default='active'),
    Column('archived_at', DateTime(timezone=True)),
    Column('archived_by', String(36)),
    Column('created_by', String(36)),
    Column('participants_count', Integer, nullable=False, server_default='0'),
    *_timestamps(),
)

activity_participants = Table(
    'activity_participants', metadata,
    Column('activity_id', String(20), ForeignKey('activities.id', ondelete='CASCADE'), nullable=False),
    Column('member_id', String(36), ForeignKey('members.id', ondelete='CASCADE'), nullable=False),
    Column('status', String(20), nullable=False, server_default='attended'),
    Column('note', Text),
    Column('created_at', DateTime(timezone=True), server_default=func.current_timestamp()),
    PrimaryKeyConstraint('activity_id', 'member_id'),
)

whatsapp_groups = Table(
    'whatsapp_groups', metadata,
    Column('id', String(40), primary_key=True),
    Column('name', String(160), nullable=False),
    Column('description', Text),
    Column('status', String(20), nullable=False, server_default='Active'),
    Column('member_count', Integer, nullable=False, server_default='0'),
    *_timestamps(),
)

whatsapp_group_members = Table(
    'whatsapp_group_members', metadata,
    Column('member_id', String(36), ForeignKey('members.id', ondelete='CASCADE'), nullable=False),
    Column('group_id', String(40), ForeignKey('whatsapp_groups.id', ondelete='CASCADE'), nullable=False),
    Column('joined_at', DateTime(timezone=True), server_default=func.current_timestamp()),
    Column('added_by', String(36)),
    Column('notes', Text),
    PrimaryKeyConstraint('member_id', 'group_id'),
)

um_units = Table(
    'um_units', metadata,
    Column('id', Integer, primary_key=True, autoincrement=True),
    Column('code', String(40), nullable=False),
    Column('name', String(200)),
    Column('is_active', Boolean, nullable=False, server_default='1'),
    *_timestamps(),
)

value_lists = Table(
    'value_lists', metadata,
    Column('list_name', String(40), nullable=False),
    Column('value', String(160), nullable=False),
    Column('position', Integer, nullable=False, server_default='0'),
    UniqueConstraint('list_name', 'value'),
)

profiles = Table(
    'profiles', metadata,
    Column('id', String(36), primary_key=True),
    Column('email', String(160), nullable=False, unique=True),
    Column('full_name', String(160)),
    Column('role', String(20), nullable=False, server_default='viewer'),
    Column('password_hash', String(255)),
    Column('is_active', Boolean, nullable=False, server_default='1'),
    Column('last_login', DateTime(timezone=True)),
    Column('login_count', Integer, nullable=False, server_default='0'),
    Column('created_at', DateTime(timezone=True), server_default=func.current_timestamp()),
)

audit_logs = Table(
    'audit_logs', metadata,
    Column('id', String(36), primary_key=True),
    Column('user_id', String(36)),
    Column('action_type', String(40), nullable=False),
    Column('module', String(20), nullable=False),
    Column('summary', Text, nullable=False),
    Column('entity_type', String(40)),
    Column('entity_id', String(40)),
    Column('entity_code', String(40)),
    Column('metadata', Text),
    Column('is_error', Boolean, nullable=False, server_default='0'),
    Column('ip', String(64)),
    Column('user_agent', Text),
    Column('created_at', DateTime(timezone=True), server_default=func.current_timestamp()),
)
