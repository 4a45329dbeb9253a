import logging
from threading import Lock

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.orm import declarative_base, sessionmaker

from clinic_booking.core import config

logger = logging.getLogger(__name__)

_engine_kwargs = {'echo': config.SQL_ECHO}
if config.DATABASE_URL.startswith('sqlite'):
    _engine_kwargs['connect_args'] = {'check_same_thread': False}

engine = create_engine(config.DATABASE_URL, **_engine_kwargs)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)

Base = declarative_base()

_schema_lock = Lock()
_scheduling_schema_checked = False

BLOCK_EXCLUSION_CONSTRAINT = 'availability_blocks_no_overlap'


def ensure_scheduling_schema(bind=None) -> None:
    global _scheduling_schema_checked

    if _scheduling_schema_checked:
        return

    with _schema_lock:
        if _scheduling_schema_checked:
            return

        bind = bind or engine
        inspector = inspect(bind)
        table_names = set(inspector.get_table_names())

        index_statements = []
        if 'availability_blocks' in table_names:
            index_statements.append(
                'CREATE INDEX IF NOT EXISTS idx_availability_blocks_practice_day '
                'ON availability_blocks(practice_id, day_of_week, start_time)'
            )
        if 'availability_exceptions' in table_names:
            index_statements.append(
                'CREATE INDEX IF NOT EXISTS idx_availability_exceptions_practice_date '
                'ON availability_exceptions(practice_id, exception_date)'
            )
        if 'appointments' in table_names:
            index_statements.append(
                'CREATE INDEX IF NOT EXISTS idx_appointments_practice_range '
                'ON appointments(practice_id, start_time, end_time)'
            )
            index_statements.append(
                'CREATE INDEX IF NOT EXISTS idx_appointments_lead_status '
                'ON appointments(lead_id, status)'
            )

        with bind.begin() as connection:
            for statement in index_statements:
                connection.execute(text(statement))

            if bind.dialect.name == 'postgresql' and 'availability_blocks' in table_names:
                _ensure_block_exclusion_constraint(connection)

        _scheduling_schema_checked = True


def _ensure_block_exclusion_constraint(connection) -> None:
    # Concurrent carve writers lose with a conflict instead of corrupting the interval set.
    existing = connection.execute(
        text('SELECT 1 FROM pg_constraint WHERE conname = :name'),
        {'name': BLOCK_EXCLUSION_CONSTRAINT},
    ).first()
    if existing:
        return

    connection.execute(text('CREATE EXTENSION IF NOT EXISTS btree_gist'))
    connection.execute(
        text(
            f'ALTER TABLE availability_blocks ADD CONSTRAINT {BLOCK_EXCLUSION_CONSTRAINT} '
            'EXCLUDE USING gist ('
            'practice_id WITH =, '
            'day_of_week WITH =, '
            "tsrange(DATE '2000-01-01' + start_time, DATE '2000-01-01' + end_time) WITH &&"
            ')'
        )
    )
    logger.info('Created availability block exclusion constraint')
