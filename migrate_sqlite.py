import os
import sys
import logging

from sqlalchemy import Boolean, Date, DateTime, Float, Integer, Time, create_engine, inspect, text
from sqlalchemy.exc import SQLAlchemyError

from socio import parsers


logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")
logger = logging.getLogger("socio.migrate")

DEFAULT_SQLITE_PATH = os.path.join("data", "socio-copy.db")

# Parents before children so foreign keys resolve
TABLE_ORDER = ("users", "fests", "events", "registrations", "attendance_status", "notifications")


def coerce_row(model, row):
    """Turn a legacy SQLite row into keyword arguments for ``model``.

    Columns the model does not know are dropped. Raises ``ValueError`` when a
    value cannot be converted.
    """
    from socio import models

    values = {}
    for column in model.__table__.columns:
        if column.name not in row:
            continue
        value = row[column.name]
        if isinstance(column.type, models.JSONText):
            value = parsers.parse_json_field(value, column.type.empty(), field=column.name)
        elif isinstance(column.type, DateTime):
            value = value if not isinstance(value, str) else parsers.parse_optional_datetime(value, column.name)
        elif isinstance(column.type, Date):
            value = value if not isinstance(value, str) else parsers.parse_optional_date(value, column.name)
        elif isinstance(column.type, Time):
            value = value if not isinstance(value, str) else parsers.parse_optional_time(value, column.name)
        elif isinstance(column.type, Boolean):
            value = parsers.parse_bool(value) if value is not None else None
        elif isinstance(column.type, Integer):
            value = parsers.parse_optional_int(value, column.name)
        elif isinstance(column.type, Float):
            value = parsers.parse_optional_float(value, column.name)
        values[column.name] = value
    return values


def remap_registration_key(row, public_ids):
    """Point a legacy attendance row at the public registration id.

    Legacy attendance rows reference ``registrations.id``; rows that already
    carry a public id are left alone.
    """
    legacy_key = row.get("registration_id")
    if legacy_key in public_ids and public_ids[legacy_key]:
        row = dict(row)
        row["registration_id"] = public_ids[legacy_key]
    return row


def migrate(sqlite_path, db):
    """Copy legacy rows into the session's database, merging by primary key.

    Returns a mapping of table name to the number of rows migrated. Rows that
    fail are logged and skipped.
    """
    from socio import models

    table_models = {mapper.class_.__tablename__: mapper.class_ for mapper in models.Base.registry.mappers}
    source = create_engine(f"sqlite:///{sqlite_path}")
    counts = {}
    public_ids = {}
    try:
        available = set(inspect(source).get_table_names())
        with source.connect() as conn:
            for table in TABLE_ORDER:
                if table not in available:
                    logger.info(f"Table {table} not present in {sqlite_path}; skipping")
                    continue
                model = table_models[table]
                rows = conn.execute(text(f"SELECT * FROM {table}")).mappings().all()
                if table == "registrations":
                    public_ids = {row["id"]: row.get("registration_id") for row in rows}
                logger.info(f"Migrating {len(rows)} rows from {table}...")
                migrated = 0
                for row in rows:
                    row_id = row.get("id")
                    if row_id is None:
                        logger.warning(f"Skipping {table} row without id: {dict(row)}")
                        continue
                    if table == "attendance_status":
                        row = remap_registration_key(row, public_ids)
                    try:
                        db.merge(model(**coerce_row(model, row)))
                        db.commit()
                        migrated += 1
                    except (ValueError, SQLAlchemyError) as e:
                        db.rollback()
                        logger.warning(f"Warning migrating {table} row {row_id}: {e}")
                counts[table] = migrated
                logger.info(f"Migrated {migrated}/{len(rows)} rows from {table}")
    finally:
        source.dispose()
    return counts


def main(argv=None):
    argv = sys.argv[1:] if argv is None else argv
    sqlite_path = argv[0] if argv else os.getenv("SQLITE_PATH", DEFAULT_SQLITE_PATH)
    if not os.path.exists(sqlite_path):
        logger.info(f"No SQLite database found at {sqlite_path}. Skipping data migration.")
        return 0

    try:
        from socio.database import SessionLocal, engine
        from socio import models

        models.Base.metadata.create_all(bind=engine)
        db = SessionLocal()
        try:
            counts = migrate(sqlite_path, db)
        finally:
            db.close()
    except Exception as e:
        logger.error(f"Data migration failed: {e}", exc_info=True)
        return 1

    logger.info(f"Data migration completed: {counts}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
