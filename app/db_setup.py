# Schema bootstrap for the cadence database
import logging
import database

logger = logging.getLogger(__name__)

REQUIRED_TABLES = ["event_series"]

SERIES_TABLE = """
    CREATE TABLE IF NOT EXISTS event_series (
        id                   INT          AUTO_INCREMENT PRIMARY KEY,
        title                VARCHAR(255) NOT NULL,
        description          TEXT         NULL,
        location             VARCHAR(255) NULL,
        start_datetime       DATETIME     NOT NULL,
        end_datetime         DATETIME     NOT NULL,
        utc_offset_minutes   SMALLINT     NULL,
        all_day              BOOLEAN      NOT NULL DEFAULT FALSE,
        recurrence           TEXT         NULL,
        exceptions           JSON         NULL,
        created_at           DATETIME     NOT NULL DEFAULT CURRENT_TIMESTAMP,
        updated_at           DATETIME     NOT NULL DEFAULT CURRENT_TIMESTAMP ON UPDATE CURRENT_TIMESTAMP
    )
"""


def check_db_is_setup():
    """Check if the cadence database exists and contains all required tables."""
    cursor = database.get_cursor()
    cursor.execute("SHOW DATABASES")
    databases = [row[0] for row in cursor.fetchall()]

    if database.MYSQL_DATABASE not in databases:
        return False

    database.use_database(cursor)
    cursor.execute("SHOW TABLES")
    tables = [row[0] for row in cursor.fetchall()]

    return all(table in tables for table in REQUIRED_TABLES)


def create_db_and_scheme():
    """Create the cadence database and the series table."""
    cursor = database.get_cursor()
    cursor.execute(f"CREATE DATABASE IF NOT EXISTS {database.MYSQL_DATABASE}")
    database.use_database(cursor)
    cursor.execute(SERIES_TABLE)
    database.commit()


def setup_database():
    """Ensure the database is configured, create the schema if needed."""
    logger.info("Checking if the database is set up...")
    if check_db_is_setup():
        logger.info("Database is already set up.")
        return False

    logger.info("Database not found or incomplete. Setting up...")
    create_db_and_scheme()
    logger.info("Database and tables created successfully.")
    return True
