# MySQL connection handling for the series store
import os
from typing import Optional
import mysql.connector
import logging

logger = logging.getLogger(__name__)

_connection: Optional[mysql.connector.connection.MySQLConnection] = None

# Environment variables for database connection
MYSQL_HOST = os.getenv("MYSQL_HOST", "localhost")
MYSQL_USER = os.getenv("MYSQL_USER", "root")
MYSQL_PASSWORD = os.getenv("MYSQL_PASSWORD", "")
MYSQL_PORT = int(os.getenv("MYSQL_PORT", "3306"))
MYSQL_DATABASE = os.getenv("MYSQL_DATABASE", "cadence")


def get_connection():
    """
    Get the shared connection, opening a new one if there is none or it dropped.

    No default schema is selected so the schema can be created on first start;
    callers select it with use_database().
    """
    global _connection

    if _connection is None or not _connection.is_connected():
        try:
            _connection = mysql.connector.connect(
                host=MYSQL_HOST,
                user=MYSQL_USER,
                password=MYSQL_PASSWORD,
                port=MYSQL_PORT,
                autocommit=False
            )
            logger.info(f"Database connection to {MYSQL_HOST}:{MYSQL_PORT} established")
        except mysql.connector.Error as e:
            logger.error(f"Error connecting to database: {e}")
            raise

    return _connection


def get_cursor(dictionary: bool = False):
    """Get a new cursor; dictionary cursors return rows keyed by column name"""
    return get_connection().cursor(dictionary=dictionary)


def use_database(cursor):
    cursor.execute(f"USE {MYSQL_DATABASE}")


def commit():
    get_connection().commit()


def rollback():
    """Roll back the open transaction, keeping the original error if the rollback fails too"""
    try:
        get_connection().rollback()
    except mysql.connector.Error as e:
        logger.error(f"Rollback failed: {e}")


def close_connection():
    """Close database connection"""
    global _connection
    if _connection and _connection.is_connected():
        _connection.close()
        logger.info("Database connection closed")
    _connection = None
