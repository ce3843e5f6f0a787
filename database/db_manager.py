"""
File: database/db_manager.py
Purpose: Universal database connection manager (PostgreSQL/SQLite)
"""

import os
import sqlite3
import psycopg2
import psycopg2.extras
from contextlib import contextmanager
import logging

logger = logging.getLogger(__name__)

class DatabaseManager:
    """
    Universal database connection manager
    Automatically detects and handles PostgreSQL or SQLite

    Features:
    - Context manager for safe connections
    - Auto-detection of database type (DATABASE_URL set → PostgreSQL)
    - Table initialization for schedules and one-time jobs
    - Dictionary-like row access for both databases
    """

    def __init__(self, db_path='dispatch.db', db_url=None):
        self.db_path = db_path
        self.db_url = db_url if db_url is not None else os.environ.get('DATABASE_URL')
        if self.db_url and self.db_url.startswith('postgres://'):
            self.db_url = self.db_url.replace('postgres://', 'postgresql://', 1)

    @contextmanager
    def get_db(self):
        """
        Context manager for database connections
        Returns rows as dictionary-like objects
        """
        if self.db_url:
            # PostgreSQL connection with RealDictCursor
            conn = psycopg2.connect(
                self.db_url,
                connect_timeout=10,
                sslmode='require',
                cursor_factory=psycopg2.extras.RealDictCursor
            )
            conn.autocommit = False
            try:
                yield conn
            finally:
                conn.close()
        else:
            # SQLite connection with Row factory
            conn = sqlite3.connect(self.db_path)
            conn.row_factory = sqlite3.Row
            try:
                yield conn
            finally:
                conn.close()

    def is_postgres(self):
        """Check if using PostgreSQL (True) or SQLite (False)"""
        return bool(self.db_url)

    def placeholder(self):
        """Placeholder for PostgreSQL (%s) vs SQLite (?)"""
        return '%s' if self.is_postgres() else '?'

    def init_database(self):
        """
        Initialize all database tables
        Creates schedules and one_time_jobs tables
        """
        with self.get_db() as conn:
            c = conn.cursor()
            is_pg = self.is_postgres()

            # Recipients are stored as a JSON array in TEXT for both engines
            c.execute('''
                CREATE TABLE IF NOT EXISTS schedules (
                    id TEXT PRIMARY KEY,
                    recipients TEXT NOT NULL,
                    message TEXT NOT NULL,
                    cron TEXT NOT NULL,
                    timezone TEXT,
                    enabled INTEGER DEFAULT 1,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            ''')

            fire_at_type = 'DOUBLE PRECISION' if is_pg else 'REAL'
            c.execute(f'''
                CREATE TABLE IF NOT EXISTS one_time_jobs (
                    id TEXT PRIMARY KEY,
                    recipients TEXT NOT NULL,
                    message TEXT NOT NULL,
                    fire_at {fire_at_type} NOT NULL,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            ''')

            # Create indexes for performance
            c.execute('CREATE INDEX IF NOT EXISTS idx_one_time_fire_at ON one_time_jobs(fire_at)')
            c.execute('CREATE INDEX IF NOT EXISTS idx_schedules_enabled ON schedules(enabled)')

            conn.commit()
            logger.info(f"✅ Database initialized ({'PostgreSQL' if is_pg else 'SQLite'})")
