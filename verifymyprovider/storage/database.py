"""
Relational store for VerifyMyProvider.

Holds providers, insurance plans, locations, plan acceptance records and the
verification/vote logs in SQLite.
"""

import sqlite3
import logging
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Dict, Iterator, List, Optional
import pandas as pd

logger = logging.getLogger(__name__)

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"

SCHEMA = [
    '''
    CREATE TABLE IF NOT EXISTS providers (
        npi TEXT PRIMARY KEY,
        entity_type TEXT,
        first_name TEXT,
        last_name TEXT,
        credential TEXT,
        organization_name TEXT,
        primary_specialty TEXT,
        taxonomy_code TEXT,
        taxonomy_description TEXT,
        address_line1 TEXT,
        city TEXT,
        state TEXT,
        zip_code TEXT,
        phone TEXT,
        location_id INTEGER,
        npi_status TEXT DEFAULT 'ACTIVE'
    )
    ''',
    '''
    CREATE TABLE IF NOT EXISTS insurance_plans (
        plan_id TEXT PRIMARY KEY,
        plan_name TEXT,
        issuer_name TEXT,
        plan_type TEXT,
        state TEXT
    )
    ''',
    '''
    CREATE TABLE IF NOT EXISTS locations (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        address_line1 TEXT NOT NULL,
        address_line2 TEXT,
        city TEXT NOT NULL,
        state TEXT NOT NULL,
        zip_code TEXT NOT NULL,
        name TEXT,
        health_system TEXT,
        facility_type TEXT,
        provider_count INTEGER DEFAULT 0
    )
    ''',
    '''
    CREATE TABLE IF NOT EXISTS practice_locations (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        npi TEXT NOT NULL,
        address_type TEXT DEFAULT 'practice',
        address_line1 TEXT,
        address_line2 TEXT,
        city TEXT,
        state TEXT,
        zip_code TEXT,
        phone TEXT,
        address_hash TEXT
    )
    ''',
    '''
    CREATE TABLE IF NOT EXISTS provider_plan_acceptance (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        provider_npi TEXT NOT NULL,
        plan_id TEXT NOT NULL,
        location_id INTEGER,
        acceptance_status TEXT NOT NULL DEFAULT 'UNKNOWN',
        accepts_new_patients INTEGER,
        data_source TEXT DEFAULT 'CROWDSOURCE',
        confidence_score REAL DEFAULT 0,
        confidence_factors TEXT,
        verification_count INTEGER DEFAULT 0,
        last_verified TEXT,
        expires_at TEXT,
        created_at TEXT DEFAULT CURRENT_TIMESTAMP,
        updated_at TEXT DEFAULT CURRENT_TIMESTAMP
    )
    ''',
    '''
    CREATE TABLE IF NOT EXISTS verification_logs (
        id TEXT PRIMARY KEY,
        provider_npi TEXT,
        plan_id TEXT,
        acceptance_id INTEGER,
        verification_type TEXT NOT NULL,
        verification_source TEXT NOT NULL,
        previous_value TEXT,
        new_value TEXT,
        source_ip TEXT,
        user_agent TEXT,
        submitted_by TEXT,
        notes TEXT,
        evidence_url TEXT,
        upvotes INTEGER DEFAULT 0,
        downvotes INTEGER DEFAULT 0,
        is_approved INTEGER,
        reviewed_at TEXT,
        reviewed_by TEXT,
        created_at TEXT NOT NULL,
        expires_at TEXT
    )
    ''',
    '''
    CREATE TABLE IF NOT EXISTS vote_logs (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        verification_id TEXT NOT NULL,
        source_ip TEXT NOT NULL,
        vote TEXT NOT NULL,
        created_at TEXT NOT NULL,
        UNIQUE(verification_id, source_ip)
    )
    ''',
    "CREATE INDEX IF NOT EXISTS idx_acceptance_pair ON provider_plan_acceptance(provider_npi, plan_id)",
    "CREATE INDEX IF NOT EXISTS idx_acceptance_expires ON provider_plan_acceptance(expires_at)",
    "CREATE INDEX IF NOT EXISTS idx_vl_pair_created ON verification_logs(provider_npi, plan_id, created_at)",
    "CREATE INDEX IF NOT EXISTS idx_vl_expires ON verification_logs(expires_at)",
    "CREATE INDEX IF NOT EXISTS idx_practice_npi ON practice_locations(npi)",
    "CREATE INDEX IF NOT EXISTS idx_practice_hash ON practice_locations(address_hash)",
]


def to_db_timestamp(value: Optional[datetime]) -> Optional[str]:
    """Format a datetime for storage; None stays None."""
    if value is None:
        return None
    return value.strftime(TIMESTAMP_FORMAT)


def from_db_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse a stored timestamp; empty values become None."""
    if not value:
        return None
    return datetime.fromisoformat(value)


class ProviderDatabase:
    """
    SQLite-backed store for provider directory data.

    Every public helper opens its own connection; `transaction()` groups
    several statements into one commit.
    """

    def __init__(self, db_path: str = "data/verifymyprovider.db"):
        """
        Initialize database and create the schema if needed.

        Args:
            db_path: Path to the SQLite database file
        """
        self.db_path = str(db_path)
        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

        self._init_database()

        logger.info(f"Initialized ProviderDatabase at {self.db_path}")

    def _init_database(self):
        """Create tables and indexes."""
        conn = sqlite3.connect(self.db_path)
        try:
            cursor = conn.cursor()
            for statement in SCHEMA:
                cursor.execute(statement)
            conn.commit()
        finally:
            conn.close()

    def connect(self) -> sqlite3.Connection:
        """Open a connection returning rows as sqlite3.Row."""
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """
        Connection whose statements commit together.

        Rolls back and re-raises on any error.
        """
        conn = self.connect()
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def query_df(self, query: str, params: Optional[List] = None) -> pd.DataFrame:
        """
        Run a SELECT and return the result as a DataFrame.

        Args:
            query: SQL query
            params: Positional query parameters

        Returns:
            DataFrame with the query result
        """
        conn = sqlite3.connect(self.db_path)
        try:
            return pd.read_sql_query(query, conn, params=params or [])
        finally:
            conn.close()

    def fetch_one(self, query: str, params: Optional[List] = None) -> Optional[Dict]:
        """Run a SELECT and return the first row as a dict, or None."""
        conn = self.connect()
        try:
            row = conn.execute(query, params or []).fetchone()
            return dict(row) if row else None
        finally:
            conn.close()

    def fetch_all(self, query: str, params: Optional[List] = None) -> List[Dict]:
        """Run a SELECT and return all rows as dicts."""
        conn = self.connect()
        try:
            return [dict(row) for row in conn.execute(query, params or []).fetchall()]
        finally:
            conn.close()

    def count(self, table: str, where: str = "1=1", params: Optional[List] = None) -> int:
        """Count rows in a table matching a WHERE clause."""
        row = self.fetch_one(f"SELECT COUNT(*) AS n FROM {table} WHERE {where}", params)
        return int(row["n"]) if row else 0

    def insert_dataframe(self, df: pd.DataFrame, table: str) -> int:
        """
        Append DataFrame rows to a table.

        Args:
            df: Rows to insert; columns must match table columns
            table: Target table name

        Returns:
            Number of rows inserted
        """
        if df.empty:
            return 0

        conn = sqlite3.connect(self.db_path)
        try:
            df.to_sql(table, conn, if_exists="append", index=False)
            conn.commit()
        finally:
            conn.close()

        logger.info(f"Inserted {len(df)} rows into {table}")
        return len(df)
