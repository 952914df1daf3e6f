from functools import lru_cache
from typing import Dict, List, Optional
from supabase import create_client, Client
from postgrest.exceptions import APIError
from scripturequiz.config import settings
import logging

# Postgres SQLSTATE for unique_violation
UNIQUE_VIOLATION = "23505"


class DuplicateRecordError(Exception):
    """Raised when an insert hits a unique constraint"""

    def __init__(self, table: str, detail: str = ""):
        self.table = table
        self.detail = detail
        super().__init__(f"Duplicate record in {table}: {detail}")


# Supabase Client Setup
@lru_cache()
def get_supabase_client() -> Client:
    """Get Supabase client for authentication operations"""
    return create_client(
        settings.supabase_url,
        settings.supabase_anon_key.get_secret_value()
    )

@lru_cache()
def get_supabase_admin_client() -> Client:
    """Get Supabase admin client for table operations"""
    return create_client(
        settings.supabase_url,
        settings.supabase_service_role_key.get_secret_value()
    )

def test_supabase_connection() -> bool:
    """Test Supabase connection"""
    try:
        get_supabase_admin_client().table("quizzes").select("id").limit(1).execute()
        return True
    except Exception as e:
        logging.error(f"Supabase connection test failed: {e}")
        return False


def _apply_filters(query, filters: Optional[Dict] = None, in_filters: Optional[Dict] = None,
                   lt_filters: Optional[Dict] = None):
    for key, value in (filters or {}).items():
        query = query.eq(key, value)
    for key, values in (in_filters or {}).items():
        query = query.in_(key, list(values))
    for key, value in (lt_filters or {}).items():
        query = query.lt(key, value)
    return query


# Database operations using Supabase REST API
class Database:
    """Database operations using Supabase REST API"""

    @staticmethod
    def insert(table: str, data: dict):
        """Insert data into table"""
        try:
            result = get_supabase_admin_client().table(table).insert(data).execute()
            return result.data[0] if result.data else None
        except APIError as e:
            if e.code == UNIQUE_VIOLATION:
                logging.warning(f"Duplicate insert rejected in {table}: {e.message}")
                raise DuplicateRecordError(table, e.message or "")
            logging.error(f"Insert error in {table}: {e}")
            raise
        except Exception as e:
            logging.error(f"Insert error in {table}: {e}")
            raise

    @staticmethod
    def select(table: str, columns: str = "*", filters: dict = None, limit: int = None,
               in_filters: dict = None, lt_filters: dict = None,
               order_by: str = None, desc: bool = False) -> List[dict]:
        """Select data from table"""
        try:
            query = get_supabase_admin_client().table(table).select(columns)
            query = _apply_filters(query, filters, in_filters, lt_filters)

            if order_by:
                query = query.order(order_by, desc=desc)

            if limit:
                query = query.limit(limit)

            result = query.execute()
            return result.data
        except Exception as e:
            logging.error(f"Select error in {table}: {e}")
            raise

    @staticmethod
    def update(table: str, data: dict, filters: dict, in_filters: dict = None,
               lt_filters: dict = None) -> List[dict]:
        """Update rows matching every filter and return the rows that changed.

        Status guards go in the filters, so an empty result means another
        writer got there first.
        """
        try:
            query = get_supabase_admin_client().table(table).update(data)
            query = _apply_filters(query, filters, in_filters, lt_filters)

            result = query.execute()
            return result.data or []
        except Exception as e:
            logging.error(f"Update error in {table}: {e}")
            raise

    @staticmethod
    def delete(table: str, filters: dict):
        """Delete data from table"""
        try:
            query = get_supabase_admin_client().table(table).delete()
            query = _apply_filters(query, filters)

            result = query.execute()
            return result.data
        except Exception as e:
            logging.error(f"Delete error in {table}: {e}")
            raise

# Global database instance
db = Database()
