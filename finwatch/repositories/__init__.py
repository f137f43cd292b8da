from finwatch.repositories.base import AlertRepository
from finwatch.repositories.sql_repository import SqlRepository
from finwatch.repositories.supabase_repository import SupabaseRepository

__all__ = ["AlertRepository", "SqlRepository", "SupabaseRepository"]
