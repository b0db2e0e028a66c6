from .factory import build_range_store
from .postgres_store import PostgresRangeStore
from .store import RangeStore

__all__ = ["PostgresRangeStore", "RangeStore", "build_range_store"]
