from .manager import DatabaseManager, get_db_manager, init_database
from .models import Base

__all__ = [
    "Base",
    "DatabaseManager",
    "get_db_manager",
    "init_database",
]
