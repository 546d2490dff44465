from db.models import REQUIRED_BOOT_TABLES
from db.repository import InMemoryRepository
from db.session import SessionManager

__all__ = ["InMemoryRepository", "SessionManager", "REQUIRED_BOOT_TABLES"]
