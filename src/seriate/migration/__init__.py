from .engine import MigrationEngine
from .models import Migration, MigrationRecord
from .rollback import RollbackEngine

__all__ = ("Migration", "MigrationEngine", "MigrationRecord", "RollbackEngine")
