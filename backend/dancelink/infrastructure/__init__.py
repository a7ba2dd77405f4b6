"""
Infrastructure layer - storage backends and payment provider clients.
Keeps the booking core free of SDK and database details.
"""

from .memory_store import InMemoryDatabase, InMemoryUnitOfWork, in_memory_uow_factory
from .sql_store import SqlAlchemyUnitOfWork, sql_uow_factory

__all__ = [
    "InMemoryDatabase",
    "InMemoryUnitOfWork",
    "SqlAlchemyUnitOfWork",
    "in_memory_uow_factory",
    "sql_uow_factory",
]
