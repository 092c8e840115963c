"""Database access: query building, pooling and row coercion."""

from .client import DatabaseClient
from .pool import ConnectionPool, Lease, create_pool

__all__ = ["ConnectionPool", "DatabaseClient", "Lease", "create_pool"]
