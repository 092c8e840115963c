"""HTTP API for browsing and querying a MySQL database without writing SQL."""

# Submodules are imported explicitly to keep package import free of side effects:
# from db_api_tool.db import DatabaseClient, ConnectionPool
# from db_api_tool.guardrails import sanitize_identifier
# from db_api_tool.server import create_app, main

__all__ = [
    "config",
    "db",
    "guardrails",
    "server",
]

__version__ = "0.1.0"
