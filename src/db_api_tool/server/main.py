"""Main entry point for the database API.

This module provides the main() function that starts the uvicorn server.
It's configured as the ``db-api-tool`` console script in pyproject.toml.

Usage:
    Run with the configured port: db-api-tool
    Run with a custom port: db-api-tool --port 5000
"""

import argparse

import uvicorn

from ..config import resolve_config
from .app import create_app


def main() -> None:
    """Start the API server using uvicorn.

    Configuration is resolved once from the environment (or the YAML file named by
    DB_API_TOOL_CONFIG); a missing required value aborts startup with ConfigError.
    """
    parser = argparse.ArgumentParser(description="Start the database API server")
    parser.add_argument(
        "--port", type=int, default=None, help="Port to run the server on (default: APP_PORT or 8080)"
    )
    parser.add_argument(
        "--host", default=None, help="Interface to bind (default: 0.0.0.0)"
    )
    args = parser.parse_args()

    config = resolve_config()
    uvicorn.run(
        create_app(config),
        host=args.host or config.server.host,
        port=args.port or config.server.port,
        log_level=config.observability.log_level.lower(),
    )


if __name__ == "__main__":
    main()
