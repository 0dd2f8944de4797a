"""SolForge runtime entrypoint.

This module provides the ASGI application factory served by Granian. It
delegates to :func:`solforge.api.app.create_app` while keeping the
``solforge.runtime:create_app`` entrypoint stable.

When ``SOLFORGE_DATABASE_URL`` is set, the runtime builds the webhook
reconciler and bounty service so the app includes the domain endpoints.
Otherwise it starts in health-only mode.

Configuration is driven by environment variables:

- ``SOLFORGE_HOST``: Bind address (default ``0.0.0.0``)
- ``SOLFORGE_PORT``: Listen port (default ``8080``)
- ``SOLFORGE_LOG_LEVEL``: Log level (default ``INFO``)
- ``SOLFORGE_DATABASE_URL``: Database connection URL (optional; enables
  domain endpoints when set)

Run the service directly with ``python -m solforge.runtime``.
"""

from __future__ import annotations

import asyncio
import os
import typing as typ

from solforge.logging import (
    configure_logging,
    get_logger,
    log_error,
    log_info,
    log_warning,
)

if typ.TYPE_CHECKING:
    import falcon.asgi

__all__ = ["create_app", "main"]

logger = get_logger(__name__)

_MIN_PORT = 1
_MAX_PORT = 65535


def _parse_port(port_str: str) -> int:
    """Parse and validate a port number string.

    Raises
    ------
    SystemExit
        If port_str is not a valid integer in range 1-65535.

    """
    try:
        port = int(port_str)
        if not (_MIN_PORT <= port <= _MAX_PORT):
            msg = f"port {port} outside valid range {_MIN_PORT}-{_MAX_PORT}"
            raise ValueError(msg)  # noqa: TRY301 - unify conversion and range errors
    except ValueError as exc:
        log_error(
            logger,
            "Invalid SOLFORGE_PORT value: %r (must be %d-%d): %s",
            port_str,
            _MIN_PORT,
            _MAX_PORT,
            exc,
        )
        raise SystemExit(1) from exc
    return port


def create_app() -> falcon.asgi.App:
    """Create the Falcon application from the environment.

    Returns
    -------
    falcon.asgi.App
        Configured Falcon ASGI application.

    """
    from solforge.api.app import create_app as _create_api_app

    database_url = os.environ.get("SOLFORGE_DATABASE_URL")
    if database_url is None:
        return _create_api_app()

    from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

    from solforge.api.factory import build_dependencies

    engine = create_async_engine(database_url)
    session_factory = async_sessionmaker(engine, expire_on_commit=False)
    return _create_api_app(
        build_dependencies(session_factory, database_url=database_url)
    )


async def _prepare_schema(database_url: str) -> None:
    from sqlalchemy.ext.asyncio import create_async_engine

    from solforge.ledger.storage import init_storage

    engine = create_async_engine(database_url)
    try:
        await init_storage(engine)
    finally:
        await engine.dispose()


def main() -> None:
    """Start the SolForge runtime server using Granian.

    Reads ``SOLFORGE_HOST``, ``SOLFORGE_PORT`` and ``SOLFORGE_LOG_LEVEL``,
    creates any missing tables when a database is configured, and starts
    the ASGI server.
    """
    from granian import Granian
    from granian.constants import Interfaces

    host = os.environ.get("SOLFORGE_HOST", "0.0.0.0")  # noqa: S104 - bind all interfaces for container
    port = _parse_port(os.environ.get("SOLFORGE_PORT", "8080"))
    log_level_str = os.environ.get("SOLFORGE_LOG_LEVEL", "INFO")

    normalized_level, invalid_level = configure_logging(log_level_str)
    if invalid_level:
        log_warning(
            logger,
            "Invalid SOLFORGE_LOG_LEVEL %r, falling back to %s",
            log_level_str,
            normalized_level,
        )

    database_url = os.environ.get("SOLFORGE_DATABASE_URL")
    if database_url is not None:
        asyncio.run(_prepare_schema(database_url))

    log_info(
        logger,
        "Starting SolForge runtime on %s:%d (log_level=%s)",
        host,
        port,
        normalized_level,
    )

    server = Granian(
        "solforge.runtime:create_app",
        address=host,
        port=port,
        interface=Interfaces.ASGI,
        factory=True,
    )
    server.serve()


if __name__ == "__main__":
    main()
