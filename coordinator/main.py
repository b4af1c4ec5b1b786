"""Entry point for the Coordinator service."""

import dataclasses
import logging
import os
import time
import uuid
from typing import Optional

import anyio
import boto3
import click
import uvicorn
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, PlainTextResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from common.logging_config import setup_logging, get_logger
from common.protocol import UploadDecision
from coordinator.auth import REALM_HEADER, check_credentials, hash_password
from coordinator.config import CoordinatorConfig, DEFAULT_REGION, ENV_PREFIX
from coordinator.exceptions import ConfigurationError, CoordinatorException, StorageError
from coordinator.routes.upload_routes import router as upload_router
from coordinator.services.upload_service import UploadCoordinator
from coordinator.store import ObjectStore, build_s3_store

PUBLIC_PATHS = frozenset({"/health"})

HTTP_ERROR_MESSAGES = {
    status.HTTP_404_NOT_FOUND: "not found",
    status.HTTP_405_METHOD_NOT_ALLOWED: "bad method",
}


def _error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=UploadDecision.failure(message).to_wire()
    )


def create_app(
    config: CoordinatorConfig,
    store: ObjectStore,
    logger: Optional[logging.Logger] = None
) -> FastAPI:
    """
    Build the coordinator FastAPI application.

    Args:
        config: Coordinator settings
        store: Object store used for existence checks and presigning
        logger: Logger for request and decision events

    Returns:
        Configured FastAPI application
    """
    logger = logger or get_logger("coordinator")

    app = FastAPI(
        title="Photo Backup Coordinator",
        description="Issues deduplicated, time-limited upload capabilities",
        version="1.0.0"
    )
    app.state.config = config
    app.state.coordinator = UploadCoordinator(config, store, logger=logger)

    @app.middleware("http")
    async def basic_auth(request: Request, call_next):
        """
        Reject requests without valid shared credentials before routing.
        """
        if request.url.path in PUBLIC_PATHS:
            return await call_next(request)

        authorized = await anyio.to_thread.run_sync(
            check_credentials,
            request.headers.get("authorization"),
            config.password_hash,
            config.username,
        )
        if not authorized:
            request_id = getattr(request.state, 'request_id', 'unknown')
            logger.warning(
                f"Authentication failed: {request.method} {request.url.path} [request_id={request_id}]"
            )
            return PlainTextResponse(
                "Not authorized\n",
                status_code=status.HTTP_401_UNAUTHORIZED,
                headers={"WWW-Authenticate": REALM_HEADER}
            )

        return await call_next(request)

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """
        Middleware to log all HTTP requests and responses.
        """
        request_id = str(uuid.uuid4())
        request.state.request_id = request_id

        start_time = time.time()

        response = await call_next(request)

        duration_ms = (time.time() - start_time) * 1000
        client_host = request.client.host if request.client else 'unknown'

        logger.info(
            f"Request: {request.method} {request.url.path} status={response.status_code} "
            f"duration_ms={duration_ms:.0f} remote_addr={client_host} [request_id={request_id}]"
        )

        response.headers["X-Request-ID"] = request_id

        return response

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        request_id = getattr(request.state, 'request_id', 'unknown')
        logger.error(
            f"Decode upload request error: {exc.errors()} [request_id={request_id}] path={request.url.path}"
        )
        return _error_response(status.HTTP_400_BAD_REQUEST, "bad request")

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        message = HTTP_ERROR_MESSAGES.get(exc.status_code, str(exc.detail))
        return _error_response(exc.status_code, message)

    @app.exception_handler(StorageError)
    async def storage_error_handler(request: Request, exc: StorageError):
        request_id = getattr(request.state, 'request_id', 'unknown')
        logger.error(
            f"Storage error: {exc} [request_id={request_id}] path={request.url.path}",
            exc_info=True
        )
        return _error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "internal error")

    @app.exception_handler(CoordinatorException)
    async def coordinator_exception_handler(request: Request, exc: CoordinatorException):
        request_id = getattr(request.state, 'request_id', 'unknown')
        logger.error(
            f"Coordinator exception: {exc} [request_id={request_id}] path={request.url.path}",
            exc_info=True
        )
        return _error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "internal error")

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        request_id = getattr(request.state, 'request_id', 'unknown')
        logger.error(
            f"Unhandled error: {type(exc).__name__}: {exc} [request_id={request_id}] path={request.url.path}",
            exc_info=exc
        )
        return _error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "internal error")

    app.include_router(upload_router)

    @app.get("/health")
    async def health_check():
        """
        Liveness endpoint; does not require credentials.
        """
        return {"status": "healthy", "service": "coordinator"}

    logger.info(
        f"Coordinator configured [bucket={config.bucket}] [path_prefix={config.path_prefix or '/'}] "
        f"[capability_ttl={config.capability_ttl_seconds}s]"
    )
    return app


def load_config(source: str) -> CoordinatorConfig:
    """
    Load coordinator settings from the environment or SSM Parameter Store.
    """
    if source == "ssm":
        region = os.environ.get(f"{ENV_PREFIX}REGION", DEFAULT_REGION)
        return CoordinatorConfig.from_parameter_store(boto3.client("ssm", region_name=region))
    return CoordinatorConfig.from_env()


@click.group()
def cli() -> None:
    """Photo backup upload coordinator."""


@cli.command()
@click.option("--host", default=None, help="Host to listen on (overrides PHOTO_BACKUP_HOST).")
@click.option("--port", type=int, default=None, help="Port to listen on (overrides PHOTO_BACKUP_PORT).")
@click.option(
    "--source",
    type=click.Choice(["env", "ssm"]),
    default="env",
    show_default=True,
    help="Where to read bucket, path prefix and password hash from.",
)
@click.option("--debug", is_flag=True, help="Enable debug logging.")
def serve(host: Optional[str], port: Optional[int], source: str, debug: bool) -> None:
    """Start the HTTP server with uvicorn."""
    logger = setup_logging('coordinator', log_level='DEBUG' if debug else None)

    try:
        config = load_config(source)
    except ConfigurationError as e:
        raise click.ClickException(f"configuration error: {e}")

    overrides = {}
    if host is not None:
        overrides["host"] = host
    if port is not None:
        overrides["port"] = port
    if overrides:
        config = dataclasses.replace(config, **overrides)

    app = create_app(config, build_s3_store(config), logger=logger)

    logger.info(f"Listening on {config.host}:{config.port}")
    uvicorn.run(app, host=config.host, port=config.port, log_level='debug' if debug else 'info')


@cli.command("hash-password")
@click.password_option(help="Shared upload password.")
def hash_password_command(password: str) -> None:
    """Print the bcrypt hash to configure as PHOTO_BACKUP_PASSWORD_HASH."""
    click.echo(hash_password(password))


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
