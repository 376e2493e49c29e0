"""
Database connection manager module.

Provides a singleton DatabaseManager class holding the process-wide
MongoDB client, Beanie initialization, per-activity session scoping and
the transient-error retry policy.
"""

from __future__ import annotations

import asyncio
import logging
import os
import threading
from datetime import UTC
from typing import TYPE_CHECKING, Any, Final, Self, TypeVar

import certifi
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo.errors import AutoReconnect, ConnectionFailure, NetworkTimeout, PyMongoError
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_fixed,
)

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MONGO_URI: Final[str] = "mongodb://localhost:27017"
MONGODB_URI_ENV_VAR: Final[str] = "MONGODB_URI"
TRANSIENT_RETRY_ATTEMPTS: Final[int] = 2
TRANSIENT_RETRY_BACKOFF_SECONDS: Final[float] = 0.25


def is_transient_error(exc: BaseException) -> bool:
    """Classify a storage error as transient (safe to retry the unit of work)."""
    if isinstance(exc, (AutoReconnect, ConnectionFailure, NetworkTimeout)):
        return True
    if isinstance(exc, PyMongoError):
        return exc.has_error_label("TransientTransactionError")
    return False


def _env_flag(name: str, default: bool) -> bool:
    raw = os.getenv(name, "").strip().lower()
    if not raw:
        return default
    return raw in {"1", "true", "yes", "on"}


class DatabaseManager:
    """
    Singleton class to manage the MongoDB client and database connection.

    This class handles:
    - Connection pooling and lifecycle management
    - Event loop change detection and reconnection
    - Session/transaction scoping for units of work
    - One-shot retry of transient failures
    Environment Variables:
        MONGODB_URI: MongoDB URI (default: mongodb://localhost:27017)
        MONGODB_DATABASE: Database name (default: lorg)
        MONGODB_MAX_POOL_SIZE: Connection pool size (default: 10)
        MONGODB_CONNECTION_TIMEOUT_MS: Connection timeout (default: 5000)
        MONGODB_SERVER_SELECTION_TIMEOUT_MS: Server selection timeout (default: 10000)
        MONGODB_SOCKET_TIMEOUT_MS: Socket timeout (default: 8000)
        MONGODB_TRANSACTIONS: Use multi-document transactions (default: false)
    """

    _instance: DatabaseManager | None = None
    _lock = threading.Lock()

    def __new__(cls) -> Self:
        """Create or return the singleton instance."""
        with cls._lock:
            if cls._instance is None:
                cls._instance = super().__new__(cls)
                cls._instance._initialized = False
        return cls._instance

    def __init__(self) -> None:
        """Initialize the database manager with configuration from environment."""
        if not getattr(self, "_initialized", False):
            self._client: AsyncIOMotorClient | None = None
            self._db: AsyncIOMotorDatabase | None = None
            self._bound_loop: asyncio.AbstractEventLoop | None = None
            self._beanie_initialized = False
            self._initialized = True

            self._max_pool_size = int(os.getenv("MONGODB_MAX_POOL_SIZE", "10"))
            self._connection_timeout_ms = int(
                os.getenv("MONGODB_CONNECTION_TIMEOUT_MS", "5000"),
            )
            self._server_selection_timeout_ms = int(
                os.getenv("MONGODB_SERVER_SELECTION_TIMEOUT_MS", "10000"),
            )
            self._socket_timeout_ms = int(
                os.getenv("MONGODB_SOCKET_TIMEOUT_MS", "8000"),
            )
            self._db_name = os.getenv("MONGODB_DATABASE", "lorg")
            self._transactions_enabled = _env_flag("MONGODB_TRANSACTIONS", False)

            logger.debug(
                "Database configuration initialized with pool size %s",
                self._max_pool_size,
            )

    @property
    def transactions_enabled(self) -> bool:
        return self._transactions_enabled

    def _initialize_client(self) -> None:
        mongo_uri = os.getenv(MONGODB_URI_ENV_VAR, "").strip() or DEFAULT_MONGO_URI
        logger.debug("Initializing MongoDB client")

        client_kwargs: dict[str, Any] = {
            "tz_aware": True,
            "tzinfo": UTC,
            "maxPoolSize": self._max_pool_size,
            "minPoolSize": 0,
            "maxIdleTimeMS": 10000,
            "connectTimeoutMS": self._connection_timeout_ms,
            "serverSelectionTimeoutMS": self._server_selection_timeout_ms,
            "socketTimeoutMS": self._socket_timeout_ms,
            "retryWrites": True,
            "retryReads": True,
            "appname": "Lorg",
        }
        if mongo_uri.startswith("mongodb+srv://"):
            client_kwargs.update(tls=True, tlsCAFile=certifi.where())

        try:
            self._client = AsyncIOMotorClient(mongo_uri, **client_kwargs)
        except Exception:
            logger.exception("Failed to initialize MongoDB client")
            raise
        self._db = self._client[self._db_name]
        self._bound_loop = self._get_current_loop()
        logger.info("MongoDB client initialized successfully")

    @staticmethod
    def _get_current_loop() -> asyncio.AbstractEventLoop | None:
        try:
            return asyncio.get_running_loop()
        except RuntimeError:
            return None

    def _reset_client(self) -> None:
        if self._client:
            self._client.close()
        self._client = None
        self._db = None
        self._bound_loop = None
        self._beanie_initialized = False

    def _check_loop_and_reconnect(self) -> None:
        """Rebuild the client when the event loop it was bound to is gone."""
        if self._client is None or self._bound_loop is None:
            return
        current_loop = self._get_current_loop()
        if self._bound_loop.is_closed() or (
            current_loop is not None and current_loop is not self._bound_loop
        ):
            logger.info("Event loop changed, reconnecting MongoDB client")
            self._reset_client()

    @property
    def client(self) -> AsyncIOMotorClient:
        self._check_loop_and_reconnect()
        if self._client is None:
            self._initialize_client()
        if self._client is None:
            msg = "MongoDB client could not be initialized."
            raise RuntimeError(msg)
        return self._client

    @property
    def db(self) -> AsyncIOMotorDatabase:
        _ = self.client
        if self._db is None:
            msg = "Database instance could not be initialized."
            raise RuntimeError(msg)
        return self._db

    async def init_beanie(self) -> None:
        """
        Initialize Beanie ODM with all document models.

        Index definitions on the models (including the unique visited-cell
        key the novelty ledger depends on) are created here.
        """
        self._check_loop_and_reconnect()
        if self._beanie_initialized:
            logger.debug("Beanie already initialized, skipping")
            return

        from beanie import init_beanie

        from db.models import ALL_DOCUMENT_MODELS

        await init_beanie(database=self.db, document_models=ALL_DOCUMENT_MODELS)
        self._beanie_initialized = True
        logger.info(
            "Beanie ODM initialized with %d document models",
            len(ALL_DOCUMENT_MODELS),
        )

    async def execute_with_retry(
        self,
        operation: Callable[[], Awaitable[T]],
        operation_name: str = "database operation",
    ) -> T:
        """Run an operation, retrying once after a short backoff if transient.

        Non-transient errors propagate on the first failure.
        """
        retrying = AsyncRetrying(
            stop=stop_after_attempt(TRANSIENT_RETRY_ATTEMPTS),
            wait=wait_fixed(TRANSIENT_RETRY_BACKOFF_SECONDS),
            retry=retry_if_exception(is_transient_error),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                if attempt.retry_state.attempt_number > 1:
                    logger.info("Retrying %s after transient failure", operation_name)
                return await operation()
        msg = f"{operation_name} did not run"
        raise RuntimeError(msg)

    async def cleanup_connections(self) -> None:
        """Clean up MongoDB client connections."""
        if self._client:
            logger.info("Closing MongoDB client connections...")
            self._reset_client()
            logger.info("MongoDB client state reset")


# Singleton instance
db_manager = DatabaseManager()
