import asyncio
import contextlib
import logging
from pathlib import Path
from typing import Any, Awaitable, Callable

from aiohttp import web

from .config import ServerConfig
from .db.session import DatabaseSessionManager
from .routes import media
from .services.coordination import PrefixLockManager
from .services.favorites import FavoritesService
from .services.integrity import IntegrityService
from .services.listing import ListingService
from .services.media import MediaLibrary
from .services.metadata import SqlMetadataIndex
from .services.mutation import MutationService
from .services.object_store import LocalObjectStore, MemoryObjectStore, ObjectStore
from .services.s3 import S3ObjectStore

logger = logging.getLogger(__name__)

USER_HEADER = "X-User-Id"


@web.middleware
async def request_log_middleware(
    request: web.Request,
    handler: Callable[[web.Request], Awaitable[web.StreamResponse]],
) -> web.StreamResponse:
    start = asyncio.get_running_loop().time()
    response = await handler(request)
    elapsed_ms = (asyncio.get_running_loop().time() - start) * 1000
    logger.info(
        f"{request.method} {request.path} -> {response.status} ({elapsed_ms:.1f} ms)"
    )
    return response


@web.middleware
async def user_middleware(
    request: web.Request,
    handler: Callable[[web.Request], Awaitable[web.StreamResponse]],
) -> web.StreamResponse:
    # Authentication happens upstream; the user id is taken as given.
    request["user"] = request.headers.get(USER_HEADER) or None
    return await handler(request)


def create_object_store(config: ServerConfig) -> ObjectStore:
    storage = config.storage
    if storage.backend == "memory":
        return MemoryObjectStore()
    if storage.backend == "s3":
        return S3ObjectStore(
            endpoint_url=storage.s3_endpoint_url,
            access_key_id=storage.s3_access_key_id,
            secret_access_key=storage.s3_secret_access_key,
            region=storage.s3_region,
            public_base_url=storage.public_base_url,
        )
    return LocalObjectStore(
        Path(storage.root) / "objects", public_base_url=storage.public_base_url
    )


def create_media_library(
    config: ServerConfig,
    session_manager: DatabaseSessionManager,
    object_store: ObjectStore,
) -> MediaLibrary:
    """Wire the media services together."""
    bucket_names = config.buckets.names()
    metadata_index = SqlMetadataIndex(session_manager)
    # Mutations and the reconcile sweep share one guard
    lock_manager = PrefixLockManager()
    return MediaLibrary(
        object_store=object_store,
        metadata_index=metadata_index,
        bucket_names=bucket_names,
        listing=ListingService(object_store, metadata_index, bucket_names),
        mutations=MutationService(
            object_store,
            metadata_index,
            bucket_names,
            lock_manager=lock_manager,
            max_upload_size=config.max_upload_size,
        ),
        favorites=FavoritesService(metadata_index),
        integrity=IntegrityService(
            object_store, metadata_index, bucket_names, lock_manager=lock_manager
        ),
        default_page_size=config.default_page_size,
    )


def create_app(
    config: ServerConfig | None = None, object_store: ObjectStore | None = None
) -> web.Application:
    if config is None:
        config = ServerConfig.load()
    if not config.database_url:
        Path(config.storage.root).mkdir(parents=True, exist_ok=True)

    app = web.Application(
        middlewares=[request_log_middleware, user_middleware],
        client_max_size=config.max_upload_size + 1024 * 1024,
    )
    session_manager = DatabaseSessionManager(config.db_url)
    media_library = create_media_library(
        config, session_manager, object_store or create_object_store(config)
    )
    app["config"] = config
    app["session_manager"] = session_manager
    app["media_library"] = media_library

    async def on_startup(app: web.Application) -> None:
        await session_manager.create_all()
        if config.reconcile_interval > 0:
            app["reconcile_task"] = asyncio.create_task(
                media_library.integrity.run_periodically(config.reconcile_interval)
            )

    async def on_cleanup(app: web.Application) -> None:
        if task := app.get("reconcile_task"):
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        await media_library.close()
        await session_manager.close()

    app.on_startup.append(on_startup)
    app.on_cleanup.append(on_cleanup)

    app.add_routes(media.routes)
    return app


def run(args: Any) -> None:
    config = ServerConfig.load(getattr(args, "config", None))
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if getattr(args, "host", None):
        config.host = args.host
    if getattr(args, "port", None):
        config.port = args.port
    app = create_app(config)
    web.run_app(app, host=config.host, port=config.port)
