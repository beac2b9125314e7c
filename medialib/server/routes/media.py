import functools
import logging

from aiohttp import BodyPartReader, web
from mashumaro.exceptions import InvalidFieldValue, MissingField

from ...models.base import BaseResponse, create_error_response
from ...models.media import (
    CreateFolderDTO,
    DeleteDTO,
    FavoriteListDTO,
    ListDirectoryDTO,
    MediaQueryDTO,
    MoveDTO,
    RecentUploadsDTO,
    ReconcileDTO,
    RegisterCompanyDTO,
    RenameDTO,
    RenameOrMoveDTO,
    ToggleFavoriteDTO,
)
from ..constants import BucketContext
from ..services.media import MediaLibrary

logger = logging.getLogger(__name__)
routes = web.RouteTableDef()

_UPLOAD_CHUNK_SIZE = 64 * 1024

ERROR_STATUS = {
    "InvalidPath": 400,
    "InvalidQuery": 400,
    "InvalidRequest": 400,
    "Unauthorized": 401,
    "NotFound": 404,
    "AlreadyExists": 409,
    "ConflictingOperation": 409,
    "UploadTooLarge": 413,
    "PartialFailure": 207,
    "StoreUnavailable": 503,
}


def _respond(body: BaseResponse) -> web.Response:
    status = 200
    if not body.success:
        status = ERROR_STATUS.get(body.error_code or "", 500)
    return web.json_response(body.to_dict(), status=status)


def _bad_request(message: str) -> web.Response:
    return _respond(create_error_response(message, error_code="InvalidRequest"))


def _unauthorized() -> web.Response:
    return _respond(
        create_error_response("Missing user id", error_code="Unauthorized")
    )


async def _parse(request: web.Request, dto_cls):
    try:
        body = await request.json() if request.can_read_body else {}
        return dto_cls.from_dict(body or {})
    except (ValueError, MissingField, InvalidFieldValue) as err:
        logger.info(f"Invalid request to {request.path}: {err}")
        return None


def _library(request: web.Request) -> MediaLibrary:
    return request.app["media_library"]


def _handler(dto_cls):
    """Parse the JSON body into ``dto_cls`` and render the returned response."""

    def decorator(func):
        @functools.wraps(func)
        async def wrapper(request: web.Request) -> web.Response:
            dto = await _parse(request, dto_cls)
            if dto is None:
                return _bad_request(f"Invalid request body for {request.path}")
            return _respond(await func(request, dto))

        return wrapper

    return decorator


@routes.post("/api/media/list")
@_handler(ListDirectoryDTO)
async def handle_list(request: web.Request, dto: ListDirectoryDTO) -> BaseResponse:
    # Immediate folders and files of one directory.
    return await _library(request).list_directory(dto.bucket, dto.path, request["user"])


@routes.post("/api/media/query")
@_handler(MediaQueryDTO)
async def handle_query(request: web.Request, dto: MediaQueryDTO) -> BaseResponse:
    # Filtered, sorted, paginated directory listing.
    return await _library(request).query(dto, request["user"])


@routes.post("/api/media/folder/create")
@_handler(CreateFolderDTO)
async def handle_create_folder(request: web.Request, dto: CreateFolderDTO) -> BaseResponse:
    return await _library(request).create_folder(dto.bucket, dto.parent_path, dto.name)


@routes.post("/api/media/rename_or_move")
@_handler(RenameOrMoveDTO)
async def handle_rename_or_move(
    request: web.Request, dto: RenameOrMoveDTO
) -> BaseResponse:
    return await _library(request).rename_or_move(dto.bucket, dto.old_path, dto.new_path)


@routes.post("/api/media/rename")
@_handler(RenameDTO)
async def handle_rename(request: web.Request, dto: RenameDTO) -> BaseResponse:
    return await _library(request).rename(dto.bucket, dto.path, dto.new_name)


@routes.post("/api/media/move")
@_handler(MoveDTO)
async def handle_move(request: web.Request, dto: MoveDTO) -> BaseResponse:
    # Drag and drop lands here once the drop target is known.
    return await _library(request).move(dto.bucket, dto.path, dto.new_parent)


@routes.post("/api/media/delete")
@_handler(DeleteDTO)
async def handle_delete(request: web.Request, dto: DeleteDTO) -> BaseResponse:
    return await _library(request).delete(dto.bucket, dto.path, dto.is_folder)


@routes.post("/api/media/favorite")
async def handle_favorite(request: web.Request) -> web.Response:
    user_id = request["user"]
    if not user_id:
        return _unauthorized()
    dto = await _parse(request, ToggleFavoriteDTO)
    if dto is None:
        return _bad_request("Invalid favorite request")
    return _respond(
        await _library(request).toggle_favorite(
            user_id, dto.bucket, dto.file_path, dto.favorite
        )
    )


@routes.post("/api/media/favorite/list")
async def handle_favorite_list(request: web.Request) -> web.Response:
    user_id = request["user"]
    if not user_id:
        return _unauthorized()
    dto = await _parse(request, FavoriteListDTO)
    if dto is None:
        return _bad_request("Invalid favorite list request")
    return _respond(await _library(request).list_favorites(user_id, dto.bucket))


@routes.post("/api/media/recent")
@_handler(RecentUploadsDTO)
async def handle_recent(request: web.Request, dto: RecentUploadsDTO) -> BaseResponse:
    return await _library(request).recent_uploads(dto.bucket, dto.limit, request["user"])


@routes.post("/api/media/reconcile")
@_handler(ReconcileDTO)
async def handle_reconcile(request: web.Request, dto: ReconcileDTO) -> BaseResponse:
    return await _library(request).reconcile(dto.bucket, dto.fix)


@routes.post("/api/media/company/register")
@_handler(RegisterCompanyDTO)
async def handle_register_company(
    request: web.Request, dto: RegisterCompanyDTO
) -> BaseResponse:
    return await _library(request).register_company(dto.company_id, dto.name)


@routes.post("/api/media/upload")
async def handle_upload(request: web.Request) -> web.Response:
    # Endpoint: POST /api/media/upload
    # Purpose: Upload one file as multipart/form-data.
    # Fields: bucket, path, tags (comma separated), file.
    library = _library(request)
    max_size = library.mutations.max_upload_size
    fields: dict[str, str] = {}
    file_name = None
    content_type = None
    data = bytearray()

    try:
        reader = await request.multipart()
    except (AssertionError, ValueError):
        return _bad_request("Expected multipart/form-data")

    while (part := await reader.next()) is not None:
        if not isinstance(part, BodyPartReader):
            continue
        if part.name == "file":
            if file_name is not None:
                return _bad_request("Only one file part is accepted per upload")
            file_name = part.filename or ""
            content_type = part.headers.get("Content-Type")
            if content_type == "application/octet-stream":
                content_type = None
            # Stop one byte past the limit; the service rejects the oversize body.
            while len(data) <= max_size and (
                chunk := await part.read_chunk(_UPLOAD_CHUNK_SIZE)
            ):
                data.extend(chunk)
            if len(data) > max_size:
                break
        elif part.name:
            fields[part.name] = await part.text()

    if not file_name:
        return _bad_request("Missing file part")
    try:
        bucket = BucketContext.from_value(fields.get("bucket", BucketContext.INTERNAL.value))
    except ValueError as err:
        return _bad_request(str(err))
    tags = [t for t in fields.get("tags", "").split(",") if t.strip()]
    logger.info(
        f"Received upload for {file_name} (user: {request['user']}): {len(data)} bytes"
    )
    return _respond(
        await library.upload(
            bucket,
            fields.get("path", ""),
            file_name,
            bytes(data),
            content_type=content_type,
            user_id=request["user"],
            tags=tags,
        )
    )
