import logging
import os
from contextlib import asynccontextmanager
from urllib.parse import quote, urlencode

from fastapi import FastAPI, File, Form, HTTPException, Query, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, StreamingResponse

from bucketview.config import Settings, get_settings
from bucketview.errors import NotFoundError, PayloadTooLargeError, StorageError, ValidationError
from bucketview.folders import normalize_path, parent_path
from bucketview.models import (
    ActionResponse,
    FolderListResponse,
    ShareLinkResponse,
    StoredObject,
    UploadResponse,
)
from bucketview.repository import ObjectStore, S3ObjectRepository, build_s3_client
from bucketview.signing import ShareTokenCodec
from bucketview.storage import FileStorageService

logger = logging.getLogger(__name__)


def create_app(settings: Settings | None = None, store: ObjectStore | None = None) -> FastAPI:
    settings = settings or get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if store is None:
        store = S3ObjectRepository(build_s3_client(settings), settings.bucket_name)
    codec = ShareTokenCodec(settings.app_secret_key, settings.default_share_ttl_seconds)
    service = FileStorageService(store, codec, settings)

    @asynccontextmanager
    async def lifespan(_: FastAPI):
        store.init()
        logger.info("Serving bucket %s (%s)", settings.bucket_name, settings.app_env)
        yield

    app = FastAPI(title=settings.app_name, lifespan=lifespan)
    app.state.service = service

    @app.get("/")
    def root() -> dict:
        return {"status": "ok", "service": settings.app_name}

    def error_response(status_code: int, message: str, code: str) -> JSONResponse:
        return JSONResponse(
            status_code=status_code,
            content={"error": {"code": code, "message": message}},
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_exception_handler(_: Request, exc: RequestValidationError):
        missing_fields = [
            ".".join(str(item) for item in error["loc"] if item not in ("body", "query"))
            for error in exc.errors()
            if error.get("type") == "missing"
        ]
        if missing_fields:
            message = f"missing parameters: {', '.join(missing_fields)}"
        else:
            message = "invalid request parameters"
        return error_response(400, message, "bad_request")

    @app.exception_handler(HTTPException)
    async def http_exception_handler(_: Request, exc: HTTPException):
        message = str(exc.detail) if exc.detail else "request failed"
        code_map = {
            400: "bad_request",
            404: "not_found",
            413: "payload_too_large",
        }
        return error_response(exc.status_code, message, code_map.get(exc.status_code, "error"))

    @app.exception_handler(PayloadTooLargeError)
    async def payload_too_large_handler(_: Request, exc: PayloadTooLargeError):
        return error_response(413, str(exc), "payload_too_large")

    @app.exception_handler(ValidationError)
    async def validation_error_handler(_: Request, exc: ValidationError):
        return error_response(400, str(exc), "bad_request")

    @app.exception_handler(NotFoundError)
    async def not_found_handler(_: Request, exc: NotFoundError):
        return error_response(404, str(exc) or "not found", "not_found")

    @app.exception_handler(StorageError)
    async def storage_error_handler(_: Request, exc: StorageError):
        logger.error("Storage failure: %s", exc)
        return error_response(502, "storage backend error", "storage_error")

    def stream_response(key: str, obj: StoredObject) -> StreamingResponse:
        filename = key.rsplit("/", 1)[-1]
        headers = {"Content-Disposition": f"attachment; filename*=UTF-8''{quote(filename)}"}
        if obj.size is not None:
            headers["Content-Length"] = str(obj.size)
        return StreamingResponse(obj.body, media_type=obj.content_type, headers=headers)

    @app.get("/health")
    def health() -> dict:
        return {"status": "ok", "environment": settings.app_env}

    @app.get("/v1/files", response_model=FolderListResponse)
    def list_files(path: str | None = Query(None)):
        path = normalize_path(path)
        view = service.list_folder(path)
        return FolderListResponse(path=path, parent=parent_path(path), files=view.files, folders=view.folders)

    @app.post("/v1/files/upload", response_model=UploadResponse, status_code=201)
    def upload_file(file: UploadFile = File(...), path: str = Form("")):
        if not file.filename:
            raise HTTPException(status_code=400, detail="filename is required")

        size = file.size
        if size is None:
            file.file.seek(0, os.SEEK_END)
            size = file.file.tell()
            file.file.seek(0)

        content_type = file.content_type or "application/octet-stream"
        key = service.upload(
            filename=file.filename,
            data=file.file,
            size=size,
            content_type=content_type,
            path=path,
        )
        return UploadResponse(key=key, size=size, content_type=content_type)

    @app.get("/v1/files/download")
    def download_file(key: str = Query(...)):
        return stream_response(key, service.download(key))

    @app.post("/v1/files/delete", response_model=ActionResponse)
    def delete_file(key: str = Form(...)):
        service.delete_object(key)
        return ActionResponse(success=True, key=key)

    @app.post("/v1/files/move", response_model=ActionResponse)
    def move_file(source: str = Form(...), destination: str = Form(...)):
        service.move_object(source, destination)
        return ActionResponse(success=True, key=destination)

    @app.post("/v1/files/trash", response_model=ActionResponse)
    def trash_file(key: str = Form(...)):
        return ActionResponse(success=True, key=service.trash_object(key))

    @app.post("/v1/files/restore", response_model=ActionResponse)
    def restore_file(key: str = Form(...)):
        return ActionResponse(success=True, key=service.restore_object(key))

    @app.post("/v1/folders", response_model=ActionResponse, status_code=201)
    def create_folder(name: str = Form(...), path: str = Form("")):
        return ActionResponse(success=True, key=service.create_folder(name, path))

    @app.post("/v1/folders/delete", response_model=ActionResponse)
    def delete_folder(prefix: str = Form(...)):
        service.delete_folder(prefix)
        return ActionResponse(success=True, key=normalize_path(prefix))

    @app.post("/v1/share", response_model=ShareLinkResponse)
    def create_share_link(request: Request, key: str = Form(...), expiry_seconds: int = Form(0)):
        try:
            token, expires_at = service.share(key, expiry_seconds)
        except NotFoundError:
            return JSONResponse(status_code=404, content=ShareLinkResponse(success=False, url="").model_dump())
        except ValidationError:
            return JSONResponse(status_code=400, content=ShareLinkResponse(success=False, url="").model_dump())

        params = urlencode({"token": token})
        url = str(request.base_url)[:-1] + f"/v1/share/download?{params}"
        return ShareLinkResponse(success=True, url=url, expires_at=expires_at)

    @app.get("/v1/share/download")
    def download_shared(token: str = Query("")):
        key, obj = service.open_shared(token)
        return stream_response(key, obj)

    return app


app = create_app()
