"""
HTTP API for the storage service.

Routes:
    GET  /status                  Availability, balance and price per MiB
    POST /upload                  Multipart upload (201)
    GET  /file/{locator}          Raw stored bytes
    GET  /verify/{locator}        Confirmation state
    GET  /transaction/{locator}   Decoded network metadata
    POST /cost                    Price quote for a size
    GET  /records/{record_id}     File record and verification history

Error bodies are ``PermastoreError.to_dict()``:
``{code, message, recoverable, details?, suggestedAction?}``.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Dict, List, Optional, Tuple, Type

from fastapi import APIRouter, FastAPI, File, Form, Header, Request, UploadFile
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, ConfigDict, Field

from permastore.errors.storage import (
    CircuitBreakerOpenError,
    ContentNotFoundError,
    EmptyFileError,
    FileTooLargeError,
    FundingTimeoutError,
    GatewayNotReadyError,
    InsufficientSourceFundsError,
    InvalidStateTransitionError,
    InvalidTagError,
    NoGatewayAvailableError,
    StorageError,
    UnsupportedFileTypeError,
    UploadCancelledError,
)
from permastore.storage.service import StorageService
from permastore.storage.types import UploadOptions
from permastore.utils.logging import configure_logging, get_logger
from permastore.utils.security import is_valid_locator, safe_json_parse
from permastore.version import __version__

_logger = get_logger(__name__)

# First match wins; anything else is an upstream gateway failure (502)
ERROR_STATUS: List[Tuple[Type[StorageError], int]] = [
    (UnsupportedFileTypeError, 400),
    (FileTooLargeError, 400),
    (EmptyFileError, 400),
    (InvalidTagError, 400),
    (InsufficientSourceFundsError, 402),
    (ContentNotFoundError, 404),
    (InvalidStateTransitionError, 409),
    (UploadCancelledError, 499),
    (NoGatewayAvailableError, 503),
    (GatewayNotReadyError, 503),
    (CircuitBreakerOpenError, 503),
    (FundingTimeoutError, 504),
]


def status_for(error: StorageError) -> int:
    for error_type, status in ERROR_STATUS:
        if isinstance(error, error_type):
            return status
    return 502


def _error(status: int, code: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status,
        content={"code": code, "message": message, "recoverable": False},
    )


class CostRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    size_in_bytes: int = Field(..., alias="sizeInBytes")


def get_service(request: Request) -> StorageService:
    return request.app.state.service


router = APIRouter(tags=["storage"])


@router.get("/status")
async def storage_status(request: Request):
    """Storage network availability."""
    status = await get_service(request).get_status()
    return status.model_dump(by_alias=True, exclude_none=True)


@router.post("/upload", status_code=201)
async def upload_file(
    request: Request,
    file: UploadFile = File(...),
    vault_id: str = Form(..., alias="vaultId"),
    file_name: Optional[str] = Form(default=None, alias="fileName"),
    file_type: Optional[str] = Form(default=None, alias="fileType"),
    encrypt: bool = Form(default=False),
    security_level: str = Form(default="standard", alias="securityLevel"),
    cross_chain_verify: bool = Form(default=False, alias="crossChainVerify"),
    min_networks: Optional[int] = Form(default=None, alias="minNetworks"),
    tags: Optional[str] = Form(default=None),
    user_id: Optional[str] = Header(default=None, alias="X-User-Id"),
):
    """Store an uploaded file permanently."""
    if not user_id:
        return _error(401, "UNAUTHENTICATED", "Missing X-User-Id header")

    service = get_service(request)
    if security_level not in service.config.tier_limits:
        return _error(400, "INVALID_SECURITY_LEVEL", f"Unknown security level: {security_level}")

    custom_tags: Optional[Dict[str, str]] = None
    if tags:
        try:
            parsed = safe_json_parse(tags)
        except ValueError as e:
            return _error(400, "INVALID_TAG", f"Invalid tags JSON: {e}")
        if not isinstance(parsed, dict):
            return _error(400, "INVALID_TAG", "Tags must be a JSON object")
        custom_tags = parsed

    data = await file.read()
    result = await service.upload(
        data,
        file_name or file.filename or "unnamed",
        file_type or file.content_type or "application/octet-stream",
        user_id=user_id,
        vault_id=vault_id,
        options=UploadOptions(
            encrypt=encrypt,
            security_tier=security_level,  # type: ignore[arg-type]
            cross_chain_verify=cross_chain_verify,
            min_networks=min_networks,
            tags=custom_tags,
        ),
    )
    return result.model_dump(by_alias=True, mode="json")


@router.get("/file/{locator}")
async def download_file(locator: str, request: Request):
    """Raw stored bytes."""
    if not is_valid_locator(locator):
        return _error(400, "INVALID_LOCATOR", "Malformed locator")
    result = await get_service(request).get_file(locator)
    return Response(content=result.data, media_type="application/octet-stream")


@router.get("/verify/{locator}")
async def verify_file(locator: str, request: Request):
    """Whether the locator is confirmed on the network."""
    if not is_valid_locator(locator):
        return _error(400, "INVALID_LOCATOR", "Malformed locator")
    verified = await get_service(request).verify_file(locator)
    return {"verified": verified}


@router.get("/transaction/{locator}")
async def transaction_info(locator: str, request: Request):
    """Network metadata of a stored object."""
    if not is_valid_locator(locator):
        return _error(400, "INVALID_LOCATOR", "Malformed locator")
    info = await get_service(request).get_transaction_info(locator)
    return info.model_dump(by_alias=True)


@router.post("/cost")
async def upload_cost(body: CostRequest, request: Request):
    """Price quote in atomic units."""
    if body.size_in_bytes <= 0:
        return _error(400, "INVALID_SIZE", "sizeInBytes must be positive")
    cost = await get_service(request).calculate_upload_cost(body.size_in_bytes)
    return {"cost": str(cost)}


@router.get("/records/{record_id}")
async def file_record(record_id: str, request: Request):
    """File record with its verification attempts."""
    found = get_service(request).get_record(record_id)
    if found is None:
        return _error(404, "RECORD_NOT_FOUND", f"No file record {record_id}")
    record, verifications = found
    return {
        "fileRecord": record.snapshot.model_dump(by_alias=True, mode="json"),
        "verifications": [
            v.model_dump(by_alias=True, mode="json") for v in verifications
        ],
    }


async def storage_error_handler(request: Request, exc: StorageError) -> JSONResponse:
    status = status_for(exc)
    _logger.warning(
        "Request failed",
        extra={"path": request.url.path, "code": exc.code, "status_code": status},
    )
    return JSONResponse(status_code=status, content=exc.to_dict())


def create_app(service: StorageService, *, initialize: bool = True) -> FastAPI:
    """
    Build the FastAPI app around an explicitly constructed service.

    Installs the structured log handler at the service's configured level.

    Args:
        service: Service to expose; closed when the app shuts down
        initialize: Connect the service on startup unless already ready
    """
    configure_logging(service.config.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if initialize and not service.is_ready:
            try:
                await service.initialize()
            except StorageError as e:
                # Still serve; /status reports the gateway as unavailable
                _logger.error(
                    "Storage service failed to initialize",
                    extra={"code": e.code, "error": e.message},
                )
        yield
        await service.close()

    app = FastAPI(
        title="permastore",
        version=__version__,
        description="Permanent file storage on Arweave.",
        lifespan=lifespan,
    )
    app.state.service = service
    app.add_exception_handler(StorageError, storage_error_handler)
    app.include_router(router)
    return app
