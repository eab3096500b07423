"""
nshot FastAPI service

Decodes push / fetch / admin requests, hands them to the NShotService and
turns typed failures into HTTP error responses.
"""

import base64
import binascii
import logging
import secrets
from datetime import datetime, timezone
from typing import Dict, Any, List, Optional

from fastapi import FastAPI, HTTPException, Depends, Header, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, ValidationError

from .errors import (
    NShotError,
    NotFoundError,
    ExhaustedError,
    AlreadyExistsError,
    PayloadTooLargeError,
    UnsupportedCommandError,
    InvalidRequestError,
)
from .models.operations import AdminCommand
from .nshot_service import NShotService


logger = logging.getLogger(__name__)

_STATUS_BY_ERROR = {
    NotFoundError: 404,
    ExhaustedError: 410,
    AlreadyExistsError: 409,
    PayloadTooLargeError: 413,
    UnsupportedCommandError: 400,
    InvalidRequestError: 400,
}

# Room for the JSON keys and quoting around a base64 payload
_BODY_ENVELOPE_BYTES = 1024


# Pydantic models for request/response validation
class PushRequest(BaseModel):
    data: Optional[str] = Field(None, description="Payload as text, stored as UTF-8 bytes")
    payload_b64: Optional[str] = Field(None, description="Payload as base64, for binary content")

    @classmethod
    def parse_body(cls, raw: bytes) -> 'PushRequest':
        try:
            return cls.model_validate_json(raw)
        except ValidationError as e:
            raise InvalidRequestError(f"Malformed push body: {e.error_count()} validation error(s)") from e

    def to_bytes(self) -> bytes:
        if self.payload_b64 is not None:
            try:
                return base64.b64decode(self.payload_b64, validate=True)
            except (binascii.Error, ValueError) as e:
                raise InvalidRequestError(f"payload_b64 is not valid base64: {e}")
        if self.data is not None:
            return self.data.encode("utf-8")
        raise InvalidRequestError("Request body must contain 'data' or 'payload_b64'")


class PushResponse(BaseModel):
    success: bool = True
    entry_id: str
    size: int
    remaining: int


class FetchResponse(BaseModel):
    success: bool = True
    entry_id: str
    data: Optional[str] = Field(None, description="Payload decoded as UTF-8, null for binary payloads")
    payload_b64: str
    remaining: int
    exhausted: bool
    token: str


class AdminResponse(BaseModel):
    success: bool = True
    command: str
    entry_id: Optional[str] = None
    changed: bool
    entries: List[Dict[str, Any]]


class ErrorResponse(BaseModel):
    success: bool = False
    error_code: str
    error_message: str


def get_service(request: Request) -> NShotService:
    """Return the service attached to the application"""
    return request.app.state.service


async def require_admin(
    request: Request,
    x_admin_token: Optional[str] = Header(None, alias="X-Admin-Token")
) -> None:
    """Check the admin token when one is configured"""
    expected = request.app.state.service.settings.admin_token
    if expected is None:
        return
    if not x_admin_token or not secrets.compare_digest(x_admin_token, expected):
        raise HTTPException(status_code=401, detail="Missing or invalid X-Admin-Token header")


def body_limit(max_payload_bytes: int) -> int:
    """Largest push body accepted: a base64-encoded full payload plus the JSON envelope"""
    return 4 * ((max_payload_bytes + 2) // 3) + _BODY_ENVELOPE_BYTES


async def read_push_body(request: Request) -> bytes:
    """
    Read a push body, stopping as soon as it passes the body limit

    Chunked bodies carry no Content-Length, so the limit is enforced on the
    bytes actually received.
    """
    limit = body_limit(request.app.state.service.settings.max_payload_bytes)
    length = request.headers.get("content-length")
    if length is not None and length.isdigit() and int(length) > limit:
        raise HTTPException(status_code=413, detail=f"Request body exceeds {limit} bytes")

    received = bytearray()
    async for chunk in request.stream():
        received.extend(chunk)
        if len(received) > limit:
            raise HTTPException(status_code=413, detail=f"Request body exceeds {limit} bytes")
    return bytes(received)


def create_app(service: NShotService) -> FastAPI:
    """
    Build the FastAPI application around a constructed service

    Args:
        service: Process-lifetime NShotService

    Returns:
        FastAPI app
    """
    app = FastAPI(
        title="nshot",
        description="N-time-use secret exchange",
        version="0.1.0"
    )
    app.state.service = service

    @app.exception_handler(NShotError)
    async def nshot_error_handler(request: Request, exc: NShotError):
        status_code = _STATUS_BY_ERROR.get(type(exc), 500)
        if status_code == 500:
            logger.error(f"Internal error on {request.url.path}: {exc}")
            message = "Internal server error"
        else:
            message = str(exc)
        body = ErrorResponse(error_code=exc.error_code, error_message=message)
        return JSONResponse(status_code=status_code, content=body.model_dump())

    @app.on_event("startup")
    async def startup_event():
        await service.cleanup_audit()

    @app.on_event("shutdown")
    async def shutdown_event():
        await service.close()

    @app.get("/health", tags=["Health"])
    async def health_check():
        """Health check endpoint"""
        return {"status": "healthy", "timestamp": datetime.now(timezone.utc).isoformat()}

    @app.post("/api/post/{entry_id}", response_model=PushResponse, tags=["Access"],
              openapi_extra={"requestBody": {
                  "required": True,
                  "content": {"application/json": {"schema": PushRequest.model_json_schema()}},
              }})
    async def push(entry_id: str, raw: bytes = Depends(read_push_body),
                   svc: NShotService = Depends(get_service)):
        """Store a payload under a provisioned identifier"""
        body = PushRequest.parse_body(raw)
        result = await svc.push(entry_id, body.to_bytes())
        return PushResponse(entry_id=result.entry_id, size=result.size, remaining=result.remaining)

    @app.get("/api/get/{entry_id}/{token}", response_model=FetchResponse, tags=["Access"])
    async def fetch(entry_id: str, token: str, svc: NShotService = Depends(get_service)):
        """Read a payload, consuming one unit of the identifier's budget"""
        result = await svc.fetch(entry_id, token)
        try:
            text = result.payload.decode("utf-8")
        except UnicodeDecodeError:
            text = None
        return FetchResponse(
            entry_id=result.entry_id,
            data=text,
            payload_b64=base64.b64encode(result.payload).decode("ascii"),
            remaining=result.remaining,
            exhausted=result.exhausted,
            token=result.token
        )

    async def _run_admin(command: str, argument: Optional[str], svc: NShotService) -> AdminResponse:
        resolved = AdminCommand.parse(command)
        result = await svc.admin(resolved, argument)
        data = result.to_dict()
        return AdminResponse(**data)

    @app.get("/api/adm/{command}", response_model=AdminResponse, tags=["Admin"],
             dependencies=[Depends(require_admin)])
    async def admin_without_argument(command: str, svc: NShotService = Depends(get_service)):
        """Run an admin command that needs no identifier (inspect all, create)"""
        return await _run_admin(command, None, svc)

    @app.get("/api/adm/{command}/{argument}", response_model=AdminResponse, tags=["Admin"],
             dependencies=[Depends(require_admin)])
    async def admin(command: str, argument: str, svc: NShotService = Depends(get_service)):
        """Run an admin command against an identifier"""
        return await _run_admin(command, argument, svc)

    @app.get("/api/events", tags=["Admin"], dependencies=[Depends(require_admin)])
    async def list_events(entry_id: Optional[str] = None, limit: int = 100,
                          svc: NShotService = Depends(get_service)):
        """Recent audit events, newest first"""
        events = await svc.list_events(entry_id=entry_id, limit=limit)
        return {"success": True, "events": [event.to_dict() for event in events], "count": len(events)}

    @app.get("/api/stats", tags=["Admin"], dependencies=[Depends(require_admin)])
    async def stats(svc: NShotService = Depends(get_service)):
        """Registry and storage statistics"""
        stats = svc.get_stats()
        stats['outcomes'] = await svc.get_outcome_counts()
        return {"success": True, "stats": stats}

    @app.post("/api/purge", tags=["Admin"], dependencies=[Depends(require_admin)])
    async def purge(svc: NShotService = Depends(get_service)):
        """Delete the payloads of every exhausted identifier"""
        purged = await svc.purge_exhausted()
        return {"success": True, "purged": purged}

    return app
