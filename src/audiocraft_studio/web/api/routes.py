"""HTTP route definitions for the API."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Request, UploadFile
from fastapi.responses import FileResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel
from starlette.background import BackgroundTask

from ... import SERVICE_NAME, __version__
from ...features.pipeline import ProcessingError
from ..services.accounts import (
    Account,
    AccountExistsError,
    AccountNotFoundError,
    AuthService,
    InvalidCredentialsError,
    InvalidTokenError,
    NoCreditsError,
)
from ..services.enhance import EnhanceService, UploadTooLargeError

router = APIRouter(prefix="/api")

_bearer = HTTPBearer(auto_error=False)


class Credentials(BaseModel):
    email: str = ""
    password: str = ""


def get_auth_service(request: Request) -> AuthService:
    service = getattr(request.app.state, "auth_service", None)
    if service is None:
        raise RuntimeError("AuthService has not been configured on the FastAPI app")
    return service


def get_enhance_service(request: Request) -> EnhanceService:
    service = getattr(request.app.state, "enhance_service", None)
    if service is None:
        raise RuntimeError("EnhanceService has not been configured on the FastAPI app")
    return service


def get_current_account(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer),
    auth: AuthService = Depends(get_auth_service),
) -> Account:
    token = credentials.credentials if credentials else None
    try:
        return auth.resolve_token(token)
    except InvalidTokenError as exc:
        raise HTTPException(status_code=401, detail=str(exc)) from exc
    except AccountNotFoundError as exc:
        raise HTTPException(status_code=404, detail="User not found") from exc


def _auth_payload(account: Account, token: str | None = None) -> dict[str, Any]:
    payload: dict[str, Any] = {"success": True, "user": account.public()}
    if token is not None:
        payload["token"] = token
    return payload


@router.post("/auth/signup")
async def signup(body: Credentials, auth: AuthService = Depends(get_auth_service)) -> dict[str, Any]:
    if not body.email.strip() or not body.password:
        raise HTTPException(status_code=400, detail="Email and password are required")
    try:
        account, token = auth.signup(body.email.strip(), body.password)
    except AccountExistsError as exc:
        raise HTTPException(status_code=400, detail="User already exists") from exc
    return _auth_payload(account, token)


@router.post("/auth/login")
async def login(body: Credentials, auth: AuthService = Depends(get_auth_service)) -> dict[str, Any]:
    try:
        account, token = auth.login(body.email.strip(), body.password)
    except InvalidCredentialsError as exc:
        raise HTTPException(status_code=401, detail="Invalid credentials") from exc
    return _auth_payload(account, token)


@router.get("/auth/verify")
async def verify(account: Account = Depends(get_current_account)) -> dict[str, Any]:
    return _auth_payload(account)


@router.post("/audio/enhance")
async def enhance(
    audio: UploadFile = File(...),
    settings: Optional[str] = Form(None),
    account: Account = Depends(get_current_account),
    service: EnhanceService = Depends(get_enhance_service),
) -> FileResponse:
    try:
        result = await service.process(account, audio, settings)
    except NoCreditsError as exc:
        raise HTTPException(status_code=403, detail="No credits remaining") from exc
    except UploadTooLargeError as exc:
        raise HTTPException(status_code=413, detail=str(exc)) from exc
    except ProcessingError as exc:
        raise HTTPException(status_code=500, detail=f"Processing failed: {exc.message}") from exc

    headers = {
        "X-Processing-Mode": result.mode.value,
        "X-Filter-Chain": result.outcome.chain.render(),
    }
    if result.credits_remaining is not None:
        headers["X-Credits-Remaining"] = str(result.credits_remaining)
    return FileResponse(
        result.outcome.output_path,
        media_type=result.media_type,
        filename=result.download_name,
        headers=headers,
        background=BackgroundTask(service.scheduler.release_now, result.scope),
    )


@router.get("/health")
async def health(request: Request, service: EnhanceService = Depends(get_enhance_service)) -> dict[str, Any]:
    available = await service.enhancer.engine_available()
    return {
        "status": "OK",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "environment": request.app.state.config.environment,
        "service": SERVICE_NAME,
        "version": __version__,
        "engine": "available" if available else "unavailable",
    }
