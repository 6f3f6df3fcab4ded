"""HTTP surface for the extraction backend, mounted under /api/sportsengine."""

import asyncio
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, FastAPI, Header, Request
from fastapi.responses import JSONResponse
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field

from se_migrator.backends.base_backend import (
    AuthenticationError,
    BackendUnavailableError,
    ExtractionBackend,
    ExtractionError,
    MigratorError,
    SessionExpiredError,
    UnsupportedOperationError,
)
from se_migrator.models.team import ExtractedData
from se_migrator.sessions.store import SessionStore

API_PREFIX = "/api/sportsengine"

# Most specific first
ERROR_STATUS = (
    (SessionExpiredError, 401),
    (AuthenticationError, 401),
    (ExtractionError, 502),
    (BackendUnavailableError, 503),
    (UnsupportedOperationError, 400),
)


class CredentialsBody(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None


class SubmitExtractedDataBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    extracted_data: Optional[ExtractedData] = Field(None, alias="extractedData")


class MissingTokenError(MigratorError):
    pass


def status_for(exc: MigratorError) -> int:
    for exc_type, status in ERROR_STATUS:
        if isinstance(exc, exc_type):
            return status
    return 500


def bearer_token(authorization: Optional[str] = Header(None)) -> str:
    token = (authorization or "").replace("Bearer ", "", 1).strip()
    if not token:
        raise MissingTokenError("No authorization token provided")
    return token


def _bad_request(message: str, **extra: Any) -> JSONResponse:
    return JSONResponse(status_code=400, content={**extra, "message": message, "error": message})


async def _sweep_sessions(store: SessionStore, interval_seconds: int) -> None:
    while True:
        await asyncio.sleep(interval_seconds)
        store.sweep_expired()


def create_app(
    backend: ExtractionBackend,
    store: SessionStore,
    sweep_interval_seconds: int = 900,
) -> FastAPI:
    app = FastAPI(title="SportsEngine Migrator")
    app.state.backend = backend
    app.state.store = store
    router = APIRouter(prefix=API_PREFIX)

    @app.exception_handler(MissingTokenError)
    async def missing_token_handler(request: Request, exc: MissingTokenError) -> JSONResponse:
        return JSONResponse(status_code=401, content={"success": False, "error": str(exc)})

    @app.exception_handler(MigratorError)
    async def migrator_error_handler(request: Request, exc: MigratorError) -> JSONResponse:
        status = status_for(exc)
        message = str(exc)
        if isinstance(exc, BackendUnavailableError):
            message = "Extraction service is temporarily unavailable, please retry later"
        elif status == 500:
            message = "Internal server error"
        logger.warning(f"{request.method} {request.url.path} -> {status}: {exc}")
        return JSONResponse(
            status_code=status, content={"success": False, "error": message, "message": message}
        )

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception(f"Unhandled error on {request.method} {request.url.path}: {exc}")
        return JSONResponse(
            status_code=500, content={"success": False, "error": "Internal server error"}
        )

    # --- Authentication ---

    @router.post("/authenticate")
    async def authenticate(body: CredentialsBody):
        if not body.email or not body.password:
            return _bad_request("Email and password are required", success=False)
        logger.info(f"Authentication attempt for: {body.email}")
        result = await backend.authenticate(body.email, body.password)
        if not result.success:
            return JSONResponse(
                status_code=401,
                content={"success": False, "message": result.message or "Authentication failed"},
            )
        return {
            "success": True,
            "token": result.token,
            "taskId": result.task_id,
            "taskUrl": result.task_url,
            "sessionData": result.session_data
            or {"token": result.token, "taskId": result.task_id, "taskUrl": result.task_url},
            "message": result.message,
        }

    @router.post("/validate")
    async def validate(body: CredentialsBody):
        if not body.email or not body.password:
            return _bad_request("Email and password are required", valid=False)
        return (await backend.validate_credentials(body.email, body.password)).to_wire()

    @router.get("/test")
    async def test_connection(token: str = Depends(bearer_token)):
        return (await backend.test_connection(token)).to_wire()

    @router.delete("/session")
    async def disconnect(token: str = Depends(bearer_token)):
        backend.disconnect(token)
        return {"success": True, "message": "Session closed"}

    # --- Extraction ---

    @router.get("/organizations")
    async def organizations(token: str = Depends(bearer_token)):
        orgs = await backend.get_organizations(token)
        return {"organizations": [o.to_wire() for o in orgs], "count": len(orgs)}

    @router.get("/organizations/{organization_id}/teams")
    async def teams(organization_id: str, token: str = Depends(bearer_token)):
        found = await backend.get_teams_for_organization(token, organization_id)
        return {"teams": [t.to_wire() for t in found], "count": len(found)}

    @router.get("/teams/{team_id}/roster")
    async def roster(team_id: str, token: str = Depends(bearer_token)):
        result = await backend.get_team_roster(token, team_id)
        return {
            "roster": result.to_wire(),
            "playerCount": len(result.players),
            "staffCount": len(result.staff),
        }

    @router.get("/migration-preview")
    async def migration_preview(token: str = Depends(bearer_token)):
        return {"preview": (await backend.get_migration_preview(token)).to_wire()}

    # --- Delegated tasks ---

    @router.post("/manus-webhook")
    async def task_webhook(payload: Dict[str, Any] = Body(...)):
        logger.info(f"Received task notification: {payload.get('event_type')}")
        applied = await backend.handle_notification(payload)
        return {"success": True, "message": "Webhook notification processed", "applied": applied}

    @router.post("/check-task-completion")
    async def check_task_completion(token: str = Depends(bearer_token)):
        result = await backend.check_task_completion(token)
        return {
            "success": True,
            "completed": result.completed,
            "message": result.message,
            "data": result.data.to_wire() if result.data else None,
        }

    @router.post("/submit-extracted-data")
    async def submit_extracted_data(
        body: SubmitExtractedDataBody, token: str = Depends(bearer_token)
    ):
        if body.extracted_data is None:
            return _bad_request("No extracted data provided", success=False)
        stored = await backend.submit_extracted_data(token, body.extracted_data)
        return {
            "success": True,
            "message": "Extracted data stored successfully",
            "teamsCount": len(stored.teams),
        }

    app.include_router(router)

    @app.get("/health")
    async def health() -> dict:
        """Simple health check endpoint."""
        return {"status": "ok", "backend": backend.name}

    @app.on_event("startup")
    async def on_startup() -> None:
        await backend.start()
        app.state.sweeper = asyncio.create_task(
            _sweep_sessions(store, sweep_interval_seconds)
        )
        logger.info(f"API ready with the {backend.name} backend.")

    @app.on_event("shutdown")
    async def on_shutdown() -> None:
        sweeper: Optional[asyncio.Task] = getattr(app.state, "sweeper", None)
        if sweeper is not None:
            sweeper.cancel()
        await backend.close()
        logger.info("API shutdown complete.")

    return app
