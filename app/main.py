"""FastAPI application entry point"""

from fastapi import BackgroundTasks, Body, Depends, FastAPI, Header, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from typing import Any, Dict, Optional
import hmac
import logging

from app.config.settings import settings
from app.errors import ConfigurationError, UpstreamError
from app.orchestrator_attendance import AttendanceOrchestrator
from app.runtime import build_orchestrator

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


def create_app(
    orchestrator: Optional[AttendanceOrchestrator] = None,
    *,
    admin_token: Optional[str] = None,
    refresh_on_change: Optional[bool] = None,
) -> FastAPI:
    """Build the attendance API around one orchestrator instance."""
    app = FastAPI(
        title=settings.APP_NAME,
        description="Raid attendance roll-up service",
        version=settings.APP_VERSION,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.CORS_ORIGIN],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    runner = orchestrator or build_orchestrator()
    store = runner.state_store
    token = admin_token if admin_token is not None else (settings.ATTEND_ADMIN_TOKEN or "")
    auto_refresh = settings.ATTENDANCE_REFRESH_ON_CHANGE if refresh_on_change is None else refresh_on_change

    @app.exception_handler(HTTPException)
    async def http_error_handler(_request: Request, exc: HTTPException):
        return _error(exc.status_code, str(exc.detail))

    def require_admin(authorization: Optional[str] = Header(default=None)) -> None:
        if not token:
            raise HTTPException(status_code=401, detail="Server missing ATTEND_ADMIN_TOKEN")
        supplied = authorization[7:].strip() if authorization and authorization.startswith("Bearer ") else ""
        if not supplied or not hmac.compare_digest(supplied, token):
            raise HTTPException(status_code=403, detail="Forbidden")

    def after_change(background_tasks: BackgroundTasks) -> None:
        """Cached roll-ups are stale once admin state moves."""
        runner.snapshot_cache.mark_stale()
        if auto_refresh:
            background_tasks.add_task(refresh_in_background)

    async def refresh_in_background() -> None:
        result = await runner.run_job()
        if result.get("success"):
            logger.info(f"Background attendance refresh completed: {result.get('stats')}")
        else:
            logger.error(f"Background attendance refresh failed: {result.get('error')}")

    @app.get("/api/health")
    async def health_check():
        """Health check endpoint"""
        return {"status": "ok", "service": "raid-attendance", "version": settings.APP_VERSION}

    @app.get("/api/attendance")
    async def cached_rollup():
        """Last successful roll-up, flagged stale after admin edits"""
        cached = runner.snapshot_cache.latest()
        if cached is None:
            return _error(404, "No attendance roll-up has been computed yet")
        return {**cached.payload, "storedAt": cached.stored_at.isoformat(), "stale": cached.stale}

    @app.get("/api/attendance/refresh")
    async def refresh_rollup():
        """Recompute the roll-up now"""
        logger.info("Attendance refresh triggered")
        try:
            return await runner.refresh()
        except ConfigurationError as e:
            return _error(500, str(e))
        except UpstreamError as e:
            return _error(502, str(e))
        except TimeoutError:
            return _error(504, "Attendance refresh timed out")

    # Export / import

    @app.get("/api/attendance/state")
    async def export_state():
        return store.export_state()

    @app.post("/api/attendance/import", dependencies=[Depends(require_admin)])
    async def import_state(background_tasks: BackgroundTasks, body: Dict[str, Any] = Body(default_factory=dict)):
        try:
            store.import_state(body)
        except ValueError as e:
            return _error(400, str(e))
        after_change(background_tasks)
        return {"ok": True}

    # Overrides

    @app.get("/api/attendance/overrides")
    async def list_overrides():
        return {"overrides": store.list_overrides()}

    @app.post("/api/attendance/override", dependencies=[Depends(require_admin)])
    async def set_override(background_tasks: BackgroundTasks, body: Dict[str, Any] = Body(default_factory=dict)):
        try:
            row = store.set_override(body.get("dateKey"), body.get("name"), body.get("fractional"))
        except ValueError as e:
            return _error(400, str(e))
        after_change(background_tasks)
        return {"ok": True, "dateKey": row.dateKey, "name": row.name, "fractional": row.fractional}

    @app.delete("/api/attendance/override", dependencies=[Depends(require_admin)])
    async def remove_override(background_tasks: BackgroundTasks, body: Dict[str, Any] = Body(default_factory=dict)):
        try:
            store.remove_override(body.get("dateKey"), body.get("name"))
        except ValueError as e:
            return _error(400, str(e))
        except KeyError:
            return _error(404, "not found")
        after_change(background_tasks)
        return {"ok": True}

    # Alt map

    @app.get("/api/attendance/alt-map")
    async def list_aliases():
        return {"links": store.list_aliases()}

    @app.post("/api/attendance/alt-map", dependencies=[Depends(require_admin)])
    async def set_alias(background_tasks: BackgroundTasks, body: Dict[str, Any] = Body(default_factory=dict)):
        try:
            link = store.set_alias(body.get("alt"), body.get("main"))
        except ValueError as e:
            return _error(400, str(e))
        after_change(background_tasks)
        return {"ok": True, "alt": link.alt, "main": link.main}

    @app.delete("/api/attendance/alt-map", dependencies=[Depends(require_admin)])
    async def remove_alias(background_tasks: BackgroundTasks, body: Dict[str, Any] = Body(default_factory=dict)):
        try:
            store.remove_alias(body.get("alt"))
        except ValueError as e:
            return _error(400, str(e))
        except KeyError:
            return _error(404, "not found")
        after_change(background_tasks)
        return {"ok": True}

    # Excluded dates

    @app.get("/api/attendance/excluded")
    async def list_excluded():
        return {"dates": store.list_excluded()}

    @app.post("/api/attendance/excluded", dependencies=[Depends(require_admin)])
    async def set_excluded(background_tasks: BackgroundTasks, body: Dict[str, Any] = Body(default_factory=dict)):
        try:
            row = store.set_excluded(body.get("dateKey"), body.get("reason"))
        except ValueError as e:
            return _error(400, str(e))
        after_change(background_tasks)
        return {"ok": True, "dateKey": row.dateKey, "reason": row.reason}

    @app.delete("/api/attendance/excluded", dependencies=[Depends(require_admin)])
    async def remove_excluded(background_tasks: BackgroundTasks, body: Dict[str, Any] = Body(default_factory=dict)):
        try:
            store.remove_excluded(body.get("dateKey"))
        except ValueError as e:
            return _error(400, str(e))
        except KeyError:
            return _error(404, "not found")
        after_change(background_tasks)
        return {"ok": True}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=4000,
        reload=True
    )
