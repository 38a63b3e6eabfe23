"""Health check endpoint.

Learn: Simple GET endpoint that verifies the server is running
and the database is reachable. Returns 503 when it is not, so load
balancers can take the instance out of rotation.
"""

from datetime import datetime, timezone

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from sqlalchemy import text

from sparklink import __version__

router = APIRouter()


@router.get("/health")
async def health_check(request: Request):
    """Check server health and database connectivity."""
    checks = {
        "server": "ok",
        "version": __version__,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }

    try:
        async with request.app.state.engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        checks["database"] = "ok"
    except Exception as e:
        checks["database"] = f"error: {e}"

    if checks["database"] != "ok":
        return JSONResponse(status_code=503, content={"status": "degraded", **checks})
    return {"status": "healthy", **checks}
