"""
Store health probes.

Exposes liveness and readiness endpoints for the document store. Liveness only
proves the process responds. Readiness runs `MongoDBHandler.health_check`
against the configured database.

The handler and database name are read from `app.state` (`store_handler`,
`store_database`); `create_app()` wires both.

Example Kubernetes config:
```yaml
livenessProbe:
  httpGet:
    path: /store/health/liveness
    port: 8000

readinessProbe:
  httpGet:
    path: /store/health/readiness
    port: 8000
```

Endpoints are synchronous: FastAPI runs them in its thread pool, so the
blocking driver call never stalls the event loop.
"""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.responses import JSONResponse

from eiffel_store.database.handler import MongoDBHandler
from eiffel_store.managers.logging_manager import get_logger

logger = get_logger(prefix="[DB_HEALTH]")

router = APIRouter(prefix="/store/health", tags=["Store Health"])


def get_store_handler(request: Request) -> MongoDBHandler:
    return request.app.state.store_handler


def get_store_database(request: Request) -> str:
    return request.app.state.store_database


@router.get("/liveness")
def liveness_probe() -> Dict[str, Any]:
    """Returns 200 while the process is able to respond."""
    return {"status": "alive"}


@router.get("/readiness")
def readiness_probe(
    handler: MongoDBHandler = Depends(get_store_handler),
    db_name: str = Depends(get_store_database),
):
    """
    Returns 200 only if the store is reachable and the database has collections.

    Responds 503 otherwise, so traffic is withheld until the store is usable.
    """
    if handler.health_check(db_name):
        return {"status": "ready", "database": db_name}

    logger.warning("Readiness probe failed for database %s", db_name)
    return JSONResponse(status_code=503, content={"status": "not_ready", "database": db_name})


def create_app(handler: MongoDBHandler, db_name: Optional[str] = None) -> FastAPI:
    """Build a FastAPI application serving the health probes for `handler`."""
    app = FastAPI(title="eiffel-store health")
    app.state.store_handler = handler
    app.state.store_database = db_name or handler.connection.database
    app.include_router(router)
    return app
