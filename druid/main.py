import logging
import os
import sys

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from druid.middleware.rate_limiter import ModelRateLimitMiddleware

from druid.api.routes_bots import router as bots_router
from druid.api.routes_chat import router as chat_router
from druid.api.routes_deploy import router as deploy_router
from druid.api.routes_listings import router as listings_router
from druid.api.routes_logs import router as logs_router, log_handler
from druid.api.routes_messages import router as messages_router
from druid.api.routes_persona import router as persona_router
from druid.api.routes_settings import router as settings_router
from druid.bots.storage import StorageError

__version__ = "0.1.0"

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    stream=sys.stdout,
)
logging.getLogger().addHandler(log_handler)
logger = logging.getLogger(__name__)

app = FastAPI(title="Druid AI Backend", version=__version__)

app.add_middleware(ModelRateLimitMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        o.strip()
        for o in os.environ.get(
            "DRUID_CORS_ORIGINS", "http://localhost:5173,http://127.0.0.1:5173"
        ).split(",")
        if o.strip()
    ],
    allow_credentials=False,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
)

app.include_router(bots_router)
app.include_router(messages_router)
app.include_router(persona_router)
app.include_router(chat_router)
app.include_router(deploy_router)
app.include_router(listings_router)
app.include_router(settings_router)
app.include_router(logs_router)


@app.exception_handler(StorageError)
async def storage_error_handler(request: Request, exc: StorageError):
    logger.error("Storage error on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse({"detail": "Storage error"}, status_code=500)


@app.get("/api/health")
async def health_check():
    return {"status": "ok", "version": __version__}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="127.0.0.1", port=8765)
