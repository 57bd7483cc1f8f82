# vetclinic/main.py
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from vetclinic.api.exception_handlers import register_exception_handlers
from vetclinic.api.router import api_router
from vetclinic.core.config import settings

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger("vetclinic")

app = FastAPI(title=settings.PROJECT_NAME, version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.BACKEND_CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)
app.include_router(api_router, prefix=settings.API_V1_STR)

logger.info("%s ready (api prefix %s, tax %s %s)", settings.PROJECT_NAME,
            settings.API_V1_STR, settings.TAX_LABEL,
            ", ".join(str(r) for r in settings.TAX_RATES))


@app.get("/", tags=["Health"])
def health():
    return {"status": "ok", "service": settings.PROJECT_NAME}
