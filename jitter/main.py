"""
Jitter Engine API entry point.

    uvicorn jitter.main:app
"""

import logging

from fastapi import FastAPI

from jitter.api.routes import router
from jitter.config import LOG_LEVEL

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(
    title="Jitter Engine API",
    description="Caffeine level, CaffScore, crash risk and dose planning",
    version="0.1.0",
)

app.include_router(router, tags=["jitter"])


@app.get("/")
def root():
    return {"message": "Jitter Engine API", "docs": "/docs"}
