import logging

from fastapi import FastAPI

from labyrinth.api.routes import router
from labyrinth.content.startup import init_content_for_app

app = FastAPI(title="lobe-labyrinth", version="0.1.0")
app.include_router(router)
# Configure logging
logging.basicConfig(level=logging.DEBUG)
logger = logging.getLogger(__name__)


@app.on_event("startup")
async def _startup() -> None:
    init_content_for_app()
    logger.info("Content loaded")


@app.get("/info")
async def info() -> dict[str, str]:
    return {"name": "lobe-labyrinth", "version": "0.1.0"}
