import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager

from api.src.db.database import get_engine, init_db
from api.src.routes import health_router, pipelines_router, triggers_router, webhooks_router
from api.src.services.dispatch import create_dispatcher

logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info("Starting pushdeploy API")
    await init_db()
    app.state.dispatcher = create_dispatcher()
    yield
    # Shutdown
    logger.info("Shutting down pushdeploy API, waiting for active runs")
    app.state.dispatcher.shutdown(wait=True)
    await get_engine().dispose()

app = FastAPI(
    title="pushdeploy",
    description="Push-triggered build and deploy pipelines",
    version="0.1.0",
    lifespan=lifespan
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(health_router)
app.include_router(pipelines_router, prefix="/api")
app.include_router(triggers_router, prefix="/api")
app.include_router(webhooks_router, prefix="/api")

@app.get("/")
async def root():
    return {
        "name": "pushdeploy",
        "version": "0.1.0",
        "docs": "/docs"
    }
