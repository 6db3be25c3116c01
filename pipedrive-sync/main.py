from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

import service
from logging_config import configure_logging
from routers import analytics as analytics_router
from routers import goals as goals_router
from routers import pipedrive as pipedrive_router

configure_logging()


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    await service.close_service()


app = FastAPI(title="Pipedrive Sync", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.include_router(pipedrive_router.router, prefix="/api")
app.include_router(goals_router.router, prefix="/api")
app.include_router(analytics_router.router, prefix="/api")

# --- API Endpoints ---
@app.get("/")
def read_root():
    return {"status": "Pipedrive sync is running!"}
