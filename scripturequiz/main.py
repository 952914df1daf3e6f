from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from scripturequiz.config import settings
from scripturequiz.routes import admin, educator, student
from scripturequiz.scheduler import shutdown_scheduler, start_scheduler
from scripturequiz.utils.cache import close_cache, get_cache
import logging

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    get_cache()
    scheduler = start_scheduler() if settings.enable_maintenance_scheduler else None
    logger.info(f"{settings.app_name} started")
    yield
    shutdown_scheduler(scheduler)
    close_cache()

app = FastAPI(
    title=settings.app_name,
    version="1.0.0",
    description="Quiz scheduling, enrollment and reassignment API",
    lifespan=lifespan,
)

# CORS middleware for cross-origin requests (adjust origins for production)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(educator.router, prefix="/educator", tags=["Educator"])
app.include_router(student.router, prefix="/student", tags=["Student"])
app.include_router(admin.router, prefix="/admin", tags=["Admin"])

# Root endpoint
@app.get("/")
async def root():
    return {"message": f"Welcome to {settings.app_name}", "version": app.version}

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
