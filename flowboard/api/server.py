"""
FastAPI server for Flowboard
"""
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .routes import router
from ..core.bootstrap import get_container
from ..core.config import Config
from ..utils.logger import get_logger

logger = get_logger(__name__)

app = FastAPI(title="Flowboard API", version="0.1.0")

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # In production, restrict this
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(router, prefix="/api/v1")


@app.on_event("startup")
async def startup():
    """Initialize services on startup"""
    app.state.container = get_container(mode=Config.MODE)


@app.on_event("shutdown")
async def shutdown():
    """Stop polling and write out pending parameter edits"""
    container = getattr(app.state, "container", None)
    if container is not None:
        await container.boards.close()
        logger.info("Board sessions closed")


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "service": "Flowboard",
        "version": "0.1.0",
        "mode": Config.MODE,
        "status": "running"
    }


@app.get("/health")
async def health():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "mode": Config.MODE
    }

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=Config.API_HOST, port=Config.API_PORT)
