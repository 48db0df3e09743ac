import logging
from fastapi import FastAPI
from threadmine.config import get_settings
from threadmine.api.routes import classify, fetch, graph, messages

settings = get_settings()

# Configure application logging
logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)

# Set log level for threadmine modules
logger = logging.getLogger("threadmine")
logger.setLevel(logging.DEBUG if settings.debug else logging.INFO)

app = FastAPI(
    title=settings.app_name,
    description="Slack and GitHub conversation mining: threads, reply graph, heuristic labels",
    version="0.1.0",
)

# Include routers
app.include_router(fetch.router, prefix="/api/fetch", tags=["Fetch"])
app.include_router(graph.router, prefix="/api/graph", tags=["Reply Graph"])
app.include_router(classify.router, prefix="/api/classify", tags=["Classification"])
app.include_router(messages.router, prefix="/api/messages", tags=["Messages"])


@app.get("/")
async def root():
    return {
        "message": "Welcome to ThreadMine",
        "version": "0.1.0",
        "endpoints": {
            "fetch": "/api/fetch",
            "graph": "/api/graph",
            "classify": "/api/classify",
            "messages": "/api/messages",
            "health": "/health",
            "docs": "/docs",
        },
    }


@app.get("/health")
async def health_check():
    return {"status": "healthy", "service": settings.app_name}
