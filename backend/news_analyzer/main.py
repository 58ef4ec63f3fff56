from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from loguru import logger

from news_analyzer.config import settings
from news_analyzer.database import init_db
from news_analyzer.exceptions import NewsAnalyzerError
from news_analyzer.api.v1 import analysis, articles, config, feeds, health, news
from news_analyzer.services.feeds import FeedService
from news_analyzer.services.orchestrator import build_orchestrator
from news_analyzer.utils.log_setup import setup_logging


# Lifespan context manager for startup and shutdown
@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    setup_logging()
    logger.info("Starting News Analyzer API...")
    logger.info(f"Initializing database at {settings.DATABASE_URL}")
    init_db()
    logger.info("Database initialized successfully")

    orchestrator = build_orchestrator()
    recovered = orchestrator.recover_interrupted()
    if recovered:
        logger.info(f"Recovered {len(recovered)} interrupted task(s)")
    app.state.orchestrator = orchestrator
    app.state.feeds = FeedService(orchestrator.session_factory, orchestrator.articles)
    logger.info(f"Orchestrator ready (concurrency {orchestrator.concurrency} per task)")

    yield

    # Shutdown
    logger.info("Shutting down News Analyzer API...")
    await orchestrator.shutdown()
    logger.info("Orchestrator stopped")


# Create FastAPI application
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="LLM-based classification of WeChat and RSS news articles",
    lifespan=lifespan
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(NewsAnalyzerError)
async def news_analyzer_error_handler(request: Request, exc: NewsAnalyzerError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


# Include routers
app.include_router(health.router, prefix="/api/v1")
app.include_router(analysis.router, prefix="/api/v1")
app.include_router(news.router, prefix="/api/v1")
app.include_router(articles.router, prefix="/api/v1")
app.include_router(feeds.router, prefix="/api/v1")
app.include_router(config.router, prefix="/api/v1")


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "name": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "status": "running",
        "docs": "/docs",
        "health": "/api/v1/health"
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "news_analyzer.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG
    )
