from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from .api import health, swap
from .config import settings
from .logging_config import setup_logging
from .middleware import RequestLoggingMiddleware

setup_logging()

# Create FastAPI app
app = FastAPI(
    title="DustSwap API",
    description="Multi-token dust consolidation swaps",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.app_origin] if settings.app_origin else ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(RequestLoggingMiddleware)

# Include routers
app.include_router(health.router, tags=["Health"])
app.include_router(swap.router, tags=["Swap"])


@app.get("/")
async def root():
    """Root endpoint with basic info"""
    return {
        "name": "DustSwap API",
        "version": "0.1.0",
        "description": "Multi-token dust consolidation swaps",
        "docs": "/docs",
        "health": "/healthz"
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "dustswap.main:app",
        host=settings.host,
        port=settings.port,
        reload=True,
        log_level=settings.log_level.lower()
    )
