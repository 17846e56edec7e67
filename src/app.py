"""Main FastAPI application module.

This module initializes the FastAPI application and registers all route handlers.
"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from core.logging_config import setup_logging
from config import (
    CORS_ALLOWED_ORIGINS,
    API_HOST,
    API_PORT,
)
from api.error_handlers import register_exception_handlers
from api.routes import auth, invite_code, user

# Setup logging
setup_logging()

# Initialize FastAPI application
app = FastAPI(
    title="Invite Gate API",
    description="User accounts, authentication and invite-code gated registration.",
    version="1.0.0",
)

# Configure CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

# Register route handlers
app.include_router(auth.router)
app.include_router(invite_code.router)
app.include_router(user.router)


@app.get("/", summary="API root", tags=["Info"])
def root() -> dict:
    """API root, returns API information and documentation links.

    Returns:
        Dictionary with API information and documentation links.
    """
    return {
        "name": "Invite Gate API",
        "version": "1.0.0",
        "description": "User accounts, authentication and invite-code gated registration.",
        "docs": {
            "swagger": "/docs",
            "redoc": "/redoc",
        },
        "health": "/api/health",
    }


@app.get("/api/health", summary="Health check", tags=["Health"])
def health() -> dict:
    """Health check endpoint.

    Returns:
        Dictionary with status "ok".
    """
    return {"status": "ok"}


# --- Startup code for direct execution ---
if __name__ == "__main__":
    import uvicorn

    print(f"Starting Invite Gate API on http://{API_HOST}:{API_PORT}")
    print(f"API docs: http://{API_HOST}:{API_PORT}/docs")
    uvicorn.run("app:app", host=API_HOST, port=API_PORT, reload=True)
