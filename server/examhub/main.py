import logging
import logging.config

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from examhub.config import settings
from examhub.database import init_db
from examhub.errors import register_error_handlers

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "verbose": {"format": "%(asctime)s [%(levelname)s] %(name)s %(message)s"},
    },
    "handlers": {
        "console": {"class": "logging.StreamHandler", "formatter": "verbose"},
    },
    "loggers": {
        "examhub": {"handlers": ["console"], "level": settings.log_level.upper(), "propagate": False},
    },
    "root": {"handlers": ["console"], "level": "WARNING"},
}

logging.config.dictConfig(LOGGING)
logger = logging.getLogger(__name__)

# Initialize FastAPI app
app = FastAPI(
    title=settings.app_name,
    version=settings.api_version,
    debug=settings.debug
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_error_handlers(app)


@app.on_event("startup")
def startup_event():
    """Create tables on startup"""
    init_db()
    logger.info("%s starting (%s)", settings.app_name, settings.environment)


@app.get("/")
def root():
    """Root endpoint"""
    return {
        "message": f"Welcome to {settings.app_name}",
        "version": settings.api_version,
        "status": "running"
    }


@app.get("/health")
def health_check():
    """Health check endpoint"""
    return {"status": "healthy"}


# Import and include routers
from examhub.routes import auth, events, exams, users  # noqa: E402

app.include_router(auth.router, prefix="/api/auth", tags=["Auth"])
app.include_router(exams.router, prefix="/api/exams", tags=["Exams"])
app.include_router(users.router, prefix="/api/users", tags=["Users"])
app.include_router(events.router, prefix="/api/events", tags=["Events"])


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("examhub.main:app", host=settings.host, port=settings.port, reload=settings.debug)
