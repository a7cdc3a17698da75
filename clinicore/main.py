# clinicore/main.py
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from clinicore import __version__
from clinicore.api.exception_handlers import register_exception_handlers
from clinicore.api.router import api_router
from clinicore.core.config import settings
from clinicore.core.logging import configure_logging

configure_logging()

app = FastAPI(
    title=settings.PROJECT_NAME,
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.BACKEND_CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

app.include_router(api_router, prefix=settings.API_V1_STR)


# Health
@app.get("/")
def root():
    return {"message": "Clinicore Practice API running", "version": __version__}
