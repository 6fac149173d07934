import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .db import init_db
from .errors import ConfigurationError, PipelineError, TransportError, ValidationError
from .settings import settings
from .routers import health, privacy
from .routers import quiz
from .routers import grading

logger = logging.getLogger(__name__)


def configure_logging(level: str = settings.log_level) -> None:
	logging.basicConfig(
		level=getattr(logging, level.upper(), logging.INFO),
		format="%(asctime)s %(levelname)s %(name)s: %(message)s",
	)


app = FastAPI(title="Classroom AI API")
app.add_middleware(
	CORSMiddleware,
	allow_origins=[settings.frontend_url],
	allow_credentials=True,
	allow_methods=["*"],
	allow_headers=["*"],
)
app.include_router(health.router)
app.include_router(quiz.router)
app.include_router(grading.router)
app.include_router(privacy.router)


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
	return JSONResponse(status_code=400, content={"error": "Invalid request", "message": str(exc)})


@app.exception_handler(ConfigurationError)
async def configuration_error_handler(request: Request, exc: ConfigurationError):
	return JSONResponse(status_code=400, content={"error": "LLM provider misconfigured", "message": str(exc)})


@app.exception_handler(TransportError)
async def transport_error_handler(request: Request, exc: TransportError):
	logger.error("Language model call failed: %s", exc)
	return JSONResponse(status_code=502, content={"error": "Language model unavailable", "message": str(exc)})


@app.exception_handler(PipelineError)
async def pipeline_error_handler(request: Request, exc: PipelineError):
	return JSONResponse(status_code=500, content={"error": "Pipeline error", "message": str(exc)})


@app.on_event("startup")
async def startup_event():
	configure_logging()
	init_db()
