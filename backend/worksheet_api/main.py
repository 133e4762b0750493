import logging

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.encoders import jsonable_encoder

from .errors import WorksheetError
from .settings import Settings, get_settings, settings
from .routers import health
from .routers import generate

logging.basicConfig(
	level=settings.log_level.upper(),
	format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
	datefmt="%Y-%m-%d %H:%M:%S",
)

app = FastAPI(title="Worksheet Generator API")
app.include_router(health.router)
app.include_router(generate.router)


@app.exception_handler(WorksheetError)
async def worksheet_error_handler(request: Request, exc: WorksheetError):
	return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
	return JSONResponse(
		status_code=400,
		content={"error": "Invalid request", "detail": jsonable_encoder(exc.errors())},
	)


@app.get("/info")
def root(settings: Settings = Depends(get_settings)):
	return {"status": "ok", "openai_configured": bool(settings.openai_api_key)}
