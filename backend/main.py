import traceback

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from agent.executor import ToolExecutor
from agent.tools import build_registry
from backend.api.endpoints import router as api_router
from backend.core.store import TrainingStore
from core.client import get_client
from core.config import settings
from core.errors import InvalidRequestError, TrainerError
from core.logger import logger

app = FastAPI(title="AI Trainer API")

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["authorization", "x-client-info", "apikey", "content-type"],
)

from backend.core.database import init_db

@app.on_event("startup")
async def on_startup():
    if not settings.JWT_SECRET:
        raise RuntimeError("JWT_SECRET is not configured, refusing to start")
    await init_db()
    app.state.store = TrainingStore()
    app.state.registry = build_registry()
    app.state.executor = ToolExecutor(app.state.registry, app.state.store)
    if settings.API_KEY:
        app.state.client = get_client()
    else:
        app.state.client = None
        logger.error("API_KEY is not configured, trainer requests will fail")
    logger.info(f"Registered {len(app.state.registry)} tools")


def error_body(message: str, error_type: str, exc: Exception) -> dict:
    body = {"error": message, "error_type": error_type}
    if not settings.is_production:
        body["stack"] = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    return body


@app.exception_handler(TrainerError)
async def trainer_error_handler(request: Request, exc: TrainerError):
    if exc.status_code >= 500:
        logger.error(f"Error in trainer function: {exc.message}", extra={"error_type": exc.error_type})
    return JSONResponse(status_code=exc.status_code, content=error_body(exc.message, exc.error_type, exc))


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = []
    for err in exc.errors():
        field = ".".join(str(part) for part in err["loc"])
        errors.append(f"{field}: {err['msg']}")
    body = error_body("Invalid request: " + "; ".join(errors), InvalidRequestError.error_type, exc)
    return JSONResponse(status_code=InvalidRequestError.status_code, content=body)


app.include_router(api_router, prefix="/api")

@app.get("/")
async def root():
    return {"message": "AI Trainer API is running"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("backend.main:app", host="0.0.0.0", port=8000)
