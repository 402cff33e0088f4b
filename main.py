import os
import logging
from dotenv import load_dotenv
load_dotenv()
import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware


from utils.logging_config import setup_logging
from utils.errors import DomainRuleViolationError, NotFoundError, ValidationError
from endpoints.documents import router as documents_router
from endpoints.preaviso import router as preaviso_router


# Load env vars
setup_logging()
logger = logging.getLogger(__name__)

REQUIRED_KEYS = [
    "OPENAI_API_KEY",
    "SUPABASE_URL",
    "SUPABASE_SERVICE_ROLE_KEY",
    "AWS_S3_BUCKET",
]

for key in REQUIRED_KEYS:
    if not os.getenv(key):
        logging.warning(f"⚠️ Environment variable missing: {key}")

app = FastAPI(
    title="Notaria Bot API",
    description="API de indexado de documentos notariales y asistente de preaviso",
    version="1.0.0"
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _error(status_code: int, code: str, message: str, details=None) -> JSONResponse:
    body = {"error": {"code": code, "message": message}}
    if details:
        body["error"]["details"] = details
    return JSONResponse(status_code=status_code, content=body)


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return _error(404, "NOT_FOUND", str(exc))


@app.exception_handler(ValidationError)
async def validation_handler(request: Request, exc: ValidationError):
    return _error(400, "VALIDATION_ERROR", str(exc), {"path": exc.path} if exc.path else None)


@app.exception_handler(DomainRuleViolationError)
async def domain_rule_handler(request: Request, exc: DomainRuleViolationError):
    return _error(422, exc.code, exc.message, exc.details)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.exception(f"[API] ❌ Error no controlado en {request.url.path}")
    return _error(500, "INTERNAL_ERROR", f"An unexpected error occurred: {str(exc)}")

# Routers
app.include_router(documents_router)
app.include_router(preaviso_router)


@app.get("/")
async def root():
    return {"message": "Notaria Bot API is running 💡"}


if __name__ == "__main__":
    port = int(os.environ.get("PORT", 5050))
    uvicorn.run("main:app", host="0.0.0.0", port=port, reload=False, log_level="info")
