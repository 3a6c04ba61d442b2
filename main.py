import logging
import os

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from vision_ai.errors import (
    EmptyResult,
    MalformedResponse,
    PersistenceFailure,
    ProviderError,
    ScanError,
    TransportFailure,
    ValidationFailure,
)
from reader_api import router as reader_router
from vision_ai.router import router as scan_router

load_dotenv()

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("book_scan")

app = FastAPI(title="Book Scan API")
app.include_router(scan_router)
app.include_router(reader_router)

# ---------------- CORS ----------------
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

ERROR_STATUS = {
    TransportFailure: 502,
    ProviderError: 502,
    EmptyResult: 422,
    MalformedResponse: 422,
    ValidationFailure: 422,
    PersistenceFailure: 503,
}


@app.exception_handler(ScanError)
async def scan_error_handler(request: Request, exc: ScanError):
    logger.warning("%s %s -> %s: %s", request.method, request.url.path, exc.kind, exc.message)
    return JSONResponse(
        status_code=ERROR_STATUS.get(type(exc), 500),
        content=exc.to_dict(),
    )


@app.get("/")
def root():
    return {"status": "alive"}
