from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

import logging
import time

import config
from db import Base, engine
from errors import BookingError
from routers import ALL_ROUTERS

import orm  # noqa: F401  registers the tables on Base.metadata

app = FastAPI(title="Loan PC booking API")

Base.metadata.create_all(bind=engine)

# -----------------------
# Logging
# -----------------------
logging.basicConfig(
    level=config.log_level(),
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)
logger = logging.getLogger("app")

@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.time()
    response = await call_next(request)
    elapsed_ms = int((time.time() - start) * 1000)
    logger.info(
        "method=%s path=%s status=%s elapsed_ms=%s",
        request.method,
        request.url.path,
        response.status_code,
        elapsed_ms,
    )
    return response

@app.exception_handler(BookingError)
async def booking_error_handler(request: Request, exc: BookingError):
    log = logger.error if exc.status_code >= 500 else logger.info
    log("rejected path=%s kind=%s detail=%s", request.url.path, exc.kind, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())

for router in ALL_ROUTERS:
    app.include_router(router)

@app.get("/")
def root():
    return {"message": "Loan PC booking API", "docs": "/docs"}
