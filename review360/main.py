import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from review360.api.assignments import router as assignments_router
from review360.api.audit import router as audit_router
from review360.api.auth import router as auth_router
from review360.api.cycles import router as cycles_router
from review360.api.exports import router as exports_router
from review360.api.health import router as health_router
from review360.api.me import router as me_router
from review360.api.questions import router as questions_router
from review360.api.reports import router as reports_router
from review360.api.users import router as users_router
from review360.core.config import settings
from review360.core.exceptions import AppException, AuthError
from review360.core.logging import configure_logging

configure_logging()
logger = logging.getLogger(__name__)

app = FastAPI(title="Review 360")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(AppException)
async def app_exception_handler(request: Request, exc: AppException):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    else:
        logger.info("%s %s rejected (%s): %s", request.method, request.url.path, exc.error_code, exc.message)

    body = {"detail": exc.message, "code": exc.error_code}
    if exc.details:
        body["errors"] = exc.details
    headers = {"WWW-Authenticate": "Basic"} if isinstance(exc, AuthError) else None
    return JSONResponse(status_code=exc.status_code, content=body, headers=headers)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("%s %s failed with an unhandled error", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"detail": "Internal server error", "code": "INTERNAL_ERROR"})


app.include_router(health_router)
app.include_router(auth_router)
app.include_router(me_router)
app.include_router(users_router)
app.include_router(questions_router)
app.include_router(cycles_router)
app.include_router(assignments_router)
app.include_router(reports_router)
app.include_router(exports_router)
app.include_router(audit_router)
