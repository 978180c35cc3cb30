import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from lms import __version__
from lms.config import LOG_LEVEL
from lms.database import db_manager
from lms.database_setup import create_lms_indexes
from lms.errors import LMSError
from lms.routers.admin_router import router as admin_router
from lms.routers.assessment_router import router as assessment_router
from lms.routers.course_router import router as course_router
from lms.routers.instructor_router import router as instructor_router
from lms.routers.student_router import router as student_router

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="LMS Backend", version=__version__)


@app.on_event("startup")
async def startup_event():
    store = db_manager.connect()
    await create_lms_indexes(store)


@app.on_event("shutdown")
async def shutdown_event():
    await db_manager.disconnect()


@app.exception_handler(LMSError)
async def lms_error_handler(request: Request, exc: LMSError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.detail)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ==================== ROUTER REGISTRATION ====================
app.include_router(instructor_router)
app.include_router(student_router)
app.include_router(course_router)
app.include_router(assessment_router)
app.include_router(admin_router)
