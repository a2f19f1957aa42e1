# emr_forms/main.py
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from emr_forms.core.config import settings
from emr_forms.api.exception_handlers import register_exception_handlers
from emr_forms.api.router import api_router

logging.getLogger("emr_forms").setLevel(settings.LOG_LEVEL)

app = FastAPI(
    title=settings.PROJECT_NAME,
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
    return {"message": "EMR form engine running", "version": "v1"}
