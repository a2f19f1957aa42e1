# emr_forms/api/router.py
from fastapi import APIRouter
from emr_forms.api import routes_emr_forms

api_router = APIRouter()

api_router.include_router(routes_emr_forms.router)
