from fastapi import APIRouter

from qa_panel.api.routes.autotests import router as autotests_router
from qa_panel.api.routes.system import router as system_router

api_router = APIRouter()
api_router.include_router(autotests_router, tags=["autotests"])
api_router.include_router(system_router, tags=["system"])
