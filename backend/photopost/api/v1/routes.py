from fastapi import APIRouter

from photopost.api.v1.endpoints import uploads

api_router = APIRouter()
api_router.include_router(uploads.router, prefix="/uploads", tags=["uploads"])
api_router.include_router(uploads.lookup_router, tags=["lookup"])
