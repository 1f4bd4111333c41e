from fastapi import APIRouter

from app.api.v1.ai import router as ai_router
from app.api.v1.auth import router as auth_router
from app.api.v1.chats import router as chats_router

api_router = APIRouter()
api_router.include_router(auth_router)
api_router.include_router(chats_router)
api_router.include_router(ai_router)
