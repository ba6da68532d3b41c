from fastapi import APIRouter

from sharezone.api.api_v1.endpoints import chat, files, realtime, zones

api_router = APIRouter()
api_router.include_router(zones.router, prefix="/zones", tags=["zones"])
api_router.include_router(files.router, prefix="/zones", tags=["files"])
api_router.include_router(chat.router, prefix="/zones", tags=["chat"])
api_router.include_router(realtime.router, prefix="/zones", tags=["realtime"])
