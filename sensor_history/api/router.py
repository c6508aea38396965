from fastapi import APIRouter

from sensor_history.api.routes import auth, readings, storage

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(auth.router, tags=["auth"])
api_router.include_router(readings.router, tags=["readings"])
api_router.include_router(storage.router, tags=["storage"])
