from fastapi import APIRouter
from leave_engine.routers import leave, leave_admin

# Centralized API router hub
# Routers are aggregated here and main.py only imports this single hub.
api_router = APIRouter()

api_router.include_router(leave.router, tags=["Leave"])
api_router.include_router(leave_admin.router, tags=["Leave Administration"])
