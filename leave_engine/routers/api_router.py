from fastapi import APIRouter
from leave_engine.routers import leave, leave_policy

# Routers are aggregated here; main.py only imports this hub.
api_router = APIRouter()

api_router.include_router(leave_policy.router, tags=["Leave Policies"])
api_router.include_router(leave.router, tags=["Leave Requests"])
