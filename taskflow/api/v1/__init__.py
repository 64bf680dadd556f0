"""API v1 endpoints"""
from fastapi import APIRouter
from .endpoints import projects, tasks

api_router = APIRouter()
api_router.include_router(projects.router, prefix="/projects", tags=["projects"])
api_router.include_router(projects.invitations_router, prefix="/invitations", tags=["invitations"])
api_router.include_router(tasks.router, tags=["tasks"])
