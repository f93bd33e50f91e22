"""
API router - aggregates all route modules.
"""
from fastapi import APIRouter
from clientsync.api.clients import router as clients_router
from clientsync.api.reports import router as reports_router
from clientsync.api.sync import router as sync_router
from clientsync.api.sheets import router as sheets_router
from clientsync.api.health import router as health_router

api_router = APIRouter()
api_router.include_router(clients_router)
api_router.include_router(reports_router)
api_router.include_router(sync_router)
api_router.include_router(sheets_router)
api_router.include_router(health_router)
