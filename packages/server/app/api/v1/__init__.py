"""
API v1 Router

All group-scoped endpoints are prefixed with /groups/{group_id}.
"""

from fastapi import APIRouter
from . import groups, tasks

router = APIRouter()

router.include_router(groups.router, prefix="/groups/{group_id}", tags=["Groups"])
router.include_router(tasks.router, prefix="/groups/{group_id}/tasks", tags=["Tasks"])


@router.get("/", tags=["API"])
async def api_root():
    """API root: returns version and available endpoints."""
    return {
        "api": "v1",
        "version": "0.1.0",
        "endpoints": [
            "/groups/{group_id}",
            "/groups/{group_id}/activity",
            "/groups/{group_id}/tasks",
            "/groups/{group_id}/tasks/{task_id}/permissions",
            "/groups/{group_id}/tasks/{task_id}/submissions",
            "/groups/{group_id}/tasks/{task_id}/status",
        ],
    }
