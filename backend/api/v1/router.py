"""API v1 aggregated router.

All v1 endpoints are registered here and mounted under /api/v1 in main.py.
This makes it trivial to add /api/v2 later without touching existing routes.
"""

from fastapi import APIRouter

from api.routes import campaigns, events, executions, workflows

api_v1_router = APIRouter()

# Upstream event ingestion
api_v1_router.include_router(
    events.router,
    tags=["Events"],
)

# Execution inspection and control
api_v1_router.include_router(
    executions.router,
    prefix="/executions",
    tags=["Executions"],
)

# Workflow stats and manual runs
api_v1_router.include_router(
    workflows.router,
    prefix="/workflows",
    tags=["Workflows"],
)

# Batch campaigns
api_v1_router.include_router(
    campaigns.router,
    prefix="/campaigns",
    tags=["Campaigns"],
)
