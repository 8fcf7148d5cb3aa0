"""
app/api/routers package marker.
"""

from app.api.routers.evaluation_router import router as evaluation_router
from app.api.routers.ledger_router import router as ledger_router
from app.api.routers.report_router import router as report_router

__all__ = [
    "evaluation_router",
    "ledger_router",
    "report_router",
]
