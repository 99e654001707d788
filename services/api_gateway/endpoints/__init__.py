"""
API Gateway endpoint routers — mounted by attach_status_monitor().
"""

from services.api_gateway.endpoints.status import create_status_router

__all__ = ["create_status_router"]
