"""
API dependencies
"""
from typing import AsyncGenerator, Optional

from fastapi import Header

from app.db import get_db
from app.core.config import settings
from app.services.servicenow import ServiceNowClient


def get_operator_id(x_operator_id: Optional[str] = Header(default=None)) -> Optional[str]:
    """Operator recorded on audit entries; requests without one are attributed to the system."""
    return x_operator_id or None


async def get_servicenow_client() -> AsyncGenerator[ServiceNowClient, None]:
    """Dependency for a ServiceNow client bound to the configured instance."""
    client = ServiceNowClient(settings.SERVICENOW_INSTANCE)
    try:
        yield client
    finally:
        await client.aclose()


__all__ = [
    "get_db",
    "get_operator_id",
    "get_servicenow_client",
]
