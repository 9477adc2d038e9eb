"""
ServiceNow pass-through proxy
"""
import httpx
from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, status

from app.api.deps import get_servicenow_client
from app.core import logger
from app.services.servicenow import ServiceNowClient, ServiceNowNotConfigured

router = APIRouter()


@router.api_route("", methods=["GET", "POST", "PUT", "PATCH", "DELETE"])
async def proxy_servicenow(
    request: Request,
    path: str = Query(..., min_length=1),
    servicenow: ServiceNowClient = Depends(get_servicenow_client),
):
    """
    Forward a request to the configured ServiceNow instance.

    The target path (including any query string) is passed in ?path=. Status,
    body and content type come back unchanged.
    """
    body = await request.body()
    try:
        upstream = await servicenow.forward(request.method, path, request.headers, body)
    except ServiceNowNotConfigured as e:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))
    except httpx.HTTPError as e:
        logger.error(f"ServiceNow proxy error: {request.method} {path}: {e}")
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="Proxy request failed")

    return Response(
        content=upstream.content,
        status_code=upstream.status_code,
        media_type=upstream.headers.get("content-type", "application/json"),
    )
