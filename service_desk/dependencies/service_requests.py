from __future__ import annotations

from fastapi import HTTPException, Request

from service_desk.service_requests.service import ServiceRequestLifecycle


async def get_lifecycle(request: Request) -> ServiceRequestLifecycle:
    lifecycle = getattr(request.app.state, "request_lifecycle", None)
    if lifecycle is None:
        raise HTTPException(status_code=503, detail="Service request lifecycle is not configured")
    return lifecycle
