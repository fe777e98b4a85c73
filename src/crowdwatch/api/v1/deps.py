"""Shared endpoint dependencies."""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from crowdwatch.services.sale_monitor.monitor import SaleMonitor


def get_sale_monitor(request: Request) -> SaleMonitor:
    """Get the monitor started by the application lifespan."""
    monitor = getattr(request.app.state, "monitor", None)
    if monitor is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Sale monitor is not running",
        )
    return monitor


Monitor = Annotated[SaleMonitor, Depends(get_sale_monitor)]
