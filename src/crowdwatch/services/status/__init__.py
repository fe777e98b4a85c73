"""Sale status query module."""

from crowdwatch.services.status.schemas import StatusSnapshot
from crowdwatch.services.status.service import SaleStatusService

__all__ = [
    "SaleStatusService",
    "StatusSnapshot",
]
