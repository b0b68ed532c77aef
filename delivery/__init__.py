from delivery.output import (
    deliver_allocations,
    deliver_provider_status,
    deliver_result,
    deliver_statistics,
)

__all__ = [
    "deliver_allocations",
    "deliver_provider_status",
    "deliver_result",
    "deliver_statistics",
]
