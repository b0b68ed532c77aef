from allocation.adapter import ProviderAdapter, create_adapter, run_connection_check
from allocation.engine import AllocationEngine, AllocationError, NotFoundError
from allocation.stats import get_statistics

__all__ = [
    "AllocationEngine",
    "AllocationError",
    "NotFoundError",
    "ProviderAdapter",
    "create_adapter",
    "get_statistics",
    "run_connection_check",
]
