"""HTTP client abstraction and asyncio bridging helpers."""

from .async_utils import run_sync
from .client import ApiClient, ApiResponse, MicropubClient, TransportError

__all__ = [
    "ApiClient",
    "ApiResponse",
    "MicropubClient",
    "TransportError",
    "run_sync",
]
