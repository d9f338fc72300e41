from flashnet_paths.core.adapters.BaseAdapter import BaseAdapter
from flashnet_paths.core.adapters.decorators import status_tuple
from flashnet_paths.core.errors import FlashnetError, GatewayError, PartialFailure

__all__ = [
    "BaseAdapter",
    "FlashnetError",
    "GatewayError",
    "PartialFailure",
    "status_tuple",
]
