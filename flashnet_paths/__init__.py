__version__ = "0.1.0"

from flashnet_paths.core import (
    BaseAdapter,
    FlashnetError,
    GatewayError,
    PartialFailure,
    status_tuple,
)

__all__ = [
    "__version__",
    "BaseAdapter",
    "FlashnetError",
    "GatewayError",
    "PartialFailure",
    "status_tuple",
]
