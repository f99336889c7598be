from .framer import ThoughtTagFramer
from .metrics import ProxyMetrics
from .wire import StreamEvent

__all__ = [
    "ProxyMetrics",
    "StreamEvent",
    "ThoughtTagFramer",
]
