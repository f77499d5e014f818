"""Transport strategies for moving a payload into storage."""

from mediaferry.pipeline.strategies.base import StorageGateway, TransferStrategy
from mediaferry.pipeline.strategies.chunked import ChunkedTransferStrategy
from mediaferry.pipeline.strategies.direct import DirectTransferStrategy
from mediaferry.pipeline.strategies.proxy import ProxyTransferStrategy

__all__ = [
    "ChunkedTransferStrategy",
    "DirectTransferStrategy",
    "ProxyTransferStrategy",
    "StorageGateway",
    "TransferStrategy",
]
