from .image_store import ImageStore
from .qdrant_index import VectorIndexClient, VectorIndexError

__all__ = [
    "ImageStore",
    "VectorIndexClient",
    "VectorIndexError",
]
