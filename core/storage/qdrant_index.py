# core/storage/qdrant_index.py
"""
Vector Index Client

Thin wrapper over a Qdrant collection dedicated to screen frames:
collection lifecycle, upsert, similarity search and time-range scroll.
There are no retries here; every failure surfaces as VectorIndexError.
"""
import datetime
from typing import List, Optional

from qdrant_client import QdrantClient
from qdrant_client.http import models as qm

from utils.data_models import IndexedRecord, SearchResult
from utils.logger import setup_logger
from config import config

logger = setup_logger(__name__)

RECENT_WINDOW = datetime.timedelta(hours=24)


class VectorIndexError(Exception):
    """Any failure talking to the vector index"""


def _epoch(value) -> float:
    if isinstance(value, datetime.datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=datetime.timezone.utc)
        return value.timestamp()
    return float(value)


class VectorIndexClient:
    """
    Args:
        client: injected QdrantClient (e.g. ``QdrantClient(":memory:")`` in tests)
        url: Qdrant URL when no client is injected
        collection_name: collection used for frames
        vector_size: fixed dimensionality of the collection
    """

    def __init__(
        self,
        client: Optional[QdrantClient] = None,
        url: str = None,
        collection_name: str = None,
        vector_size: int = None,
        timeout: float = None
    ):
        self.url = url or config.QDRANT_URL
        self.collection_name = collection_name or config.QDRANT_COLLECTION
        self.vector_size = vector_size or config.VECTOR_SIZE
        if client is None:
            timeout = timeout if timeout is not None else config.QDRANT_TIMEOUT_SECONDS
            client = QdrantClient(url=self.url, timeout=int(timeout))
        self.client = client
        logger.info(f"VectorIndexClient: collection={self.collection_name}, size={self.vector_size}")

    def ready(self) -> bool:
        """Health check; never raises"""
        try:
            self.client.get_collections()
            return True
        except Exception:
            return False

    def ensure_collection(self, vector_size: int = None, distance: qm.Distance = qm.Distance.COSINE):
        """Create the collection if it does not exist (idempotent)"""
        size = vector_size or self.vector_size
        try:
            if self.client.collection_exists(self.collection_name):
                existing = self._existing_vector_size()
                if existing and existing != size:
                    logger.warning(
                        f"Collection '{self.collection_name}' has vector size {existing}, "
                        f"expected {size}; using {existing}"
                    )
                    self.vector_size = existing
                return
            self.client.create_collection(
                collection_name=self.collection_name,
                vectors_config=qm.VectorParams(size=size, distance=distance),
            )
        except Exception as e:
            raise VectorIndexError(f"Failed to ensure collection {self.collection_name}: {e}") from e
        self.vector_size = size
        logger.info(f"Collection '{self.collection_name}' created (size={size}, distance={distance.value})")

    def _existing_vector_size(self) -> Optional[int]:
        info = self.client.get_collection(self.collection_name)
        vectors = info.config.params.vectors
        return getattr(vectors, "size", None)

    def collection_info(self) -> Optional[dict]:
        """Points count of the collection, or None if it is unavailable"""
        try:
            info = self.client.get_collection(self.collection_name)
        except Exception:
            return None
        return {
            "name": self.collection_name,
            "pointsCount": info.points_count or 0,
            "vectorSize": self.vector_size,
        }

    def upsert_frame(self, record: IndexedRecord):
        """Write one record keyed by frame id; an existing record with that id is replaced"""
        if len(record.vector) != self.vector_size:
            raise VectorIndexError(
                f"Vector dimension mismatch for frame {record.id}: "
                f"got {len(record.vector)}, collection expects {self.vector_size}"
            )
        try:
            self.client.upsert(
                collection_name=self.collection_name,
                points=[qm.PointStruct(id=record.id, vector=record.vector, payload=record.payload)],
            )
        except Exception as e:
            raise VectorIndexError(f"Failed to upsert frame {record.id}: {e}") from e
        logger.debug(f"Upserted frame {record.id}")

    def search(
        self,
        vector: List[float],
        limit: int = 10,
        score_threshold: float = None
    ) -> List[SearchResult]:
        """Similarity search, keeping only results with score >= score_threshold"""
        threshold = score_threshold if score_threshold is not None else config.SEARCH_SCORE_THRESHOLD
        try:
            response = self.client.query_points(
                collection_name=self.collection_name,
                query=vector,
                limit=limit,
                score_threshold=threshold,
                with_payload=True,
            )
        except Exception as e:
            raise VectorIndexError(f"Search failed: {e}") from e

        return [SearchResult.from_payload(p.id, p.score, p.payload) for p in response.points]

    def search_by_time_range(self, start, end, limit: int = 100) -> List[SearchResult]:
        """
        Frames with start <= timestamp <= end (datetimes or epoch seconds).
        Scroll results carry score 1.0.
        """
        time_filter = qm.Filter(
            must=[
                qm.FieldCondition(
                    key="timestamp",
                    range=qm.Range(gte=_epoch(start), lte=_epoch(end)),
                )
            ]
        )
        try:
            points, _ = self.client.scroll(
                collection_name=self.collection_name,
                scroll_filter=time_filter,
                limit=limit,
                with_payload=True,
                with_vectors=False,
            )
        except Exception as e:
            raise VectorIndexError(f"Search by time range failed: {e}") from e

        return [SearchResult.from_payload(p.id, 1.0, p.payload) for p in points]

    def get_recent(self, limit: int = 20, now: Optional[datetime.datetime] = None) -> List[SearchResult]:
        """Frames from the last 24 hours, newest first"""
        now = now or datetime.datetime.now(datetime.timezone.utc)
        results = self.search_by_time_range(now - RECENT_WINDOW, now, limit)
        return sorted(results, key=lambda r: r.timestamp, reverse=True)
