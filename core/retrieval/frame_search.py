"""
帧检索 - 基于向量索引的语义搜索与时间范围查询

- search: 查询文本 -> embedding -> 相似度搜索
- recent: 最近 24 小时的帧（按时间倒序）
- search_by_app: 按应用名过滤（部分匹配、忽略大小写），可选叠加语义搜索
- app_usage: 某时间段内各应用的捕获次数统计
"""
import asyncio
import datetime
from typing import List, Optional, Dict, Any, Callable, Awaitable

from utils.data_models import SearchResult
from utils.logger import setup_logger
from config import config

from ..understand.provider_registry import ProviderRegistry
from ..storage.qdrant_index import VectorIndexClient

logger = setup_logger(__name__)

APP_SEARCH_WINDOW = datetime.timedelta(days=7)
APP_SEARCH_SCAN_LIMIT = 500
USAGE_SCAN_LIMIT = 1000


async def _to_thread(fn: Callable, *args) -> Any:
    return await asyncio.to_thread(fn, *args)


def _utc_now() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


class FrameSearch:
    """
    帧检索器

    embedding 由 provider registry 生成，检索由 VectorIndexClient 完成；
    index 调用是阻塞的，通过 run_blocking 放到线程里执行
    """

    def __init__(
        self,
        registry: ProviderRegistry,
        index: VectorIndexClient,
        run_blocking: Optional[Callable[..., Awaitable[Any]]] = None,
        clock: Optional[Callable[[], datetime.datetime]] = None
    ):
        self.registry = registry
        self.index = index
        self._run_blocking = run_blocking or _to_thread
        self._clock = clock or _utc_now

    def now(self) -> datetime.datetime:
        return self._clock()

    async def search(
        self,
        query: str,
        limit: int = 10,
        score_threshold: float = None
    ) -> List[SearchResult]:
        """
        语义搜索

        Args:
            query: 查询文本（空白查询直接返回空列表，不调用 provider）
            limit: 返回数量
            score_threshold: 最低相似度（None 使用配置默认值）
        """
        if not query or not query.strip():
            return []

        threshold = score_threshold if score_threshold is not None else config.SEARCH_SCORE_THRESHOLD
        vector = await self.registry.generate_embedding(query.strip())
        results = await self._run_blocking(self.index.search, vector, limit, threshold)
        logger.info(f"Search '{query[:50]}' -> {len(results)} results")
        return results

    async def recent(self, limit: int = 20) -> List[SearchResult]:
        return await self._run_blocking(self.index.get_recent, limit, self._clock())

    async def search_by_app(
        self,
        app_name: str,
        query: Optional[str] = None,
        limit: int = 10
    ) -> List[SearchResult]:
        """最近 7 天内、分析出的应用名包含 app_name 的帧"""
        now = self._clock()
        results = await self._run_blocking(
            self.index.search_by_time_range, now - APP_SEARCH_WINDOW, now, APP_SEARCH_SCAN_LIMIT
        )

        needle = app_name.lower()
        results = [r for r in results if needle in (r.active_application or "").lower()]

        # 有查询时只保留同时命中语义搜索的结果（按相似度排序）
        if query and query.strip() and results:
            allowed = {r.id for r in results}
            semantic = await self.search(query, limit=limit * 2)
            results = [r for r in semantic if r.id in allowed]
        else:
            results.sort(key=lambda r: r.timestamp, reverse=True)

        return results[:limit]

    async def app_usage(
        self,
        start: datetime.datetime,
        end: datetime.datetime
    ) -> List[Dict[str, Any]]:
        """
        各应用的捕获统计，按捕获次数降序

        Returns:
            [{"application", "captures", "firstSeen", "lastSeen"}, ...]
        """
        results = await self._run_blocking(
            self.index.search_by_time_range, start, end, USAGE_SCAN_LIMIT
        )

        usage: Dict[str, Dict[str, Any]] = {}
        for r in results:
            app = r.active_application or "Unknown"
            entry = usage.get(app)
            if entry is None:
                usage[app] = {
                    "application": app,
                    "captures": 1,
                    "firstSeen": r.timestamp,
                    "lastSeen": r.timestamp,
                }
                continue
            entry["captures"] += 1
            entry["firstSeen"] = min(entry["firstSeen"], r.timestamp)
            entry["lastSeen"] = max(entry["lastSeen"], r.timestamp)

        return sorted(usage.values(), key=lambda e: e["captures"], reverse=True)
