"""
Layer 2 – 缓存层
键值存储本身不支持 TTL：每个条目旁写入 `<key>_timestamp`（毫秒），
是否过期由调用方根据写入时间和指标的有效窗口计算。

后端优先级：Redis（内存） → 文件（本地）；测试与单进程场景可使用内存存储。
"""

import json
import logging
import os
from typing import Dict, List, Optional

from redis.asyncio import Redis
from redis.exceptions import RedisError

from metrics_service.config import settings
from metrics_service.db import get_redis
from metrics_service.models.metric import CacheEntry, MetricResult

logger = logging.getLogger(__name__)

_NAMESPACE = "metrics"
_TIMESTAMP_SUFFIX = "_timestamp"


def _make_key(namespace: str, *parts: str) -> str:
    """生成规范化缓存键"""
    return ":".join([namespace] + list(parts))


def _file_path(cache_dir: str, key: str) -> str:
    safe = key.replace(":", "_").replace("/", "_")
    return os.path.join(cache_dir, f"{safe}.json")


# ── 键值存储后端 ──────────────────────────────────────────

class MemoryStore:
    """进程内存储"""

    name = "memory"

    def __init__(self):
        self._data: Dict[str, str] = {}

    async def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    async def set(self, key: str, value: str) -> None:
        self._data[key] = value

    async def keys(self) -> List[str]:
        return list(self._data)


class FileStore:
    """每个键一个 JSON 文件"""

    name = "file"

    def __init__(self, cache_dir: str):
        self._dir = cache_dir

    async def get(self, key: str) -> Optional[str]:
        path = _file_path(self._dir, key)
        if not os.path.exists(path):
            return None
        try:
            with open(path, "r", encoding="utf-8") as fh:
                return json.load(fh).get("value")
        except (OSError, ValueError) as exc:
            logger.warning(f"文件缓存读取失败 {key}: {exc}")
            return None

    async def set(self, key: str, value: str) -> None:
        try:
            os.makedirs(self._dir, exist_ok=True)
            with open(_file_path(self._dir, key), "w", encoding="utf-8") as fh:
                json.dump({"key": key, "value": value}, fh, ensure_ascii=False)
            logger.debug(f"缓存写入（文件）: {key}")
        except OSError as exc:
            logger.warning(f"文件缓存写入失败 {key}: {exc}")

    async def keys(self) -> List[str]:
        if not os.path.exists(self._dir):
            return []
        result = []
        for name in os.listdir(self._dir):
            if not name.endswith(".json"):
                continue
            try:
                with open(os.path.join(self._dir, name), "r", encoding="utf-8") as fh:
                    result.append(json.load(fh)["key"])
            except (OSError, ValueError, KeyError):
                continue
        return result


class RedisStore:
    """Redis 字符串存储（不设置过期时间）"""

    name = "redis"

    def __init__(self, client: Redis):
        self._redis = client

    async def get(self, key: str) -> Optional[str]:
        try:
            return await self._redis.get(key)
        except RedisError as exc:
            logger.warning(f"Redis 读取失败 {key}: {exc}")
            return None

    async def set(self, key: str, value: str) -> None:
        try:
            await self._redis.set(key, value)
            logger.debug(f"缓存写入（Redis）: {key}")
        except RedisError as exc:
            logger.warning(f"Redis 写入失败 {key}: {exc}")

    async def keys(self) -> List[str]:
        try:
            return [k async for k in self._redis.scan_iter(match=f"{_NAMESPACE}:*")]
        except RedisError as exc:
            logger.warning(f"Redis 键扫描失败: {exc}")
            return []


def get_default_store():
    """Redis 已连接时使用 Redis，否则降级为文件存储"""
    redis = get_redis()
    if redis is not None:
        return RedisStore(redis)
    return FileStore(settings.CACHE_DIR)


# ── 指标缓存 ──────────────────────────────────────────────

class CacheLayer:
    """按指标键读写 MetricResult；条目只会被覆盖，不会被删除"""

    def __init__(self, store=None):
        self._store = store if store is not None else get_default_store()

    @property
    def backend(self) -> str:
        return self._store.name

    async def get_entry(self, cache_key: str) -> Optional[CacheEntry]:
        """读取条目（不判断是否过期）"""
        key = _make_key(_NAMESPACE, cache_key)
        raw = await self._store.get(key)
        stamp = await self._store.get(key + _TIMESTAMP_SUFFIX)
        if raw is None or stamp is None:
            return None
        try:
            payload = json.loads(raw)
            result = MetricResult(computed_at_ms=int(stamp), **payload)
        except (ValueError, TypeError) as exc:
            logger.warning(f"缓存条目损坏，忽略: {cache_key}: {exc}")
            return None
        return CacheEntry(key=cache_key, result=result)

    async def put(self, cache_key: str, result: MetricResult) -> None:
        """写入结果，无条件覆盖旧条目"""
        key = _make_key(_NAMESPACE, cache_key)
        payload = result.model_dump(exclude={"computed_at_ms"})
        await self._store.set(key, json.dumps(payload))
        await self._store.set(key + _TIMESTAMP_SUFFIX, str(result.computed_at_ms))

    async def stats(self) -> dict:
        """返回缓存后端与已缓存指标列表"""
        prefix = _NAMESPACE + ":"
        entries = sorted(
            k[len(prefix):] for k in await self._store.keys()
            if k.startswith(prefix) and not k.endswith(_TIMESTAMP_SUFFIX)
        )
        return {"backend": self.backend, "entries": len(entries), "keys": entries}
