# marketplace_hub/infrastructure/ratelimit/redis_token_bucket.py
from __future__ import annotations
import logging
from typing import Optional, Tuple

import redis
from redis.exceptions import NoScriptError

logger = logging.getLogger(__name__)


# 补桶 + 取令牌，一次 EVALSHA 原子完成；时间取 Redis 服务器 TIME，避免多机时钟偏差
_TOKEN_BUCKET_LUA = """
local key = KEYS[1]
local capacity = tonumber(ARGV[1])
local refill_per_ms = tonumber(ARGV[2])
local ttl_ms = tonumber(ARGV[3])

local t = redis.call('TIME')
local now = tonumber(t[1]) * 1000 + math.floor(tonumber(t[2]) / 1000)

local state = redis.call('HMGET', key, 'tokens', 'ts')
local tokens = tonumber(state[1]) or capacity
local ts = tonumber(state[2]) or now

local elapsed = math.max(0, now - ts)
tokens = math.min(capacity, tokens + elapsed * refill_per_ms)

local allowed = 0
local wait_ms = 0
if tokens >= 1 then
    tokens = tokens - 1
    allowed = 1
else
    wait_ms = math.max(0, math.ceil((1 - tokens) / refill_per_ms))
end

redis.call('HSET', key, 'tokens', tokens, 'ts', now)
if ttl_ms > 0 then
    redis.call('PEXPIRE', key, ttl_ms)
end
return {allowed, wait_ms}
"""


class RedisTokenBucketLimiter:
    """
    全局令牌桶限流（多 worker / 多机共享 Hub 配额），单位：rpm。
    key: {prefix}:{env}:{vendor}:{account}
    """

    def __init__(self, client: "redis.Redis", key: str, max_rpm: int, burst: int = 5,
                 ttl_ms: int = 120_000, max_wait_ms: Optional[int] = 5000) -> None:
        self.client = client
        self.key = key
        self.capacity = max(1, int(burst))
        self.refill_per_ms = float(max_rpm) / 60_000.0
        self.ttl_ms = int(ttl_ms)
        self.max_wait_ms = max_wait_ms
        self._sha = self.client.script_load(_TOKEN_BUCKET_LUA)


    @classmethod
    def from_settings(cls, *, vendor: str, account: Optional[str]) -> Optional["RedisTokenBucketLimiter"]:
        """开关关闭时返回 None，调用方退回进程内节流。"""
        from marketplace_hub.core.config import settings

        if not settings.HUB_GLOBAL_RL_ENABLED:
            return None

        client = redis.from_url(settings.HUB_GLOBAL_RATE_LIMIT_REDIS_URL, decode_responses=True)
        acct = (account or "default").replace("@", "_at_")
        key = f"{settings.HUB_GLOBAL_RL_KEY_PREFIX}:{settings.ENVIRONMENT}:{vendor}:{acct}"
        logger.info("hub.ratelimit.global enabled key=%s rpm=%s", key, settings.HUB_GLOBAL_RL_MAX_RPM)

        return cls(
            client=client,
            key=key,
            max_rpm=settings.HUB_GLOBAL_RL_MAX_RPM,
            burst=settings.HUB_GLOBAL_RL_BURST,
            max_wait_ms=settings.HUB_GLOBAL_RL_MAX_WAIT_MS,
        )


    def acquire_once(self) -> Tuple[bool, int]:
        """
        尝试消费 1 个令牌；返回 (allowed, wait_ms)。
        Redis 重启后脚本缓存会丢（NOSCRIPT），这里重新加载一次再试。
        """
        args = (self.capacity, self.refill_per_ms, self.ttl_ms)
        try:
            res = self.client.evalsha(self._sha, 1, self.key, *args)
        except NoScriptError:
            self._sha = self.client.script_load(_TOKEN_BUCKET_LUA)
            res = self.client.evalsha(self._sha, 1, self.key, *args)

        allowed = int(res[0]) == 1
        wait_ms = 0 if allowed else max(0, int(float(res[1])))
        if self.max_wait_ms is not None:
            wait_ms = min(wait_ms, self.max_wait_ms)
        return allowed, wait_ms
