
"""
低层 HTTP 客户端：限流/重试/401 失效重取 token
  - token 不在这里管：每次请求前向 token_provider（CredentialManager）按 scope 要 access_token；
  - Hub 要求 token 放在 query string 的 access_token 参数里；
  - 基于简单节流（X req/min）与指数退避（429/5xx/网络异常）；
  - 提供 get_json/post_json/put_json 三个入口，不关心业务字段结构。
"""

from __future__ import annotations
import logging, time, requests
from typing import Any, Dict, Optional, Protocol
from urllib.parse import urljoin

from marketplace_hub.core.config import settings
from marketplace_hub.integrations.hub.errors import (
    HubAuthError, HubClientError, HubNotFoundError, HubServerError, HubRateLimitError, HubPayloadError
)
from marketplace_hub.infrastructure.ratelimit.redis_token_bucket import RedisTokenBucketLimiter
from marketplace_hub.utils.backoff import calc_next_delay, with_jitter

logger = logging.getLogger(__name__)


class TokenProvider(Protocol):
    def access_token(self, scope: str) -> str: ...

    def invalidate(self, scope: str) -> None: ...



class HubHttpClient:
    """Hub REST API 的低层 HTTP 客户端：负责带 token、限流与重试。"""

    def __init__(
        self,
        base_url: Optional[str] = None,
        connect_timeout: Optional[int] = None,
        read_timeout: Optional[int] = None,
        max_attempts: Optional[int] = None,
        rate_limit_per_min: Optional[int] = None,
        token_provider: Optional[TokenProvider] = None,
        session: Optional[requests.Session] = None,
        backoff_base_sec: float = 1.0,
    ) -> None:
        """初始化客户端，允许覆盖基础配置以便测试或多账号场景。"""
        self.base_url = (base_url or str(settings.HUB_BASE_URL)).rstrip("/") + "/"
        self.connect_timeout = connect_timeout or settings.HUB_CONNECT_TIMEOUT
        self.read_timeout = read_timeout or settings.HUB_READ_TIMEOUT
        self.max_attempts = max_attempts or settings.HUB_HTTP_RETRIES
        self.rate_limit_per_min = rate_limit_per_min or settings.HUB_RATE_LIMIT_PER_MIN
        self.backoff_base_sec = backoff_base_sec
        self.token_provider = token_provider

        self._session = session or requests.Session()
        self._last_request_ts: float = 0.0
        # 全局限流：多 worker 共享同一个 Redis 令牌桶（按 client_id 区分账号）
        self._global_limiter = RedisTokenBucketLimiter.from_settings(vendor="hub", account=settings.HUB_CLIENT_ID)


    def bind_token_provider(self, provider: TokenProvider) -> None:
        """CredentialManager 自己也依赖 HTTP（login/refresh），所以允许构造后再注入。"""
        self.token_provider = provider


    # ---------- Public ----------
    def get_json(self, path: str, params: Optional[Dict[str, Any]] = None, *, scope: Optional[str] = None, **kwargs) -> Any:
        """发送 GET 请求并返回解析后的 JSON；scope=None 表示不带 token。"""
        resp = self._request("GET", path, scope=scope, params=params, **kwargs)
        return self._as_json(resp)

    def post_json(self, path: str, json_body: Any = None, *, scope: Optional[str] = None, **kwargs) -> Any:
        resp = self._request("POST", path, scope=scope, json=json_body, **kwargs)
        return self._as_json(resp)

    def put_json(self, path: str, json_body: Any = None, *, scope: Optional[str] = None, **kwargs) -> Any:
        resp = self._request("PUT", path, scope=scope, json=json_body, **kwargs)
        return self._as_json(resp)


    # ---------- Internals ----------
    def _as_json(self, resp: requests.Response) -> Any:
        """解析响应 JSON；空 body（204 / PUT 返回空）视为 None，解析失败抛 HubPayloadError。"""
        if resp.status_code == 204 or not (resp.text or "").strip():
            return None
        try:
            return resp.json()
        except ValueError as e:
            text = (resp.text or "")[:500]  # 截断，避免日志过大
            raise HubPayloadError(f"non-JSON response (status={resp.status_code}): {text}") from e


    def _request(self, method: str, path: str, *, scope: Optional[str] = None, **kwargs) -> requests.Response:
        """执行一次底层 HTTP 调用，负责 token、限流、重试与状态码处理。"""

        # 1) 构造请求
        url = urljoin(self.base_url, path.lstrip("/"))
        headers = kwargs.pop("headers", {}) or {}
        headers.setdefault("Accept", "application/json")
        headers.setdefault("Content-Type", "application/json")
        params = dict(kwargs.pop("params", None) or {})
        timeout = kwargs.pop("timeout", (self.connect_timeout, self.read_timeout))

        # 2) 带 token：按 scope 取（CredentialManager 内部负责刷新/重登）
        if scope is not None:
            params["access_token"] = self._token_for(scope)

        # 3) 重试查询 Hub 接口
        already_refreshed = False

        for attempt in range(1, self.max_attempts + 1):
            self._respect_rate_limit()
            started = time.monotonic()
            try:
                resp = self._session.request(method, url, params=params, headers=headers, timeout=timeout, **kwargs)
            except requests.RequestException as e:
                # 连接/超时等异常：指数退避
                logger.warning("hub.http.error method=%s path=%s attempt=%s err=%s", method, path, attempt, e)
                if attempt == self.max_attempts:
                    raise HubClientError(f"request error: {e}") from e
                self._sleep_backoff(attempt)
                continue
            finally:
                self._last_request_ts = time.monotonic()

            latency_ms = int((time.monotonic() - started) * 1000)
            logger.debug("hub.http method=%s path=%s status=%s latency_ms=%s", method, path, resp.status_code, latency_ms)

            # 401：token 失效，只做一次 invalidate + 重取
            if resp.status_code == 401:
                if scope is None or already_refreshed or self.token_provider is None:
                    raise HubAuthError(f"401 unauthorized for {method} {path}: {(resp.text or '')[:300]}")
                logger.info("hub.http.401 scope=%s, invalidating token once", scope)
                self.token_provider.invalidate(scope)
                params["access_token"] = self._token_for(scope)
                already_refreshed = True
                continue

            if resp.status_code == 404:
                raise HubNotFoundError(f"404 not found: {method} {path}")

            # 429 限流：指数退避后重试
            if resp.status_code == 429:
                if attempt == self.max_attempts:
                    raise HubRateLimitError(f"429 after retries: {(resp.text or '')[:300]}")
                self._sleep_backoff(attempt)
                continue

            # 5xx 服务端错误：指数退避后重试
            if resp.status_code >= 500:
                if attempt == self.max_attempts:
                    raise HubServerError(f"{resp.status_code} after retries: {(resp.text or '')[:300]}")
                self._sleep_backoff(attempt)
                continue

            # 其它 4xx 统一转为 HubClientError
            if resp.status_code >= 400:
                snippet = (resp.text or "")[:300]
                raise HubClientError(f"{resp.status_code} client error: {snippet}")

            return resp    # 成功

        # 401 重取之后正好用完次数
        raise HubAuthError(f"retries exhausted for {method} {path}")


    # ---------- Helpers ----------
    def _token_for(self, scope: str) -> str:
        if self.token_provider is None:
            raise HubAuthError(f"no token provider configured for scope={scope}")
        return self.token_provider.access_token(scope)


    def _respect_rate_limit(self) -> None:
        """优先使用 Redis 令牌桶限流；不可用时退回进程内节流。"""
        limiter = self._global_limiter
        if limiter is not None:
            try:
                for _ in range(20):
                    allowed, wait_ms = limiter.acquire_once()
                    if allowed:
                        return
                    time.sleep(max(0.001, (wait_ms or 1000) / 1000.0))
                time.sleep(1.0)
                return
            except Exception as e:
                logger.warning("Global rate-limit disabled due to Redis error: %s; falling back to process-local.", e)
                self._global_limiter = None

        # --- 进程内节流（兜底） ---
        if not self.rate_limit_per_min or self.rate_limit_per_min <= 0:
            return
        interval = 60.0 / float(self.rate_limit_per_min)
        delta = time.monotonic() - self._last_request_ts
        if delta < interval:
            time.sleep(interval - delta)


    def _sleep_backoff(self, attempt: int) -> None:
        """指数退避等待，加入 0~25% 抖动。"""
        if self.backoff_base_sec <= 0:
            return
        time.sleep(with_jitter(calc_next_delay(attempt, base_seconds=self.backoff_base_sec)))
