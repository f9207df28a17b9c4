"""
Hub OAuth token 生命周期（按 scope 分区）：
  Unissued -> Valid -> Expired -> Renewing -> Valid | Unissued

  - 缓存归 CredentialManager 实例所有（scope -> TokenSet），没有模块级全局 token；
  - 同一 scope 的 检查→refresh/login 串行（KeyedLocks），不同 scope 互不阻塞；
  - refresh 优先，失败或没有 refresh_token 时重新 login；任何路径都先落库再返回；
  - sweep 只清理过了宽限期的过期行，永远不删缓存里的当前值。
"""

from __future__ import annotations
import logging
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Callable, Dict, Optional

from sqlalchemy.orm import Session, sessionmaker

from marketplace_hub.core.config import settings
from marketplace_hub.core.errors import CredentialError, TransportError
from marketplace_hub.db.model.credential import Credential
from marketplace_hub.db.session import session_scope
from marketplace_hub.integrations.hub.auth import HubAuthAPI, LoginCredentials
from marketplace_hub.integrations.hub.normalizers import token_response_to_credential
from marketplace_hub.integrations.hub.schemas import TokenResponse
from marketplace_hub.integrations.hub.scopes import AGENCY_SCOPE, GLOBAL_SCOPE, tenant_id_of
from marketplace_hub.repository.credential_repo import (
    delete_credential_by_id, get_credential, list_credentials, put_credential,
)
from marketplace_hub.repository.integration_repo import get_tenant
from marketplace_hub.utils.clock import ensure_utc, now_utc
from marketplace_hub.utils.keyed_lock import KeyedLocks

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TokenSet:
    """某个 scope 的一份 token 快照（与 ORM 行解耦，可以跨线程/会话共享）。"""
    scope: str
    access_token: str
    refresh_token: Optional[str]
    expires_in: int
    issued_at: datetime
    token_type: str = "bearer"
    id: Optional[int] = None

    @property
    def expires_at(self) -> datetime:
        return ensure_utc(self.issued_at) + timedelta(seconds=int(self.expires_in or 0))

    @classmethod
    def from_row(cls, row: Credential) -> "TokenSet":
        return cls(
            scope=row.scope,
            access_token=row.access_token,
            refresh_token=row.refresh_token,
            expires_in=row.expires_in,
            issued_at=ensure_utc(row.issued_at),
            token_type=row.token_type,
            id=row.id,
        )



class CredentialManager:

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        auth: HubAuthAPI,
        *,
        grace_sec: Optional[int] = None,
        ttl_fallback_sec: Optional[int] = None,
        clock: Callable[[], datetime] = now_utc,
    ) -> None:
        self.session_factory = session_factory
        self.auth = auth
        self.grace_sec = settings.CREDENTIAL_GRACE_SEC if grace_sec is None else grace_sec
        self.ttl_fallback_sec = ttl_fallback_sec or settings.CREDENTIAL_TTL_FALLBACK_SEC
        self.clock = clock

        self._cache: Dict[str, TokenSet] = {}
        self._locks = KeyedLocks()


    # ---------- Cache ----------
    def is_valid(self, cred: Optional[TokenSet]) -> bool:
        """有 access_token 且 issued_at + expires_in 还在未来。"""
        if cred is None or not cred.access_token:
            return False
        return cred.expires_at > self.clock()


    def get(self, scope: str) -> Optional[TokenSet]:
        """先看缓存；缓存没有再从库里取该 scope 最新的一行（不判断是否有效）。"""
        cached = self._cache.get(scope)
        if cached is not None:
            return cached
        with session_scope(self.session_factory) as db:
            row = get_credential(db, scope)
            if row is None:
                return None
            cred = TokenSet.from_row(row)
        self._cache[scope] = cred
        return cred


    def put(self, scope: str, cred: TokenSet) -> TokenSet:
        """落库后再更新缓存；返回带主键的快照。"""
        with session_scope(self.session_factory) as db:
            row = put_credential(
                db,
                scope,
                access_token=cred.access_token,
                refresh_token=cred.refresh_token,
                expires_in=cred.expires_in,
                issued_at=cred.issued_at,
                token_type=cred.token_type,
            )
            stored = TokenSet.from_row(row)
        self._cache[scope] = stored
        return stored


    def invalidate(self, scope: str) -> None:
        """
        Hub 拒绝了当前 token（401）：缓存里标记为已过期，保留 refresh_token，
        下一次 ensure_valid 会先尝试 refresh。
        """
        cached = self._cache.get(scope)
        if cached is None:
            return
        self._cache[scope] = replace(cached, expires_in=0)
        logger.info("credential.invalidate scope=%s", scope)


    # ---------- Lifecycle ----------
    def ensure_valid(self, scope: str) -> TokenSet:
        """
        有效 → 直接返回；过期且有 refresh_token → refresh；refresh 失败或没有 → login。
        login 也失败时抛 CredentialError，调用方不能继续发需要该 scope 的请求。
        """
        with self._locks.hold(scope):
            current = self.get(scope)
            if self.is_valid(current):
                return current

            if current is not None and current.refresh_token:
                try:
                    token = self.auth.refresh(scope, current.refresh_token)
                    logger.info("credential.refreshed scope=%s", scope)
                    return self._store(scope, token)
                except (CredentialError, TransportError) as e:
                    logger.warning("credential.refresh_failed scope=%s err=%s, falling back to login", scope, e)

            try:
                token = self.auth.login(scope, self._login_credentials(scope))
            except TransportError as e:
                raise CredentialError(f"login failed for scope={scope}: {e}") from e
            logger.info("credential.login scope=%s", scope)
            return self._store(scope, token)


    def access_token(self, scope: str) -> str:
        return self.ensure_valid(scope).access_token


    def sweep(self) -> int:
        """删除过了宽限期的过期凭证；各 scope 缓存中的当前值跳过。返回删除条数。"""
        now = self.clock()
        grace = timedelta(seconds=self.grace_sec)
        current_ids = {cred.id for cred in self._cache.values() if cred.id is not None}

        deleted = 0
        with session_scope(self.session_factory) as db:
            for row in list_credentials(db):
                if row.id in current_ids:
                    continue
                cred = TokenSet.from_row(row)
                if cred.expires_at + grace < now:
                    deleted += delete_credential_by_id(db, row.id)

        if deleted:
            logger.info("credential.sweep deleted=%s", deleted)
        return deleted


    def recover(self) -> int:
        """启动时从库里预热缓存：每个 scope 取最新一行。返回恢复的 scope 数。"""
        latest: Dict[str, TokenSet] = {}
        with session_scope(self.session_factory) as db:
            for row in list_credentials(db):
                cred = TokenSet.from_row(row)
                prev = latest.get(cred.scope)
                if prev is None or (cred.issued_at, cred.id or 0) >= (prev.issued_at, prev.id or 0):
                    latest[cred.scope] = cred
        self._cache.update(latest)
        logger.info("credential.recover scopes=%s", sorted(latest))
        return len(latest)


    # ---------- Helpers ----------
    def _store(self, scope: str, token: TokenResponse) -> TokenSet:
        fields = token_response_to_credential(token, issued_at=self.clock(), ttl_fallback_sec=self.ttl_fallback_sec)
        return self.put(scope, TokenSet(scope=scope, **fields))


    def _login_credentials(self, scope: str) -> LoginCredentials:
        if scope == GLOBAL_SCOPE:
            username, password, oauth_scope = settings.HUB_USERNAME, settings.HUB_PASSWORD, settings.HUB_DEFAULT_SCOPE
        elif scope == AGENCY_SCOPE:
            username, password, oauth_scope = (
                settings.HUB_AGENCY_USERNAME, settings.HUB_AGENCY_PASSWORD, settings.HUB_AGENCY_SCOPE
            )
        else:
            tenant_id = tenant_id_of(scope)
            if tenant_id is None:
                raise CredentialError(f"unknown credential scope: {scope}")
            with session_scope(self.session_factory) as db:
                tenant = get_tenant(db, tenant_id)
                username = tenant.api_username if tenant else None
                password = tenant.api_password if tenant else None
            oauth_scope = settings.HUB_TENANT_SCOPE

        if not username or not password:
            raise CredentialError(f"no login credentials configured for scope={scope}")
        return LoginCredentials(username=username, password=password, oauth_scope=oauth_scope)
