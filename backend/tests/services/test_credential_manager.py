from __future__ import annotations

import threading
from datetime import datetime, timedelta, timezone
from typing import List

import pytest

from marketplace_hub.core.errors import CredentialError
from marketplace_hub.integrations.hub.errors import HubAuthError, HubServerError
from marketplace_hub.integrations.hub.schemas import TokenResponse
from marketplace_hub.repository.credential_repo import list_credentials, put_credential
from marketplace_hub.repository.integration_repo import save_tenant
from marketplace_hub.services import credential_manager as cm_module
from marketplace_hub.services.credential_manager import CredentialManager, TokenSet


T0 = datetime(2026, 10, 1, 12, 0, tzinfo=timezone.utc)


class FakeAuth:
    """记录 login / refresh 调用；可以分别让它失败。"""

    def __init__(self) -> None:
        self.logins: List[tuple] = []
        self.refreshes: List[tuple] = []
        self.fail_login = False
        self.fail_refresh = False
        self._seq = 0

    def _token(self, prefix: str) -> TokenResponse:
        self._seq += 1
        return TokenResponse(access_token=f"{prefix}-{self._seq}", refresh_token=f"r-{self._seq}", expires_in=3600)

    def login(self, scope, credentials):
        self.logins.append((scope, credentials))
        if self.fail_login:
            raise HubServerError("login endpoint down")
        return self._token("login")

    def refresh(self, scope, refresh_token):
        self.refreshes.append((scope, refresh_token))
        if self.fail_refresh:
            raise HubAuthError("refresh rejected")
        return self._token("refresh")


class Clock:

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: int) -> None:
        self.now = self.now + timedelta(seconds=seconds)


@pytest.fixture
def auth() -> FakeAuth:
    return FakeAuth()


@pytest.fixture
def clock() -> Clock:
    return Clock(T0)


@pytest.fixture
def manager(session_factory, auth, clock, monkeypatch) -> CredentialManager:
    monkeypatch.setattr(cm_module.settings, "HUB_USERNAME", "main-user")
    monkeypatch.setattr(cm_module.settings, "HUB_PASSWORD", "main-pass")
    return CredentialManager(session_factory, auth, grace_sec=600, ttl_fallback_sec=7200, clock=clock)



# ---------- 签发 / 复用 ----------
def test_first_use_logs_in_and_persists(manager, auth, session_factory):
    token = manager.access_token("global")

    assert token == "login-1"
    assert len(auth.logins) == 1
    credentials = auth.logins[0][1]
    assert credentials.username == "main-user"
    with session_factory() as db:
        rows = list_credentials(db, "global")
    assert [r.access_token for r in rows] == ["login-1"]


def test_valid_token_is_reused(manager, auth, clock):
    manager.access_token("global")
    clock.advance(3000)

    assert manager.access_token("global") == "login-1"
    assert len(auth.logins) == 1
    assert auth.refreshes == []


def test_expired_token_is_refreshed(manager, auth, clock):
    manager.access_token("global")
    clock.advance(3601)

    assert manager.access_token("global") == "refresh-2"
    assert auth.refreshes == [("global", "r-1")]
    assert len(auth.logins) == 1


def test_refresh_failure_falls_back_to_login(manager, auth, clock):
    manager.access_token("global")
    clock.advance(3601)
    auth.fail_refresh = True

    assert manager.access_token("global") == "login-2"
    assert len(auth.logins) == 2


def test_login_failure_raises_credential_error(manager, auth):
    auth.fail_login = True

    with pytest.raises(CredentialError):
        manager.ensure_valid("global")


def test_missing_login_config_raises(manager, monkeypatch):
    monkeypatch.setattr(cm_module.settings, "HUB_PASSWORD", None)

    with pytest.raises(CredentialError):
        manager.ensure_valid("global")


def test_unknown_scope_raises(manager):
    with pytest.raises(CredentialError):
        manager.ensure_valid("somewhere-else")


# 子账号用自己保存的 API 账号登录
def test_tenant_scope_uses_tenant_account(manager, auth, session_factory):
    with session_factory() as db:
        save_tenant(db, tenant_id="77", shop_id="shop-77", api_username="t-user", api_password="t-pass")

    manager.access_token("tenant:77")

    scope, credentials = auth.logins[0]
    assert scope == "tenant:77"
    assert credentials.username == "t-user"
    assert credentials.oauth_scope == cm_module.settings.HUB_TENANT_SCOPE


def test_scopes_are_isolated(manager, auth, session_factory):
    with session_factory() as db:
        save_tenant(db, tenant_id="77", shop_id="shop-77", api_username="t-user", api_password="t-pass")

    manager.access_token("global")
    manager.access_token("tenant:77")
    manager.invalidate("tenant:77")
    manager.access_token("global")

    assert [s for s, _ in auth.logins] == ["global", "tenant:77"]
    assert manager.get("global").access_token == "login-1"


# 401 之后：缓存标记过期，下一次优先 refresh
def test_invalidate_forces_refresh(manager, auth):
    manager.access_token("global")

    manager.invalidate("global")

    assert not manager.is_valid(manager.get("global"))
    assert manager.access_token("global") == "refresh-2"


def test_missing_expires_in_uses_fallback(manager, auth, clock, monkeypatch):
    monkeypatch.setattr(auth, "_token", lambda prefix: TokenResponse(access_token="no-ttl"))

    cred = manager.ensure_valid("global")

    assert cred.expires_in == 7200
    assert cred.expires_at == T0 + timedelta(seconds=7200)


# 同一 scope 并发：只登录一次
def test_concurrent_callers_share_one_login(manager, auth):
    barrier = threading.Barrier(5)
    tokens: List[str] = []

    def worker():
        barrier.wait()
        tokens.append(manager.access_token("global"))

    threads = [threading.Thread(target=worker) for _ in range(5)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(auth.logins) == 1
    assert set(tokens) == {"login-1"}



# ---------- 清理 / 恢复 ----------
def _seed_row(session_factory, scope: str, token: str, issued_at: datetime, expires_in: int = 3600):
    with session_factory() as db:
        return put_credential(db, scope, access_token=token, refresh_token=None, expires_in=expires_in, issued_at=issued_at)


def test_sweep_deletes_only_expired_beyond_grace(manager, session_factory, clock):
    _seed_row(session_factory, "agency", "old", T0 - timedelta(hours=3))                  # 过期 2h：删除
    _seed_row(session_factory, "agency", "recent", T0 - timedelta(seconds=3600 + 300))    # 过期 5 分钟：宽限期内
    manager.access_token("global")

    deleted = manager.sweep()

    assert deleted == 1
    with session_factory() as db:
        remaining = sorted(r.access_token for r in list_credentials(db))
    assert remaining == ["login-1", "recent"]


def test_sweep_never_deletes_current_cached_token(manager, session_factory, clock):
    manager.access_token("global")
    clock.advance(3600 * 5)

    assert manager.sweep() == 0
    assert manager.get("global").access_token == "login-1"


def test_recover_warms_cache_with_latest_per_scope(session_factory, auth, clock):
    _seed_row(session_factory, "global", "older", T0 - timedelta(minutes=30))
    _seed_row(session_factory, "global", "newer", T0 - timedelta(minutes=5))
    _seed_row(session_factory, "tenant:9", "tenant-token", T0 - timedelta(minutes=5))
    manager = CredentialManager(session_factory, auth, clock=clock)

    assert manager.recover() == 2
    assert manager.access_token("global") == "newer"
    assert manager.access_token("tenant:9") == "tenant-token"
    assert auth.logins == []


def test_token_set_expiry_handles_naive_datetimes():
    cred = TokenSet(scope="global", access_token="x", refresh_token=None, expires_in=60,
                    issued_at=datetime(2026, 10, 1, 12, 0))

    assert cred.expires_at == T0 + timedelta(seconds=60)
