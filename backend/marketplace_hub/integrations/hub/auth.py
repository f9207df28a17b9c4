"""
Hub OAuth2 接口：password 登录 / refresh_token 续期。
只负责一次 HTTP 往返，缓存与持久化在 services/credential_manager.py。
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from pydantic import ValidationError as PydanticValidationError

from marketplace_hub.core.config import settings
from marketplace_hub.integrations.hub.errors import HubAuthError, HubError
from marketplace_hub.integrations.hub.http_client import HubHttpClient
from marketplace_hub.integrations.hub.schemas import TokenResponse

logger = logging.getLogger(__name__)

LOGIN_PATH = "/oauth2/login"
REFRESH_PATH = "/oauth2/token"


@dataclass(frozen=True)
class LoginCredentials:
    username: str
    password: str
    oauth_scope: str


class HubAuthAPI:

    def __init__(self, http: HubHttpClient, client_id: Optional[str] = None, client_secret: Optional[str] = None) -> None:
        self.http = http
        self.client_id = client_id or settings.HUB_CLIENT_ID
        self.client_secret = client_secret or settings.HUB_CLIENT_SECRET


    def login(self, scope: str, credentials: LoginCredentials) -> TokenResponse:
        body = {
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "username": credentials.username,
            "password": credentials.password,
            "grant_type": "password",
            "scope": credentials.oauth_scope,
        }
        return self._token_call(LOGIN_PATH, body, scope=scope, action="login")


    def refresh(self, scope: str, refresh_token: str) -> TokenResponse:
        body = {
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
        }
        return self._token_call(REFRESH_PATH, body, scope=scope, action="refresh")


    def _token_call(self, path: str, body: dict, *, scope: str, action: str) -> TokenResponse:
        # 不带 access_token（scope=None），否则会递归回 CredentialManager
        try:
            data = self.http.post_json(path, json_body=body)
        except HubError as e:
            logger.warning("hub.auth.%s failed scope=%s err=%s", action, scope, e)
            raise HubAuthError(f"{action} failed for scope={scope}: {e}") from e

        try:
            token = TokenResponse.model_validate(data or {})
        except PydanticValidationError as e:
            raise HubAuthError(f"{action} response missing access_token for scope={scope}") from e

        logger.info("hub.auth.%s ok scope=%s expires_in=%s", action, scope, token.expires_in)
        return token
