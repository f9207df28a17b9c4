# 凭证 scope key：global（主账号）/ agency（代理账号）/ tenant:<id>（子账号）

from __future__ import annotations
from typing import Optional

GLOBAL_SCOPE = "global"
AGENCY_SCOPE = "agency"
TENANT_SCOPE_PREFIX = "tenant:"


def tenant_scope(tenant_id: str) -> str:
    return f"{TENANT_SCOPE_PREFIX}{tenant_id}"


def tenant_id_of(scope: str) -> Optional[str]:
    if scope.startswith(TENANT_SCOPE_PREFIX):
        return scope[len(TENANT_SCOPE_PREFIX):] or None
    return None
