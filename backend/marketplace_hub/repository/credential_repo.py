# credential database repository

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from marketplace_hub.db.model.credential import Credential


def get_credential(db: Session, scope: str) -> Optional[Credential]:
    """该 scope 最新签发的一条（不判断是否过期，交给 CredentialManager）。"""
    stmt = (
        select(Credential)
        .where(Credential.scope == scope)
        .order_by(Credential.issued_at.desc(), Credential.id.desc())
        .limit(1)
    )
    return db.scalars(stmt).first()


def list_credentials(db: Session, scope: Optional[str] = None) -> List[Credential]:
    stmt = select(Credential)
    if scope is not None:
        stmt = stmt.where(Credential.scope == scope)
    stmt = stmt.order_by(Credential.scope.asc(), Credential.issued_at.asc())
    return list(db.scalars(stmt))


def put_credential(
    db: Session,
    scope: str,
    *,
    access_token: str,
    refresh_token: Optional[str],
    expires_in: int,
    issued_at: datetime,
    token_type: str = "bearer",
) -> Credential:
    row = Credential(
        scope=scope,
        access_token=access_token,
        refresh_token=refresh_token,
        token_type=token_type or "bearer",
        expires_in=int(expires_in),
        issued_at=issued_at,
    )
    db.add(row)
    db.commit()
    db.refresh(row)
    return row


def delete_credential(db: Session, scope: str, access_token: Optional[str] = None) -> int:
    """
    删除 scope 下的凭证；给了 access_token 时只删这一条。
    返回删除条数。
    """
    stmt = delete(Credential).where(Credential.scope == scope)
    if access_token is not None:
        stmt = stmt.where(Credential.access_token == access_token)
    res = db.execute(stmt)
    db.commit()
    return res.rowcount or 0


def delete_credential_by_id(db: Session, credential_id: int) -> int:
    res = db.execute(delete(Credential).where(Credential.id == credential_id))
    db.commit()
    return res.rowcount or 0
