from __future__ import annotations
from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Integer, String, Text, Index, func
from sqlalchemy.orm import Mapped, mapped_column
from marketplace_hub.db.base import Base


"""
  credentials 表：Hub OAuth token，按 scope 分区
  - scope: global / agency / tenant:<id>
  - 每次 login/refresh 追加一行；同一 scope 最新的一行是当前值，过期的由 sweep 清理
"""
class Credential(Base):

    __tablename__ = "credentials"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    scope:         Mapped[str]           = mapped_column(String(64), nullable=False)
    access_token:  Mapped[str]           = mapped_column(Text, nullable=False)
    refresh_token: Mapped[Optional[str]] = mapped_column(Text)
    token_type:    Mapped[str]           = mapped_column(String(32), nullable=False, default="bearer")
    expires_in:    Mapped[int]           = mapped_column(Integer, nullable=False)                       # 秒
    issued_at:     Mapped[datetime]      = mapped_column(DateTime(timezone=True), nullable=False)       # UTC

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        Index("ix_credentials_scope_issued", "scope", "issued_at"),
    )

    def __repr__(self) -> str:
        return f"<Credential scope={self.scope} issued_at={self.issued_at} expires_in={self.expires_in}>"
