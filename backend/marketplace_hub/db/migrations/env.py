# Alembic 驱动脚本：连接串来自 Settings（DATABASE_URL），元数据来自 marketplace_hub.db.model

from __future__ import annotations

from alembic import context
from sqlalchemy import engine_from_config, pool
from logging.config import fileConfig
import logging

from marketplace_hub.core.config import settings
from marketplace_hub.db.base import Base
import marketplace_hub.db.model  # 导入全部模型，登记到 Base.metadata


config = context.config

# Settings 优先于 alembic.ini 里的 sqlalchemy.url
if settings.DATABASE_URL:
    config.set_main_option("sqlalchemy.url", settings.DATABASE_URL)

# ini 没有 logging 段时退回 basicConfig
try:
    if config.config_file_name:
        fileConfig(config.config_file_name)
    else:
        logging.basicConfig(level=logging.INFO)
except KeyError:
    logging.basicConfig(level=logging.INFO)

target_metadata = Base.metadata


"""离线模式：只生成 SQL"""
def run_migrations_offline():
    context.configure(
        url=config.get_main_option("sqlalchemy.url"),
        target_metadata=target_metadata,
        literal_binds=True,
    )
    with context.begin_transaction():
        context.run_migrations()


"""在线模式：连库执行"""
def run_migrations_online():
    connectable = engine_from_config(
        config.get_section(config.config_ini_section),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )
    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            render_as_batch=connection.dialect.name == "sqlite",   # SQLite 只能 batch 改表
            compare_type=True,                                     # Numeric 精度变化也要能 diff 出来
            compare_server_default=True,
        )
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
