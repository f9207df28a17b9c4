import logging
import sys
from typing import Optional

from marketplace_hub.core.config import settings

# 日志行里统一带上 logger 名，方便按 marketplace_hub.services.* / integrations.* 过滤
LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def _quiet_loggers() -> list[str]:
    return [name.strip() for name in settings.LOG_QUIET_LOGGERS.split(",") if name.strip()]


def configure_logging(level: Optional[str] = None) -> logging.Logger:
    """
    FastAPI 进程、Celery worker、beat 共用：
      - root 没有 handler 时（worker / 脚本）挂一个 stdout handler
      - 已有 handler 时（uvicorn 已配置）只调整级别
    级别优先用参数，其次 settings.LOG_LEVEL。
    """
    resolved_level = (level or settings.LOG_LEVEL or "INFO").upper()
    root_logger = logging.getLogger()

    if not root_logger.handlers:
        logging.basicConfig(
            level=resolved_level,
            format=LOG_FORMAT,
            handlers=[logging.StreamHandler(sys.stdout)],
        )
    else:
        root_logger.setLevel(resolved_level)

    for name in _quiet_loggers():
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.captureWarnings(True)
    return logging.getLogger("marketplace_hub")
