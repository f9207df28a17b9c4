from __future__ import annotations
import logging
from typing import Any, Dict

from celery import shared_task

from marketplace_hub.core.logging import configure_logging
from marketplace_hub.core.wiring import get_container


configure_logging()
logger = logging.getLogger(__name__)



'''
 目录导入：每个有 shop 的 tenant 从自己的 offset 拉一页 status=2，写回下一页 offset
 单个 tenant 失败只影响自己，不阻塞其它 tenant
'''
@shared_task(name="marketplace_hub.orchestration.catalog.catalog_tasks.sync_all_catalogs")
def sync_all_catalogs() -> Dict[str, Any]:
    return sync_all_catalogs_inline()


def sync_all_catalogs_inline() -> Dict[str, Any]:
    logger.info("========  sync_all_catalogs start  ========")
    totals = get_container().catalog.sync_all_catalogs()
    logger.info("======== sync_all_catalogs end %s ========", totals)
    return {"status": "ok", **totals}



'''
 库存对账：本地 Variation.stock 与 Hub 可用库存不一致时以 Hub 为准
'''
@shared_task(name="marketplace_hub.orchestration.catalog.catalog_tasks.sync_all_stock")
def sync_all_stock() -> Dict[str, Any]:
    return sync_all_stock_inline()


def sync_all_stock_inline() -> Dict[str, Any]:
    logger.info("========  sync_all_stock start  ========")
    totals = get_container().catalog.sync_all_stock()
    logger.info("======== sync_all_stock end %s ========", totals)
    return {"status": "ok", **totals}
