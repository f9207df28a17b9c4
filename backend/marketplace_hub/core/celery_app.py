# 定时轮询 / 同步任务（beat 静态调度）

from celery import Celery
from kombu import Exchange, Queue
from marketplace_hub.core.config import settings
from marketplace_hub.core.logging import configure_logging

configure_logging()


'''
初始化 Celery 应用/实例
   - Beat: 1 台
   - Worker: 订单队列单独消费，目录/库存是慢 I/O，和订单分开
'''
celery_app = Celery(
    "marketplace_hub",
    broker=settings.CELERY_BROKER_URL,          # 队列位置 (Redis)
    backend=settings.CELERY_RESULT_BACKEND,     # 结果存储 (Redis)
    include=[
        "marketplace_hub.orchestration.orders.order_tasks",               # 订单轮询 / webhook 注册
        "marketplace_hub.orchestration.catalog.catalog_tasks",            # 目录导入 / 库存对账
        "marketplace_hub.orchestration.credentials.credential_tasks",     # token 清理
    ],
)


'''
  通用 Celery 配置
'''
celery_app.conf.update(
    timezone=settings.CELERY_TIMEZONE,
    enable_utc=True,                             # 内部还是存 UTC
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    task_track_started=True,
    broker_connection_retry_on_startup=True,
    # === 容错和超时控制 ===
    worker_prefetch_multiplier=1,    # 一个 worker 一次只取一个任务
    task_acks_late=True,             # 执行完再确认；观测/导入都是幂等的，重投安全
    broker_heartbeat=30,
    broker_pool_limit=10,
)



'''
不同任务配置不同队列
   - orders: 轮询窗口小、要及时
   - catalog: 分页拉目录 + 逐 SKU 查库存，慢
   - credentials: 很轻，单独放避免被慢任务堵住
'''
celery_app.conf.task_queues = (
    Queue("default", Exchange("default"), routing_key="default"),
    Queue("orders", Exchange("orders"), routing_key="orders"),
    Queue("catalog", Exchange("catalog"), routing_key="catalog"),
    Queue("credentials", Exchange("credentials"), routing_key="credentials"),
)

celery_app.conf.task_routes = {
    "marketplace_hub.orchestration.orders.order_tasks.poll_orders": {"queue": "orders"},
    "marketplace_hub.orchestration.orders.order_tasks.setup_order_webhook": {"queue": "orders"},

    "marketplace_hub.orchestration.catalog.catalog_tasks.sync_all_catalogs": {"queue": "catalog"},
    "marketplace_hub.orchestration.catalog.catalog_tasks.sync_all_stock": {"queue": "catalog"},

    "marketplace_hub.orchestration.credentials.credential_tasks.sweep_credentials": {"queue": "credentials"},
}



# 默认的静态调度（秒）
celery_app.conf.beat_schedule = {

    "poll-orders": {
        "task": "marketplace_hub.orchestration.orders.order_tasks.poll_orders",
        "schedule": settings.ORDER_POLL_INTERVAL_SEC,
    },

    "sync-all-stock": {
        "task": "marketplace_hub.orchestration.catalog.catalog_tasks.sync_all_stock",
        "schedule": settings.STOCK_SYNC_INTERVAL_SEC,
    },

    "sync-all-catalogs": {
        "task": "marketplace_hub.orchestration.catalog.catalog_tasks.sync_all_catalogs",
        "schedule": settings.CATALOG_SYNC_INTERVAL_SEC,
    },

    "sweep-credentials": {
        "task": "marketplace_hub.orchestration.credentials.credential_tasks.sweep_credentials",
        "schedule": settings.CREDENTIAL_SWEEP_INTERVAL_SEC,
    },
}
