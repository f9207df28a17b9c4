from fastapi import APIRouter


# 健康检查
from .routes_health import router as health_router

# 外部系统回调（Hub / ERP 服务器调用，不在浏览器上下文）
from .webhooks_hub import router as webhooks_hub_router
from .webhooks_erp import router as webhooks_erp_router

# 集成配置 / 运营触发
from .integration import router as integration_router


api_v1 = APIRouter()
api_v1.include_router(health_router)
api_v1.include_router(webhooks_hub_router)
api_v1.include_router(webhooks_erp_router)
api_v1.include_router(integration_router)
