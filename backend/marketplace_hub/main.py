from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from marketplace_hub.core.config import settings
from marketplace_hub.core.logging import configure_logging
from marketplace_hub.core.wiring import get_container
from marketplace_hub.api.v1 import api_v1
from marketplace_hub.db.session import dispose_engine

configure_logging()

app = FastAPI(title=settings.PROJECT_NAME)

# 从环境读取前端白名单（逗号分隔）。本地可配：
# BACKEND_CORS_ORIGINS=http://localhost:5173,https://app.local.test:5173
origins = [o.strip() for o in settings.BACKEND_CORS_ORIGINS.split(",") if o.strip()]


app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)


@app.on_event("startup")
def warm_credentials() -> None:
    # 启动时从库里恢复各 scope 的 token，避免每个 worker 首个请求都重新登录
    get_container().credentials.recover()


@app.on_event("shutdown")
def release_pool() -> None:
    dispose_engine()


app.include_router(api_v1, prefix=settings.API_PREFIX)

# 根路径健康探活（方便测试或 Docker 健康检查）
@app.get("/")
def root():
    return {
        "app": settings.PROJECT_NAME,
        "env": settings.ENVIRONMENT,
        "ok": True
    }
