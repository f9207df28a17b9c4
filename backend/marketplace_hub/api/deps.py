# FastAPI 依赖：路由通过 Depends(get_hub) 拿组装好的服务；测试用 dependency_overrides 换成自己的容器

from marketplace_hub.core.wiring import HubContainer, get_container


def get_hub() -> HubContainer:
    return get_container()
