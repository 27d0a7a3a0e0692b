from api.src.routes.health import router as health_router
from api.src.routes.pipelines import router as pipelines_router
from api.src.routes.triggers import router as triggers_router
from api.src.routes.webhooks import router as webhooks_router

__all__ = ["health_router", "pipelines_router", "triggers_router", "webhooks_router"]
