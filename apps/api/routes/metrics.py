from fastapi import APIRouter, Request
from fastapi.responses import Response

from apps.api.metrics import PROMETHEUS_CONTENT_TYPE, PrometheusExporter, metrics_registry

router = APIRouter(tags=["metrics"])


@router.get("/metrics", summary="Prometheus scrape endpoint", include_in_schema=False)
async def metrics(request: Request) -> Response:
    registry = getattr(request.app.state, "metrics_registry", None) or metrics_registry
    return Response(content=PrometheusExporter(registry).export(), media_type=PROMETHEUS_CONTENT_TYPE)
