"""FastAPI ingress for the manuscript analysis pipeline."""

from __future__ import annotations

import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, FastAPI, Request, Response, status
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, ConfigDict, Field

from manuscript_observability import log_context, setup_fastapi_metrics, setup_logging
from manuscript_schemas import ArtifactKind, ExportFormat, PipelineStage, UserRecord
from manuscript_substrate import Substrate, build_substrate, load_settings
from manuscript_substrate.errors import AuthenticationError, NotFoundError, PipelineError

from .errors import install_error_handlers, pipeline_error_handler
from .ingress import COVER_VARIATION_SLUG, IngressAdapter

SERVICE_NAME = "api"
SESSION_COOKIE = "session_id"
setup_logging(SERVICE_NAME)
logger = logging.getLogger(__name__)


class AnalyzeRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    manuscript_key: str = Field(..., min_length=1, alias="manuscriptKey")
    genre: Optional[str] = None
    style_guide: str = Field("chicago", alias="styleGuide")
    title: Optional[str] = None
    author_data: Optional[dict[str, Any]] = Field(None, alias="authorData")
    series_data: Optional[dict[str, Any]] = Field(None, alias="seriesData")
    cover_variations: Optional[int] = Field(None, ge=1, le=5, alias="coverVariations")
    stages: Optional[list[PipelineStage]] = None


class AnalyzeResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    report_id: str = Field(alias="reportId")
    status: str = "queued"


def get_ingress(request: Request) -> IngressAdapter:
    return request.app.state.ingress


async def current_user(request: Request, ingress: IngressAdapter = Depends(get_ingress)) -> UserRecord:
    user = getattr(request.state, "user", None)
    if user is None:
        user = await ingress.authenticate(request.cookies.get(SESSION_COOKIE))
    return user


router = APIRouter()


@router.get("/health", tags=["health"])
async def health() -> dict[str, str]:
    """Simple readiness check."""

    return {"status": "ok"}


@router.post(
    "/manuscripts/analyze",
    response_model=AnalyzeResponse,
    response_model_by_alias=True,
    status_code=status.HTTP_202_ACCEPTED,
    tags=["analysis"],
)
async def analyze(
    payload: AnalyzeRequest,
    user: UserRecord = Depends(current_user),
    ingress: IngressAdapter = Depends(get_ingress),
) -> AnalyzeResponse:
    options = payload.model_dump(
        by_alias=True,
        exclude_none=True,
        include={"title", "author_data", "series_data", "cover_variations", "stages"},
    )
    report_id = await ingress.enqueue_analysis(
        user,
        payload.manuscript_key,
        payload.genre,
        payload.style_guide,
        **options,
    )
    return AnalyzeResponse(report_id=report_id)


@router.get("/reports/{report_id}/status", tags=["analysis"])
async def report_status(
    report_id: str,
    user: UserRecord = Depends(current_user),
    ingress: IngressAdapter = Depends(get_ingress),
) -> dict[str, Any]:
    record = await ingress.get_status(user, report_id)
    return record.to_wire()


@router.get("/reports/{report_id}/artifacts/{kind}", tags=["analysis"])
async def report_artifact(
    report_id: str,
    kind: str,
    user: UserRecord = Depends(current_user),
    ingress: IngressAdapter = Depends(get_ingress),
) -> Response:
    variation = COVER_VARIATION_SLUG.match(kind)
    if variation:
        stored = await ingress.get_cover_variation(user, report_id, int(variation.group(1)))
        return Response(content=stored.body, media_type=stored.content_type)
    try:
        artifact_kind = ArtifactKind.from_slug(kind)
    except ValueError as exc:
        raise NotFoundError(str(exc)) from exc
    stored = await ingress.get_artifact(user, report_id, artifact_kind)
    return Response(content=stored.body, media_type=stored.content_type)


@router.get("/reports/{report_id}/export/{export_format}", tags=["analysis"])
async def report_export(
    report_id: str,
    export_format: ExportFormat,
    user: UserRecord = Depends(current_user),
    ingress: IngressAdapter = Depends(get_ingress),
) -> Response:
    stored = await ingress.download_export(user, report_id, export_format)
    return Response(
        content=stored.body,
        media_type=export_format.artifact.content_type,
        headers={"Content-Disposition": f'attachment; filename="{report_id}.{export_format.value}"'},
    )


@router.post("/reports/{report_id}/cancel", status_code=status.HTTP_202_ACCEPTED, tags=["analysis"])
async def cancel_report(
    report_id: str,
    user: UserRecord = Depends(current_user),
    ingress: IngressAdapter = Depends(get_ingress),
) -> dict[str, str]:
    await ingress.request_cancel(user, report_id)
    return {"reportId": report_id, "status": "cancelling"}


def create_app(substrate: Substrate | None = None) -> FastAPI:
    substrate = substrate or build_substrate(load_settings())
    ingress = IngressAdapter(substrate)

    app = FastAPI(title="Manuscript Pipeline API", version="0.1.0")
    app.state.substrate = substrate
    app.state.ingress = ingress
    setup_fastapi_metrics(app, service_name=SERVICE_NAME)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[substrate.settings.frontend_url],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    install_error_handlers(app)

    @app.middleware("http")
    async def rate_limit(request: Request, call_next):
        client_ip = request.client.host if request.client else None
        try:
            try:
                user = await ingress.authenticate(request.cookies.get(SESSION_COOKIE))
            except AuthenticationError:
                user = None
            request.state.user = user
            decision = await substrate.limiter.enforce(
                request.url.path,
                client_ip,
                user.id if user else None,
                user.subscription_tier if user else None,
            )
        except PipelineError as exc:
            return await pipeline_error_handler(request, exc)

        with log_context(user_id=user.id if user else None):
            response = await call_next(request)
        response.headers.update(decision.headers())
        return response

    @app.on_event("shutdown")
    async def _close_substrate() -> None:
        await substrate.aclose()

    app.include_router(router)
    return app


app = create_app()
