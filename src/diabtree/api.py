"""FastAPI application exposing prediction, service info, and the confusion-matrix plot.

Endpoints:
    GET /pred       Predict from bmi, high_bp, high_chol, phys_activity, gen_hlth
                    (all optional; omitted fields use training defaults).
    GET /info       Static service metadata.
    GET /confusion  PNG heatmap of the in-sample confusion matrix.

Run with `python -m diabtree` or
`uvicorn diabtree.api:create_app --factory --host 0.0.0.0 --port 8000`.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Annotated

from fastapi import FastAPI, Query, Request, status
from fastapi.responses import JSONResponse, Response
from loguru import logger
from pydantic import JsonValue

from diabtree.config import Settings
from diabtree.exceptions import FeatureMissingError, MalformedInputError, UnknownCategoryError
from diabtree.plotting import render_confusion_png
from diabtree.records import ErrorResponse, PredictionResult, ServiceInfo
from diabtree.service import EvaluationService, ModelArtifact, PredictionService, parse_prediction_query, train_from_csv


@dataclass(frozen=True)
class ServiceContext:
    """Read-only state shared by every request handler.

    Published once on `app.state.context` before the first request is served.

    Attributes:
        artifact (ModelArtifact): The trained model artifact.
        prediction (PredictionService): Single-record prediction service.
        evaluation (EvaluationService): Confusion-matrix service.
        info (ServiceInfo): Static metadata for `/info`.
    """

    artifact: ModelArtifact
    prediction: PredictionService
    evaluation: EvaluationService
    info: ServiceInfo


def build_context(artifact: ModelArtifact, settings: Settings) -> ServiceContext:
    """Wrap a trained artifact in the services the handlers call.

    Args:
        artifact (ModelArtifact): The trained model artifact.
        settings (Settings): Settings providing `/info` metadata.

    Returns:
        ServiceContext: The immutable handler context.
    """
    return ServiceContext(
        artifact=artifact,
        prediction=PredictionService(artifact),
        evaluation=EvaluationService(artifact),
        info=ServiceInfo(name=settings.author, github_pages_url=settings.project_url),
    )


def create_app(settings: Settings | None = None, *, artifact: ModelArtifact | None = None) -> FastAPI:
    """Create the FastAPI application.

    Training runs in the lifespan hook, before any request is accepted. A
    training failure propagates and aborts startup.

    Args:
        settings (Settings | None): Runtime settings. Defaults to `Settings()`,
            read from the environment.
        artifact (ModelArtifact | None): A pre-trained artifact. When given, the
            dataset is not read.

    Returns:
        FastAPI: The configured application.
    """
    settings = settings or Settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        trained = artifact
        if trained is None:
            logger.info("Training model", dataset=str(settings.dataset_path))
            trained = train_from_csv(settings.dataset_path, settings.hyperparameters())
        app.state.context = build_context(trained, settings)
        logger.info(
            "Service ready",
            training_rows=trained.n_training_rows,
            leaves=trained.tree.leaf_count,
            depth=trained.tree.depth,
        )
        yield
        logger.info("Service stopped")

    app = FastAPI(
        title="Diabetes Health Indicators - Classification Tree API",
        description="Predicts diabetes risk from five health indicators with a classification tree.",
        version="1.0.0",
        lifespan=lifespan,
    )
    _register_error_handlers(app)

    @app.get(
        "/pred",
        response_class=JSONResponse,
        responses={
            status.HTTP_200_OK: {"description": "Predicted class and probability of Diabetes."},
            status.HTTP_400_BAD_REQUEST: {"model": ErrorResponse},
            status.HTTP_422_UNPROCESSABLE_ENTITY: {"model": ErrorResponse},
            status.HTTP_500_INTERNAL_SERVER_ERROR: {"model": ErrorResponse},
        },
    )
    def predict(
        request: Request,
        bmi: Annotated[str | None, Query(description="Body mass index")] = None,
        high_bp: Annotated[str | None, Query(description="High blood pressure (0 = No, 1 = Yes)")] = None,
        high_chol: Annotated[str | None, Query(description="High cholesterol (0 = No, 1 = Yes)")] = None,
        phys_activity: Annotated[str | None, Query(description="Physical activity (0 = No, 1 = Yes)")] = None,
        gen_hlth: Annotated[str | None, Query(description="General health (1 = Excellent ... 5 = Poor)")] = None,
    ) -> JSONResponse:
        """Predict the class and probability of Diabetes for one set of indicators."""
        record = parse_prediction_query({
            "bmi": bmi,
            "high_bp": high_bp,
            "high_chol": high_chol,
            "phys_activity": phys_activity,
            "gen_hlth": gen_hlth,
        })
        result: PredictionResult = _context(request).prediction.predict_one(record)
        return JSONResponse(result.model_dump(mode="json", by_alias=True))

    @app.get("/info", response_model=ServiceInfo)
    def info(request: Request) -> ServiceInfo:
        """Return basic information about the service."""
        return _context(request).info

    @app.get(
        "/confusion",
        response_class=Response,
        responses={status.HTTP_200_OK: {"content": {"image/png": {}}, "description": "Confusion matrix heatmap."}},
    )
    def confusion(request: Request) -> Response:
        """Render the confusion matrix of the full-data model fit."""
        matrix = _context(request).evaluation.confusion_matrix()
        return Response(content=render_confusion_png(matrix), media_type="image/png")

    return app


# ---------------------------------------------------------------------------
# Private helpers
# ---------------------------------------------------------------------------


def _context(request: Request) -> ServiceContext:
    return request.app.state.context


def _error_response(status_code: int, error: Exception, details: dict[str, JsonValue]) -> JSONResponse:
    body = ErrorResponse(error_type=type(error).__name__, message=str(error), details=details)
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json"))


def _register_error_handlers(app: FastAPI) -> None:
    """Convert per-request errors into structured error responses."""

    @app.exception_handler(MalformedInputError)
    async def malformed_input(request: Request, error: MalformedInputError) -> JSONResponse:
        logger.warning("Malformed request parameter", field=error.field, raw_value=error.raw_value)
        return _error_response(
            status.HTTP_400_BAD_REQUEST,
            error,
            {"field": error.field, "raw_value": error.raw_value, "expected": error.expected},
        )

    @app.exception_handler(UnknownCategoryError)
    async def unknown_category(request: Request, error: UnknownCategoryError) -> JSONResponse:
        return _error_response(
            status.HTTP_422_UNPROCESSABLE_ENTITY,
            error,
            {"field": error.field, "value": str(error.value), "levels": list(error.levels)},
        )

    @app.exception_handler(FeatureMissingError)
    async def feature_missing(request: Request, error: FeatureMissingError) -> JSONResponse:
        return _error_response(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            error,
            {"feature": error.feature, "available": error.available},
        )
