"""FastAPI application factory."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from uuid import UUID

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.responses import JSONResponse

from scan_safety.api.schemas import (
    AssessmentRequest,
    AssessmentResponse,
    ProductResponse,
    RestrictionResponse,
)
from scan_safety.app_logging import configure_logging
from scan_safety.config import parse_subject_kind
from scan_safety.containers import AppContainer
from scan_safety.domain.barcodes import Symbology
from scan_safety.domain.errors import InvalidBarcodeFormat, LookupFailed
from scan_safety.domain.restrictions import SubjectRef
from scan_safety.services.barcodes import normalize, parse_symbology


def create_app(container: AppContainer) -> FastAPI:
    """Create a FastAPI app configured with dependencies."""
    configure_logging(container.settings.debug)
    logger = logging.getLogger(__name__)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        yield
        await app.state.container.close_resources()

    app = FastAPI(lifespan=lifespan)
    app.state.container = container

    @app.exception_handler(InvalidBarcodeFormat)
    async def invalid_barcode(
        request: Request, exc: InvalidBarcodeFormat
    ) -> JSONResponse:
        return JSONResponse(
            status_code=422,
            content={"detail": exc.message},
        )

    @app.exception_handler(LookupFailed)
    async def lookup_failed(request: Request, exc: LookupFailed) -> JSONResponse:
        logger.warning("Lookup failed for barcode %s: %s", exc.barcode, exc.message)
        return JSONResponse(
            status_code=status.HTTP_502_BAD_GATEWAY,
            content={"detail": exc.message},
        )

    @app.get("/health")
    async def health() -> dict[str, str]:
        """Simple health check endpoint."""
        return {"status": "ok"}

    @app.get("/products/{barcode}")
    async def get_product(
        barcode: str, request: Request, symbology: str = "ean13"
    ) -> ProductResponse:
        """Look a product up by barcode."""
        state_container: AppContainer = request.app.state.container
        canonical = normalize(barcode, _parse_symbology(barcode, symbology))
        product = await state_container.catalog.find_by_barcode(canonical.value)
        if product is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND, detail="Product not found"
            )
        return ProductResponse.from_domain(product)

    @app.post("/assessments")
    async def create_assessment(
        payload: AssessmentRequest, request: Request
    ) -> AssessmentResponse:
        """Assess a scanned barcode for a user or family member."""
        state_container: AppContainer = request.app.state.container
        subject = _subject(payload.subject_kind, payload.subject_id)
        symbology = _parse_symbology(payload.barcode, payload.symbology)
        try:
            verdict = await state_container.assessment_service.assess_barcode(
                payload.barcode, symbology, subject
            )
        except (InvalidBarcodeFormat, LookupFailed):
            raise
        except Exception as exc:
            logger.exception("Failed to assess barcode %s", payload.barcode)
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Failed to assess product safety",
            ) from exc
        if verdict is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND, detail="Product not found"
            )
        return AssessmentResponse.from_verdict(verdict)

    @app.get("/subjects/{kind}/{subject_id}/restrictions")
    async def list_restrictions(
        kind: str, subject_id: UUID, request: Request
    ) -> dict[str, list[RestrictionResponse]]:
        """Return the active restriction set for a subject, most severe first."""
        state_container: AppContainer = request.app.state.container
        subject = _subject(kind, subject_id)
        restrictions = state_container.restriction_resolver.active_restrictions(
            subject
        )
        return {
            "restrictions": [
                RestrictionResponse.from_domain(item) for item in restrictions
            ]
        }

    return app


def _parse_symbology(barcode: str, raw: str) -> Symbology:
    symbology = parse_symbology(raw)
    if symbology is None:
        raise InvalidBarcodeFormat(barcode, f"Unsupported barcode type: {raw}")
    return symbology


def _subject(kind: str, subject_id: UUID) -> SubjectRef:
    subject_kind = parse_subject_kind(kind)
    if subject_kind is None:
        raise HTTPException(
            status_code=422,
            detail=f"Unknown subject kind: {kind}",
        )
    return SubjectRef(kind=subject_kind, id=subject_id)
