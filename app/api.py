"""HTTP route definitions for the service."""

from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status

from app.schemas import (
    BoundsModel,
    CellDetailModel,
    CellSummary,
    CompactionResult,
    CoordinateModel,
    DimensionValueModel,
    HeatmapPointModel,
    ProfileModel,
    ReadingModel,
    ReportAccepted,
    ReportSubmission,
    RouteAlternativeModel,
    RoutePlanModel,
    RouteRequest,
    SensoryReportModel,
    WeightedReportModel,
)
from datastore.report_store import ReportNotFoundError
from models.records import CellKey, Dimension
from services.aggregator import CellDetail
from services.grid_index import format_cell_key, parse_cell_key
from services.sensmap import SensmapService, build_default_service

router = APIRouter()


def get_service() -> SensmapService:
    return build_default_service()


def _parse_key(raw: str) -> CellKey:
    try:
        return parse_cell_key(raw)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc


def _summary(detail: CellDetail) -> CellSummary:
    return CellSummary(
        cell_key=format_cell_key(detail.cell.key),
        bounds=BoundsModel.from_record(detail.cell.bounds),
        report_count=len(detail.cell.reports),
        reading=ReadingModel.from_record(detail.reading) if detail.reading else None,
        score=detail.score,
    )


@router.post(
    "/reports",
    status_code=status.HTTP_201_CREATED,
    response_model=ReportAccepted,
    summary="Submit a sensory report at a location.",
)
async def submit_report(
    submission: ReportSubmission,
    service: SensmapService = Depends(get_service),
) -> ReportAccepted:
    try:
        key, report = service.submit_report(
            CoordinateModel(lat=submission.lat, lng=submission.lng).to_record(),
            submission.category,
            submission.sensory_values(),
            duration=submission.duration_minutes,
            wheelchair_issue=submission.wheelchair_issue,
        )
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    return ReportAccepted(cell_key=format_cell_key(key), report=SensoryReportModel.from_record(report))


@router.post(
    "/reports/undo",
    response_model=SensoryReportModel,
    summary="Remove the most recently added report.",
)
async def undo_last_report(
    service: SensmapService = Depends(get_service),
) -> SensoryReportModel:
    try:
        report = service.undo_last()
    except KeyError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc
    return SensoryReportModel.from_record(report)


@router.delete(
    "/cells/{cell_key}/reports/{report_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete one report from a cell.",
)
async def delete_report(
    cell_key: str,
    report_id: int,
    service: SensmapService = Depends(get_service),
) -> Response:
    key = _parse_key(cell_key)
    try:
        service.delete_report(key, report_id)
    except ReportNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get(
    "/cells",
    response_model=List[CellSummary],
    summary="List every cell with its aggregated reading and personalized score.",
)
async def list_cells(
    service: SensmapService = Depends(get_service),
) -> List[CellSummary]:
    return [_summary(detail) for detail in service.cell_summaries()]


@router.get(
    "/cells/{cell_key}",
    response_model=CellDetailModel,
    summary="Reports, decay weights and reading for one cell.",
)
async def get_cell(
    cell_key: str,
    service: SensmapService = Depends(get_service),
) -> CellDetailModel:
    key = _parse_key(cell_key)
    try:
        detail = service.cell_detail(key)
    except ReportNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc
    return CellDetailModel(
        **_summary(detail).model_dump(),
        reports=[
            WeightedReportModel(
                report=SensoryReportModel.from_record(item.report),
                weight=item.weight,
            )
            for item in detail.reports
        ],
    )


@router.get(
    "/heatmap",
    response_model=List[HeatmapPointModel],
    summary="Personalized heat points, one per cell with active reports.",
)
async def heatmap(
    intensity: float = Query(0.7, gt=0, le=1, description="Scale applied to normalized scores."),
    service: SensmapService = Depends(get_service),
) -> List[HeatmapPointModel]:
    return [
        HeatmapPointModel(
            cell_key=format_cell_key(point.cell_key),
            center=CoordinateModel.from_record(point.center),
            score=point.score,
            intensity=point.intensity,
        )
        for point in service.heatmap(intensity=intensity)
    ]


@router.get(
    "/dimensions/{dimension}",
    response_model=List[DimensionValueModel],
    summary="Aggregated value of a single sensory dimension per cell.",
)
async def dimension_view(
    dimension: Dimension,
    service: SensmapService = Depends(get_service),
) -> List[DimensionValueModel]:
    return [
        DimensionValueModel(
            cell_key=format_cell_key(item.cell_key),
            center=CoordinateModel.from_record(item.center),
            value=item.value,
            has_wheelchair_issue=item.has_wheelchair_issue,
        )
        for item in service.dimension_view(dimension)
    ]


@router.get(
    "/profile",
    response_model=ProfileModel,
    summary="Current sensitivity profile.",
)
async def get_profile(
    service: SensmapService = Depends(get_service),
) -> ProfileModel:
    return ProfileModel.from_record(service.get_profile())


@router.put(
    "/profile",
    response_model=ProfileModel,
    summary="Replace the sensitivity profile.",
)
async def update_profile(
    profile: ProfileModel,
    service: SensmapService = Depends(get_service),
) -> ProfileModel:
    return ProfileModel.from_record(service.update_profile(profile.to_record()))


@router.post(
    "/routes",
    response_model=RoutePlanModel,
    summary="Pick the best walking route between two points for a route type.",
)
async def calculate_route(
    request: RouteRequest,
    service: SensmapService = Depends(get_service),
) -> RoutePlanModel:
    try:
        plan = await service.calculate_route(
            request.start.to_record() if request.start else None,
            request.end.to_record() if request.end else None,
            route_type=request.route_type,
        )
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    return RoutePlanModel(
        route=RouteAlternativeModel.from_record(plan.route),
        alternatives=[RouteAlternativeModel.from_record(route) for route in plan.alternatives],
        used_fallback=plan.used_fallback,
    )


@router.post(
    "/maintenance/compact",
    response_model=CompactionResult,
    summary="Drop expired reports immediately.",
)
async def compact(
    service: SensmapService = Depends(get_service),
) -> CompactionResult:
    removed = service.compact()
    return CompactionResult(removed=removed, cells=len(service.store))


@router.get(
    "/health",
    summary="Health check endpoint.",
    status_code=status.HTTP_200_OK,
)
async def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


@router.get(
    "/",
    summary="Root endpoint mirrors health information.",
    status_code=status.HTTP_200_OK,
)
async def root() -> dict[str, str]:
    return {"status": "ok", "detail": "See /health for service status."}
