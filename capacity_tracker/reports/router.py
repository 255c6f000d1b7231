"""Reports router — historical capacity extract (JSON) and Excel export.

Mounted under ``/capacity`` next to the capacity router. Requires the
``can_export_reports`` capability (admin, manager, view-only).
"""

import uuid
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession

from capacity_tracker.auth.dependencies import require_capability
from capacity_tracker.common.constants import XLSX_MEDIA_TYPE
from capacity_tracker.database import get_db
from capacity_tracker.reports.schemas import HistoricalReport
from capacity_tracker.reports.service import build_workbook, export_filename, extract_historical
from capacity_tracker.users.models import User

router = APIRouter(prefix="", tags=["reports"])

_require_exporter = require_capability(
    "can_export_reports", "Not authorized to export capacity reports.",
)


# ── GET /extract-historical ─────────────────────────────────────────

@router.get("/extract-historical", response_model=HistoricalReport)
async def extract_historical_capacity(
    start_week: date = Query(...),
    end_week: date = Query(...),
    user_ids: Optional[list[uuid.UUID]] = Query(None),
    include_notes: bool = Query(False),
    user: User = Depends(_require_exporter),
    db: AsyncSession = Depends(get_db),
):
    """Weekly capacity detail between two weeks (inclusive)."""
    return await extract_historical(
        db, start_week, end_week, user_ids=user_ids, include_notes=include_notes,
    )


# ── GET /export-excel ───────────────────────────────────────────────

@router.get("/export-excel")
async def export_excel(
    start_week: date = Query(...),
    end_week: date = Query(...),
    user_ids: Optional[list[uuid.UUID]] = Query(None),
    include_notes: bool = Query(False),
    user: User = Depends(_require_exporter),
    db: AsyncSession = Depends(get_db),
):
    """Same data as /extract-historical, as an .xlsx download."""
    report = await extract_historical(
        db, start_week, end_week, user_ids=user_ids, include_notes=include_notes,
    )
    filename = export_filename(report.start_week, report.end_week)
    return Response(
        content=build_workbook(report),
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
