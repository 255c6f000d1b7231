"""Historical export engine — per-user weekly capacity over a date range.

``extract_historical`` builds the JSON report; ``build_workbook`` renders the
same report as an .xlsx file with a "Summary" and a "Detailed Allocations"
sheet. Working days are recomputed from approved time off for every row.
"""

from __future__ import annotations

import io
import logging
import uuid
from datetime import date
from typing import Iterable, Optional, Sequence

from openpyxl import Workbook
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.utils import get_column_letter
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from capacity_tracker.app_settings.service import SettingsService
from capacity_tracker.capacity.models import Allocation
from capacity_tracker.capacity.working_days import max_hours, working_days_table
from capacity_tracker.common.access import capacity_subject_roles
from capacity_tracker.common.audit import utcnow
from capacity_tracker.common.constants import ALLOCATION_CATEGORIES, DATE_FORMAT
from capacity_tracker.common.dates import iter_weeks, start_of_week
from capacity_tracker.common.exceptions import ValidationException
from capacity_tracker.reports.schemas import (
    CapacityTotals,
    HistoricalReport,
    HistoricalSummary,
    HistoricalUserDetail,
    HistoricalWeek,
)
from capacity_tracker.users.models import User

logger = logging.getLogger(__name__)

SUMMARY_SHEET = "Summary"
DETAIL_SHEET = "Detailed Allocations"


def _totals(details: Sequence[HistoricalUserDetail]) -> CapacityTotals:
    total_max = sum(d.max_hours for d in details)
    total_allocated = sum(d.allocated_hours for d in details)
    return CapacityTotals(
        unique_users=len({d.user_id for d in details}),
        total_max_hours=total_max,
        total_allocated_hours=total_allocated,
        total_available_hours=sum(d.available_hours for d in details),
        average_utilization=total_allocated / total_max * 100 if total_max else 0.0,
    )


def export_filename(start_week: date, end_week: date) -> str:
    return (
        f"team-capacity-export-{start_week.strftime(DATE_FORMAT)}"
        f"-to-{end_week.strftime(DATE_FORMAT)}.xlsx"
    )


# ═════════════════════════════════════════════════════════════════════
# Extraction
# ═════════════════════════════════════════════════════════════════════


async def extract_historical(
    db: AsyncSession,
    start_week: date,
    end_week: date,
    *,
    user_ids: Optional[Iterable[uuid.UUID]] = None,
    include_notes: bool = False,
) -> HistoricalReport:
    """Per-week capacity detail for every capacity subject with an allocation."""
    start_week = start_of_week(start_week)
    end_week = start_of_week(end_week)
    if start_week >= end_week:
        raise ValidationException(
            {"end_week": ["End week must be after the start week."]}
        )

    query = (
        select(Allocation)
        .join(User, Allocation.user_id == User.id)
        .where(
            Allocation.week_start >= start_week,
            Allocation.week_start <= end_week,
            User.role.in_(capacity_subject_roles()),
        )
        .options(selectinload(Allocation.user))
        .order_by(Allocation.week_start, User.name)
    )
    user_ids = list(user_ids or [])
    if user_ids:
        query = query.where(Allocation.user_id.in_(user_ids))

    result = await db.execute(query)
    allocations = result.scalars().all()

    weeks = list(iter_weeks(start_week, end_week))
    tunables = await SettingsService.load_tunables(db)
    days = await working_days_table(db, [a.user_id for a in allocations], weeks, tunables)

    by_week: dict[date, list[HistoricalUserDetail]] = {week: [] for week in weeks}
    for alloc in allocations:
        working_days = days[(alloc.user_id, alloc.week_start)]
        hours = max_hours(working_days, tunables)
        total = alloc.total_allocation
        allocated = hours * total / 100
        by_week[alloc.week_start].append(
            HistoricalUserDetail(
                user_id=alloc.user_id,
                name=alloc.user.name,
                email=alloc.user.email,
                role=alloc.user.role,
                working_days=working_days,
                max_hours=hours,
                total_allocation=total,
                allocated_hours=allocated,
                available_hours=hours - allocated,
                categories=alloc.category_values,
                weekly_priority=alloc.weekly_priority if include_notes else None,
            )
        )

    week_reports = [
        HistoricalWeek(week_start=week, users=details, summary=_totals(details))
        for week, details in by_week.items()
    ]
    overall = _totals([d for details in by_week.values() for d in details])

    logger.info(
        "Historical extract %s..%s: %d weeks, %d rows",
        start_week, end_week, len(weeks), len(allocations),
    )
    return HistoricalReport(
        start_week=start_week,
        end_week=end_week,
        include_notes=include_notes,
        generated_at=utcnow(),
        weeks=week_reports,
        summary=HistoricalSummary(total_weeks=len(weeks), **overall.model_dump()),
    )


# ═════════════════════════════════════════════════════════════════════
# Workbook rendering
# ═════════════════════════════════════════════════════════════════════

_HEADER_FONT = Font(bold=True, color="FFFFFF")
_HEADER_FILL = PatternFill(start_color="2E3B4E", end_color="2E3B4E", fill_type="solid")
_TITLE_FONT = Font(bold=True, size=14)


def _style_header(ws, row: int) -> None:
    for cell in ws[row]:
        if cell.value is None:
            continue
        cell.font = _HEADER_FONT
        cell.fill = _HEADER_FILL
        cell.alignment = Alignment(horizontal="center", vertical="center")


def _fit_columns(ws, min_width: int = 10, max_width: int = 45) -> None:
    for idx, column in enumerate(ws.iter_cols(), start=1):
        longest = max((len(str(c.value)) for c in column if c.value is not None), default=0)
        ws.column_dimensions[get_column_letter(idx)].width = max(min_width, min(max_width, longest + 2))


def _write_summary(ws, report: HistoricalReport) -> None:
    s = report.summary
    ws.append(["Team Capacity Export"])
    ws["A1"].font = _TITLE_FONT
    ws.append([])
    for label, value in (
        ("Generated At", report.generated_at.strftime("%Y-%m-%d %H:%M:%S UTC")),
        ("Start Week", report.start_week.strftime(DATE_FORMAT)),
        ("End Week", report.end_week.strftime(DATE_FORMAT)),
        ("Total Weeks", s.total_weeks),
        ("Unique Users", s.unique_users),
        ("Total Max Hours", round(s.total_max_hours, 2)),
        ("Total Allocated Hours", round(s.total_allocated_hours, 2)),
        ("Total Available Hours", round(s.total_available_hours, 2)),
        ("Average Utilization (%)", round(s.average_utilization, 2)),
    ):
        ws.append([label, value])
        ws.cell(row=ws.max_row, column=1).font = Font(bold=True)

    ws.append([])
    ws.append(["Week", "Users", "Max Hours", "Allocated Hours", "Available Hours", "Utilization (%)"])
    _style_header(ws, ws.max_row)
    for week in report.weeks:
        ws.append([
            week.week_start.strftime(DATE_FORMAT),
            week.summary.unique_users,
            round(week.summary.total_max_hours, 2),
            round(week.summary.total_allocated_hours, 2),
            round(week.summary.total_available_hours, 2),
            round(week.summary.average_utilization, 2),
        ])


def _write_details(ws, report: HistoricalReport) -> None:
    header = [
        "Week Start", "Name", "Email", "Role", "Working Days", "Max Hours",
        "Total Allocation (%)", "Allocated Hours", "Available Hours",
        *[f"{label} (%)" for label in ALLOCATION_CATEGORIES.values()],
    ]
    if report.include_notes:
        header.append("Weekly Priority")
    ws.append(header)
    _style_header(ws, 1)
    ws.freeze_panes = "A2"

    for week in report.weeks:
        for d in week.users:
            row = [
                week.week_start.strftime(DATE_FORMAT),
                d.name,
                d.email,
                d.role.value,
                d.working_days,
                round(d.max_hours, 2),
                round(d.total_allocation, 2),
                round(d.allocated_hours, 2),
                round(d.available_hours, 2),
                *[d.categories.get(name, 0.0) for name in ALLOCATION_CATEGORIES],
            ]
            if report.include_notes:
                row.append(d.weekly_priority or "")
            ws.append(row)


def build_workbook(report: HistoricalReport) -> bytes:
    """Render ``report`` as .xlsx bytes with exactly two sheets."""
    wb = Workbook()

    ws_summary = wb.active
    ws_summary.title = SUMMARY_SHEET
    _write_summary(ws_summary, report)
    _fit_columns(ws_summary)

    ws_details = wb.create_sheet(DETAIL_SHEET)
    _write_details(ws_details, report)
    _fit_columns(ws_details)

    buffer = io.BytesIO()
    wb.save(buffer)
    return buffer.getvalue()
