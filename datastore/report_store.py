from __future__ import annotations

import copy
import json
import logging
from datetime import datetime
from functools import lru_cache
from pathlib import Path
from threading import Lock
from typing import Dict, Iterable, List, Optional

from pydantic import ValidationError

from app.schemas import SensoryReportModel
from models.records import CellKey, Coordinate, GridCell, SensoryReport
from services.decay import is_expired
from services.grid_index import cell_bounds, cell_key, format_cell_key, parse_cell_key
from settings import get_settings

logger = logging.getLogger(__name__)


class ReportNotFoundError(KeyError):
    """Raised when a delete targets a cell or report that is not stored."""


class ReportStore:
    """Per-cell report lists behind a single lock.

    Cells never exist without reports: every mutation that empties a cell
    removes it. Readers only ever get deep copies.
    """

    def __init__(
        self,
        cell_size: float,
        persistence_path: Optional[Path] = None,
    ) -> None:
        self.cell_size = cell_size
        self.persistence_path = persistence_path
        self._cells: Dict[CellKey, GridCell] = {}
        self._lock = Lock()
        if persistence_path:
            persistence_path.parent.mkdir(parents=True, exist_ok=True)
            self._load_from_disk()

    def insert(self, coord: Coordinate, report: SensoryReport) -> CellKey:
        key = cell_key(coord, self.cell_size)
        with self._lock:
            cell = self._cells.get(key)
            if cell is None:
                cell = GridCell(key=key, bounds=cell_bounds(key, self.cell_size))
                self._cells[key] = cell
            cell.reports.append(report)
            self._persist()
        logger.debug(
            "Stored report",
            extra={"cell_key": format_cell_key(key), "report_id": report.id},
        )
        return key

    def delete_by_id(self, key: CellKey, report_id: int) -> SensoryReport:
        with self._lock:
            cell = self._cells.get(key)
            if cell is None:
                raise ReportNotFoundError(
                    f"Report {report_id} not found in cell {format_cell_key(key)!r}."
                )
            for index, report in enumerate(cell.reports):
                if report.id == report_id:
                    del cell.reports[index]
                    break
            else:
                raise ReportNotFoundError(
                    f"Report {report_id} not found in cell {format_cell_key(key)!r}."
                )
            self._drop_if_empty(key)
            self._persist()
        return report

    def delete_last(self, key: CellKey) -> SensoryReport:
        """Pop the most recently appended report of a cell."""
        with self._lock:
            cell = self._cells.get(key)
            if cell is None or not cell.reports:
                raise ReportNotFoundError(f"Cell {format_cell_key(key)!r} has no reports.")
            report = cell.reports.pop()
            self._drop_if_empty(key)
            self._persist()
        return report

    def compact(self, now: datetime) -> int:
        """Drop every expired report and any cell left empty; return the number removed."""
        removed = 0
        with self._lock:
            for key in list(self._cells):
                cell = self._cells[key]
                kept = [report for report in cell.reports if not is_expired(report, now)]
                removed += len(cell.reports) - len(kept)
                cell.reports = kept
                self._drop_if_empty(key)
            if removed:
                self._persist()
        return removed

    def get_cell(self, key: CellKey) -> Optional[GridCell]:
        with self._lock:
            cell = self._cells.get(key)
            if cell is None:
                return None
            return copy.deepcopy(cell)

    def cells_for(self, keys: Iterable[CellKey]) -> Dict[CellKey, GridCell]:
        """Consistent copies of whichever of ``keys`` currently hold reports."""
        with self._lock:
            return {
                key: copy.deepcopy(self._cells[key])
                for key in set(keys)
                if key in self._cells
            }

    def snapshot(self) -> List[GridCell]:
        """Return deep copies of all stored cells."""

        with self._lock:
            return [copy.deepcopy(cell) for cell in self._cells.values()]

    def __len__(self) -> int:
        with self._lock:
            return len(self._cells)

    def _drop_if_empty(self, key: CellKey) -> None:
        cell = self._cells.get(key)
        if cell is not None and not cell.reports:
            del self._cells[key]

    def _persist(self) -> None:
        if not self.persistence_path:
            return
        payload = [
            [
                format_cell_key(key),
                {
                    "reports": [
                        SensoryReportModel.from_record(report).model_dump(mode="json")
                        for report in cell.reports
                    ]
                },
            ]
            for key, cell in self._cells.items()
        ]
        self.persistence_path.write_text(json.dumps(payload, indent=2))

    def _load_from_disk(self) -> None:
        if not self.persistence_path or not self.persistence_path.exists():
            return

        try:
            raw = self.persistence_path.read_text() or "[]"
            data = json.loads(raw)
        except (OSError, json.JSONDecodeError):
            logger.warning(
                "Grid snapshot unreadable; starting empty",
                extra={"path": str(self.persistence_path)},
            )
            data = []

        if not isinstance(data, list):
            logger.warning(
                "Grid snapshot is not a list of cells; starting empty",
                extra={"path": str(self.persistence_path)},
            )
            data = []

        for entry in data:
            if not isinstance(entry, (list, tuple)) or len(entry) != 2:
                continue
            raw_key, value = entry
            try:
                key = parse_cell_key(str(raw_key))
            except ValueError:
                logger.warning("Skipping snapshot cell with malformed key", extra={"cell_key": raw_key})
                continue

            reports = self._load_reports(key, value)
            if reports:
                self._cells[key] = GridCell(
                    key=key,
                    bounds=cell_bounds(key, self.cell_size),
                    reports=reports,
                )

    @staticmethod
    def _load_reports(key: CellKey, value: object) -> List[SensoryReport]:
        raw_reports = value.get("reports") if isinstance(value, dict) else None
        if not isinstance(raw_reports, list):
            return []
        try:
            return [SensoryReportModel.model_validate(item).to_record() for item in raw_reports]
        except ValidationError:
            logger.warning(
                "Discarding corrupt report list",
                extra={"cell_key": format_cell_key(key), "reason": "validation"},
            )
            return []


@lru_cache
def build_default_store(
    cell_size: Optional[float] = None,
    path: Optional[str] = None,
) -> ReportStore:
    settings = get_settings()
    size = settings.grid_cell_size if cell_size is None else cell_size
    store_path = settings.grid_persistence_path if path is None else path
    persistence = Path(store_path) if store_path else None
    return ReportStore(cell_size=size, persistence_path=persistence)
