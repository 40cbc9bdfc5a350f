"""
Timeline layout engine: planned vs. actual stage bars and dependency arcs.

Pure geometry over a stage list and a task list. Horizontal values are
percentages of the padded date axis; vertical values are pixels derived from
the row index. Nothing here mutates its inputs.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple
import logging

from app.datetime_utils import add_days, days_between, format_axis_label, parse_datetime, to_iso
from app.planning.config import TimelineConfig
from app.planning.types import PlanStage

logger = logging.getLogger(__name__)


@dataclass
class TimelineTask:
    """The slice of a project task the timeline needs."""
    id: str
    construction_stage_id: Optional[str] = None
    created_at: Any = None
    due_date: Any = None


@dataclass
class TimelineAxis:
    """Padded date range shared by every bar."""
    start: datetime
    end: datetime
    total_days: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            'start': to_iso(self.start),
            'end': to_iso(self.end),
            'totalDays': self.total_days,
            'startLabel': format_axis_label(self.start),
            'endLabel': format_axis_label(self.end),
        }


@dataclass
class TimelineBar:
    start: datetime
    end: datetime
    left_percent: float
    width_percent: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            'start': to_iso(self.start),
            'end': to_iso(self.end),
            'leftPercent': self.left_percent,
            'widthPercent': self.width_percent,
        }


@dataclass
class StageRow:
    stage_id: str
    name: str
    row: int
    planned: Optional[TimelineBar]
    actual: Optional[TimelineBar] = None
    linked_task_count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'stageId': self.stage_id,
            'name': self.name,
            'row': self.row,
            'planned': self.planned.to_dict() if self.planned else None,
            'actual': self.actual.to_dict() if self.actual else None,
            'linkedTaskCount': self.linked_task_count,
        }


@dataclass
class DependencyArc:
    """Cubic connector from a prerequisite's end to a dependent's start."""
    from_stage_id: str
    to_stage_id: str
    source_row: int
    target_row: int
    source_x_percent: float
    target_x_percent: float
    source_y: float
    target_y: float

    def control_points(self, container_width: float) -> Tuple[Tuple[float, float], ...]:
        """
        Pixel points (start, control 1, control 2, end) for a container width.
        """
        offset = TimelineConfig.CONTROL_POINT_OFFSET
        source_x = self.source_x_percent / 100 * container_width
        target_x = self.target_x_percent / 100 * container_width
        return (
            (source_x, self.source_y),
            (source_x + offset, self.source_y),
            (target_x - offset, self.target_y),
            (target_x, self.target_y),
        )

    def path(self, container_width: float) -> str:
        """SVG path data, e.g. 'M 10 40 C 30 40, 80 128, 100 128'."""
        (sx, sy), (c1x, c1y), (c2x, c2y), (tx, ty) = self.control_points(container_width)
        return (
            f"M {_num(sx)} {_num(sy)} "
            f"C {_num(c1x)} {_num(c1y)}, {_num(c2x)} {_num(c2y)}, {_num(tx)} {_num(ty)}"
        )

    def to_dict(self, container_width: Optional[float] = None) -> Dict[str, Any]:
        data = {
            'fromStageId': self.from_stage_id,
            'toStageId': self.to_stage_id,
            'sourceRow': self.source_row,
            'targetRow': self.target_row,
            'sourceXPercent': self.source_x_percent,
            'targetXPercent': self.target_x_percent,
            'sourceY': self.source_y,
            'targetY': self.target_y,
        }
        if container_width:
            data['path'] = self.path(container_width)
        return data


@dataclass
class TimelineLayout:
    """Result of a layout pass. axis is None when there is nothing to render."""
    axis: Optional[TimelineAxis] = None
    rows: List[StageRow] = field(default_factory=list)
    arcs: List[DependencyArc] = field(default_factory=list)

    @property
    def has_data(self) -> bool:
        return self.axis is not None

    @classmethod
    def empty(cls) -> "TimelineLayout":
        return cls()

    def to_dict(self, container_width: Optional[float] = None) -> Dict[str, Any]:
        return {
            'hasData': self.has_data,
            'axis': self.axis.to_dict() if self.axis else None,
            'rows': [r.to_dict() for r in self.rows],
            'arcs': [a.to_dict(container_width) for a in self.arcs],
        }


def _num(value: float) -> str:
    return f"{round(value, 2):g}"


def _valid_dates(values: Iterable[Any]) -> List[datetime]:
    parsed = (parse_datetime(v) for v in values)
    return [d for d in parsed if d is not None]


class TimelineLayoutEngine:
    """Maps dates onto a shared axis. Build one per (stages, tasks) input."""

    def __init__(self, axis: Optional[TimelineAxis]):
        self.axis = axis

    @staticmethod
    def derive_axis(stages: List[PlanStage], tasks: List[TimelineTask]) -> Optional[TimelineAxis]:
        """
        Padded axis over every valid stage and task date.

        Returns None when there are no stages or no valid dates at all.
        """
        if not stages:
            return None

        candidates = []
        for stage in stages:
            candidates.extend([stage.start_date, stage.end_date])
        for task in tasks:
            candidates.extend([task.created_at, task.due_date])

        valid = _valid_dates(candidates)
        if not valid:
            return None

        start = add_days(min(valid), -TimelineConfig.LEAD_IN_DAYS)
        end = add_days(max(valid), TimelineConfig.TRAILING_DAYS)
        return TimelineAxis(start=start, end=end, total_days=days_between(start, end))

    def position_percent(self, value: Any) -> float:
        """Horizontal position of a date as a percentage of the axis. Not clamped."""
        if self.axis is None or self.axis.total_days == 0:
            return 0
        date_value = parse_datetime(value)
        if date_value is None:
            return 0
        return days_between(self.axis.start, date_value) / self.axis.total_days * 100

    def width_percent(self, start: Any, end: Any) -> float:
        """Width of an interval as a percentage of the axis, floored at MIN_WIDTH_PERCENT."""
        if self.axis is None or self.axis.total_days == 0:
            return 0
        start_value = parse_datetime(start)
        end_value = parse_datetime(end)
        if start_value is None or end_value is None:
            return 0
        width = days_between(start_value, end_value) / self.axis.total_days * 100
        return max(width, TimelineConfig.MIN_WIDTH_PERCENT)

    def bar(self, start: Any, end: Any) -> Optional[TimelineBar]:
        start_value = parse_datetime(start)
        end_value = parse_datetime(end)
        if start_value is None or end_value is None:
            return None
        return TimelineBar(
            start=start_value,
            end=end_value,
            left_percent=self.position_percent(start_value),
            width_percent=self.width_percent(start_value, end_value),
        )

    @staticmethod
    def linked_tasks(stage: PlanStage, tasks: List[TimelineTask]) -> List[TimelineTask]:
        """
        Tasks sharing the stage's construction-stage id.

        Several plan stages on the same construction stage all get the same
        tasks, and therefore the same actual bar.
        """
        return [t for t in tasks if t.construction_stage_id == stage.construction_stage_id]

    @staticmethod
    def actual_interval(stage: PlanStage, tasks: List[TimelineTask]) -> Optional[Tuple[datetime, datetime]]:
        """(earliest, latest) valid created/due date over the stage's linked tasks, or None."""
        dates = []
        for task in TimelineLayoutEngine.linked_tasks(stage, tasks):
            dates.extend(_valid_dates([task.created_at, task.due_date]))
        if not dates:
            return None
        return min(dates), max(dates)

    def dependency_arcs(self, stages: List[PlanStage]) -> List[DependencyArc]:
        """Arcs for every dependency resolving to a stage in the list; others are skipped."""
        if self.axis is None:
            return []

        row_by_id = {}
        for index, stage in enumerate(stages):
            row_by_id.setdefault(stage.id, index)

        arcs = []
        for index, stage in enumerate(stages):
            if not stage.dependencies:
                continue

            target_y = TimelineConfig.row_y(index) + TimelineConfig.ARC_ANCHOR_OFFSET
            target_x = self.position_percent(stage.start_date)

            for dep_id in stage.dependencies:
                source_index = row_by_id.get(dep_id)
                if source_index is None:
                    continue
                source_stage = stages[source_index]
                arcs.append(DependencyArc(
                    from_stage_id=source_stage.id,
                    to_stage_id=stage.id,
                    source_row=source_index,
                    target_row=index,
                    source_x_percent=self.position_percent(source_stage.end_date),
                    target_x_percent=target_x,
                    source_y=TimelineConfig.row_y(source_index) + TimelineConfig.ARC_ANCHOR_OFFSET,
                    target_y=target_y,
                ))
        return arcs

    @classmethod
    def layout(cls, stages: List[PlanStage], tasks: List[TimelineTask]) -> TimelineLayout:
        """
        Full layout pass: axis, one row per stage in the given order, and arcs.
        """
        axis = cls.derive_axis(stages, tasks)
        if axis is None:
            logger.debug("No timeline data available")
            return TimelineLayout.empty()

        engine = cls(axis)
        rows = []
        for index, stage in enumerate(stages):
            linked = cls.linked_tasks(stage, tasks)
            actual = cls.actual_interval(stage, tasks)
            rows.append(StageRow(
                stage_id=stage.id,
                name=stage.name,
                row=index,
                planned=engine.bar(stage.start_date, stage.end_date),
                actual=engine.bar(*actual) if actual else None,
                linked_task_count=len(linked),
            ))

        return TimelineLayout(axis=axis, rows=rows, arcs=engine.dependency_arcs(stages))
