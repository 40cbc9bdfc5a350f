"""
Plain data structures for plan stages and templates.
No database or Flask dependencies.
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from app.datetime_utils import to_iso


class StageStatus(Enum):
    NOT_STARTED = "Not Started"
    IN_PROGRESS = "In Progress"
    COMPLETED = "Completed"

    @classmethod
    def from_value(cls, value) -> "StageStatus":
        """Map a stored or submitted label onto a status, defaulting to NOT_STARTED."""
        if isinstance(value, cls):
            return value
        for status in cls:
            if status.value == value or status.name == value:
                return status
        return cls.NOT_STARTED


def _id_list(values) -> List[str]:
    if not values:
        return []
    return [str(v) for v in values]


@dataclass
class PlanStage:
    """One phase of a project's construction schedule."""
    id: str
    name: str
    start_date: datetime
    end_date: datetime
    status: StageStatus = StageStatus.NOT_STARTED
    description: Optional[str] = None
    construction_stage_id: Optional[str] = None
    assigned_personnel_ids: List[str] = field(default_factory=list)
    assigned_subcontractor_ids: List[str] = field(default_factory=list)
    dependencies: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'startDate': to_iso(self.start_date),
            'endDate': to_iso(self.end_date),
            'status': self.status.value,
            'constructionStageId': self.construction_stage_id,
            'assignedPersonnelIds': list(self.assigned_personnel_ids),
            'assignedSubContractorIds': list(self.assigned_subcontractor_ids),
            'dependencies': list(self.dependencies),
        }


@dataclass
class TemplateStage:
    """Date-relative stage stored in a template."""
    id: str
    name: str
    start_day_offset: int
    duration_days: int
    description: Optional[str] = None
    construction_stage_id: Optional[str] = None
    dependencies: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TemplateStage":
        return cls(
            id=str(data['id']),
            name=data.get('name') or '',
            start_day_offset=int(data.get('startDayOffset') or 0),
            duration_days=max(1, int(data.get('durationDays') or 1)),
            description=data.get('description'),
            construction_stage_id=data.get('constructionStageId'),
            dependencies=_id_list(data.get('dependencies')),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'constructionStageId': self.construction_stage_id,
            'startDayOffset': self.start_day_offset,
            'durationDays': self.duration_days,
            'dependencies': list(self.dependencies),
        }


@dataclass
class ProjectTemplate:
    """Reusable, date-relative snapshot of a set of plan stages."""
    id: str
    name: str
    description: Optional[str] = None
    stages: List[TemplateStage] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProjectTemplate":
        return cls(
            id=str(data['id']),
            name=data.get('name') or '',
            description=data.get('description'),
            stages=[TemplateStage.from_dict(s) for s in (data.get('stages') or [])],
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'stages': [s.to_dict() for s in self.stages],
        }
