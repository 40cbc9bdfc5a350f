"""
Edge validation for plan stage and template payloads.

Validators return (is_valid, normalized_value, error_message) so routes can
turn failures straight into 400 responses.
"""
from typing import Any, Dict, List, Optional, Tuple

from app.datetime_utils import parse_datetime
from app.planning.types import StageStatus


class StageValidator:
    """Validation for submitted plan stage fields."""

    VALID_STATUSES = [s.value for s in StageStatus]

    @staticmethod
    def validate_name(name: Optional[str]) -> Tuple[bool, Optional[str], Optional[str]]:
        """
        Validate a stage name.

        Returns:
            (is_valid, stripped_name, error_message)
        """
        if name is None or not str(name).strip():
            return False, None, "name is required"
        return True, str(name).strip(), None

    @staticmethod
    def validate_dates(start_value: Any, end_value: Any) -> Tuple[bool, Optional[tuple], Optional[str]]:
        """
        Validate a start/end pair.

        Args:
            start_value: ISO string or datetime
            end_value: ISO string or datetime

        Returns:
            (is_valid, (start, end) as aware datetimes, error_message)
        """
        start = parse_datetime(start_value)
        end = parse_datetime(end_value)
        if start is None or end is None:
            return False, None, "startDate and endDate must be valid ISO 8601 dates"
        if end < start:
            return False, None, "endDate must not be before startDate"
        return True, (start, end), None

    @staticmethod
    def validate_status(status: Optional[str]) -> Tuple[bool, Optional[str], Optional[str]]:
        # None means the default
        if status is None or status == '':
            return True, StageStatus.NOT_STARTED.value, None

        if status not in StageValidator.VALID_STATUSES:
            return False, None, f"status must be one of: {', '.join(StageValidator.VALID_STATUSES)}"
        return True, status, None

    @staticmethod
    def validate_id_list(values: Any, field_name: str) -> Tuple[bool, Optional[List[str]], Optional[str]]:
        """Accept None or a list of ids; duplicates are collapsed, order kept."""
        if values is None:
            return True, [], None
        if not isinstance(values, list):
            return False, None, f"{field_name} must be a list of ids"

        normalized = []
        for value in values:
            if value is None or isinstance(value, (dict, list)):
                return False, None, f"{field_name} must be a list of ids"
            value = str(value)
            if value not in normalized:
                normalized.append(value)
        return True, normalized, None

    @staticmethod
    def validate_dependencies(dependencies: Any, stage_id: Optional[str]) -> Tuple[bool, Optional[List[str]], Optional[str]]:
        """
        Validate a dependency list. A stage may never depend on itself.
        Unknown ids are accepted; readers tolerate dangling references.
        """
        is_valid, normalized, error = StageValidator.validate_id_list(dependencies, "dependencies")
        if not is_valid:
            return False, None, error
        if stage_id is not None and stage_id in normalized:
            return False, None, "A stage cannot depend on itself"
        return True, normalized, None

    @staticmethod
    def validate_new_stage(data: Any) -> Tuple[bool, Optional[Dict[str, Any]], Optional[str]]:
        """
        Validate a full stage payload for creation.

        Returns:
            (is_valid, normalized_fields, error_message). normalized_fields uses
            snake_case keys matching PlanStage attributes.
        """
        if not isinstance(data, dict):
            return False, None, "Stage payload must be an object"

        ok, name, error = StageValidator.validate_name(data.get('name'))
        if not ok:
            return False, None, error

        ok, dates, error = StageValidator.validate_dates(data.get('startDate'), data.get('endDate'))
        if not ok:
            return False, None, error

        ok, status, error = StageValidator.validate_status(data.get('status'))
        if not ok:
            return False, None, error

        stage_id = str(data['id']) if data.get('id') else None
        ok, dependencies, error = StageValidator.validate_dependencies(data.get('dependencies'), stage_id)
        if not ok:
            return False, None, error

        ok, personnel, error = StageValidator.validate_id_list(data.get('assignedPersonnelIds'), "assignedPersonnelIds")
        if not ok:
            return False, None, error

        ok, subcontractors, error = StageValidator.validate_id_list(data.get('assignedSubContractorIds'), "assignedSubContractorIds")
        if not ok:
            return False, None, error

        return True, {
            'id': stage_id,
            'name': name,
            'description': data.get('description'),
            'start_date': dates[0],
            'end_date': dates[1],
            'status': status,
            'construction_stage_id': data.get('constructionStageId'),
            'assigned_personnel_ids': personnel,
            'assigned_subcontractor_ids': subcontractors,
            'dependencies': dependencies,
        }, None


class TemplateValidator:
    """Validation for template metadata."""

    MIN_NAME_LENGTH = 2

    @staticmethod
    def validate_name(name: Optional[str]) -> Tuple[bool, Optional[str], Optional[str]]:
        if name is None or len(str(name).strip()) < TemplateValidator.MIN_NAME_LENGTH:
            return False, None, "Template name is required."
        return True, str(name).strip(), None

    @staticmethod
    def validate_description(description: Optional[str]) -> Optional[str]:
        """Normalize a description (None if empty, stripped string otherwise)."""
        if description is None:
            return None

        cleaned = str(description).strip()
        return cleaned if cleaned else None
