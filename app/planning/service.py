"""
Service layer for project plan scheduling.

Coordinates the pure engines (templates, timeline) with the database models.
Database failures roll back the session and propagate unchanged.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from app.datetime_utils import ensure_utc, to_naive_utc
from app.logging_config import PlanOperationContext, get_logger
from app.models import PlanStageRecord, Project, ProjectTask, ProjectTemplateRecord, db
from app.planning.ids import IdGenerator, default_id_generator
from app.planning.templates import (
    apply_template,
    assign_missing_template_ids,
    capture_template,
    duplicate_template_stages,
)
from app.planning.timeline import TimelineLayout, TimelineLayoutEngine, TimelineTask
from app.planning.types import PlanStage, ProjectTemplate, StageStatus
from app.planning.validation import StageValidator, TemplateValidator

logger = get_logger(__name__)


class ProjectNotFound(LookupError):
    pass


class StageNotFound(LookupError):
    pass


class TemplateNotFound(LookupError):
    pass


def _sort_key(stage: PlanStage):
    return ensure_utc(stage.start_date)


class PlanStageService:
    """Reads and writes a project's plan stage list."""

    @staticmethod
    def record_to_stage(record: PlanStageRecord) -> PlanStage:
        return PlanStage(
            id=record.id,
            name=record.name,
            description=record.description,
            start_date=ensure_utc(record.start_date),
            end_date=ensure_utc(record.end_date),
            status=StageStatus.from_value(record.status),
            construction_stage_id=record.construction_stage_id,
            assigned_personnel_ids=list(record.assigned_personnel_ids or []),
            assigned_subcontractor_ids=list(record.assigned_subcontractor_ids or []),
            dependencies=list(record.dependencies or []),
        )

    @staticmethod
    def stage_to_record(stage: PlanStage, project_id: str) -> PlanStageRecord:
        return PlanStageRecord(
            id=stage.id,
            project_id=project_id,
            name=stage.name,
            description=stage.description,
            start_date=to_naive_utc(stage.start_date),
            end_date=to_naive_utc(stage.end_date),
            status=stage.status.value,
            construction_stage_id=stage.construction_stage_id,
            assigned_personnel_ids=list(stage.assigned_personnel_ids),
            assigned_subcontractor_ids=list(stage.assigned_subcontractor_ids),
            dependencies=list(stage.dependencies),
            last_updated_at=datetime.utcnow(),
        )

    @staticmethod
    def get_project(project_id: str) -> Project:
        project = db.session.get(Project, project_id)
        if project is None:
            raise ProjectNotFound(f"Project {project_id} not found")
        return project

    @staticmethod
    def get_stages(project_id: str) -> List[PlanStage]:
        """
        Current stages of a project, ordered by start date (display order).

        Raises:
            ProjectNotFound: if the project does not exist
        """
        PlanStageService.get_project(project_id)
        records = PlanStageRecord.query.filter_by(project_id=project_id).all()
        stages = [PlanStageService.record_to_stage(r) for r in records]
        return sorted(stages, key=_sort_key)

    @staticmethod
    def _stage_from_fields(fields: Dict[str, Any], stage_id: str) -> PlanStage:
        return PlanStage(
            id=stage_id,
            name=fields['name'],
            description=fields.get('description'),
            start_date=fields['start_date'],
            end_date=fields['end_date'],
            status=StageStatus.from_value(fields['status']),
            construction_stage_id=fields.get('construction_stage_id'),
            assigned_personnel_ids=fields['assigned_personnel_ids'],
            assigned_subcontractor_ids=fields['assigned_subcontractor_ids'],
            dependencies=fields['dependencies'],
        )

    @staticmethod
    def insert_stages(project_id: str, stages: List[PlanStage]) -> List[PlanStage]:
        """
        Write a batch of new stages in one transaction (all or nothing).

        Raises:
            ProjectNotFound: if the project does not exist
        """
        PlanStageService.get_project(project_id)
        try:
            for stage in stages:
                db.session.add(PlanStageService.stage_to_record(stage, project_id))
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise

        logger.info("Plan stages written", project_id=project_id, count=len(stages))
        return stages

    @staticmethod
    def add_stage(project_id: str, data: Dict[str, Any], id_generator: Optional[IdGenerator] = None) -> Tuple[Optional[PlanStage], Optional[str]]:
        """
        Create one stage. A fresh id is always assigned.

        Returns:
            (stage, error_message)
        """
        payload = data
        if isinstance(data, dict):
            payload = {k: v for k, v in data.items() if k != 'id'}

        is_valid, fields, error = StageValidator.validate_new_stage(payload)
        if not is_valid:
            return None, error

        id_generator = id_generator or default_id_generator()
        stage = PlanStageService._stage_from_fields(fields, id_generator.new_id())
        PlanStageService.insert_stages(project_id, [stage])
        return stage, None

    @staticmethod
    def add_stages(project_id: str, stages_data: Any, id_generator: Optional[IdGenerator] = None) -> Tuple[Optional[List[PlanStage]], Optional[str]]:
        """
        Create a batch of stages. Submitted ids are kept so that dependencies
        inside the batch stay valid; stages without an id get a fresh one.
        Nothing is written if any stage fails validation.

        Returns:
            (stages, error_message)
        """
        if not isinstance(stages_data, list):
            return None, "Array of stages required"

        PlanStageService.get_project(project_id)
        id_generator = id_generator or default_id_generator()

        existing_ids = {
            r.id for r in PlanStageRecord.query.filter_by(project_id=project_id).all()
        }

        stages = []
        for index, data in enumerate(stages_data):
            is_valid, fields, error = StageValidator.validate_new_stage(data)
            if not is_valid:
                return None, f"Stage {index}: {error}"

            stage_id = fields['id'] or id_generator.new_id()
            if stage_id in existing_ids:
                return None, f"Stage {index}: id {stage_id} already exists"
            existing_ids.add(stage_id)
            stages.append(PlanStageService._stage_from_fields(fields, stage_id))

        return PlanStageService.insert_stages(project_id, stages), None

    @staticmethod
    def update_stage(project_id: str, stage_id: str, updates: Dict[str, Any]) -> Tuple[Optional[PlanStage], Optional[str]]:
        """
        Partially update a stage in place. The merged stage is re-validated.

        Raises:
            ProjectNotFound, StageNotFound

        Returns:
            (stage, error_message)
        """
        PlanStageService.get_project(project_id)
        record = PlanStageRecord.query.filter_by(project_id=project_id, id=stage_id).first()
        if record is None:
            raise StageNotFound(f"Stage {stage_id} not found")

        if not isinstance(updates, dict):
            return None, "Stage payload must be an object"

        merged = PlanStageService.record_to_stage(record).to_dict()
        for key, value in updates.items():
            if key == 'id':
                continue
            merged[key] = value

        is_valid, fields, error = StageValidator.validate_new_stage(merged)
        if not is_valid:
            return None, error

        try:
            record.name = fields['name']
            record.description = fields.get('description')
            record.start_date = to_naive_utc(fields['start_date'])
            record.end_date = to_naive_utc(fields['end_date'])
            record.status = fields['status']
            record.construction_stage_id = fields.get('construction_stage_id')
            record.assigned_personnel_ids = fields['assigned_personnel_ids']
            record.assigned_subcontractor_ids = fields['assigned_subcontractor_ids']
            record.dependencies = fields['dependencies']
            record.last_updated_at = datetime.utcnow()
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise

        logger.info("Plan stage updated", project_id=project_id, stage_id=stage_id, fields=sorted(updates.keys()))
        return PlanStageService.record_to_stage(record), None

    @staticmethod
    def delete_stage(project_id: str, stage_id: str) -> None:
        """
        Delete one stage. Sibling stages keep any dependency on it.

        Raises:
            ProjectNotFound, StageNotFound
        """
        PlanStageService.get_project(project_id)
        record = PlanStageRecord.query.filter_by(project_id=project_id, id=stage_id).first()
        if record is None:
            raise StageNotFound(f"Stage {stage_id} not found")

        try:
            db.session.delete(record)
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise

        logger.info("Plan stage deleted", project_id=project_id, stage_id=stage_id)


class TemplateService:
    """Stores templates and moves stage sets in and out of them."""

    @staticmethod
    def record_to_template(record: ProjectTemplateRecord) -> ProjectTemplate:
        return ProjectTemplate.from_dict({
            'id': record.id,
            'name': record.name,
            'description': record.description,
            'stages': record.stages or [],
        })

    @staticmethod
    def get_record(template_id: str) -> ProjectTemplateRecord:
        record = db.session.get(ProjectTemplateRecord, template_id)
        if record is None:
            raise TemplateNotFound(f"Template {template_id} not found")
        return record

    @staticmethod
    def list_templates() -> List[ProjectTemplate]:
        records = ProjectTemplateRecord.query.order_by(ProjectTemplateRecord.name).all()
        return [TemplateService.record_to_template(r) for r in records]

    @staticmethod
    def get_template(template_id: str) -> ProjectTemplate:
        return TemplateService.record_to_template(TemplateService.get_record(template_id))

    @staticmethod
    def store_template(name: str, description: Optional[str], stages, id_generator: Optional[IdGenerator] = None) -> ProjectTemplate:
        """Persist a new template and return it with its assigned id."""
        id_generator = id_generator or default_id_generator()
        record = ProjectTemplateRecord(
            id=id_generator.new_id(),
            name=name,
            description=description,
            stages=[s.to_dict() for s in stages],
        )
        try:
            db.session.add(record)
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise

        logger.info("Template stored", template_id=record.id, name=name, stage_count=len(stages))
        return TemplateService.record_to_template(record)

    @staticmethod
    def create_template(data: Dict[str, Any], id_generator: Optional[IdGenerator] = None) -> Tuple[Optional[ProjectTemplate], Optional[str]]:
        """
        Create a template from a submitted document. Stages without an id get
        one; dependencies must resolve inside the submitted stages.

        Returns:
            (template, error_message)
        """
        if not isinstance(data, dict):
            return None, "Template payload must be an object"

        is_valid, name, error = TemplateValidator.validate_name(data.get('name'))
        if not is_valid:
            return None, error

        stages_data = data.get('stages') or []
        if not isinstance(stages_data, list) or not all(isinstance(s, dict) for s in stages_data):
            return None, "stages must be a list of objects"

        try:
            stages = assign_missing_template_ids(stages_data, id_generator)
        except (TypeError, ValueError) as exc:
            return None, f"Invalid template stage: {exc}"

        description = TemplateValidator.validate_description(data.get('description'))
        return TemplateService.store_template(name, description, stages, id_generator), None

    @staticmethod
    def save_project_as_template(
        project_id: str,
        name: str,
        description: Optional[str] = None,
        id_generator: Optional[IdGenerator] = None,
    ) -> Tuple[Optional[ProjectTemplate], Optional[str]]:
        """
        Capture a project's stages into a new stored template.

        Raises:
            ProjectNotFound: if the project does not exist
            NoStagesToCapture: if the project has no stages

        Returns:
            (template, error_message)
        """
        is_valid, name, error = TemplateValidator.validate_name(name)
        if not is_valid:
            return None, error

        stages = PlanStageService.get_stages(project_id)
        with PlanOperationContext("capture_template", project_id=project_id):
            template_stages = capture_template(stages, id_generator)
            template = TemplateService.store_template(
                name,
                TemplateValidator.validate_description(description),
                template_stages,
                id_generator,
            )
        return template, None

    @staticmethod
    def update_template_metadata(template_id: str, updates: Dict[str, Any]) -> Tuple[Optional[ProjectTemplate], Optional[str]]:
        """
        Edit a template's name and/or description. Stage content is immutable.

        Raises:
            TemplateNotFound

        Returns:
            (template, error_message)
        """
        record = TemplateService.get_record(template_id)

        if not isinstance(updates, dict):
            return None, "Template payload must be an object"
        if 'stages' in updates:
            return None, "Template stages cannot be edited"

        if 'name' in updates:
            is_valid, name, error = TemplateValidator.validate_name(updates.get('name'))
            if not is_valid:
                return None, error
        else:
            name = record.name

        try:
            record.name = name
            if 'description' in updates:
                record.description = TemplateValidator.validate_description(updates.get('description'))
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise

        return TemplateService.record_to_template(record), None

    @staticmethod
    def delete_template(template_id: str) -> None:
        record = TemplateService.get_record(template_id)
        try:
            db.session.delete(record)
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise
        logger.info("Template deleted", template_id=template_id)

    @staticmethod
    def duplicate_template(template_id: str, id_generator: Optional[IdGenerator] = None) -> ProjectTemplate:
        """Copy a template under '<name> (Copy)' with fresh stage ids."""
        source = TemplateService.get_template(template_id)
        stages = duplicate_template_stages(source.stages, id_generator)
        return TemplateService.store_template(f"{source.name} (Copy)", source.description, stages, id_generator)

    @staticmethod
    def import_template_into_project(
        project_id: str,
        template_id: str,
        plan_start_date: datetime,
        id_generator: Optional[IdGenerator] = None,
    ) -> List[PlanStage]:
        """
        Apply a template at plan_start_date and append the new stages to the
        project in one batch. An empty template writes nothing.

        Raises:
            ProjectNotFound, TemplateNotFound
        """
        PlanStageService.get_project(project_id)
        template = TemplateService.get_template(template_id)

        with PlanOperationContext("import_template", project_id=project_id, template_id=template_id):
            new_stages = apply_template(template, plan_start_date, id_generator)
            if not new_stages:
                logger.info("Template has no stages, nothing imported", template_id=template_id)
                return []
            PlanStageService.insert_stages(project_id, new_stages)
        return new_stages


class TimelineService:
    """Builds timeline geometry for stored projects."""

    @staticmethod
    def task_to_timeline_task(task: ProjectTask) -> TimelineTask:
        return TimelineTask(
            id=task.id,
            construction_stage_id=task.construction_stage_id,
            created_at=task.created_at,
            due_date=task.due_date,
        )

    @staticmethod
    def build_project_timeline(project_id: str) -> TimelineLayout:
        """
        Layout for a project's stages (start-date order) and tasks.

        Raises:
            ProjectNotFound
        """
        stages = PlanStageService.get_stages(project_id)
        tasks = [
            TimelineService.task_to_timeline_task(t)
            for t in ProjectTask.query.filter_by(project_id=project_id).all()
        ]
        return TimelineLayoutEngine.layout(stages, tasks)
