"""
Pure business logic for plan templates: capture, apply and duplicate.
Contains no database dependencies - works with plain data structures.
"""
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Tuple, Union
import logging

from app.datetime_utils import add_days, days_between, ensure_utc
from app.planning.ids import IdGenerator, default_id_generator
from app.planning.types import PlanStage, ProjectTemplate, StageStatus, TemplateStage

logger = logging.getLogger(__name__)


class NoStagesToCapture(ValueError):
    """Raised when a template capture is requested for an empty stage list."""
    code = "NoStagesToCapture"

    def __init__(self, message: str = "No stages to save as template."):
        super().__init__(message)


def build_id_map(old_ids: Iterable[str], id_generator: IdGenerator) -> Tuple[List[str], Dict[str, str]]:
    """
    Assign one fresh identifier to every position of a collection.

    A repeated old id still gets its own new id; references to it resolve to
    the first stage that carried it.

    Args:
        old_ids: Identifiers of the source collection, in order
        id_generator: Source of new identifiers

    Returns:
        (new_ids by position, dict mapping old id -> new id)
    """
    new_ids = []
    id_map = {}
    for old_id in old_ids:
        new_id = id_generator.new_id()
        new_ids.append(new_id)
        id_map.setdefault(old_id, new_id)
    return new_ids, id_map


def remap_dependencies(dependencies: Optional[List[str]], id_map: Dict[str, str], own_id: str) -> List[str]:
    """
    Translate dependency ids through id_map.

    Ids missing from the map are dropped (the target was not part of the
    collection). The result never contains own_id.
    """
    remapped = []
    for dep_id in dependencies or []:
        new_id = id_map.get(dep_id)
        if new_id is None:
            logger.debug(f"Dropping unresolved dependency {dep_id}")
            continue
        if new_id == own_id or new_id in remapped:
            continue
        remapped.append(new_id)
    return remapped


def capture_template(stages: List[PlanStage], id_generator: Optional[IdGenerator] = None) -> List[TemplateStage]:
    """
    Convert a project's concrete stages into date-relative template stages.

    The earliest start date becomes day 0. Each stage's offset and duration are
    whole days, with the duration floored at 1 so same-day stages stay
    schedulable. Dependencies on stages outside the captured set are dropped.

    Args:
        stages: Plan stages of one project (order irrelevant)
        id_generator: Source of template-local ids (defaults to UUIDs)

    Returns:
        List of TemplateStage in input order

    Raises:
        NoStagesToCapture: if stages is empty
    """
    if not stages:
        raise NoStagesToCapture()

    id_generator = id_generator or default_id_generator()

    base_date = min(ensure_utc(s.start_date) for s in stages)
    new_ids, id_map = build_id_map((s.id for s in stages), id_generator)

    template_stages = []
    for stage, new_id in zip(stages, new_ids):
        template_stages.append(TemplateStage(
            id=new_id,
            name=stage.name,
            description=stage.description,
            construction_stage_id=stage.construction_stage_id,
            start_day_offset=days_between(base_date, stage.start_date),
            duration_days=max(1, days_between(stage.start_date, stage.end_date)),
            dependencies=remap_dependencies(stage.dependencies, id_map, new_id),
        ))

    logger.info(f"Captured {len(template_stages)} stages into template (base date {base_date.date()})")
    return template_stages


def apply_template(
    template: Union[ProjectTemplate, List[TemplateStage]],
    plan_start_date: datetime,
    id_generator: Optional[IdGenerator] = None,
) -> List[PlanStage]:
    """
    Instantiate fresh plan stages from a template.

    Every stage starts unstarted with no resource assignments. Ids are
    generated for all stages before any dependency is remapped, since a
    dependency may point at a stage emitted later.

    Args:
        template: ProjectTemplate or its stage list
        plan_start_date: Absolute date that day 0 maps onto
        id_generator: Source of plan-stage ids (defaults to UUIDs)

    Returns:
        List of new PlanStage in template order ([] for an empty template)
    """
    template_stages = template.stages if isinstance(template, ProjectTemplate) else list(template)
    if not template_stages:
        return []

    id_generator = id_generator or default_id_generator()
    new_ids, id_map = build_id_map((s.id for s in template_stages), id_generator)

    # Pass 1: dates and ids, dependencies still template-scoped
    new_stages = []
    for template_stage, new_id in zip(template_stages, new_ids):
        start_date = add_days(plan_start_date, template_stage.start_day_offset)
        end_date = add_days(start_date, template_stage.duration_days)
        new_stages.append(PlanStage(
            id=new_id,
            name=template_stage.name,
            description=template_stage.description,
            construction_stage_id=template_stage.construction_stage_id,
            start_date=start_date,
            end_date=end_date,
            status=StageStatus.NOT_STARTED,
            assigned_personnel_ids=[],
            assigned_subcontractor_ids=[],
            dependencies=list(template_stage.dependencies or []),
        ))

    # Pass 2: remap dependencies onto the new ids
    for stage in new_stages:
        stage.dependencies = remap_dependencies(stage.dependencies, id_map, stage.id)

    return new_stages


def duplicate_template_stages(
    stages: List[TemplateStage],
    id_generator: Optional[IdGenerator] = None,
) -> List[TemplateStage]:
    """
    Copy template stages with fresh template-local ids.

    Offsets, durations and metadata are unchanged; dependencies are remapped
    onto the new ids and unresolvable ones are dropped.
    """
    id_generator = id_generator or default_id_generator()
    new_ids, id_map = build_id_map((s.id for s in stages), id_generator)

    copies = []
    for stage, new_id in zip(stages, new_ids):
        copies.append(TemplateStage(
            id=new_id,
            name=stage.name,
            description=stage.description,
            construction_stage_id=stage.construction_stage_id,
            start_day_offset=stage.start_day_offset,
            duration_days=stage.duration_days,
            dependencies=remap_dependencies(stage.dependencies, id_map, new_id),
        ))
    return copies


def assign_missing_template_ids(
    stages: List[dict],
    id_generator: Optional[IdGenerator] = None,
) -> List[TemplateStage]:
    """
    Normalize submitted template stage dicts into TemplateStage objects.

    Stages lacking an id, or repeating an id already used earlier in the
    payload, get a fresh one; other submitted ids are kept. Dependencies must
    resolve to a stage of the same payload, others are dropped.
    """
    id_generator = id_generator or default_id_generator()

    submitted = {str(s['id']) for s in stages if s.get('id')}
    seen = set()

    normalized = []
    for data in stages:
        stage_data = dict(data)
        stage_id = str(stage_data['id']) if stage_data.get('id') else None
        if stage_id is None or stage_id in seen:
            stage_id = id_generator.new_id()
            while stage_id in submitted or stage_id in seen:
                stage_id = id_generator.new_id()
            if stage_data.get('id'):
                logger.warning(f"Repeated template stage id {stage_data['id']} replaced with {stage_id}")
        stage_data['id'] = stage_id
        seen.add(stage_id)
        normalized.append(TemplateStage.from_dict(stage_data))

    known_ids = {s.id: s.id for s in normalized}
    for stage in normalized:
        stage.dependencies = remap_dependencies(stage.dependencies, known_ids, stage.id)
    return normalized
