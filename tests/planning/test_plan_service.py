"""
Tests for the planning service layer.
These tests run the services against an in-memory SQLite database.
"""
from datetime import datetime, timezone
from unittest.mock import patch

import pytest

from app import create_app
from app.config import TestingConfig
from app.logging_config import PlanOperationContext
from app.models import PlanStageRecord, Project, ProjectTask, ProjectTemplateRecord, db
from app.planning.ids import SequentialIdGenerator
from app.planning.service import (
    PlanStageService,
    ProjectNotFound,
    StageNotFound,
    TemplateNotFound,
    TemplateService,
    TimelineService,
)
from app.planning.templates import NoStagesToCapture
from app.planning.types import StageStatus
from app.seed import DEFAULT_TEMPLATES, seed_default_templates


def utc(year, month, day):
    return datetime(year, month, day, tzinfo=timezone.utc)


@pytest.fixture
def app():
    """Create Flask application for testing."""
    app = create_app(TestingConfig)

    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def project(app):
    project = Project(id='proj-1', name='Maple Street Duplex')
    db.session.add(project)
    db.session.commit()
    return project


@pytest.fixture
def house_plan(project):
    """Foundation -> Framing -> Roofing stored on proj-1."""
    stages, error = PlanStageService.add_stages(project.id, [
        {'id': 's-foundation', 'name': 'Foundation', 'startDate': '2024-01-01', 'endDate': '2024-01-06',
         'constructionStageId': 'cs-1', 'status': 'Completed', 'assignedPersonnelIds': ['p-1']},
        {'id': 's-framing', 'name': 'Framing', 'startDate': '2024-01-06', 'endDate': '2024-01-16',
         'constructionStageId': 'cs-2', 'dependencies': ['s-foundation']},
        {'id': 's-roofing', 'name': 'Roofing', 'startDate': '2024-01-16', 'endDate': '2024-01-21',
         'dependencies': ['s-framing']},
    ])
    assert error is None
    return stages


# ==============================================================================
# PLAN STAGE SERVICE
# ==============================================================================

class TestPlanStageService:
    """Tests for PlanStageService."""

    def test_get_stages_empty_project(self, project):
        """Test that a project without stages returns an empty list."""
        assert PlanStageService.get_stages(project.id) == []

    def test_get_stages_unknown_project(self, app):
        with pytest.raises(ProjectNotFound):
            PlanStageService.get_stages('missing')

    def test_get_stages_sorted_by_start(self, project):
        PlanStageService.add_stage(project.id, {'name': 'Late', 'startDate': '2024-02-01', 'endDate': '2024-02-03'})
        PlanStageService.add_stage(project.id, {'name': 'Early', 'startDate': '2024-01-01', 'endDate': '2024-01-03'})

        names = [s.name for s in PlanStageService.get_stages(project.id)]

        assert names == ['Early', 'Late']

    def test_add_stage_assigns_fresh_id(self, project):
        """Test that a submitted id is ignored for single-stage creation."""
        stage, error = PlanStageService.add_stage(
            project.id,
            {'id': 'mine', 'name': 'Demo', 'startDate': '2024-01-01', 'endDate': '2024-01-02'},
            SequentialIdGenerator("stage"),
        )

        assert error is None
        assert stage.id == 'stage-1'
        assert stage.status == StageStatus.NOT_STARTED

    def test_add_stage_invalid_returns_error(self, project):
        stage, error = PlanStageService.add_stage(project.id, {'name': '', 'startDate': '2024-01-01', 'endDate': '2024-01-02'})

        assert stage is None
        assert error == "name is required"
        assert PlanStageRecord.query.count() == 0

    def test_batch_is_all_or_nothing(self, project):
        """Test that one invalid stage stops the whole batch."""
        stages, error = PlanStageService.add_stages(project.id, [
            {'name': 'Good', 'startDate': '2024-01-01', 'endDate': '2024-01-02'},
            {'name': 'Bad', 'startDate': '2024-01-05', 'endDate': '2024-01-02'},
        ])

        assert stages is None
        assert error.startswith("Stage 1:")
        assert PlanStageRecord.query.count() == 0

    def test_batch_requires_list(self, project):
        stages, error = PlanStageService.add_stages(project.id, {'name': 'x'})

        assert error == "Array of stages required"

    def test_batch_rejects_existing_id(self, house_plan, project):
        stages, error = PlanStageService.add_stages(project.id, [
            {'id': 's-framing', 'name': 'Again', 'startDate': '2024-01-01', 'endDate': '2024-01-02'},
        ])

        assert stages is None
        assert "already exists" in error

    def test_batch_round_trips_dates(self, house_plan, project):
        stages = PlanStageService.get_stages(project.id)

        assert stages[0].start_date == utc(2024, 1, 1)
        assert stages[0].end_date == utc(2024, 1, 6)
        assert stages[1].dependencies == ['s-foundation']

    def test_update_stage_partial(self, house_plan, project):
        stage, error = PlanStageService.update_stage(project.id, 's-framing', {'status': 'In Progress'})

        assert error is None
        assert stage.status == StageStatus.IN_PROGRESS
        assert stage.name == 'Framing'
        assert stage.dependencies == ['s-foundation']

    def test_update_stage_rejects_self_dependency(self, house_plan, project):
        stage, error = PlanStageService.update_stage(project.id, 's-framing', {'dependencies': ['s-framing']})

        assert stage is None
        assert error == "A stage cannot depend on itself"

    def test_update_stage_rejects_inverted_dates(self, house_plan, project):
        stage, error = PlanStageService.update_stage(project.id, 's-framing', {'endDate': '2024-01-01'})

        assert stage is None
        assert "endDate" in error

    def test_update_unknown_stage(self, project):
        with pytest.raises(StageNotFound):
            PlanStageService.update_stage(project.id, 'missing', {'name': 'x'})

    def test_delete_does_not_cascade(self, house_plan, project):
        """Test that deleting a stage leaves dangling ids in its dependents."""
        PlanStageService.delete_stage(project.id, 's-foundation')

        stages = PlanStageService.get_stages(project.id)
        assert [s.id for s in stages] == ['s-framing', 's-roofing']
        assert stages[0].dependencies == ['s-foundation']

    def test_delete_unknown_stage(self, project):
        with pytest.raises(StageNotFound):
            PlanStageService.delete_stage(project.id, 'missing')


# ==============================================================================
# TEMPLATE SERVICE
# ==============================================================================

class TestTemplateService:
    """Tests for TemplateService."""

    def test_save_project_as_template(self, house_plan, project):
        template, error = TemplateService.save_project_as_template(
            project.id, 'Small House', 'Three stage shell', SequentialIdGenerator("tpl")
        )

        assert error is None
        assert template.id is not None
        assert [s.start_day_offset for s in template.stages] == [0, 5, 15]
        assert [s.duration_days for s in template.stages] == [5, 10, 5]
        assert template.stages[1].dependencies == [template.stages[0].id]
        assert ProjectTemplateRecord.query.count() == 1

    def test_save_empty_project_raises(self, project):
        with pytest.raises(NoStagesToCapture):
            TemplateService.save_project_as_template(project.id, 'Nothing')
        assert ProjectTemplateRecord.query.count() == 0

    def test_save_requires_name(self, house_plan, project):
        template, error = TemplateService.save_project_as_template(project.id, '')

        assert template is None
        assert error == "Template name is required."

    def test_import_template_into_project(self, house_plan, project):
        template, _ = TemplateService.save_project_as_template(project.id, 'Small House')
        target = Project(id='proj-2', name='Oak Avenue')
        db.session.add(target)
        db.session.commit()

        new_stages = TemplateService.import_template_into_project(target.id, template.id, utc(2024, 3, 1))

        stored = PlanStageService.get_stages(target.id)
        assert [s.id for s in stored] == [s.id for s in new_stages]
        assert [(s.start_date, s.end_date) for s in stored] == [
            (utc(2024, 3, 1), utc(2024, 3, 6)),
            (utc(2024, 3, 6), utc(2024, 3, 16)),
            (utc(2024, 3, 16), utc(2024, 3, 21)),
        ]
        assert stored[1].dependencies == [stored[0].id]
        assert stored[2].dependencies == [stored[1].id]
        assert all(s.status == StageStatus.NOT_STARTED for s in stored)
        assert all(s.assigned_personnel_ids == [] for s in stored)

    def test_import_empty_template_is_noop(self, project):
        template, _ = TemplateService.create_template({'name': 'Blank', 'stages': []})

        assert TemplateService.import_template_into_project(project.id, template.id, utc(2024, 3, 1)) == []
        assert PlanStageRecord.query.count() == 0

    def test_import_unknown_template(self, project):
        with pytest.raises(TemplateNotFound):
            TemplateService.import_template_into_project(project.id, 'missing', utc(2024, 3, 1))

    def test_create_template_assigns_ids(self, app):
        template, error = TemplateService.create_template({
            'name': 'Deck',
            'stages': [
                {'name': 'Footings', 'startDayOffset': 0, 'durationDays': 2},
                {'id': 'joists', 'name': 'Joists', 'startDayOffset': 2, 'durationDays': 3},
            ],
        })

        assert error is None
        assert template.stages[0].id
        assert template.stages[1].id == 'joists'

    def test_update_metadata_only(self, app):
        template, _ = TemplateService.create_template({'name': 'Deck', 'stages': []})

        updated, error = TemplateService.update_template_metadata(template.id, {'name': 'Backyard Deck', 'description': 'Cedar'})
        assert error is None
        assert (updated.name, updated.description) == ('Backyard Deck', 'Cedar')

        rejected, error = TemplateService.update_template_metadata(template.id, {'stages': []})
        assert rejected is None
        assert error == "Template stages cannot be edited"

    def test_duplicate_template(self, house_plan, project):
        template, _ = TemplateService.save_project_as_template(project.id, 'Small House')

        copy = TemplateService.duplicate_template(template.id)

        assert copy.id != template.id
        assert copy.name == 'Small House (Copy)'
        assert {s.id for s in copy.stages}.isdisjoint({s.id for s in template.stages})
        assert copy.stages[1].dependencies == [copy.stages[0].id]

    def test_delete_template(self, app):
        template, _ = TemplateService.create_template({'name': 'Deck', 'stages': []})

        TemplateService.delete_template(template.id)

        with pytest.raises(TemplateNotFound):
            TemplateService.get_template(template.id)


# ==============================================================================
# TIMELINE SERVICE / SEED
# ==============================================================================

class TestTimelineService:
    """Tests for TimelineService."""

    def test_empty_project_has_no_data(self, project):
        layout = TimelineService.build_project_timeline(project.id)

        assert layout.has_data is False

    def test_project_timeline(self, house_plan, project):
        db.session.add(ProjectTask(
            id='task-1', project_id=project.id, description='Pour footings',
            construction_stage_id='cs-1',
            created_at=datetime(2023, 12, 28), due_date=datetime(2024, 1, 4),
        ))
        db.session.commit()

        layout = TimelineService.build_project_timeline(project.id)

        assert layout.has_data is True
        assert layout.axis.start == utc(2023, 12, 21)
        assert layout.axis.end == utc(2024, 2, 4)
        assert [r.stage_id for r in layout.rows] == ['s-foundation', 's-framing', 's-roofing']
        assert layout.rows[0].actual.start == utc(2023, 12, 28)
        assert layout.rows[0].linked_task_count == 1
        assert len(layout.arcs) == 2


class TestSeedDefaultTemplates:
    """Tests for seed_default_templates."""

    def test_seed_inserts_missing_templates_once(self, app):
        assert seed_default_templates() == len(DEFAULT_TEMPLATES)
        assert seed_default_templates() == 0
        assert ProjectTemplateRecord.query.count() == len(DEFAULT_TEMPLATES)

    def test_seed_does_not_overwrite(self, app):
        TemplateService.create_template({'name': 'Kitchen Remodel', 'description': 'Ours', 'stages': []})

        seed_default_templates()

        kitchen = ProjectTemplateRecord.query.filter_by(name='Kitchen Remodel').all()
        assert len(kitchen) == 1
        assert kitchen[0].description == 'Ours'

    def test_seeded_template_applies(self, project):
        seed_default_templates()
        kitchen = ProjectTemplateRecord.query.filter_by(name='Kitchen Remodel').first()

        stages = TemplateService.import_template_into_project(project.id, kitchen.id, utc(2024, 6, 3))

        assert len(stages) == 6
        assert stages[1].dependencies == [stages[0].id]
        assert stages[-1].end_date == utc(2024, 6, 25)


class TestPlanOperationContext:
    """Tests for PlanOperationContext."""

    def test_failure_is_logged_and_reraised(self):
        """Test that the context logs a failure without swallowing it."""
        with patch('app.logging_config.get_logger') as mock_get_logger:
            bound = mock_get_logger.return_value.bind.return_value

            with pytest.raises(NoStagesToCapture):
                with PlanOperationContext("capture_template", project_id='proj-1'):
                    raise NoStagesToCapture()

        mock_get_logger.return_value.bind.assert_called_once()
        assert mock_get_logger.return_value.bind.call_args.kwargs['project_id'] == 'proj-1'
        bound.error.assert_called_once()
        assert bound.error.call_args.kwargs['error_type'] == 'NoStagesToCapture'
