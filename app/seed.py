"""
Built-in plan templates.

seed_default_templates() inserts any built-in template whose name is not
already stored. Existing templates are never overwritten, so user edits to a
seeded template survive restarts.
"""
import logging

from sqlalchemy.exc import SQLAlchemyError

from app.models import ProjectTemplateRecord, db
from app.planning.ids import UuidIdGenerator

logger = logging.getLogger(__name__)


DEFAULT_TEMPLATES = [
    {
        'name': 'Kitchen Remodel',
        'description': 'Standard kitchen renovation timeline including demolition, rough-ins, and finishing.',
        'stages': [
            {'id': 't-stage-1', 'name': 'Demolition & Prep', 'description': 'Remove old cabinets, flooring, and appliances.', 'constructionStageId': 'stage-1', 'durationDays': 3, 'startDayOffset': 0, 'dependencies': []},
            {'id': 't-stage-2', 'name': 'Rough-in (Plumbing & Electrical)', 'description': 'Run new lines for sink, dishwasher, and outlets.', 'constructionStageId': 'stage-3', 'durationDays': 4, 'startDayOffset': 3, 'dependencies': ['t-stage-1']},
            {'id': 't-stage-3', 'name': 'Drywall & Painting', 'description': 'Patch walls and apply primer/paint.', 'constructionStageId': 'stage-4', 'durationDays': 5, 'startDayOffset': 7, 'dependencies': ['t-stage-2']},
            {'id': 't-stage-4', 'name': 'Cabinet & Countertop Installation', 'description': 'Install new cabinets and countertops.', 'constructionStageId': 'stage-5', 'durationDays': 4, 'startDayOffset': 12, 'dependencies': ['t-stage-3']},
            {'id': 't-stage-5', 'name': 'Flooring & Backsplash', 'description': 'Install tile flooring and backsplash.', 'constructionStageId': 'stage-5', 'durationDays': 4, 'startDayOffset': 16, 'dependencies': ['t-stage-4']},
            {'id': 't-stage-6', 'name': 'Appliances & Fixtures', 'description': 'Install sink, faucet, and appliances.', 'constructionStageId': 'stage-3', 'durationDays': 2, 'startDayOffset': 20, 'dependencies': ['t-stage-5']},
        ],
    },
    {
        'name': 'Bathroom Renovation',
        'description': 'Complete bathroom overhaul.',
        'stages': [
            {'id': 't-stage-b1', 'name': 'Demolition', 'description': 'Remove fixtures, tile, and vanity.', 'constructionStageId': 'stage-1', 'durationDays': 2, 'startDayOffset': 0, 'dependencies': []},
            {'id': 't-stage-b2', 'name': 'Plumbing Rough-in', 'description': 'Move drains and supply lines.', 'constructionStageId': 'stage-3', 'durationDays': 2, 'startDayOffset': 2, 'dependencies': ['t-stage-b1']},
            {'id': 't-stage-b3', 'name': 'Waterproofing & Tub/Shower Pan', 'description': 'Install waterproofing membrane.', 'constructionStageId': 'stage-2', 'durationDays': 2, 'startDayOffset': 4, 'dependencies': ['t-stage-b2']},
            {'id': 't-stage-b4', 'name': 'Tiling', 'description': 'Tile shower walls and floor.', 'constructionStageId': 'stage-5', 'durationDays': 5, 'startDayOffset': 6, 'dependencies': ['t-stage-b3']},
            {'id': 't-stage-b5', 'name': 'Vanity & Fixtures', 'description': 'Install vanity, toilet, and trim.', 'constructionStageId': 'stage-3', 'durationDays': 2, 'startDayOffset': 11, 'dependencies': ['t-stage-b4']},
            {'id': 't-stage-b6', 'name': 'Painting & Accessories', 'description': 'Paint walls and install towel bars.', 'constructionStageId': 'stage-5', 'durationDays': 2, 'startDayOffset': 13, 'dependencies': ['t-stage-b5']},
        ],
    },
]


def seed_default_templates(templates=None, id_generator=None):
    """
    Insert built-in templates that are missing by name.

    Returns:
        int: number of templates created
    """
    templates = DEFAULT_TEMPLATES if templates is None else templates
    id_generator = id_generator or UuidIdGenerator()

    existing_names = {name for (name,) in db.session.query(ProjectTemplateRecord.name).all()}

    created = 0
    try:
        for template in templates:
            if template['name'] in existing_names:
                continue
            db.session.add(ProjectTemplateRecord(
                id=id_generator.new_id(),
                name=template['name'],
                description=template.get('description'),
                stages=[dict(s) for s in template['stages']],
            ))
            existing_names.add(template['name'])
            created += 1
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.error(f"Failed to seed default templates: {e}")
        raise

    if created:
        logger.info(f"Seeded {created} default plan templates")
    return created
