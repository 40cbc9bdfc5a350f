import math

from flask import current_app, jsonify, request

from app.datetime_utils import parse_datetime
from app.logging_config import get_logger
from app.models import db
from app.planning import planning_bp
from app.planning.service import (
    PlanStageService,
    ProjectNotFound,
    StageNotFound,
    TemplateNotFound,
    TemplateService,
    TimelineService,
)
from app.planning.templates import NoStagesToCapture

logger = get_logger(__name__)


def _server_error(message, exc):
    db.session.rollback()
    return jsonify({
        "error": message,
        "details": str(exc)
    }), 500


# ==============================================================================
# PLAN STAGES
# ==============================================================================

@planning_bp.route("/api/projects/<project_id>/plan-stages", methods=["GET"])
def list_plan_stages(project_id):
    """Return a project's plan stages in start-date order"""
    try:
        stages = PlanStageService.get_stages(project_id)
        return jsonify({"stages": [s.to_dict() for s in stages]}), 200
    except ProjectNotFound:
        return jsonify({"error": "Project not found"}), 404
    except Exception as exc:
        logger.error("Error getting plan stages", project_id=project_id, error=str(exc))
        return _server_error("Failed to get plan stages", exc)


@planning_bp.route("/api/projects/<project_id>/plan-stages", methods=["POST"])
def add_plan_stage(project_id):
    """Add a single plan stage to a project"""
    try:
        data = request.get_json(silent=True)
        stage, error_msg = PlanStageService.add_stage(project_id, data)
        if error_msg:
            return jsonify({"error": error_msg}), 400
        return jsonify(stage.to_dict()), 201
    except ProjectNotFound:
        return jsonify({"error": "Project not found"}), 404
    except Exception as exc:
        logger.error("Error adding plan stage", project_id=project_id, error=str(exc))
        return _server_error("Failed to add plan stage", exc)


@planning_bp.route("/api/projects/<project_id>/plan-stages/batch", methods=["POST"])
def add_plan_stages_batch(project_id):
    """Add several plan stages in one all-or-nothing write"""
    try:
        data = request.get_json(silent=True)
        stages, error_msg = PlanStageService.add_stages(project_id, data)
        if error_msg:
            return jsonify({"error": error_msg}), 400
        return jsonify({"stages": [s.to_dict() for s in stages]}), 201
    except ProjectNotFound:
        return jsonify({"error": "Project not found"}), 404
    except Exception as exc:
        logger.error("Error adding plan stage batch", project_id=project_id, error=str(exc))
        return _server_error("Failed to add plan stages", exc)


@planning_bp.route("/api/projects/<project_id>/plan-stages/<stage_id>", methods=["PUT"])
def update_plan_stage(project_id, stage_id):
    """Partially update a plan stage (status, dates, assignments, dependencies)"""
    try:
        data = request.get_json(silent=True)
        stage, error_msg = PlanStageService.update_stage(project_id, stage_id, data)
        if error_msg:
            return jsonify({"error": error_msg}), 400
        return jsonify(stage.to_dict()), 200
    except ProjectNotFound:
        return jsonify({"error": "Project not found"}), 404
    except StageNotFound:
        return jsonify({"error": "Stage not found"}), 404
    except Exception as exc:
        logger.error("Error updating plan stage", project_id=project_id, stage_id=stage_id, error=str(exc))
        return _server_error("Failed to update plan stage", exc)


@planning_bp.route("/api/projects/<project_id>/plan-stages/<stage_id>", methods=["DELETE"])
def delete_plan_stage(project_id, stage_id):
    """Delete a plan stage. Other stages' dependency lists are left as they are."""
    try:
        PlanStageService.delete_stage(project_id, stage_id)
        return jsonify({"success": True}), 200
    except ProjectNotFound:
        return jsonify({"error": "Project not found"}), 404
    except StageNotFound:
        return jsonify({"error": "Stage not found"}), 404
    except Exception as exc:
        logger.error("Error deleting plan stage", project_id=project_id, stage_id=stage_id, error=str(exc))
        return _server_error("Failed to delete plan stage", exc)


# ==============================================================================
# TEMPLATE CAPTURE / IMPORT
# ==============================================================================

@planning_bp.route("/api/projects/<project_id>/save-template", methods=["POST"])
def save_project_as_template(project_id):
    """Capture the project's current stages into a new template"""
    try:
        data = request.get_json(silent=True) or {}
        if not isinstance(data, dict):
            return jsonify({"error": "Request body must be a JSON object"}), 400

        template, error_msg = TemplateService.save_project_as_template(
            project_id,
            data.get('name'),
            data.get('description'),
        )
        if error_msg:
            return jsonify({"error": error_msg}), 400
        return jsonify(template.to_dict()), 201
    except NoStagesToCapture as exc:
        return jsonify({"error": str(exc), "code": exc.code}), 400
    except ProjectNotFound:
        return jsonify({"error": "Project not found"}), 404
    except Exception as exc:
        logger.error("Error saving project as template", project_id=project_id, error=str(exc))
        return _server_error("Failed to save template", exc)


@planning_bp.route("/api/projects/<project_id>/import-template", methods=["POST"])
def import_template(project_id):
    """Instantiate a template onto the project starting at planStartDate"""
    try:
        data = request.get_json(silent=True) or {}
        if not isinstance(data, dict):
            return jsonify({"error": "Request body must be a JSON object"}), 400

        template_id = data.get('templateId')
        if not template_id:
            return jsonify({"error": "templateId is required"}), 400

        plan_start_date = parse_datetime(data.get('planStartDate'))
        if plan_start_date is None:
            return jsonify({"error": "planStartDate must be a valid ISO 8601 date"}), 400

        stages = TemplateService.import_template_into_project(project_id, str(template_id), plan_start_date)
        return jsonify({
            "success": True,
            "imported": len(stages),
            "stages": [s.to_dict() for s in stages]
        }), 200
    except ProjectNotFound:
        return jsonify({"error": "Project not found"}), 404
    except TemplateNotFound:
        return jsonify({"error": "Template not found"}), 404
    except Exception as exc:
        logger.error("Error importing template", project_id=project_id, error=str(exc))
        return _server_error("Failed to import template", exc)


# ==============================================================================
# TIMELINE
# ==============================================================================

@planning_bp.route("/api/projects/<project_id>/timeline", methods=["GET"])
def project_timeline(project_id):
    """Return planned vs. actual timeline geometry for a project.

    Optional query param `width` (px) sets the container width used for the
    dependency arc paths; 0 omits the paths.
    """
    try:
        width = request.args.get('width', type=float)
        if width is None:
            width = current_app.config.get('TIMELINE_DEFAULT_WIDTH', 0)
        if not math.isfinite(width) or width < 0:
            return jsonify({"error": "width must be a finite, non-negative number"}), 400

        layout = TimelineService.build_project_timeline(project_id)
        return jsonify(layout.to_dict(container_width=width)), 200
    except ProjectNotFound:
        return jsonify({"error": "Project not found"}), 404
    except Exception as exc:
        logger.error("Error building project timeline", project_id=project_id, error=str(exc))
        return _server_error("Failed to build timeline", exc)


# ==============================================================================
# PROJECT TEMPLATES
# ==============================================================================

@planning_bp.route("/api/project-templates", methods=["GET"])
def list_templates():
    try:
        templates = TemplateService.list_templates()
        return jsonify({"templates": [t.to_dict() for t in templates]}), 200
    except Exception as exc:
        logger.error("Error listing templates", error=str(exc))
        return _server_error("Failed to list templates", exc)


@planning_bp.route("/api/project-templates", methods=["POST"])
def create_template():
    try:
        data = request.get_json(silent=True)
        template, error_msg = TemplateService.create_template(data)
        if error_msg:
            return jsonify({"error": error_msg}), 400
        return jsonify(template.to_dict()), 201
    except Exception as exc:
        logger.error("Error creating template", error=str(exc))
        return _server_error("Failed to create template", exc)


@planning_bp.route("/api/project-templates/<template_id>", methods=["GET"])
def get_template(template_id):
    try:
        return jsonify(TemplateService.get_template(template_id).to_dict()), 200
    except TemplateNotFound:
        return jsonify({"error": "Template not found"}), 404
    except Exception as exc:
        logger.error("Error getting template", template_id=template_id, error=str(exc))
        return _server_error("Failed to get template", exc)


@planning_bp.route("/api/project-templates/<template_id>", methods=["PUT"])
def update_template(template_id):
    """Edit template name/description"""
    try:
        data = request.get_json(silent=True)
        template, error_msg = TemplateService.update_template_metadata(template_id, data)
        if error_msg:
            return jsonify({"error": error_msg}), 400
        return jsonify(template.to_dict()), 200
    except TemplateNotFound:
        return jsonify({"error": "Template not found"}), 404
    except Exception as exc:
        logger.error("Error updating template", template_id=template_id, error=str(exc))
        return _server_error("Failed to update template", exc)


@planning_bp.route("/api/project-templates/<template_id>", methods=["DELETE"])
def delete_template(template_id):
    try:
        TemplateService.delete_template(template_id)
        return jsonify({"success": True}), 200
    except TemplateNotFound:
        return jsonify({"error": "Template not found"}), 404
    except Exception as exc:
        logger.error("Error deleting template", template_id=template_id, error=str(exc))
        return _server_error("Failed to delete template", exc)


@planning_bp.route("/api/project-templates/<template_id>/duplicate", methods=["POST"])
def duplicate_template(template_id):
    try:
        template = TemplateService.duplicate_template(template_id)
        return jsonify(template.to_dict()), 201
    except TemplateNotFound:
        return jsonify({"error": "Template not found"}), 404
    except Exception as exc:
        logger.error("Error duplicating template", template_id=template_id, error=str(exc))
        return _server_error("Failed to duplicate template", exc)
