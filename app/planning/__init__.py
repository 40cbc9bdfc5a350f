"""
Project plan scheduling module.
Flask Blueprint for plan stages, plan templates and the project timeline.

Pure logic lives in templates.py (capture/apply/duplicate) and timeline.py
(layout engine); service.py binds them to the database and routes.py exposes
them over HTTP.
"""
from flask import Blueprint

planning_bp = Blueprint("planning", __name__)

from app.planning import routes
