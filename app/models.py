from flask_sqlalchemy import SQLAlchemy
from datetime import datetime

db = SQLAlchemy()


class Project(db.Model):
    """Construction project owning a plan stage list and a task list."""
    __tablename__ = "projects"

    id = db.Column(db.String(36), primary_key=True)
    name = db.Column(db.String(256), nullable=False)
    start_date = db.Column(db.DateTime, nullable=True)
    end_date = db.Column(db.DateTime, nullable=True)
    status = db.Column(db.String(32), nullable=False, default="Not Started")
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    plan_stages = db.relationship(
        "PlanStageRecord",
        backref="project",
        lazy="select",
        cascade="all, delete-orphan",
    )
    tasks = db.relationship(
        "ProjectTask",
        backref="project",
        lazy="select",
        cascade="all, delete-orphan",
    )

    def __repr__(self):
        return f"<Project {self.id} - {self.name}>"


class PlanStageRecord(db.Model):
    """Stored plan stage. Id lists are kept as JSON arrays."""
    __tablename__ = "plan_stages"

    id = db.Column(db.String(36), primary_key=True)
    project_id = db.Column(db.String(36), db.ForeignKey("projects.id"), nullable=False, index=True)
    name = db.Column(db.String(256), nullable=False)
    description = db.Column(db.Text, nullable=True)
    start_date = db.Column(db.DateTime, nullable=False)
    end_date = db.Column(db.DateTime, nullable=False)
    status = db.Column(db.String(32), nullable=False, default="Not Started")
    construction_stage_id = db.Column(db.String(64), nullable=True, index=True)
    assigned_personnel_ids = db.Column(db.JSON, nullable=False, default=list)
    assigned_subcontractor_ids = db.Column(db.JSON, nullable=False, default=list)
    # Ids of sibling stages; may hold dangling ids after a sibling is deleted
    dependencies = db.Column(db.JSON, nullable=False, default=list)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    last_updated_at = db.Column(db.DateTime, nullable=True)

    def __repr__(self):
        return f"<PlanStageRecord {self.id} - {self.name}>"


class ProjectTask(db.Model):
    """Project task. Only read here, to derive actual stage progress."""
    __tablename__ = "project_tasks"

    id = db.Column(db.String(36), primary_key=True)
    project_id = db.Column(db.String(36), db.ForeignKey("projects.id"), nullable=False, index=True)
    description = db.Column(db.String(512), nullable=False)
    status = db.Column(db.String(32), nullable=False, default="To Do")
    construction_stage_id = db.Column(db.String(64), nullable=True, index=True)
    created_at = db.Column(db.DateTime, nullable=True, default=datetime.utcnow)
    due_date = db.Column(db.DateTime, nullable=True)

    def __repr__(self):
        return f"<ProjectTask {self.id} - {self.description[:30]}>"


class ProjectTemplateRecord(db.Model):
    """Stored plan template. Stage content is a JSON document, immutable after creation."""
    __tablename__ = "project_templates"

    id = db.Column(db.String(36), primary_key=True)
    name = db.Column(db.String(256), nullable=False, index=True)
    description = db.Column(db.Text, nullable=True)
    stages = db.Column(db.JSON, nullable=False, default=list)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<ProjectTemplateRecord {self.id} - {self.name}>"
