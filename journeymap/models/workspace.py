"""
Workspace tables for the database storage backend.

One table per entity collection plus ``cell_comments`` keyed by the
composite ``"<phaseId>::<rowKey>"`` string. Columns are the snake_case
form of the snapshot's camelCase keys; list and map fields are stored as
JSON text for SQLite compatibility. Timestamps are kept as the ISO strings
the engine produced so a load returns exactly what was saved.

The engine owns referential integrity (cascades happen in memory before a
save), so there are no foreign keys between these tables.
"""

import json
import re

from journeymap.models import db


def _camel(name: str) -> str:
    return re.sub(r"_([a-z])", lambda m: m.group(1).upper(), name)


class SnapshotRowMixin:
    """Map a row to and from one entity dict of the snapshot."""

    # Columns holding JSON-encoded lists/maps
    _json_columns: tuple = ()

    @classmethod
    def column_names(cls) -> list[str]:
        return [c.name for c in cls.__table__.columns]

    def to_snapshot(self) -> dict:
        out = {}
        for name in self.column_names():
            value = getattr(self, name)
            if name in self._json_columns and value is not None:
                value = json.loads(value)
            out[_camel(name)] = value
        return out

    def apply_snapshot(self, data: dict) -> None:
        for name in self.column_names():
            value = data.get(_camel(name))
            if name in self._json_columns and value is not None:
                value = json.dumps(value, ensure_ascii=False)
            setattr(self, name, value)


class ClientRecord(SnapshotRowMixin, db.Model):
    __tablename__ = "clients"

    id = db.Column(db.String(64), primary_key=True)
    name = db.Column(db.String(200), nullable=False, default="")
    description = db.Column(db.Text, nullable=True)
    website = db.Column(db.String(500), nullable=True)
    logo_url = db.Column(db.String(500), nullable=True)
    created_at = db.Column(db.String(40), nullable=False, default="")
    updated_at = db.Column(db.String(40), nullable=False, default="")


class ProjectRecord(SnapshotRowMixin, db.Model):
    __tablename__ = "projects"

    id = db.Column(db.String(64), primary_key=True)
    client_id = db.Column(db.String(64), nullable=False, index=True)
    name = db.Column(db.String(200), nullable=False, default="")
    description = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.String(40), nullable=False, default="")
    updated_at = db.Column(db.String(40), nullable=False, default="")


class JourneyRecord(SnapshotRowMixin, db.Model):
    __tablename__ = "journeys"
    _json_columns = ("row_order", "custom_rows")

    id = db.Column(db.String(64), primary_key=True)
    project_id = db.Column(db.String(64), nullable=False, index=True)
    name = db.Column(db.String(200), nullable=False, default="")
    description = db.Column(db.Text, nullable=True)
    row_order = db.Column(db.Text, nullable=True, comment="JSON: ordered built-in keys + custom row ids")
    custom_rows = db.Column(db.Text, nullable=True, comment="JSON: [{id, label}]")
    created_at = db.Column(db.String(40), nullable=False, default="")
    updated_at = db.Column(db.String(40), nullable=False, default="")


class PhaseRecord(SnapshotRowMixin, db.Model):
    __tablename__ = "phases"
    _json_columns = ("job_ids", "custom_row_values")

    id = db.Column(db.String(64), primary_key=True)
    journey_id = db.Column(db.String(64), nullable=False, index=True)
    order = db.Column(db.Integer, nullable=False, default=0)
    title = db.Column(db.String(300), nullable=False, default="")
    description = db.Column(db.Text, nullable=True)
    image_url = db.Column(db.String(500), nullable=True)
    struggles = db.Column(db.Text, nullable=True)
    internal_struggles = db.Column(db.Text, nullable=True)
    opportunities = db.Column(db.Text, nullable=True)
    front_stage_actions = db.Column(db.Text, nullable=True)
    back_stage_actions = db.Column(db.Text, nullable=True)
    systems = db.Column(db.Text, nullable=True)
    related_processes = db.Column(db.Text, nullable=True)
    channels = db.Column(db.Text, nullable=True)
    job_ids = db.Column(db.Text, nullable=True, comment="JSON: ordered job ids placed in this phase")
    customer_jobs = db.Column(db.Text, nullable=True, comment="Legacy embedded job list")
    related_documents = db.Column(db.Text, nullable=True)
    custom_row_values = db.Column(db.Text, nullable=True, comment="JSON: {customRowId: text}")
    created_at = db.Column(db.String(40), nullable=False, default="")
    updated_at = db.Column(db.String(40), nullable=False, default="")


class JobRecord(SnapshotRowMixin, db.Model):
    __tablename__ = "jobs"
    _json_columns = ("struggles", "functional_dimensions", "social_dimensions",
                     "emotional_dimensions", "insight_ids")

    id = db.Column(db.String(64), primary_key=True)
    client_id = db.Column(db.String(64), nullable=False, index=True)
    name = db.Column(db.String(300), nullable=False, default="")
    description = db.Column(db.Text, nullable=True)
    tag = db.Column(db.String(20), nullable=False, default="Functional",
                    comment="Functional | Social | Emotional")
    priority = db.Column(db.String(10), nullable=True, comment="High | Medium | Low")
    struggles = db.Column(db.Text, nullable=True)
    functional_dimensions = db.Column(db.Text, nullable=True)
    social_dimensions = db.Column(db.Text, nullable=True)
    emotional_dimensions = db.Column(db.Text, nullable=True)
    solutions_and_workarounds = db.Column(db.Text, nullable=True)
    is_priority = db.Column(db.Boolean, nullable=True, default=False)
    insight_ids = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.String(40), nullable=False, default="")
    updated_at = db.Column(db.String(40), nullable=False, default="")


class InsightRecord(SnapshotRowMixin, db.Model):
    __tablename__ = "insights"

    id = db.Column(db.String(64), primary_key=True)
    client_id = db.Column(db.String(64), nullable=False, index=True)
    title = db.Column(db.String(300), nullable=False, default="")
    description = db.Column(db.Text, nullable=True)
    priority = db.Column(db.String(10), nullable=True)
    order = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.String(40), nullable=False, default="")
    updated_at = db.Column(db.String(40), nullable=False, default="")


class OpportunityRecord(SnapshotRowMixin, db.Model):
    __tablename__ = "opportunities"
    _json_columns = ("linked_job_ids",)

    id = db.Column(db.String(64), primary_key=True)
    client_id = db.Column(db.String(64), nullable=False, index=True)
    project_id = db.Column(db.String(64), nullable=False)
    journey_id = db.Column(db.String(64), nullable=False)
    phase_id = db.Column(db.String(64), nullable=False, index=True)
    stage = db.Column(db.String(20), nullable=False, default="Backlog")
    stage_order = db.Column(db.Integer, nullable=False, default=0)
    name = db.Column(db.String(300), nullable=False, default="")
    priority = db.Column(db.String(10), nullable=False, default="High")
    description = db.Column(db.Text, nullable=True)
    point_of_differentiation = db.Column(db.Text, nullable=True)
    critical_assumptions = db.Column(db.Text, nullable=True)
    linked_job_ids = db.Column(db.Text, nullable=True)
    is_priority = db.Column(db.Boolean, nullable=True, default=False)
    created_at = db.Column(db.String(40), nullable=False, default="")
    updated_at = db.Column(db.String(40), nullable=False, default="")

    __table_args__ = (
        db.Index("ix_opportunities_client_stage", "client_id", "stage"),
    )


class CellCommentRecord(db.Model):
    __tablename__ = "cell_comments"

    key = db.Column(db.String(200), primary_key=True, comment="<phaseId>::<rowKey>")
    text = db.Column(db.Text, nullable=False, default="")
    replies = db.Column(db.Text, nullable=True, comment="JSON: append-only reply strings")

    def to_snapshot(self) -> dict:
        return {"text": self.text or "", "replies": json.loads(self.replies) if self.replies else []}

    def apply_snapshot(self, data: dict) -> None:
        self.text = data.get("text") or ""
        self.replies = json.dumps(data.get("replies") or [], ensure_ascii=False)


# Snapshot collection name -> table model
SNAPSHOT_TABLES = {
    "clients": ClientRecord,
    "projects": ProjectRecord,
    "journeys": JourneyRecord,
    "phases": PhaseRecord,
    "jobs": JobRecord,
    "insights": InsightRecord,
    "opportunities": OpportunityRecord,
}
