"""
Journey Map Workspace
Blueprint registry.
"""

from journeymap.blueprints.health_bp import health_bp
from journeymap.blueprints.workspace_bp import workspace_bp

ALL_BLUEPRINTS = (health_bp, workspace_bp)
