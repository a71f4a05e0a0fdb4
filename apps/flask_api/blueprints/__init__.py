"""Flask API Blueprints package.

- health: liveness, store health and version endpoints
- submissions: staging of survey submissions
- consolidation: availability status, staging counts and consolidation runs
"""

from apps.flask_api.blueprints.consolidation import consolidation_bp
from apps.flask_api.blueprints.health import health_bp
from apps.flask_api.blueprints.submissions import submissions_bp

__all__ = [
    "consolidation_bp",
    "health_bp",
    "submissions_bp",
]
