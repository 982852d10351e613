"""
teachback - mastery-tracking and assessment engine for teach-back learning.

Subpackages:
- core: errors, forgetting-curve helpers, repository interfaces
- graph: concept graph store, mastery updater, recommendations
- rating: multi-dimensional Elo ratings
- scoring: SOLO criterion scorer
- study: SM-2 review scheduling, achievements, engagement, streaks
- session: turn-bounded session coordinator
- db: SQLAlchemy persistence
- cli: Typer command line
"""

__version__ = "0.1.0"
