"""
Dashboard statistics refresh.

The scheduler job and the manual refresh both run ``refresh`` and write the
result into the same view state. Nothing orders them: whichever fetch
finishes last is what the dashboard shows.
"""
import logging

import db_manager
from viewmodels import DashboardView, RefreshStarted, StatsLoaded, Failed, update_dashboard

logger = logging.getLogger(__name__)

EXTENSION_KEY = 'crm_dashboard'


def init_app(app):
    app.extensions[EXTENSION_KEY] = DashboardView()


def get_state(app):
    return app.extensions[EXTENSION_KEY]


def _dispatch(app, action):
    state = update_dashboard(get_state(app), action)
    app.extensions[EXTENSION_KEY] = state
    return state


def refresh(app):
    """Fetch the aggregate statistics and store them in the dashboard state."""
    with app.app_context():
        _dispatch(app, RefreshStarted())
        stats, error = db_manager.get_dashboard_stats()
        if error is None:
            counts, error = db_manager.get_project_status_counts()
        if error is not None:
            logger.error("Dashboard refresh failed: %s", error.message)
            return _dispatch(app, Failed("Failed to load dashboard data"))
        logger.debug("Dashboard refreshed: %s", stats)
        return _dispatch(app, StatsLoaded(stats, counts))
