"""Project status board: one column per status, cards moved by drag and drop."""
import logging

from models import PROJECT_STATUSES

logger = logging.getLogger(__name__)

STATUS_LABELS = {
    'not_started': 'Not Started',
    'in_progress': 'In Progress',
    'completed': 'Completed',
}


def is_valid_status(status):
    return status in PROJECT_STATUSES


def build_columns(projects):
    """Group projects into status columns, keeping list order inside a column."""
    columns = []
    for status in PROJECT_STATUSES:
        cards = [p for p in projects if p.get('status') == status]
        columns.append({
            'status': status,
            'title': STATUS_LABELS[status],
            'projects': cards,
            'count': len(cards),
        })
    return columns


def move_project(project_id, source_status, target_status, update):
    """
    Drop a project card onto the ``target_status`` column.

    ``update(project_id, fields)`` is the store request and must return
    ``(data, error)``. Dropping a card on its own column issues nothing and
    returns ``(None, None)``. Any other move issues exactly one update of the
    status field. There is no ordering between statuses.
    """
    if not is_valid_status(target_status):
        raise ValueError(f"Unknown project status: {target_status}")
    if source_status == target_status:
        return None, None

    data, error = update(project_id, {'status': target_status})
    if error is None:
        logger.info("Project %s moved %s -> %s", project_id, source_status, target_status)
    return data, error
