
from flask import Blueprint, jsonify, request

import db_manager
import invoice_calc
import kanban
from viewmodels import ClientForm, InvoiceForm, ProjectForm
from views import send_invoice_pdf


bp = Blueprint('api', __name__, url_prefix='/api')


def _error_status(error):
    if error.not_found:
        return 404
    if error.invalid:
        return 400
    return 500


def _respond(data, error, status=200):
    if error:
        return jsonify({'error': error.message}), _error_status(error)
    return jsonify(data), status


def _invalid(errors):
    return jsonify({'error': '; '.join(errors)}), 400


class InvalidPayload(Exception):
    pass


@bp.errorhandler(InvalidPayload)
def invalid_payload(e):
    return jsonify({'error': str(e)}), 400


def _payload():
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise InvalidPayload("Request body must be a JSON object")
    return data


def _items(data, *keys):
    items = next((data[k] for k in keys if data.get(k) is not None), None) or []
    if not isinstance(items, list) or not all(isinstance(item, dict) for item in items):
        raise InvalidPayload("Items must be a list of objects")
    return items


# ------------------------------------------------------------------
# Clients
# ------------------------------------------------------------------

@bp.route('/clients', methods=['GET', 'POST'])
def clients():
    if request.method == 'POST':
        form = ClientForm.from_mapping(_payload())
        errors = form.validate()
        if errors:
            return _invalid(errors)
        data, error = db_manager.create_client(form.to_fields())
        return _respond(data, error, 201)

    return _respond(*db_manager.get_clients())


@bp.route('/clients/<int:client_id>', methods=['GET', 'PUT', 'DELETE'])
def manage_client(client_id):
    if request.method == 'DELETE':
        return _respond(*db_manager.delete_client(client_id))

    if request.method == 'PUT':
        form = ClientForm.from_mapping(_payload())
        errors = form.validate()
        if errors:
            return _invalid(errors)
        return _respond(*db_manager.update_client(client_id, form.to_fields()))

    return _respond(*db_manager.get_client(client_id))


# ------------------------------------------------------------------
# Projects
# ------------------------------------------------------------------

@bp.route('/projects', methods=['GET', 'POST'])
def projects():
    if request.method == 'POST':
        form = ProjectForm.from_mapping(_payload())
        errors = form.validate()
        if errors:
            return _invalid(errors)
        data, error = db_manager.create_project(form.to_fields())
        return _respond(data, error, 201)

    return _respond(*db_manager.get_projects())


@bp.route('/projects/<int:project_id>', methods=['GET', 'PUT', 'DELETE'])
def manage_project(project_id):
    if request.method == 'DELETE':
        return _respond(*db_manager.delete_project(project_id))

    if request.method == 'PUT':
        form = ProjectForm.from_mapping(_payload())
        errors = form.validate()
        if errors:
            return _invalid(errors)
        return _respond(*db_manager.update_project(project_id, form.to_fields()))

    return _respond(*db_manager.get_project(project_id))


@bp.route('/projects/<int:project_id>/status', methods=['POST', 'PATCH'])
def update_project_status(project_id):
    """Kanban drop. Body: ``{"status": "...", "from_status": "..."}``."""
    data = _payload()
    target = data.get('status')
    source = data.get('from_status')
    if not kanban.is_valid_status(target):
        return jsonify({'error': f"Unknown project status: {target}"}), 400

    if not source:
        project, error = db_manager.get_project(project_id)
        if error:
            return _respond(None, error)
        source = project['status']

    project, error = kanban.move_project(project_id, source, target, db_manager.update_project)
    if error:
        return _respond(None, error)
    return jsonify({'updated': project is not None, 'project': project})


# ------------------------------------------------------------------
# Invoices
# ------------------------------------------------------------------

def _invoice_form(data):
    return InvoiceForm.from_mapping(data, _items(data, 'invoice_items', 'items'))


@bp.route('/invoices', methods=['GET', 'POST'])
def invoices():
    if request.method == 'POST':
        form = _invoice_form(_payload())
        errors = form.validate()
        if errors:
            return _invalid(errors)
        data, error = db_manager.save_invoice(None, form.to_fields(), form.items, form.tax_rate)
        return _respond(data, error, 201)

    return _respond(*db_manager.get_invoices())


@bp.route('/invoices/<int:invoice_id>', methods=['GET', 'PUT', 'DELETE'])
def manage_invoice(invoice_id):
    if request.method == 'DELETE':
        return _respond(*db_manager.delete_invoice(invoice_id))

    if request.method == 'PUT':
        form = _invoice_form(_payload())
        errors = form.validate()
        if errors:
            return _invalid(errors)
        return _respond(*db_manager.save_invoice(invoice_id, form.to_fields(), form.items, form.tax_rate))

    return _respond(*db_manager.get_invoice(invoice_id))


@bp.route('/invoices/<int:invoice_id>/items', methods=['PUT', 'DELETE'])
def invoice_items(invoice_id):
    if request.method == 'DELETE':
        return _respond(*db_manager.delete_invoice_items(invoice_id))
    items = _items(_payload(), 'items')
    return _respond(*db_manager.replace_invoice_items(invoice_id, items))


@bp.route('/invoices/totals', methods=['POST'])
def invoice_totals():
    """Totals for an unsaved form; the invoice dialog calls this on every edit."""
    data = _payload()
    totals = invoice_calc.calculate_totals(_items(data, 'items'), data.get('tax_rate'))
    return jsonify(totals._asdict())


@bp.route('/invoices/<int:invoice_id>/pdf')
def invoice_pdf(invoice_id):
    invoice, error = db_manager.get_invoice(invoice_id)
    if error:
        return _respond(None, error)
    return send_invoice_pdf(invoice)


# ------------------------------------------------------------------
# Aggregates
# ------------------------------------------------------------------

@bp.route('/stats')
def stats():
    return _respond(*db_manager.get_dashboard_stats())
