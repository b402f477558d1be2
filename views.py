import io
import logging

from flask import (Blueprint, current_app, flash, redirect, render_template, request,
                   send_file, url_for)

import dashboard
import db_manager
import kanban
from pdf_builder import generate_invoice_pdf, pdf_filename
from viewmodels import (
    AddItem, ClientForm, ClientsView, CloseDialog, Editing, FormChanged, InvoiceForm, InvoicesView,
    Loaded, LoadFailed, OpenCreate, OpenEdit, OpenView, ProjectForm, ProjectsView, RemoveItem,
    STAT_CARDS, Saved, Search, SetTab, SetTaxRate, UpdateItem, blank_item, invoice_badge,
    is_read_only, update_clients, update_invoices, update_projects,
)

logger = logging.getLogger(__name__)

bp = Blueprint('pages', __name__)


def _items_from_form(form):
    descriptions = form.getlist('description[]')
    quantities = form.getlist('quantity[]')
    prices = form.getlist('price[]')
    items = []
    for i in range(len(descriptions)):
        items.append({
            'description': descriptions[i],
            'quantity': quantities[i] if i < len(quantities) else 1,
            'price': prices[i] if i < len(prices) else 0,
        })
    return items


def _find(records, record_id):
    for record in records:
        if record['id'] == record_id:
            return record
    return None


def _open_dialog(state, update, records, args):
    """Apply the dialog requested by the query string (?new, ?view=<id>, ?edit=<id>)."""
    if 'new' in args:
        return update(state, OpenCreate())
    for key, action in (('view', OpenView), ('edit', OpenEdit)):
        record_id = args.get(key, type=int)
        if record_id is not None:
            record = _find(records, record_id)
            if record is None:
                flash("Record not found", 'error')
                return state
            return update(state, action(record))
    return state


def _flash_errors(errors):
    for message in errors:
        flash(message, 'error')


def _store_status(error):
    return 400 if error.invalid else 500


# ------------------------------------------------------------------
# Dashboard
# ------------------------------------------------------------------

@bp.route('/')
def index():
    app = current_app._get_current_object()
    state = dashboard.get_state(app)
    if not state.loaded:
        state = dashboard.refresh(app)
    if state.error:
        flash(state.error, 'error')
    return render_template('dashboard.html', view=state, cards=STAT_CARDS,
                           labels=kanban.STATUS_LABELS,
                           refresh_seconds=current_app.config['DASHBOARD_REFRESH_SECONDS'])


@bp.route('/dashboard/refresh', methods=['POST'])
def refresh_dashboard():
    state = dashboard.refresh(current_app._get_current_object())
    if state.error:
        flash(state.error, 'error')
    return redirect(url_for('pages.index'))


# ------------------------------------------------------------------
# Clients
# ------------------------------------------------------------------

def _clients_view():
    state = ClientsView()
    clients, error = db_manager.get_clients()
    if error:
        flash("Failed to load clients", 'error')
        return update_clients(state, LoadFailed(error.message))
    return update_clients(state, Loaded(clients))


def _render_clients(state, status=200):
    return render_template('clients.html', view=state, read_only=is_read_only(state.dialog)), status


@bp.route('/clients')
def clients():
    state = _clients_view()
    state = _open_dialog(state, update_clients, state.clients, request.args)
    return _render_clients(state)


@bp.route('/clients', methods=['POST'])
@bp.route('/clients/<int:client_id>', methods=['POST'])
def save_client(client_id=None):
    form = ClientForm.from_mapping(request.form)
    state = _clients_view()
    if client_id is None:
        state = update_clients(state, OpenCreate())
    else:
        record = _find(state.clients, client_id)
        if record is None:
            flash("Client not found", 'error')
            return redirect(url_for('pages.clients'))
        state = update_clients(state, OpenEdit(record))
    state = update_clients(state, FormChanged(form))

    errors = form.validate()
    if errors:
        _flash_errors(errors)
        return _render_clients(state, 400)

    if client_id is None:
        _, error = db_manager.create_client(form.to_fields())
    else:
        _, error = db_manager.update_client(client_id, form.to_fields())
    if error:
        flash(error.message or "Failed to save client", 'error')
        return _render_clients(state, _store_status(error))

    state = update_clients(state, Saved("Client added" if client_id is None else "Client updated successfully"))
    flash(state.notice, 'success')
    return redirect(url_for('pages.clients'))


@bp.route('/clients/<int:client_id>/delete', methods=['POST'])
def delete_client(client_id):
    _, error = db_manager.delete_client(client_id)
    if error:
        flash(error.message or "Failed to delete client", 'error')
    else:
        flash("Client deleted successfully", 'success')
    return redirect(url_for('pages.clients'))


# ------------------------------------------------------------------
# Projects
# ------------------------------------------------------------------

def _projects_view(args):
    state = ProjectsView()
    projects, error = db_manager.get_projects()
    if not error:
        clients, error = db_manager.get_clients()
    if error:
        flash("Failed to load data", 'error')
        state = update_projects(state, LoadFailed(error.message))
    else:
        state = update_projects(state, Loaded(projects, clients))
    state = update_projects(state, Search(args.get('q', '')))
    return update_projects(state, SetTab(args.get('tab', 'table')))


def _render_projects(state, status=200):
    return render_template('projects.html', view=state, labels=kanban.STATUS_LABELS,
                           read_only=is_read_only(state.dialog)), status


@bp.route('/projects')
def projects():
    state = _projects_view(request.args)
    state = _open_dialog(state, update_projects, state.projects, request.args)
    return _render_projects(state)


@bp.route('/projects', methods=['POST'])
@bp.route('/projects/<int:project_id>', methods=['POST'])
def save_project(project_id=None):
    form = ProjectForm.from_mapping(request.form)
    state = _projects_view(request.args)
    if project_id is None:
        state = update_projects(state, OpenCreate())
    else:
        record = _find(state.projects, project_id)
        if record is None:
            flash("Project not found", 'error')
            return redirect(url_for('pages.projects'))
        state = update_projects(state, OpenEdit(record))
    state = update_projects(state, FormChanged(form))

    errors = form.validate()
    if errors:
        _flash_errors(errors)
        return _render_projects(state, 400)

    if project_id is None:
        _, error = db_manager.create_project(form.to_fields())
    else:
        _, error = db_manager.update_project(project_id, form.to_fields())
    if error:
        flash(error.message or "Failed to save project", 'error')
        return _render_projects(state, _store_status(error))

    state = update_projects(state, Saved(
        "Project created successfully" if project_id is None else "Project updated successfully"))
    flash(state.notice, 'success')
    return redirect(url_for('pages.projects', tab=state.tab))


@bp.route('/projects/<int:project_id>/delete', methods=['POST'])
def delete_project(project_id):
    _, error = db_manager.delete_project(project_id)
    if error:
        flash(error.message or "Failed to delete project", 'error')
    else:
        flash("Project deleted successfully", 'success')
    return redirect(url_for('pages.projects', tab=request.args.get('tab', 'table')))


@bp.route('/projects/<int:project_id>/move', methods=['POST'])
def move_project(project_id):
    target = request.form.get('to_status')
    source = request.form.get('from_status')
    if not source:
        project, error = db_manager.get_project(project_id)
        if error:
            flash(error.message or "Failed to update project status", 'error')
            return redirect(url_for('pages.projects', tab='kanban'))
        source = project['status']

    try:
        data, error = kanban.move_project(project_id, source, target, db_manager.update_project)
    except ValueError as e:
        flash(str(e), 'error')
        return redirect(url_for('pages.projects', tab='kanban'))

    if error:
        flash(error.message or "Failed to update project status", 'error')
    elif data is not None:
        flash("Project status updated successfully", 'success')
    return redirect(url_for('pages.projects', tab='kanban'))


# ------------------------------------------------------------------
# Invoices
# ------------------------------------------------------------------

def _invoices_view(args):
    state = InvoicesView()
    invoices, error = db_manager.get_invoices()
    if not error:
        clients, error = db_manager.get_clients()
    if error:
        flash("Failed to load data", 'error')
        state = update_invoices(state, LoadFailed(error.message))
    else:
        state = update_invoices(state, Loaded(invoices, clients))
    return update_invoices(state, Search(args.get('q', '')))


def _render_invoices(state, status=200):
    return render_template('invoices.html', view=state, badge=invoice_badge,
                           read_only=is_read_only(state.dialog),
                           editing=isinstance(state.dialog, Editing)), status


@bp.route('/invoices')
def invoices():
    state = _invoices_view(request.args)
    state = _open_dialog(state, update_invoices, state.invoices, request.args)
    return _render_invoices(state)


def _edit_invoice_form(state, data):
    """Replay the posted dialog fields onto the form one edit at a time."""
    rows = _items_from_form(data)
    header = InvoiceForm.from_mapping(data, [blank_item() for _ in rows])
    state = update_invoices(state, FormChanged(header))
    for index, row in enumerate(rows):
        for name, value in row.items():
            state = update_invoices(state, UpdateItem(index, name, value))
    return update_invoices(state, SetTaxRate(data.get('tax_rate', '')))


@bp.route('/invoices/form', methods=['POST'])
def invoice_form():
    """
    Every button of the invoice dialog posts here with an ``action``:
    ``add_item``, ``remove:<index>``, ``recalculate``, ``cancel`` or ``save``.
    """
    invoice_id = request.form.get('invoice_id', type=int)
    state = _invoices_view(request.args)
    if invoice_id is None:
        state = update_invoices(state, OpenCreate())
    else:
        record = _find(state.invoices, invoice_id)
        if record is None:
            flash("Invoice not found", 'error')
            return redirect(url_for('pages.invoices'))
        state = update_invoices(state, OpenEdit(record))
    state = _edit_invoice_form(state, request.form)
    form = state.form

    action = request.form.get('action', 'save')
    if action == 'add_item':
        return _render_invoices(update_invoices(state, AddItem()))
    if action.startswith('remove:'):
        try:
            index = int(action.split(':', 1)[1])
        except ValueError:
            index = -1
        return _render_invoices(update_invoices(state, RemoveItem(index)))
    if action == 'recalculate':
        return _render_invoices(state)
    if action == 'cancel':
        return _render_invoices(update_invoices(state, CloseDialog()))

    errors = form.validate()
    if errors:
        _flash_errors(errors)
        return _render_invoices(state, 400)

    _, error = db_manager.save_invoice(invoice_id, form.to_fields(), form.items, form.tax_rate)
    if error:
        flash(error.message or "Failed to save invoice", 'error')
        return _render_invoices(state, _store_status(error))

    state = update_invoices(state, Saved(
        "Invoice created successfully" if invoice_id is None else "Invoice updated successfully"))
    flash(state.notice, 'success')
    return redirect(url_for('pages.invoices'))


@bp.route('/invoices/<int:invoice_id>/delete', methods=['POST'])
def delete_invoice(invoice_id):
    _, error = db_manager.delete_invoice(invoice_id)
    if error:
        flash(error.message or "Failed to delete invoice", 'error')
    else:
        flash("Invoice deleted successfully", 'success')
    return redirect(url_for('pages.invoices'))


def send_invoice_pdf(invoice):
    cfg = current_app.config
    pdf_bytes = generate_invoice_pdf(invoice, cfg['BRAND_NAME'], cfg['BRAND_LOGO'], cfg['CURRENCY_SYMBOL'])
    return send_file(io.BytesIO(pdf_bytes), as_attachment=True,
                     download_name=pdf_filename(invoice), mimetype='application/pdf')


@bp.route('/invoices/<int:invoice_id>/pdf')
def download_pdf(invoice_id):
    invoice, error = db_manager.get_invoice(invoice_id)
    if error:
        flash(error.message or "Invoice not found", 'error')
        return redirect(url_for('pages.invoices'))
    try:
        return send_invoice_pdf(invoice)
    except Exception:
        logger.exception("PDF generation failed for invoice %s", invoice_id)
        flash("Failed to generate PDF", 'error')
        return redirect(url_for('pages.invoices'))
