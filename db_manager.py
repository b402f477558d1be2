"""
Data access layer over the CRM store.

Every request returns a ``(data, error)`` pair. On success ``error`` is None;
on failure ``data`` is None and ``error`` is a :class:`StoreError`. Records are
plain dicts with ISO formatted dates so views and the JSON API can use them
as they are.
"""
import functools
import logging
from datetime import date, datetime

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError

import invoice_calc
from models import db, Client, Project, Invoice, InvoiceItem, PROJECT_STATUSES

logger = logging.getLogger(__name__)

CLIENT_FIELDS = ('name', 'email', 'phone', 'company', 'notes')
PROJECT_FIELDS = ('project_name', 'client_id', 'budget', 'deadline', 'status')
INVOICE_FIELDS = ('invoice_no', 'client_id', 'date', 'due_date')


class StoreError(Exception):
    def __init__(self, message, not_found=False, invalid=False):
        super().__init__(message)
        self.message = message
        self.not_found = not_found
        self.invalid = invalid


def _request(func_):
    """Run a store request, turning store failures into ``(None, StoreError)``."""
    @functools.wraps(func_)
    def wrapper(*args, **kwargs):
        try:
            return func_(*args, **kwargs), None
        except StoreError as e:
            db.session.rollback()
            return None, e
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.error("Store request %s failed: %s", func_.__name__, e)
            return None, StoreError(str(getattr(e, 'orig', None) or e))
        except OverflowError as e:
            # Raised by the driver for integers outside the column range
            db.session.rollback()
            logger.error("Store request %s rejected a value: %s", func_.__name__, e)
            return None, StoreError(f"Value out of range: {e}", invalid=True)
    return wrapper


def _iso(value):
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return value


def _as_date(value):
    if value in (None, ''):
        return None
    if isinstance(value, date):
        return value
    try:
        return datetime.strptime(value, '%Y-%m-%d').date()
    except (TypeError, ValueError):
        raise StoreError(f"Invalid date: {value}", invalid=True)


def _get_or_raise(model, record_id, label):
    record = db.session.get(model, record_id)
    if record is None:
        raise StoreError(f"{label} {record_id} not found", not_found=True)
    return record


# ------------------------------------------------------------------
# Serialisation
# ------------------------------------------------------------------

def client_to_dict(c):
    return {
        'id': c.id,
        'name': c.name,
        'email': c.email,
        'phone': c.phone,
        'company': c.company,
        'notes': c.notes,
        'created_at': _iso(c.created_at),
        'updated_at': _iso(c.updated_at),
    }


def _client_ref(c, with_phone=False):
    if c is None:
        return None
    ref = {'id': c.id, 'name': c.name, 'email': c.email, 'company': c.company}
    if with_phone:
        ref['phone'] = c.phone
    return ref


def project_to_dict(p):
    return {
        'id': p.id,
        'project_name': p.project_name,
        'client_id': p.client_id,
        'budget': p.budget or 0.0,
        'deadline': _iso(p.deadline),
        'status': p.status,
        'created_at': _iso(p.created_at),
        'updated_at': _iso(p.updated_at),
        'clients': _client_ref(p.client),
    }


def item_to_dict(i):
    return {
        'id': i.id,
        'invoice_id': i.invoice_id,
        'description': i.description or '',
        'quantity': i.quantity,
        'price': i.price,
        'total': i.total,
        'created_at': _iso(i.created_at),
    }


def invoice_to_dict(inv):
    return {
        'id': inv.id,
        'invoice_no': inv.invoice_no,
        'client_id': inv.client_id,
        'date': _iso(inv.date),
        'due_date': _iso(inv.due_date),
        'subtotal': inv.subtotal or 0.0,
        'tax_rate': inv.tax_rate or 0.0,
        'tax_amount': inv.tax_amount or 0.0,
        'total': inv.total or 0.0,
        'created_at': _iso(inv.created_at),
        'updated_at': _iso(inv.updated_at),
        'clients': _client_ref(inv.client, with_phone=True),
        'invoice_items': [item_to_dict(i) for i in inv.items],
    }


# ------------------------------------------------------------------
# Clients
# ------------------------------------------------------------------

@_request
def get_clients():
    clients = Client.query.order_by(Client.created_at.desc(), Client.id.desc()).all()
    return [client_to_dict(c) for c in clients]


@_request
def get_client(client_id):
    return client_to_dict(_get_or_raise(Client, client_id, "Client"))


@_request
def create_client(fields):
    client = Client(**{k: fields.get(k) for k in CLIENT_FIELDS})
    db.session.add(client)
    db.session.commit()
    logger.info("Created client %s (%s)", client.id, client.name)
    return client_to_dict(client)


@_request
def update_client(client_id, fields):
    client = _get_or_raise(Client, client_id, "Client")
    for key in CLIENT_FIELDS:
        if key in fields:
            setattr(client, key, fields[key])
    db.session.commit()
    return client_to_dict(client)


@_request
def delete_client(client_id):
    client = _get_or_raise(Client, client_id, "Client")
    db.session.delete(client)
    db.session.commit()
    logger.info("Deleted client %s", client_id)
    return {'id': client_id}


# ------------------------------------------------------------------
# Projects
# ------------------------------------------------------------------

def _apply_project_fields(project, fields):
    for key in PROJECT_FIELDS:
        if key not in fields:
            continue
        value = fields[key]
        if key == 'deadline':
            value = _as_date(value)
        elif key == 'status' and value not in PROJECT_STATUSES:
            raise StoreError(f"Invalid project status: {value}", invalid=True)
        setattr(project, key, value)


@_request
def get_projects():
    projects = Project.query.order_by(Project.created_at.desc(), Project.id.desc()).all()
    return [project_to_dict(p) for p in projects]


@_request
def get_project(project_id):
    return project_to_dict(_get_or_raise(Project, project_id, "Project"))


@_request
def create_project(fields):
    project = Project(status='not_started')
    _apply_project_fields(project, fields)
    db.session.add(project)
    db.session.commit()
    logger.info("Created project %s (%s)", project.id, project.project_name)
    return project_to_dict(project)


@_request
def update_project(project_id, fields):
    project = _get_or_raise(Project, project_id, "Project")
    _apply_project_fields(project, fields)
    db.session.commit()
    return project_to_dict(project)


@_request
def delete_project(project_id):
    project = _get_or_raise(Project, project_id, "Project")
    db.session.delete(project)
    db.session.commit()
    logger.info("Deleted project %s", project_id)
    return {'id': project_id}


# ------------------------------------------------------------------
# Invoices
# ------------------------------------------------------------------

def _apply_invoice_fields(invoice, fields):
    for key in INVOICE_FIELDS:
        if key not in fields:
            continue
        value = fields[key]
        if key in ('date', 'due_date'):
            value = _as_date(value)
        setattr(invoice, key, value)
    if 'tax_rate' in fields:
        invoice.tax_rate = invoice_calc.parse_tax_rate(fields['tax_rate'])


def _set_items(invoice, items):
    """Replace all items of the invoice and recompute its totals."""
    rows = invoice_calc.normalize_items(items)
    # delete-orphan removes the previous rows on flush
    invoice.items = [InvoiceItem(**row) for row in rows]
    _set_totals(invoice, rows)


def _set_totals(invoice, rows):
    totals = invoice_calc.calculate_totals(rows, invoice.tax_rate or 0)
    invoice.subtotal = totals.subtotal
    invoice.tax_amount = totals.tax_amount
    invoice.total = totals.total


def _stored_rows(invoice):
    return [{'quantity': i.quantity, 'price': i.price} for i in invoice.items]


@_request
def get_invoices():
    invoices = Invoice.query.order_by(Invoice.created_at.desc(), Invoice.id.desc()).all()
    return [invoice_to_dict(inv) for inv in invoices]


@_request
def get_invoice(invoice_id):
    return invoice_to_dict(_get_or_raise(Invoice, invoice_id, "Invoice"))


@_request
def create_invoice(fields):
    invoice = Invoice(tax_rate=0.0)
    _apply_invoice_fields(invoice, fields)
    _set_totals(invoice, [])
    db.session.add(invoice)
    db.session.commit()
    return invoice_to_dict(invoice)


@_request
def update_invoice(invoice_id, fields):
    invoice = _get_or_raise(Invoice, invoice_id, "Invoice")
    _apply_invoice_fields(invoice, fields)
    _set_totals(invoice, _stored_rows(invoice))
    db.session.commit()
    return invoice_to_dict(invoice)


@_request
def delete_invoice(invoice_id):
    invoice = _get_or_raise(Invoice, invoice_id, "Invoice")
    db.session.delete(invoice)
    db.session.commit()
    logger.info("Deleted invoice %s", invoice_id)
    return {'id': invoice_id}


@_request
def replace_invoice_items(invoice_id, items):
    """Delete every item of the invoice and insert ``items`` in their place."""
    invoice = _get_or_raise(Invoice, invoice_id, "Invoice")
    _set_items(invoice, items)
    db.session.commit()
    db.session.refresh(invoice)
    return invoice_to_dict(invoice)


@_request
def delete_invoice_items(invoice_id):
    invoice = _get_or_raise(Invoice, invoice_id, "Invoice")
    _set_items(invoice, [])
    db.session.commit()
    return {'id': invoice_id}


@_request
def save_invoice(invoice_id, fields, items, tax_rate):
    """
    Create (``invoice_id`` None) or update an invoice together with its items.

    Totals are always recomputed from ``items`` and ``tax_rate``; any totals
    present in ``fields`` are ignored.
    """
    if invoice_id is None:
        invoice = Invoice()
        db.session.add(invoice)
    else:
        invoice = _get_or_raise(Invoice, invoice_id, "Invoice")

    _apply_invoice_fields(invoice, {**{k: fields[k] for k in INVOICE_FIELDS if k in fields},
                                    'tax_rate': tax_rate})
    _set_items(invoice, items)
    db.session.commit()
    logger.info("Saved invoice %s (%s), total %.2f", invoice.id, invoice.invoice_no, invoice.total)
    db.session.refresh(invoice)
    return invoice_to_dict(invoice)


# ------------------------------------------------------------------
# Aggregates
# ------------------------------------------------------------------

@_request
def get_dashboard_stats():
    clients_count = db.session.query(func.count(Client.id)).scalar() or 0
    projects_count = db.session.query(func.count(Project.id)).scalar() or 0
    expected_revenue = db.session.query(func.coalesce(func.sum(Project.budget), 0)).scalar()
    total_revenue = db.session.query(func.coalesce(func.sum(Invoice.total), 0)).scalar()
    return {
        'clients_count': clients_count,
        'projects_count': projects_count,
        'expected_revenue': float(expected_revenue or 0),
        'total_revenue': float(total_revenue or 0),
    }


@_request
def get_project_status_counts():
    counts = {status: 0 for status in PROJECT_STATUSES}
    rows = db.session.query(Project.status, func.count(Project.id)).group_by(Project.status).all()
    for status, count in rows:
        counts[status] = count
    return counts
