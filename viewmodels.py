"""
View state for the CRM pages.

Each page has one immutable view-model dataclass and one ``update`` function
that takes the current state and a user action and returns the next state.
Which dialog is open is a single tagged value (``Closed``, ``Viewing``,
``Editing``, ``Creating``), so viewing and editing at once can't happen.
"""
from __future__ import annotations

import time
from dataclasses import dataclass, field, replace
from datetime import date
from typing import Optional

import invoice_calc
import kanban
from models import PROJECT_STATUSES


# ------------------------------------------------------------------
# Dialog mode
# ------------------------------------------------------------------

@dataclass(frozen=True)
class Closed:
    pass


@dataclass(frozen=True)
class Viewing:
    record: dict


@dataclass(frozen=True)
class Editing:
    record: dict


@dataclass(frozen=True)
class Creating:
    pass


def dialog_record(dialog):
    return getattr(dialog, 'record', None)


def is_read_only(dialog):
    return isinstance(dialog, Viewing)


def dialog_kind(dialog):
    return {Closed: 'closed', Viewing: 'viewing', Editing: 'editing', Creating: 'creating'}[type(dialog)]


# ------------------------------------------------------------------
# Actions
# ------------------------------------------------------------------

@dataclass(frozen=True)
class Loaded:
    records: list
    clients: list = field(default_factory=list)


@dataclass(frozen=True)
class LoadFailed:
    message: str


@dataclass(frozen=True)
class Search:
    term: str


@dataclass(frozen=True)
class SetTab:
    tab: str


@dataclass(frozen=True)
class OpenCreate:
    pass


@dataclass(frozen=True)
class OpenView:
    record: dict


@dataclass(frozen=True)
class OpenEdit:
    record: dict


@dataclass(frozen=True)
class CloseDialog:
    pass


@dataclass(frozen=True)
class FormChanged:
    form: object


@dataclass(frozen=True)
class AddItem:
    pass


@dataclass(frozen=True)
class RemoveItem:
    index: int


@dataclass(frozen=True)
class UpdateItem:
    index: int
    field: str
    value: object


@dataclass(frozen=True)
class SetTaxRate:
    value: str


@dataclass(frozen=True)
class Saved:
    message: str


@dataclass(frozen=True)
class Failed:
    message: str


@dataclass(frozen=True)
class RefreshStarted:
    pass


@dataclass(frozen=True)
class StatsLoaded:
    stats: dict
    status_counts: dict = field(default_factory=dict)


# ------------------------------------------------------------------
# Forms
# ------------------------------------------------------------------

def _clean(value):
    return (value or '').strip()


def _optional(value):
    value = _clean(value)
    return value or None


def _client_id(value):
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


@dataclass(frozen=True)
class ClientForm:
    name: str = ''
    email: str = ''
    phone: str = ''
    company: str = ''
    notes: str = ''

    @classmethod
    def from_mapping(cls, data):
        return cls(**{k: str(data.get(k) or '') for k in ('name', 'email', 'phone', 'company', 'notes')})

    @classmethod
    def from_record(cls, record):
        return cls.from_mapping(record)

    def validate(self):
        errors = []
        if not _clean(self.name):
            errors.append("Name is required")
        if not _clean(self.email):
            errors.append("Email is required")
        return errors

    def to_fields(self):
        return {
            'name': _clean(self.name),
            'email': _clean(self.email),
            'phone': _optional(self.phone),
            'company': _optional(self.company),
            'notes': _optional(self.notes),
        }


@dataclass(frozen=True)
class ProjectForm:
    project_name: str = ''
    client_id: str = ''
    budget: str = ''
    deadline: str = ''
    status: str = 'not_started'

    @classmethod
    def from_mapping(cls, data):
        return cls(
            project_name=str(data.get('project_name') or ''),
            client_id=str(data.get('client_id') or ''),
            budget=str(data.get('budget') if data.get('budget') is not None else ''),
            deadline=str(data.get('deadline') or ''),
            status=str(data.get('status') or 'not_started'),
        )

    @classmethod
    def from_record(cls, record):
        return cls.from_mapping(record)

    def validate(self):
        errors = []
        if not _clean(self.project_name):
            errors.append("Project name is required")
        if _client_id(self.client_id) is None:
            errors.append("Client is required")
        if not kanban.is_valid_status(self.status):
            errors.append(f"Unknown status: {self.status}")
        return errors

    def to_fields(self):
        return {
            'project_name': _clean(self.project_name),
            'client_id': _client_id(self.client_id),
            'budget': invoice_calc.parse_price(self.budget),
            'deadline': _optional(self.deadline),
            'status': self.status,
        }


def blank_item():
    return {'description': '', 'quantity': 1, 'price': 0}


@dataclass(frozen=True)
class InvoiceForm:
    invoice_no: str = ''
    client_id: str = ''
    date: str = ''
    due_date: str = ''
    tax_rate: str = '10'
    items: tuple = (blank_item(),)

    @classmethod
    def new(cls, today=None, now_ms=None):
        today = today or date.today()
        now_ms = now_ms if now_ms is not None else int(time.time() * 1000)
        return cls(invoice_no=f"INV-{now_ms}", date=today.isoformat())

    @classmethod
    def from_record(cls, invoice):
        items = tuple(
            {'description': i.get('description') or '', 'quantity': i.get('quantity'), 'price': i.get('price')}
            for i in invoice.get('invoice_items') or []
        )
        return cls(
            invoice_no=invoice.get('invoice_no') or '',
            client_id=str(invoice.get('client_id') or ''),
            date=invoice.get('date') or '',
            due_date=invoice.get('due_date') or '',
            tax_rate=f"{float(invoice.get('tax_rate') or 0):g}",
            items=items or (blank_item(),),
        )

    @classmethod
    def from_mapping(cls, data, items=None):
        return cls(
            invoice_no=str(data.get('invoice_no') or ''),
            client_id=str(data.get('client_id') or ''),
            date=str(data.get('date') or ''),
            due_date=str(data.get('due_date') or ''),
            tax_rate=str(data.get('tax_rate') if data.get('tax_rate') is not None else ''),
            items=tuple(items or ()),
        )

    @property
    def totals(self):
        return invoice_calc.calculate_totals(self.items, self.tax_rate)

    def validate(self):
        errors = []
        if not _clean(self.invoice_no):
            errors.append("Invoice number is required")
        if _client_id(self.client_id) is None:
            errors.append("Client is required")
        if not _clean(self.date):
            errors.append("Date is required")
        if not _clean(self.due_date):
            errors.append("Due date is required")
        return errors

    def to_fields(self):
        return {
            'invoice_no': _clean(self.invoice_no),
            'client_id': _client_id(self.client_id),
            'date': _clean(self.date),
            'due_date': _clean(self.due_date),
        }


# ------------------------------------------------------------------
# Search and badges
# ------------------------------------------------------------------

def _matches(term, *values):
    term = (term or '').lower()
    return any(term in (v or '').lower() for v in values)


def filter_projects(projects, term):
    return [
        p for p in projects
        if _matches(term, p.get('project_name'), (p.get('clients') or {}).get('name'),
                    (p.get('clients') or {}).get('company'))
    ]


def filter_invoices(invoices, term):
    return [
        inv for inv in invoices
        if _matches(term, inv.get('invoice_no'), (inv.get('clients') or {}).get('name'),
                    (inv.get('clients') or {}).get('company'))
    ]


def invoice_badge(invoice, today=None):
    today = today or date.today()
    due = invoice.get('due_date')
    if due and date.fromisoformat(due[:10]) < today:
        return 'Overdue'
    return 'Current'


# ------------------------------------------------------------------
# Clients page
# ------------------------------------------------------------------

@dataclass(frozen=True)
class ClientsView:
    clients: tuple = ()
    dialog: object = Closed()
    form: ClientForm = ClientForm()
    loading: bool = True
    error: Optional[str] = None
    notice: Optional[str] = None


def update_clients(state: ClientsView, action) -> ClientsView:
    if isinstance(action, Loaded):
        return replace(state, clients=tuple(action.records), loading=False, error=None)
    if isinstance(action, LoadFailed):
        return replace(state, loading=False, error=action.message)
    if isinstance(action, OpenCreate):
        return replace(state, dialog=Creating(), form=ClientForm())
    if isinstance(action, OpenView):
        return replace(state, dialog=Viewing(action.record), form=ClientForm.from_record(action.record))
    if isinstance(action, OpenEdit):
        return replace(state, dialog=Editing(action.record), form=ClientForm.from_record(action.record))
    if isinstance(action, CloseDialog):
        return replace(state, dialog=Closed(), form=ClientForm())
    if isinstance(action, FormChanged):
        return replace(state, form=action.form)
    if isinstance(action, Saved):
        return replace(state, dialog=Closed(), form=ClientForm(), notice=action.message, error=None)
    if isinstance(action, Failed):
        return replace(state, error=action.message)
    raise ValueError(f"Unhandled clients action: {action!r}")


# ------------------------------------------------------------------
# Projects page
# ------------------------------------------------------------------

PROJECT_TABS = ('table', 'kanban')


@dataclass(frozen=True)
class ProjectsView:
    projects: tuple = ()
    clients: tuple = ()
    search: str = ''
    tab: str = 'table'
    dialog: object = Closed()
    form: ProjectForm = ProjectForm()
    loading: bool = True
    error: Optional[str] = None
    notice: Optional[str] = None

    @property
    def filtered(self):
        return filter_projects(self.projects, self.search)

    @property
    def columns(self):
        return kanban.build_columns(self.filtered)


def update_projects(state: ProjectsView, action) -> ProjectsView:
    if isinstance(action, Loaded):
        return replace(state, projects=tuple(action.records), clients=tuple(action.clients),
                       loading=False, error=None)
    if isinstance(action, LoadFailed):
        return replace(state, loading=False, error=action.message)
    if isinstance(action, Search):
        return replace(state, search=action.term or '')
    if isinstance(action, SetTab):
        return replace(state, tab=action.tab if action.tab in PROJECT_TABS else 'table')
    if isinstance(action, OpenCreate):
        return replace(state, dialog=Creating(), form=ProjectForm())
    if isinstance(action, OpenView):
        return replace(state, dialog=Viewing(action.record), form=ProjectForm.from_record(action.record))
    if isinstance(action, OpenEdit):
        return replace(state, dialog=Editing(action.record), form=ProjectForm.from_record(action.record))
    if isinstance(action, CloseDialog):
        return replace(state, dialog=Closed(), form=ProjectForm())
    if isinstance(action, FormChanged):
        return replace(state, form=action.form)
    if isinstance(action, Saved):
        return replace(state, dialog=Closed(), form=ProjectForm(), notice=action.message, error=None)
    if isinstance(action, Failed):
        return replace(state, error=action.message)
    raise ValueError(f"Unhandled projects action: {action!r}")


# ------------------------------------------------------------------
# Invoices page
# ------------------------------------------------------------------

@dataclass(frozen=True)
class InvoicesView:
    invoices: tuple = ()
    clients: tuple = ()
    search: str = ''
    dialog: object = Closed()
    form: InvoiceForm = InvoiceForm()
    loading: bool = True
    error: Optional[str] = None
    notice: Optional[str] = None

    @property
    def filtered(self):
        return filter_invoices(self.invoices, self.search)


def _replace_item(items, index, field_name, value):
    if field_name == 'quantity':
        value = invoice_calc.parse_quantity(value)
    elif field_name == 'price':
        value = invoice_calc.parse_price(value)
    elif field_name != 'description':
        raise ValueError(f"Unknown item field: {field_name}")
    return tuple({**item, field_name: value} if i == index else item for i, item in enumerate(items))


def update_invoices(state: InvoicesView, action) -> InvoicesView:
    form = state.form
    if isinstance(action, Loaded):
        return replace(state, invoices=tuple(action.records), clients=tuple(action.clients),
                       loading=False, error=None)
    if isinstance(action, LoadFailed):
        return replace(state, loading=False, error=action.message)
    if isinstance(action, Search):
        return replace(state, search=action.term or '')
    if isinstance(action, OpenCreate):
        return replace(state, dialog=Creating(), form=InvoiceForm.new())
    if isinstance(action, OpenView):
        return replace(state, dialog=Viewing(action.record), form=InvoiceForm.from_record(action.record))
    if isinstance(action, OpenEdit):
        return replace(state, dialog=Editing(action.record), form=InvoiceForm.from_record(action.record))
    if isinstance(action, CloseDialog):
        return replace(state, dialog=Closed(), form=InvoiceForm.new())
    if isinstance(action, FormChanged):
        return replace(state, form=action.form)
    if isinstance(action, AddItem):
        return replace(state, form=replace(form, items=form.items + (blank_item(),)))
    if isinstance(action, RemoveItem):
        items = tuple(item for i, item in enumerate(form.items) if i != action.index)
        return replace(state, form=replace(form, items=items))
    if isinstance(action, UpdateItem):
        return replace(state, form=replace(form, items=_replace_item(form.items, action.index,
                                                                      action.field, action.value)))
    if isinstance(action, SetTaxRate):
        return replace(state, form=replace(form, tax_rate=action.value))
    if isinstance(action, Saved):
        return replace(state, dialog=Closed(), form=InvoiceForm.new(), notice=action.message, error=None)
    if isinstance(action, Failed):
        return replace(state, error=action.message)
    raise ValueError(f"Unhandled invoices action: {action!r}")


# ------------------------------------------------------------------
# Dashboard
# ------------------------------------------------------------------

EMPTY_STATS = {'total_revenue': 0.0, 'expected_revenue': 0.0, 'clients_count': 0, 'projects_count': 0}

STAT_CARDS = (
    ('Total Revenue', 'total_revenue'),
    ('Expected Revenue', 'expected_revenue'),
    ('Total Clients', 'clients_count'),
    ('Active Projects', 'projects_count'),
)


@dataclass(frozen=True)
class DashboardView:
    stats: dict = field(default_factory=lambda: dict(EMPTY_STATS))
    status_counts: dict = field(default_factory=lambda: {s: 0 for s in PROJECT_STATUSES})
    loading: bool = True
    loaded: bool = False
    error: Optional[str] = None


def update_dashboard(state: DashboardView, action) -> DashboardView:
    if isinstance(action, RefreshStarted):
        return replace(state, loading=True)
    if isinstance(action, StatsLoaded):
        counts = {s: 0 for s in PROJECT_STATUSES}
        counts.update(action.status_counts or {})
        return replace(state, stats={**EMPTY_STATS, **action.stats}, status_counts=counts,
                       loading=False, loaded=True, error=None)
    if isinstance(action, Failed):
        # Keep the last good numbers on screen
        return replace(state, loading=False, error=action.message)
    raise ValueError(f"Unhandled dashboard action: {action!r}")
