import pytest

import db_manager
from models import InvoiceItem


def test_create_and_list_clients_newest_first(app):
    first, _ = db_manager.create_client({'name': 'First', 'email': 'f@x.test'})
    second, _ = db_manager.create_client({'name': 'Second', 'email': 's@x.test'})
    clients, error = db_manager.get_clients()
    assert error is None
    assert [c['id'] for c in clients] == [second['id'], first['id']]
    assert clients[0]['phone'] is None


def test_update_client(acme):
    data, error = db_manager.update_client(acme['id'], {'notes': 'VIP'})
    assert error is None
    assert data['notes'] == 'VIP'
    assert data['name'] == 'Acme'


def test_missing_client_is_not_found(app):
    data, error = db_manager.get_client(999)
    assert data is None
    assert error.not_found
    _, error = db_manager.delete_client(999)
    assert error.not_found


def test_project_embeds_client(project, acme):
    data, error = db_manager.get_project(project['id'])
    assert error is None
    assert data['clients'] == {'id': acme['id'], 'name': 'Acme', 'email': 'billing@acme.test',
                               'company': 'Acme Corp'}
    assert data['budget'] == 1500
    assert data['deadline'] is None


def test_project_status_is_validated(project):
    data, error = db_manager.update_project(project['id'], {'status': 'archived'})
    assert data is None
    assert error.invalid
    current, _ = db_manager.get_project(project['id'])
    assert current['status'] == 'not_started'


def test_project_deadline_is_stored_as_date(acme):
    data, error = db_manager.create_project({'project_name': 'P', 'client_id': acme['id'],
                                             'deadline': '2024-06-30'})
    assert error is None
    assert data['deadline'] == '2024-06-30'
    assert data['status'] == 'not_started'
    _, error = db_manager.update_project(data['id'], {'deadline': '30/06/2024'})
    assert error.invalid


def test_save_invoice_computes_totals(invoice):
    assert invoice['subtotal'] == pytest.approx(125)
    assert invoice['tax_amount'] == pytest.approx(12.5)
    assert invoice['total'] == pytest.approx(137.5)
    assert [i['description'] for i in invoice['invoice_items']] == ['A', 'B']
    assert invoice['invoice_items'][0]['total'] == 100
    assert invoice['clients']['phone'] == '555-0100'


def test_save_invoice_ignores_supplied_totals(acme):
    data, error = db_manager.save_invoice(
        None,
        {'invoice_no': 'INV-2', 'client_id': acme['id'], 'date': '2024-02-01',
         'due_date': '2024-02-28', 'total': 1, 'subtotal': 1},
        [{'description': 'X', 'quantity': 3, 'price': 10}],
        0,
    )
    assert error is None
    assert data['total'] == 30


def test_save_invoice_replaces_items(invoice):
    data, error = db_manager.save_invoice(
        invoice['id'], {'invoice_no': 'INV-1', 'client_id': invoice['client_id'],
                        'date': '2024-01-01', 'due_date': '2024-02-15'},
        [{'description': 'Only', 'quantity': 1, 'price': 40}], 25,
    )
    assert error is None
    assert [i['description'] for i in data['invoice_items']] == ['Only']
    assert data['total'] == pytest.approx(50)
    assert data['due_date'] == '2024-02-15'
    assert InvoiceItem.query.filter_by(invoice_id=invoice['id']).count() == 1


def test_duplicate_invoice_number_fails(invoice, acme):
    data, error = db_manager.save_invoice(
        None, {'invoice_no': 'INV-1', 'client_id': acme['id'], 'date': '2024-01-01',
               'due_date': '2024-01-31'}, [], 10,
    )
    assert data is None
    assert error is not None
    invoices, _ = db_manager.get_invoices()
    assert len(invoices) == 1


def test_replace_and_delete_items(invoice):
    data, error = db_manager.replace_invoice_items(invoice['id'], [{'description': 'C', 'quantity': 2,
                                                                   'price': 5}])
    assert error is None
    assert data['subtotal'] == 10
    assert data['total'] == pytest.approx(11)

    _, error = db_manager.delete_invoice_items(invoice['id'])
    assert error is None
    data, _ = db_manager.get_invoice(invoice['id'])
    assert data['invoice_items'] == []
    assert data['total'] == 0


def test_update_invoice_keeps_totals_consistent(invoice):
    data, error = db_manager.update_invoice(invoice['id'], {'tax_rate': 20})
    assert error is None
    assert data['tax_amount'] == pytest.approx(25)
    assert data['total'] == pytest.approx(150)


def test_delete_client_cascades(invoice, project, acme):
    _, error = db_manager.delete_client(acme['id'])
    assert error is None
    assert db_manager.get_projects() == ([], None)
    assert db_manager.get_invoices() == ([], None)
    assert InvoiceItem.query.count() == 0


def test_dashboard_stats(invoice, project):
    stats, error = db_manager.get_dashboard_stats()
    assert error is None
    assert stats == {'clients_count': 1, 'projects_count': 1,
                     'expected_revenue': 1500.0, 'total_revenue': pytest.approx(137.5)}


def test_dashboard_stats_when_empty(app):
    stats, _ = db_manager.get_dashboard_stats()
    assert stats == {'clients_count': 0, 'projects_count': 0, 'expected_revenue': 0.0,
                     'total_revenue': 0.0}


def test_project_status_counts(project, acme):
    db_manager.create_project({'project_name': 'Done', 'client_id': acme['id'], 'status': 'completed'})
    counts, error = db_manager.get_project_status_counts()
    assert error is None
    assert counts == {'not_started': 1, 'in_progress': 0, 'completed': 1}


def test_create_invoice_without_items(acme):
    data, error = db_manager.create_invoice({'invoice_no': 'INV-3', 'client_id': acme['id'],
                                             'date': '2024-03-01', 'due_date': '2024-03-31',
                                             'tax_rate': '12'})
    assert error is None
    assert data['tax_rate'] == 12
    assert (data['subtotal'], data['tax_amount'], data['total']) == (0, 0, 0)
    assert data['invoice_items'] == []


def test_invalid_invoice_date(acme):
    _, error = db_manager.create_invoice({'invoice_no': 'INV-4', 'client_id': acme['id'],
                                          'date': 'yesterday', 'due_date': '2024-03-31'})
    assert error.invalid


def test_oversized_quantity_is_a_store_error(invoice):
    data, error = db_manager.save_invoice(
        invoice['id'], {'invoice_no': 'INV-1', 'client_id': invoice['client_id'],
                        'date': '2024-01-01', 'due_date': '2024-01-31'},
        [{'description': 'Huge', 'quantity': '1' * 25, 'price': 1}], 0,
    )
    assert data is None
    assert error.invalid
    current, error = db_manager.get_invoice(invoice['id'])
    assert error is None
    assert [i['description'] for i in current['invoice_items']] == ['A', 'B']
