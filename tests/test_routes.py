import db_manager
import dashboard


# --- JSON API ---------------------------------------------------------------

def test_api_client_crud(client):
    resp = client.post('/api/clients', json={'name': 'Acme', 'email': 'a@acme.test'})
    assert resp.status_code == 201
    client_id = resp.get_json()['id']

    resp = client.put(f'/api/clients/{client_id}', json={'name': 'Acme Ltd', 'email': 'a@acme.test'})
    assert resp.get_json()['name'] == 'Acme Ltd'

    assert client.get('/api/clients').get_json()[0]['id'] == client_id
    assert client.delete(f'/api/clients/{client_id}').status_code == 200
    assert client.get(f'/api/clients/{client_id}').status_code == 404


def test_api_client_requires_name_and_email(client):
    resp = client.post('/api/clients', json={'name': ''})
    assert resp.status_code == 400
    assert 'Name is required' in resp.get_json()['error']


def test_api_unknown_route_is_json(client):
    resp = client.get('/api/nothing-here')
    assert resp.status_code == 404
    assert resp.get_json() == {'error': 'Not Found'}


def test_api_project_status_move(client, project):
    resp = client.patch(f"/api/projects/{project['id']}/status", json={'status': 'in_progress'})
    assert resp.status_code == 200
    body = resp.get_json()
    assert body['updated'] is True
    assert body['project']['status'] == 'in_progress'


def test_api_project_status_same_column_is_noop(client, project):
    resp = client.post(f"/api/projects/{project['id']}/status",
                       json={'status': 'not_started', 'from_status': 'not_started'})
    assert resp.get_json() == {'updated': False, 'project': None}


def test_api_project_status_rejects_unknown(client, project):
    resp = client.post(f"/api/projects/{project['id']}/status", json={'status': 'archived'})
    assert resp.status_code == 400


def test_api_create_invoice_recomputes_totals(client, acme):
    resp = client.post('/api/invoices', json={
        'invoice_no': 'INV-7', 'client_id': acme['id'], 'date': '2024-01-01', 'due_date': '2024-01-31',
        'tax_rate': 10, 'total': 1,
        'invoice_items': [{'description': 'A', 'quantity': 2, 'price': 50},
                          {'description': 'B', 'quantity': 1, 'price': 25}],
    })
    assert resp.status_code == 201
    body = resp.get_json()
    assert body['total'] == 137.5
    assert len(body['invoice_items']) == 2


def test_api_invoice_items_replace(client, invoice):
    resp = client.put(f"/api/invoices/{invoice['id']}/items",
                      json={'items': [{'description': 'C', 'quantity': 1, 'price': 10}]})
    assert resp.status_code == 200
    assert resp.get_json()['subtotal'] == 10


def test_api_totals(client):
    resp = client.post('/api/invoices/totals', json={
        'items': [{'quantity': '2', 'price': '50'}, {'quantity': '1', 'price': '25'}], 'tax_rate': '10'})
    assert resp.get_json() == {'subtotal': 125.0, 'tax_amount': 12.5, 'total': 137.5}


def test_api_invoice_pdf(client, invoice):
    resp = client.get(f"/api/invoices/{invoice['id']}/pdf")
    assert resp.status_code == 200
    assert resp.mimetype == 'application/pdf'
    assert resp.data.startswith(b'%PDF')
    assert 'Invoice-INV-1.pdf' in resp.headers['Content-Disposition']


def test_api_stats(client, invoice, project):
    body = client.get('/api/stats').get_json()
    assert body['clients_count'] == 1
    assert body['expected_revenue'] == 1500


# --- Pages ------------------------------------------------------------------

def test_dashboard_page(client, invoice):
    resp = client.get('/')
    assert resp.status_code == 200
    assert b'$137.50' in resp.data


def test_dashboard_manual_refresh(client, app, acme):
    client.get('/')
    db_manager.create_client({'name': 'Second', 'email': 's@x.test'})
    resp = client.post('/dashboard/refresh')
    assert resp.status_code == 302
    assert dashboard.get_state(app).stats['clients_count'] == 2


def test_clients_page_add_and_validation(client):
    resp = client.post('/clients', data={'name': 'New Co', 'email': 'new@co.test'}, follow_redirects=True)
    assert resp.status_code == 200
    assert b'Client added' in resp.data
    assert b'New Co' in resp.data

    resp = client.post('/clients', data={'name': '', 'email': ''})
    assert resp.status_code == 400
    assert b'Name is required' in resp.data


def test_clients_page_view_dialog(client, acme):
    resp = client.get(f"/clients?view={acme['id']}")
    assert resp.status_code == 200
    assert b'billing@acme.test' in resp.data


def test_projects_kanban_page(client, project):
    resp = client.get('/projects?tab=kanban')
    assert resp.status_code == 200
    assert b'Website' in resp.data


def test_projects_move_form(client, project):
    resp = client.post(f"/projects/{project['id']}/move",
                       data={'from_status': 'not_started', 'to_status': 'completed'},
                       follow_redirects=True)
    assert resp.status_code == 200
    assert b'Project status updated successfully' in resp.data
    data, _ = db_manager.get_project(project['id'])
    assert data['status'] == 'completed'


def test_projects_move_to_same_column_does_nothing(client, project):
    resp = client.post(f"/projects/{project['id']}/move",
                       data={'from_status': 'not_started', 'to_status': 'not_started'},
                       follow_redirects=True)
    assert b'Project status updated successfully' not in resp.data


def test_invoice_form_add_item_and_save(client, acme):
    form = {
        'invoice_no': 'INV-9', 'client_id': str(acme['id']), 'date': '2024-01-01',
        'due_date': '2024-01-31', 'tax_rate': '10',
        'description[]': ['A'], 'quantity[]': ['2'], 'price[]': ['50'],
    }
    resp = client.post('/invoices/form', data={**form, 'action': 'add_item'})
    assert resp.status_code == 200
    assert resp.data.count(b'name="description[]"') == 2

    resp = client.post('/invoices/form', data={**form, 'action': 'save'}, follow_redirects=True)
    assert b'Invoice created successfully' in resp.data
    invoices, _ = db_manager.get_invoices()
    assert invoices[0]['total'] == 110


def test_invoice_form_requires_client(client):
    resp = client.post('/invoices/form', data={'invoice_no': 'INV-1', 'date': '2024-01-01',
                                                'due_date': '2024-01-02', 'action': 'save'})
    assert resp.status_code == 400
    assert b'Client is required' in resp.data


def test_invoice_pdf_download(client, invoice):
    resp = client.get(f"/invoices/{invoice['id']}/pdf")
    assert resp.status_code == 200
    assert resp.data.startswith(b'%PDF')


def test_invoice_pdf_missing_redirects(client, app):
    resp = client.get('/invoices/999/pdf')
    assert resp.status_code == 302


def test_api_rejects_non_object_body(client):
    resp = client.post('/api/clients', json=[{'name': 'Acme', 'email': 'a@acme.test'}])
    assert resp.status_code == 400
    assert resp.get_json() == {'error': 'Request body must be a JSON object'}


def test_api_rejects_non_list_items(client, invoice):
    resp = client.put(f"/api/invoices/{invoice['id']}/items", json={'items': 'C'})
    assert resp.status_code == 400
    resp = client.post('/api/invoices/totals', json={'items': [1, 2], 'tax_rate': 10})
    assert resp.status_code == 400
    resp = client.post('/api/invoices', json={'invoice_no': 'INV-8', 'items': {'description': 'x'}})
    assert resp.status_code == 400


def test_api_oversized_quantity_is_rejected(client, acme):
    resp = client.post('/api/invoices', json={
        'invoice_no': 'INV-10', 'client_id': acme['id'], 'date': '2024-01-01', 'due_date': '2024-01-31',
        'tax_rate': 0, 'items': [{'description': 'Huge', 'quantity': '1' * 25, 'price': 1}],
    })
    assert resp.status_code == 400
    assert 'out of range' in resp.get_json()['error']
    assert client.get('/api/invoices').get_json() == []


def test_invoice_form_oversized_quantity_is_flashed(client, acme):
    resp = client.post('/invoices/form', data={
        'invoice_no': 'INV-11', 'client_id': str(acme['id']), 'date': '2024-01-01',
        'due_date': '2024-01-31', 'tax_rate': '0', 'action': 'save',
        'description[]': ['Huge'], 'quantity[]': ['1' * 25], 'price[]': ['1'],
    })
    assert resp.status_code == 400
    assert b'Value out of range' in resp.data


def test_invoice_form_cancel_closes_dialog(client, acme):
    resp = client.post('/invoices/form', data={
        'invoice_no': 'INV-12', 'client_id': str(acme['id']), 'date': '2024-01-01',
        'due_date': '2024-01-31', 'action': 'cancel',
        'description[]': ['A'], 'quantity[]': ['1'], 'price[]': ['5'],
    })
    assert resp.status_code == 200
    assert b'id="invoice-form"' not in resp.data
    assert db_manager.get_invoices() == ([], None)


def test_invoice_form_recalculate_parses_rows(client, acme):
    resp = client.post('/invoices/form', data={
        'invoice_no': 'INV-13', 'client_id': str(acme['id']), 'date': '2024-01-01',
        'due_date': '2024-01-31', 'tax_rate': '10', 'action': 'recalculate',
        'description[]': ['A', 'B'], 'quantity[]': ['2', ''], 'price[]': ['50', 'abc'],
    })
    assert resp.status_code == 200
    assert b'$100.00' in resp.data
    assert b'$110.00' in resp.data


def test_edit_page_shows_record(client, invoice):
    resp = client.get(f"/invoices?edit={invoice['id']}")
    assert resp.status_code == 200
    assert f'name="invoice_id" value="{invoice["id"]}"'.encode() in resp.data
