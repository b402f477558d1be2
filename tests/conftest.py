"""Pytest fixtures for the CRM app"""
import pytest

import db_manager
from app import create_app
from models import db


@pytest.fixture()
def app():
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SECRET_KEY': 'test',
        'BRAND_LOGO': '',
    })
    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def acme(app):
    data, error = db_manager.create_client({
        'name': 'Acme', 'email': 'billing@acme.test', 'company': 'Acme Corp', 'phone': '555-0100',
    })
    assert error is None
    return data


@pytest.fixture()
def project(acme):
    data, error = db_manager.create_project({
        'project_name': 'Website', 'client_id': acme['id'], 'budget': 1500, 'status': 'not_started',
    })
    assert error is None
    return data


@pytest.fixture()
def invoice(acme):
    data, error = db_manager.save_invoice(
        None,
        {'invoice_no': 'INV-1', 'client_id': acme['id'], 'date': '2024-01-01', 'due_date': '2024-01-31'},
        [{'description': 'A', 'quantity': 2, 'price': 50}, {'description': 'B', 'quantity': 1, 'price': 25}],
        10,
    )
    assert error is None
    return data
