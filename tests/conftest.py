"""
FYP Portal - Test Configuration and Fixtures
"""
from typing import Generator

import mongomock
import pytest
from faker import Faker
from fastapi.testclient import TestClient
from pymongo.database import Database

from database import ensure_indexes, get_db
from main import app

fake = Faker()


@pytest.fixture
def db() -> Generator[Database, None, None]:
    """Fresh in-memory database for each test"""
    client = mongomock.MongoClient()
    database = client["fypDB_test"]
    ensure_indexes(database)
    yield database
    client.close()


@pytest.fixture
def client(db: Database) -> Generator[TestClient, None, None]:
    """Test client with the database dependency overridden"""
    app.dependency_overrides[get_db] = lambda: db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def supervisor(client: TestClient) -> dict:
    payload = {
        'firebaseUid': f'sup-{fake.uuid4()}',
        'email': fake.email(),
        'name': fake.name(),
        'role': 'supervisor',
        'department': 'Computer Science',
    }
    response = client.post('/users', json=payload)
    assert response.status_code == 200
    return response.json()


@pytest.fixture
def student(client: TestClient) -> dict:
    payload = {
        'firebaseUid': f'stu-{fake.uuid4()}',
        'email': fake.email(),
        'name': fake.name(),
        'userId': 'S1001',
    }
    response = client.post('/users', json=payload)
    assert response.status_code == 200
    return response.json()


@pytest.fixture
def project(client: TestClient, supervisor: dict) -> dict:
    payload = {
        'title': 'Campus Navigation App',
        'description': 'Indoor navigation for the main campus',
        'technologies': ['Flutter', 'Firebase'],
        'supervisorUid': supervisor['firebaseUid'],
        'supervisorName': supervisor['name'],
    }
    response = client.post('/projects', json=payload)
    assert response.status_code == 200
    return response.json()
