"""
Shared fixtures.

The Flask app reads its config class from PORTAL_CONFIG at import time, so
the testing config is selected before anything imports ``app``.
"""
import json
import os

import httpx
import pytest

os.environ['PORTAL_CONFIG'] = 'config.TestingConfig'

from app import app as flask_app, db, create_default_records  # noqa: E402


@pytest.fixture
def anyio_backend():
    return 'asyncio'


@pytest.fixture
def app(tmp_path):
    flask_app.config['UPLOAD_FOLDER'] = str(tmp_path / 'uploads')
    with flask_app.app_context():
        db.create_all()
        create_default_records()
        yield flask_app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def officer_client(client):
    resp = client.post('/api/officers/login', json={
        'username': flask_app.config['DEFAULT_OFFICER_USERNAME'],
        'passwordHash': flask_app.config['DEFAULT_OFFICER_PASSWORD'],
    })
    assert resp.get_json()['success'] is True
    return client


class FakeHandle:
    def __init__(self, when, callback):
        self.when = when
        self.callback = callback
        self.cancelled = False

    def cancel(self):
        self.cancelled = True


class FakeScheduler:
    """Manual clock plus call_later; ``advance`` fires due callbacks in order."""

    def __init__(self):
        self.now = 0.0
        self._handles = []

    def clock(self):
        return self.now

    def call_later(self, delay, callback):
        handle = FakeHandle(self.now + delay, callback)
        self._handles.append(handle)
        return handle

    @property
    def pending(self):
        return [h for h in self._handles if not h.cancelled]

    def advance(self, seconds):
        target = self.now + seconds
        while True:
            due = [h for h in self.pending if h.when <= target]
            if not due:
                break
            handle = min(due, key=lambda h: h.when)
            self._handles.remove(handle)
            self.now = handle.when
            handle.callback()
        self.now = target


@pytest.fixture
def scheduler():
    return FakeScheduler()


class FakeBackend:
    """Routes (method, path) to canned JSON responses for httpx.MockTransport."""

    def __init__(self):
        self.routes = {}
        self.requests = []

    def add(self, method, path, body=None, status=200):
        self.routes[(method, path)] = (status, body)

    def fail(self, method, path, status=500, message='Internal error'):
        self.routes[(method, path)] = (status, {'error': message})

    def __call__(self, request):
        self.requests.append(request)
        key = (request.method, request.url.path)
        if key not in self.routes:
            return httpx.Response(404, json={'error': f'No route for {key}'})
        status, body = self.routes[key]
        if callable(body):
            body = body(json.loads(request.content or b'null'))
        if status == 204:
            return httpx.Response(204)
        return httpx.Response(status, json=body)

    def transport(self):
        return httpx.MockTransport(self)


@pytest.fixture
def backend():
    return FakeBackend()
