import pytest

from levelcert import services
from levelcert.auth import get_query_user
from levelcert.main import CORS_HEADERS


def _assert_cors(response):
    for key, value in CORS_HEADERS.items():
        assert response.headers[key] == value


def test_health(client):
    r = client.get('/api/health')
    assert r.status_code == 200
    body = r.json()
    assert body['status'] == 'ok'
    assert isinstance(body['timestamp'], int)
    assert r.headers['content-type'] == 'application/json; charset=utf-8'
    _assert_cors(r)


@pytest.mark.parametrize('path', ['/api/login', '/api/notes', '/anything/else'])
def test_options_preflight_short_circuits(client, path):
    r = client.options(path)
    assert r.status_code == 204
    assert r.content == b''
    _assert_cors(r)


def test_unknown_route_and_wrong_method_are_404(client):
    r = client.get('/api/nope')
    assert r.status_code == 404
    assert r.json() == {'error': 'Not found'}
    _assert_cors(r)
    r = client.get('/api/login')
    assert r.status_code == 404
    assert r.json() == {'error': 'Not found'}
    r = client.post('/api/health')
    assert r.status_code == 404


def test_malformed_body_is_400(client):
    r = client.post('/api/login', content=b'{not json', headers={'Content-Type': 'application/json'})
    assert r.status_code == 400
    assert r.json() == {'error': '缺少必要参数'}
    r = client.post('/api/save-exam', json={'userId': 1, 'employeeId': '1234567', 'subject': 'A',
                                            'score': 'high', 'totalQuestions': 1, 'correctCount': 1})
    assert r.status_code == 400


def test_unexpected_error_becomes_500_with_message(client, monkeypatch):
    def _boom(self, user):
        raise RuntimeError('something broke')

    monkeypatch.setattr(services.NoteService, 'list', _boom)
    client.app.dependency_overrides[get_query_user] = lambda: object()
    try:
        r = client.get('/api/notes')
    finally:
        client.app.dependency_overrides.clear()
    assert r.status_code == 500
    assert r.json() == {'error': 'something broke'}
    _assert_cors(r)


def test_request_id_header_exists(client):
    r = client.get('/api/health', headers={'X-Request-ID': 'abc123'})
    assert r.headers['X-Request-ID'] == 'abc123'
    r = client.get('/api/health')
    assert r.headers['X-Request-ID']
