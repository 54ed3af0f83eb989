from sqlmodel import Session, select

from conftest import identity
from levelcert import models, repositories
from levelcert.database import engine


def _rows(user_id):
    with Session(engine) as s:
        stmt = select(models.UserWrongQuestion).where(models.UserWrongQuestion.user_id == user_id)
        return s.exec(stmt).all()


def _upsert(client, user, **fields):
    return client.post('/api/wrong-questions/upsert', json={**identity(user), **fields})


def test_upsert_same_question_updates_single_row(client, make_user):
    user = make_user()
    r = _upsert(client, user, subject='A', questionText='What is 1+1?', options=['1', '2'],
                correctAnswer='2', userAnswer='1', source='exam')
    assert r.status_code == 200
    assert r.json() == {'success': True}
    first = _rows(user['id'])
    assert len(first) == 1

    r = _upsert(client, user, subject='A', questionText='  What is 1+1?  ', options=['2', '3'],
                correctAnswer='2', userAnswer='3', source='practice')
    assert r.status_code == 200
    rows = _rows(user['id'])
    assert len(rows) == 1
    row = rows[0]
    assert row.id == first[0].id
    assert row.user_answer == '3'
    assert row.source == 'practice'
    assert row.options_json == '["2", "3"]'
    assert row.created_at == first[0].created_at
    assert row.updated_at >= first[0].updated_at


def test_list_filters_by_subject_and_orders_by_update(client, make_user):
    user = make_user()
    _upsert(client, user, subject='A', questionText='q1', options=['x'])
    _upsert(client, user, subject='B', questionText='q2')
    _upsert(client, user, subject='A', questionText='q3', options='not-a-list')
    _upsert(client, user, subject='A', questionText='q1', options=['y'])

    r = client.get('/api/wrong-questions', params={**identity(user), 'subject': 'ALL'})
    assert r.status_code == 200
    items = r.json()['items']
    assert [i['question_text'] for i in items] == ['q1', 'q3', 'q2']

    r = client.get('/api/wrong-questions', params={**identity(user), 'subject': 'A'})
    items = r.json()['items']
    assert [i['question_text'] for i in items] == ['q1', 'q3']
    assert items[0]['options'] == ['y']
    assert items[1]['options'] == []
    assert set(items[0]) >= {'id', 'subject', 'options_json', 'correct_answer', 'user_answer',
                             'source', 'created_at', 'updated_at'}

    r = client.get('/api/wrong-questions', params=identity(user))
    assert len(r.json()['items']) == 3


def test_list_is_capped(client, make_user):
    user = make_user()
    with Session(engine) as s:
        for i in range(205):
            s.add(models.UserWrongQuestion(user_id=user['id'], subject='A', question_text=f'q{i}'))
        s.commit()
    r = client.get('/api/wrong-questions', params={**identity(user), 'subject': 'A'})
    items = r.json()['items']
    assert len(items) == 200
    assert all(i['options'] == [] for i in items)


def test_upsert_validation(client, make_user):
    user = make_user()
    r = _upsert(client, user, subject='  ', questionText='q')
    assert r.status_code == 400
    assert r.json()['error'] == '缺少必要参数'
    r = _upsert(client, user, subject='A')
    assert r.status_code == 400
    # identity is checked before the payload
    r = client.post('/api/wrong-questions/upsert', json={'userId': user['id'], 'employeeId': '0000000'})
    assert r.status_code == 401


def test_delete_only_affects_owner(client, make_user):
    alice = make_user('1234567', 'Alice')
    bob = make_user('7654321', 'Bob')
    _upsert(client, alice, subject='A', questionText='q')
    wrong_id = _rows(alice['id'])[0].id

    r = client.post('/api/wrong-questions/delete', json={**identity(bob), 'wrongId': wrong_id})
    assert r.status_code == 200
    assert len(_rows(alice['id'])) == 1

    r = client.post('/api/wrong-questions/delete', json={**identity(alice), 'wrongId': str(wrong_id)})
    assert r.status_code == 200
    assert _rows(alice['id']) == []

    r = client.post('/api/wrong-questions/delete', json={**identity(alice), 'wrongId': wrong_id})
    assert r.status_code == 200


def test_delete_requires_id(client, make_user):
    user = make_user()
    r = client.post('/api/wrong-questions/delete', json=identity(user))
    assert r.status_code == 400
    assert r.json()['error'] == '缺少wrongId参数'


def test_upsert_after_concurrent_insert_of_same_question(make_user):
    user = make_user()
    with Session(engine) as first:
        repo = repositories.WrongQuestionRepository(first)
        assert repo.list_for_user(user['id'], 'A', 10) == []

        # another request saves the same question before this one writes
        with Session(engine) as second:
            second.add(models.UserWrongQuestion(user_id=user['id'], subject='A', question_text='q',
                                                user_answer='1', source='exam'))
            second.commit()
        original = _rows(user['id'])[0]

        saved = repo.upsert(models.UserWrongQuestion(user_id=user['id'], subject='A', question_text='q',
                                                     options_json='["1", "2"]', user_answer='2',
                                                     source='practice'))
        assert saved.id == original.id
        assert saved.user_answer == '2'
        first.commit()

    rows = _rows(user['id'])
    assert len(rows) == 1
    assert rows[0].user_answer == '2'
    assert rows[0].source == 'practice'
    assert rows[0].options_json == '["1", "2"]'
    assert rows[0].created_at == original.created_at


def test_upsert_over_existing_row_through_api(client, make_user):
    user = make_user()
    with Session(engine) as s:
        s.add(models.UserWrongQuestion(user_id=user['id'], subject='A', question_text='q', user_answer='1'))
        s.commit()
    r = _upsert(client, user, subject='A', questionText='q', userAnswer='2')
    assert r.status_code == 200
    assert r.json() == {'success': True}
    rows = _rows(user['id'])
    assert len(rows) == 1
    assert rows[0].user_answer == '2'
