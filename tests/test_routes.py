import pytest

from conftest import at
from ems.database.models import Candidate, Voter
from ems.voting.clock import TimeSourceUnavailable


@pytest.fixture
def voter_headers(auth_headers, voter):
    return auth_headers(voter, 'voter')


@pytest.fixture
def supervisor_headers(auth_headers, supervisor):
    return auth_headers(supervisor, 'supervisor')


@pytest.fixture
def admin_headers(auth_headers, plain_admin):
    return auth_headers(plain_admin, 'admin')


def test_vote_flow(client, supervisor, candidates, voter_headers, tallies):
    rv = client.get('/voter/ballot', headers=voter_headers)
    assert rv.status_code == 200
    ballot = rv.get_json()['ballot']
    assert [c['id'] for c in ballot['president']] == [candidates['A'], candidates['B']]

    rv = client.post('/voter/vote', json={'president': candidates['A'], 'secretary': candidates['C']},
                     headers=voter_headers)
    assert rv.status_code == 200
    body = rv.get_json()
    assert body['message'] == 'Thank you for voting'
    assert {c['id'] for c in body['candidates']} == {candidates['A'], candidates['C']}

    rv = client.post('/voter/vote', json={'president': candidates['B'], 'secretary': candidates['D']},
                     headers=voter_headers)
    assert rv.status_code == 409
    assert rv.get_json() == {'error': 'ALREADY_VOTED', 'message': 'You have already voted'}

    counts = tallies()
    assert counts[candidates['A']] == 1
    assert counts[candidates['B']] == 0


def test_form_encoded_ballot(client, supervisor, candidates, voter_headers):
    rv = client.post('/voter/vote', data={'president': str(candidates['B']), 'secretary': str(candidates['D'])},
                     headers=voter_headers)
    assert rv.status_code == 200


def test_ballot_refused_before_start(client, clock, supervisor, candidates, voter_headers):
    clock.set(at(8))
    rv = client.get('/voter/ballot', headers=voter_headers)
    assert rv.status_code == 403
    assert rv.get_json()['error'] == 'NOT_STARTED'


def test_invalid_selection_is_bad_request(client, supervisor, candidates, voter_headers):
    rv = client.post('/voter/vote', json={'president': candidates['C'], 'secretary': candidates['D']},
                     headers=voter_headers)
    assert rv.status_code == 400
    assert rv.get_json()['error'] == 'INVALID_CANDIDATE'


def test_oversized_candidate_id_is_bad_request(client, supervisor, candidates, voter_headers, tallies):
    before = tallies()
    rv = client.post('/voter/vote', json={'president': 10 ** 30, 'secretary': candidates['C']},
                     headers=voter_headers)
    assert rv.status_code == 400
    assert rv.get_json()['error'] == 'INVALID_CANDIDATE'
    assert tallies() == before


def test_vote_requires_token(client, supervisor, candidates):
    rv = client.post('/voter/vote', json={'president': candidates['A'], 'secretary': candidates['C']})
    assert rv.status_code == 401


def test_admin_cannot_vote(client, supervisor, candidates, admin_headers):
    rv = client.post('/voter/vote', json={'president': candidates['A'], 'secretary': candidates['C']},
                     headers=admin_headers)
    assert rv.status_code == 403


def test_voter_status(client, supervisor, candidates, voter_headers):
    assert client.get('/voter/status', headers=voter_headers).get_json() == {'canVote': True, 'reason': None}
    client.post('/voter/vote', json={'president': candidates['A'], 'secretary': candidates['C']},
                headers=voter_headers)
    assert client.get('/voter/status', headers=voter_headers).get_json() == {
        'canVote': False,
        'reason': 'ALREADY_VOTED',
    }


def test_unknown_voter_token(client, supervisor, auth_headers):
    rv = client.get('/voter/status', headers=auth_headers(999, 'voter'))
    assert rv.status_code == 404


def test_public_window(client, clock, supervisor):
    body = client.get('/election/window').get_json()
    assert body == {'start': at(9).isoformat(), 'end': at(17).isoformat(), 'status': 'ongoing'}
    clock.set(at(18))
    assert client.get('/election/window').get_json()['status'] == 'closed'


def test_results_and_stats(client, supervisor, candidates, voter_headers, admin_headers, make_voter):
    make_voter('VOTER002')
    client.post('/voter/vote', json={'president': candidates['B'], 'secretary': candidates['C']},
                headers=voter_headers)

    results = client.get('/election/results', headers=admin_headers).get_json()
    assert results['president'][0]['id'] == candidates['B']
    assert results['president'][0]['votes'] == 1
    assert results['secretary'][0]['id'] == candidates['C']

    stats = client.get('/election/stats', headers=admin_headers).get_json()
    assert stats == {'total': 2, 'voted': 1, 'notVoted': 1}


def test_voters_cannot_read_results(client, voter_headers):
    assert client.get('/election/results', headers=voter_headers).status_code == 403
    assert client.get('/election/stats', headers=voter_headers).status_code == 403


def test_supervisor_sets_window(client, supervisor_headers):
    rv = client.put('/admin/election-window', headers=supervisor_headers,
                    json={'start': '2026-04-01T08:00:00Z', 'end': '2026-04-01T18:00:00+00:00'})
    assert rv.status_code == 200
    assert rv.get_json()['start'] == '2026-04-01T08:00:00+00:00'


def test_plain_admin_cannot_set_window(client, admin_headers):
    rv = client.put('/admin/election-window', headers=admin_headers,
                    json={'start': '2026-04-01T08:00:00Z', 'end': '2026-04-01T18:00:00Z'})
    assert rv.status_code == 403


def test_admin_token_claiming_supervisor_is_refused(client, supervisor, plain_admin, auth_headers):
    rv = client.put('/admin/election-window', headers=auth_headers(plain_admin, 'supervisor'),
                    json={'start': '2026-04-01T08:00:00Z', 'end': '2026-04-01T18:00:00Z'})
    assert rv.status_code == 403
    assert rv.get_json()['error'] == 'NOT_SUPERVISOR'


@pytest.mark.parametrize("payload", [
    {'start': '2026-04-01T18:00:00Z', 'end': '2026-04-01T08:00:00Z'},
    {'start': 'tomorrow', 'end': '2026-04-01T08:00:00Z'},
    {'end': '2026-04-01T08:00:00Z'},
])
def test_invalid_window_is_bad_request(client, supervisor_headers, payload):
    rv = client.put('/admin/election-window', headers=supervisor_headers, json=payload)
    assert rv.status_code == 400


def test_register_candidate(client, admin_headers, session):
    rv = client.post('/admin/candidates', headers=admin_headers,
                     json={'firstName': 'Ama', 'lastName': 'Owusu', 'position': 'president'})
    assert rv.status_code == 201
    assert rv.get_json()['candidate']['name'] == 'Ama Owusu'

    rv = client.post('/admin/candidates', headers=admin_headers,
                     json={'firstName': 'Ama', 'lastName': 'Owusu', 'position': 'president'})
    assert rv.status_code == 400
    assert session.query(Candidate).count() == 1


def test_import_and_reset_voters(client, admin_headers, session):
    rv = client.post('/admin/voters', headers=admin_headers,
                     json=[{'index': 'UEW/101', 'password': 'a'}, {'index': 'UEW/102', 'password': 'b'}])
    assert rv.status_code == 201
    assert rv.get_json() == {'imported': 2}

    assert client.post('/admin/voters', headers=admin_headers, json={'index': 'x'}).status_code == 400

    rv = client.post('/admin/voters/reset', headers=admin_headers)
    assert rv.get_json() == {'deleted': 2}
    session.expire_all()
    assert session.query(Voter).count() == 0


def test_remove_all_candidates(client, admin_headers, candidates):
    rv = client.post('/admin/candidates/remove-all', headers=admin_headers)
    assert rv.get_json() == {'deleted': 4}


def test_unavailable_clock_asks_client_to_retry(app, client, supervisor, candidates, voter_headers):
    class DownClock:
        name = 'down'

        def now(self):
            raise TimeSourceUnavailable("no time source answered")

    app.extensions['ems']['clock'] = DownClock()
    rv = client.post('/voter/vote', json={'president': candidates['A'], 'secretary': candidates['C']},
                     headers=voter_headers)
    assert rv.status_code == 503
    assert rv.get_json()['error'] == 'TIME_SOURCE_UNAVAILABLE'
    assert rv.headers['Retry-After'] == '1'


def test_admin_reads_audit_log_newest_first(client, supervisor, candidates, voter_headers, admin_headers):
    client.post('/voter/vote', json={'president': candidates['A'], 'secretary': candidates['C']},
                headers=voter_headers)
    client.post('/voter/vote', json={'president': candidates['A'], 'secretary': candidates['C']},
                headers=voter_headers)

    rv = client.get('/admin/audit-log', headers=admin_headers)
    assert rv.status_code == 200
    body = rv.get_json()
    assert body['intact'] is True
    events = [e['event_type'] for e in body['entries']]
    assert events[:2] == ['duplicate_vote_attempt', 'vote_cast']


def test_voters_cannot_read_audit_log(client, voter_headers):
    assert client.get('/admin/audit-log', headers=voter_headers).status_code == 403
