# ems/routes.py

# JSON endpoints for the vote flow, results/stats and election setup.
# Handlers only translate HTTP to the voting services and back.

from datetime import datetime

from flask import Blueprint, current_app, jsonify, request
from flask_jwt_extended import get_jwt_identity

from ems import db, limiter
from ems.admin.election_admin import ElectionAdminError, ElectionAdminService, NotSupervisorError
from ems.authentication.rbac import Permission, require_permission
from ems.voting.clock import TimeSourceUnavailable
from ems.voting.eligibility import RETRYABLE, EligibilityError, election_status
from ems.voting.tally import CandidateTally, TallyService
from ems.voting.transaction import VoteService

bp = Blueprint('ems', __name__)

REASON_RESPONSES = {
    EligibilityError.NOT_STARTED: (403, "Voting has not started yet"),
    EligibilityError.CLOSED: (403, "Voting has ended"),
    EligibilityError.ALREADY_VOTED: (409, "You have already voted"),
    EligibilityError.INVALID_CANDIDATE: (400, "Your ballot contains an invalid selection"),
    EligibilityError.UNKNOWN_VOTER: (404, "No voter found"),
    EligibilityError.STORAGE_CONFLICT: (503, "Your vote could not be recorded, please try again"),
    EligibilityError.TIME_SOURCE_UNAVAILABLE: (503, "The election time could not be verified, please try again"),
}


def _services():
    ext = current_app.extensions['ems']
    return ext['clock'], ext['audit_logger']


def _vote_service():
    clock, audit_logger = _services()
    return VoteService(db.session, clock, audit_logger)


def _admin_service():
    _, audit_logger = _services()
    return ElectionAdminService(db.session, audit_logger)


def _declined(reason):
    status, message = REASON_RESPONSES[reason]
    response = jsonify({'error': reason.value, 'message': message})
    if reason in RETRYABLE:
        response.headers['Retry-After'] = '1'
    return response, status


def _window_payload(window):
    return {
        'start': window.start.isoformat() if window.start else None,
        'end': window.end.isoformat() if window.end else None,
    }


def _parse_datetime(value, field):
    if not isinstance(value, str):
        raise ElectionAdminError(f"{field} is required")
    try:
        return datetime.fromisoformat(value.replace('Z', '+00:00'))
    except ValueError:
        raise ElectionAdminError(f"{field} is not an ISO 8601 date-time")


@bp.route('/voter/ballot', methods=['GET'])
@require_permission(Permission.VOTE)
def ballot():
    voter_id = get_jwt_identity()
    eligibility = _vote_service().check_eligibility(voter_id)
    if not eligibility.allowed:
        return _declined(eligibility.reason)
    grouped = _admin_service().ballot()
    return jsonify({
        'eligible': True,
        'ballot': {
            position.value: [CandidateTally.from_model(c).to_dict() for c in candidates]
            for position, candidates in grouped.items()
        },
    })


@bp.route('/voter/vote', methods=['POST'])
@limiter.limit(lambda: current_app.config['VOTE_RATE_LIMIT'])
@require_permission(Permission.VOTE)
def vote():
    voter_id = get_jwt_identity()
    selections = request.get_json(silent=True)
    if selections is None:
        selections = request.form.to_dict()
    result = _vote_service().cast_vote(voter_id, selections)
    if not result.success:
        return _declined(result.reason)
    return jsonify({
        'message': 'Thank you for voting',
        'candidates': [c.to_dict() for c in result.candidates],
    })


@bp.route('/voter/status', methods=['GET'])
@require_permission(Permission.VIEW_OWN_STATUS)
def voter_status():
    voter_id = get_jwt_identity()
    eligibility = _vote_service().check_eligibility(voter_id)
    if eligibility.reason is EligibilityError.UNKNOWN_VOTER:
        return _declined(eligibility.reason)
    return jsonify({
        'canVote': eligibility.allowed,
        'reason': eligibility.reason.value if eligibility.reason else None,
    })


@bp.route('/election/window', methods=['GET'])
def election_window():
    clock, _ = _services()
    window = _admin_service().get_election_window()
    payload = _window_payload(window)
    try:
        payload['status'] = election_status(clock.now(), window)
    except TimeSourceUnavailable:
        payload['status'] = 'unknown'
    return jsonify(payload)


@bp.route('/election/results', methods=['GET'])
@require_permission(Permission.VIEW_RESULTS)
def results():
    by_position = TallyService(db.session).results_by_position()
    return jsonify({
        position.value: [tally.to_dict() for tally in tallies]
        for position, tallies in by_position.items()
    })


@bp.route('/election/stats', methods=['GET'])
@require_permission(Permission.VIEW_STATS)
def stats():
    return jsonify(TallyService(db.session).participation_stats().to_dict())


@bp.route('/admin/election-window', methods=['PUT'])
@require_permission(Permission.SET_ELECTION_WINDOW)
def set_election_window():
    data = request.get_json(silent=True) or {}
    try:
        window = _admin_service().set_election_window(
            get_jwt_identity(),
            _parse_datetime(data.get('start'), 'start'),
            _parse_datetime(data.get('end'), 'end'),
        )
    except NotSupervisorError as e:
        return jsonify({'error': 'NOT_SUPERVISOR', 'message': str(e)}), 403
    except ElectionAdminError as e:
        return jsonify({'error': 'INVALID_WINDOW', 'message': str(e)}), 400
    return jsonify({'message': 'Date has been changed', **_window_payload(window)})


@bp.route('/admin/candidates', methods=['POST'])
@require_permission(Permission.MANAGE_CANDIDATES)
def register_candidate():
    data = request.get_json(silent=True) or {}
    try:
        candidate = _admin_service().register_candidate(
            data.get('firstName'),
            data.get('lastName'),
            data.get('position'),
            data.get('department'),
        )
    except ElectionAdminError as e:
        return jsonify({'error': 'INVALID_CANDIDATE', 'message': str(e)}), 400
    return jsonify({
        'message': 'Candidate Registration successful',
        'candidate': CandidateTally.from_model(candidate).to_dict(),
    }), 201


@bp.route('/admin/candidates/remove-all', methods=['POST'])
@require_permission(Permission.MANAGE_CANDIDATES)
def remove_all_candidates():
    deleted = _admin_service().remove_all_candidates()
    return jsonify({'deleted': deleted})


@bp.route('/admin/voters', methods=['POST'])
@require_permission(Permission.IMPORT_VOTERS)
def import_voters():
    rows = request.get_json(silent=True)
    if not isinstance(rows, list) or not all(isinstance(row, dict) for row in rows):
        return jsonify({'error': 'INVALID_ROLL', 'message': 'Expected a list of voter rows'}), 400
    try:
        imported = _admin_service().import_voters(rows)
    except ElectionAdminError as e:
        return jsonify({'error': 'INVALID_ROLL', 'message': str(e)}), 400
    return jsonify({'imported': imported}), 201


@bp.route('/admin/voters/reset', methods=['POST'])
@require_permission(Permission.IMPORT_VOTERS)
def reset_voters():
    deleted = _admin_service().reset_voter_roll()
    return jsonify({'deleted': deleted})


@bp.route('/admin/audit-log', methods=['GET'])
@require_permission(Permission.VIEW_AUDIT_LOGS)
def view_audit_log():
    _, audit_logger = _services()
    return jsonify({
        'entries': audit_logger.read_entries(),
        'intact': audit_logger.verify_log_integrity(),
    })
