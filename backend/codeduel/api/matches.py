from datetime import datetime, timezone
from flask import Blueprint, current_app, jsonify, request
from flask_login import current_user, login_required
from codeduel import db
from codeduel.errors import InvalidRequest, MatchError, NotFound
from codeduel.models import Match
from codeduel.services import get_services
from codeduel.services.matches.pairing import create_paired_match

matches = Blueprint('matches', __name__)

MATCH_COOKIE = 'matchId'


def _set_match_cookie(response, match_id):
    response.set_cookie(
        MATCH_COOKIE,
        match_id,
        max_age=int(current_app.config.get('MATCH_COOKIE_MAX_AGE_SEC', 86400)),
        httponly=False,
        samesite='Lax',
    )
    return response


def _iso(epoch):
    return datetime.fromtimestamp(epoch, tz=timezone.utc).isoformat()


@matches.route('/match-with-your-buddy', methods=['POST'])
@login_required
def match_with_your_buddy():
    action = request.args.get('action')
    data = request.get_json(silent=True) or {}
    broker = get_services().join_codes

    if action == 'create':
        entry = broker.create_code(current_user.id, data.get('topic'), data.get('Difficulty'))
        return jsonify({
            'success': True,
            'joiningCode': entry.code,
            'matchId': entry.reserved_match_id,
            'expiresAt': _iso(entry.expires_at),
            'message': 'Share this code with your buddy to join the match',
        })

    if action == 'join':
        code = request.args.get('code')
        claim = broker.join_code(code, current_user.id, data.get('topic'), data.get('Difficulty'))
        try:
            match = create_paired_match(claim, joiner_name=current_user.username)
        except MatchError:
            broker.release(claim.code, claim.match_id)
            raise
        response = jsonify({
            'success': True,
            'matchId': match.id,
            'teamId': match.team_id,
            'questionId': match.question_id,
            'message': 'Successfully joined the match!',
        })
        return _set_match_cookie(response, match.id)

    if action == 'check':
        entry = broker.check_code(request.args.get('code'), current_user.id)
        response = jsonify({
            'success': True,
            'status': entry.status,
            'matchId': entry.match_id,
            'expiresAt': _iso(entry.expires_at),
        })
        if entry.match_id:
            _set_match_cookie(response, entry.match_id)
        return response

    raise InvalidRequest("Invalid action. Use 'create', 'join', or 'check'")


@matches.route('/playground/<string:match_id>', methods=['GET'])
@login_required
def get_match(match_id):
    match = db.session.get(Match, match_id)
    if match is None or match.question is None:
        raise NotFound('Match or question not found')
    return jsonify({'success': True, 'match': match.to_dict(include_question=True)})


@matches.route('/playground', methods=['POST'])
@login_required
def submit_solution():
    data = request.get_json(silent=True) or {}
    services = get_services()
    pipeline = services.submission_pipeline(current_app.config)
    report = pipeline.submit(
        request.cookies.get(MATCH_COOKIE),
        current_user.id,
        data.get('answer'),
        data.get('language'),
    )
    return jsonify(report)
