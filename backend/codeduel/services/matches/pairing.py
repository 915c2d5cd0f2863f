import logging

from codeduel import db
from codeduel.errors import NotFound
from codeduel.models import MATCH_ACTIVE, Match, Question, Team, User, save

logger = logging.getLogger(__name__)


def select_question(topics, difficulties):
    """First question of the primary difficulty tagged with any requested topic."""
    difficulty = difficulties[0] if difficulties else None
    wanted = set(topics or [])
    for question in Question.query.filter_by(difficulty=difficulty).order_by(Question.id).all():
        if wanted & set(question.tags or []):
            return question
    return None


def _ensure_user(user_id, username=None):
    user = db.session.get(User, user_id)
    if user is None:
        user = User(id=user_id, username=username or 'Anonymous')
        db.session.add(user)
    return user


def create_paired_match(claim, joiner_name=None):
    """Persist the team and match for a successful join-code claim."""
    question = select_question(claim.topics, claim.difficulties)
    if question is None:
        raise NotFound('No questions available')

    _ensure_user(claim.creator_id)
    _ensure_user(claim.joiner_id, joiner_name)
    team = Team(player_one_id=claim.creator_id, player_two_id=claim.joiner_id,
                join_code=claim.code, is_private=True)
    match = Match(id=claim.match_id, team=team, question=question, status=MATCH_ACTIVE)
    save(team, match)
    logger.info(f"[pairing] match={match.id} team={team.id} question={question.id}")
    return match
