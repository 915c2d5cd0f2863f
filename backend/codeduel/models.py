from codeduel import db
from codeduel.errors import PersistenceError
from flask_login import UserMixin
from sqlalchemy.exc import SQLAlchemyError
from datetime import datetime, timezone
import uuid

MATCH_ACTIVE = 'ACTIVE'
MATCH_COMPLETED = 'COMPLETED'


def utcnow():
    return datetime.now(timezone.utc)


def generate_match_id():
    return uuid.uuid4().hex


def save(*rows):
    """Add rows (if any) and commit; database failures become PersistenceError."""
    try:
        for row in rows:
            db.session.add(row)
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise PersistenceError(str(exc.__class__.__name__)) from exc


class User(UserMixin, db.Model):
    __tablename__ = 'user'
    # Externally issued participant id (identity provider subject)
    id = db.Column(db.String(64), primary_key=True)
    username = db.Column(db.String(64), nullable=False, index=True)
    email = db.Column(db.String(255), nullable=True)
    points = db.Column(db.Integer, default=0, nullable=False)
    wins = db.Column(db.Integer, default=0, nullable=False)
    matches_played = db.Column(db.Integer, default=0, nullable=False)

    def to_dict(self):
        return {
            'id': self.id,
            'username': self.username,
            'email': self.email,
            'points': self.points,
            'wins': self.wins,
            'matches_played': self.matches_played,
        }


class Team(db.Model):
    __tablename__ = 'team'
    id = db.Column(db.Integer, primary_key=True)
    player_one_id = db.Column(db.String(64), db.ForeignKey('user.id'), nullable=False)
    player_two_id = db.Column(db.String(64), db.ForeignKey('user.id'), nullable=True)
    join_code = db.Column(db.String(16), nullable=True, index=True)
    is_private = db.Column(db.Boolean, default=True, nullable=False)

    def participant_ids(self):
        return [pid for pid in (self.player_one_id, self.player_two_id) if pid]


class Question(db.Model):
    __tablename__ = 'question'
    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    difficulty = db.Column(db.String(32), nullable=False, index=True)
    tags = db.Column(db.JSON, nullable=False, default=list)
    # Either a flat list, {testCases: [...]} or {public: [...], hidden: [...]}
    test_cases = db.Column(db.JSON, nullable=True)
    expected_time_complexity = db.Column(db.String(64), nullable=True)
    expected_space_complexity = db.Column(db.String(64), nullable=True)

    def to_dict(self, include_hidden=False):
        cases = self.test_cases
        if not include_hidden and isinstance(cases, dict) and 'public' in cases:
            cases = {'public': cases.get('public') or []}
        return {
            'id': self.id,
            'title': self.title,
            'description': self.description,
            'difficulty': self.difficulty,
            'tags': list(self.tags or []),
            'test_cases': cases,
            'expected_time_complexity': self.expected_time_complexity,
            'expected_space_complexity': self.expected_space_complexity,
        }


class Match(db.Model):
    __tablename__ = 'match'
    id = db.Column(db.String(32), primary_key=True, default=generate_match_id)
    team_id = db.Column(db.Integer, db.ForeignKey('team.id'), nullable=False)
    question_id = db.Column(db.Integer, db.ForeignKey('question.id'), nullable=True)
    status = db.Column(db.String(16), default=MATCH_ACTIVE, nullable=False)  # ACTIVE, COMPLETED
    winner_id = db.Column(db.String(64), db.ForeignKey('user.id'), nullable=True)
    start_time = db.Column(db.DateTime(timezone=True), default=utcnow)
    end_time = db.Column(db.DateTime(timezone=True), nullable=True)

    team = db.relationship('Team')
    question = db.relationship('Question')
    solutions = db.relationship('Solution', back_populates='match', lazy='select')

    @property
    def expected_participants(self):
        return len(self.team.participant_ids()) if self.team else 0

    def to_dict(self, include_question=False):
        payload = {
            'id': self.id,
            'team_id': self.team_id,
            'question_id': self.question_id,
            'status': self.status,
            'winner_id': self.winner_id,
            'participants': self.team.participant_ids() if self.team else [],
            'start_time': self.start_time.isoformat() if self.start_time else None,
            'end_time': self.end_time.isoformat() if self.end_time else None,
        }
        if include_question:
            payload['question'] = self.question.to_dict() if self.question else None
        return payload


class Solution(db.Model):
    __tablename__ = 'solution'
    id = db.Column(db.Integer, primary_key=True)
    match_id = db.Column(db.String(32), db.ForeignKey('match.id'), nullable=False, index=True)
    user_id = db.Column(db.String(64), db.ForeignKey('user.id'), nullable=False, index=True)
    code = db.Column(db.Text, nullable=False)
    language = db.Column(db.String(32), nullable=False)
    passed_tests = db.Column(db.Integer, default=0, nullable=False)
    total_tests = db.Column(db.Integer, default=0, nullable=False)
    # Aggregates across all test cases: seconds and kilobytes
    execution_time = db.Column(db.Float, default=0.0, nullable=False)
    memory_used = db.Column(db.Float, default=0.0, nullable=False)
    submitted_at = db.Column(db.DateTime(timezone=True), default=utcnow)

    match = db.relationship('Match', back_populates='solutions')
    user = db.relationship('User')

    def to_dict(self):
        return {
            'id': self.id,
            'match_id': self.match_id,
            'user_id': self.user_id,
            'language': self.language,
            'passed_tests': self.passed_tests,
            'total_tests': self.total_tests,
            'execution_time': self.execution_time,
            'memory_used': self.memory_used,
            'submitted_at': self.submitted_at.isoformat() if self.submitted_at else None,
        }
