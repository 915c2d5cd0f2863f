"""Match outcome: pick each participant's best solution, score it, rank, declare.

Score = 0.5 * correctness + 0.3 * efficiency + 0.2 * completion, where
correctness is the pass rate in percent, efficiency starts at 50 and gains
time and memory bonuses (capped at 100), and completion is a fixed constant
until submission timing is modelled.
"""

import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

from codeduel import db
from codeduel.errors import NotFound
from codeduel.models import MATCH_ACTIVE, MATCH_COMPLETED, Match, User, save, utcnow

logger = logging.getLogger(__name__)

CORRECTNESS_WEIGHT = 0.5
EFFICIENCY_WEIGHT = 0.3
COMPLETION_WEIGHT = 0.2

EFFICIENCY_BASELINE = 50.0
EFFICIENCY_CAP = 100.0
TIME_SHARE = 0.6
MEMORY_SHARE = 0.4
# Placeholder until submissions carry enough timing data to rank speed
COMPLETION_SCORE = 75.0

WIN_POINTS = 10
TIE_POINTS = 5
LOSS_POINTS = -2


def _metric(submission, name):
    if isinstance(submission, dict):
        value = submission.get(name)
    else:
        value = getattr(submission, name, None)
    return value or 0


def best_submission(submissions):
    """Most passed tests, then least execution time, then least memory.

    Earlier submissions win exact ties.
    """
    best = None
    for current in submissions:
        if best is None:
            best = current
            continue
        key_current = (-_metric(current, 'passed_tests'), _metric(current, 'execution_time'),
                       _metric(current, 'memory_used'))
        key_best = (-_metric(best, 'passed_tests'), _metric(best, 'execution_time'),
                    _metric(best, 'memory_used'))
        if key_current < key_best:
            best = current
    return best


def correctness_score(submission):
    total = _metric(submission, 'total_tests')
    if total <= 0:
        return 0.0
    return _metric(submission, 'passed_tests') / total * 100


def efficiency_score(submission):
    score = EFFICIENCY_BASELINE
    exec_time = _metric(submission, 'execution_time')
    if exec_time > 0:
        score += max(0.0, 50 - exec_time * 10) * TIME_SHARE
    memory = _metric(submission, 'memory_used')
    if memory > 0:
        score += max(0.0, 50 - memory / 1000) * MEMORY_SHARE
    return min(EFFICIENCY_CAP, score)


def score_submission(submission):
    score = (correctness_score(submission) * CORRECTNESS_WEIGHT
             + efficiency_score(submission) * EFFICIENCY_WEIGHT
             + COMPLETION_SCORE * COMPLETION_WEIGHT)
    return round(score, 2)


@dataclass
class ParticipantResult:
    user_id: str
    username: Optional[str]
    score: float
    best: object
    rank: int = 0

    @property
    def metrics(self) -> Dict[str, float]:
        total = _metric(self.best, 'total_tests')
        passed = _metric(self.best, 'passed_tests')
        return {
            'passedTests': passed,
            'totalTests': total,
            'executionTime': _metric(self.best, 'execution_time'),
            'memoryUsed': _metric(self.best, 'memory_used'),
            'passRate': (passed / total * 100) if total > 0 else 0,
        }

    def to_dict(self):
        return {
            'userId': self.user_id,
            'username': self.username,
            'score': self.score,
            'metrics': self.metrics,
            'rank': self.rank,
        }


@dataclass
class MatchOutcome:
    match_id: str
    participants: List[ParticipantResult] = field(default_factory=list)
    is_tie: bool = False
    completed_at: Optional[datetime] = None

    @property
    def winner(self) -> Optional[ParticipantResult]:
        if self.is_tie or not self.participants:
            return None
        return self.participants[0]

    @property
    def loser(self) -> Optional[ParticipantResult]:
        if len(self.participants) < 2:
            return None
        return self.participants[-1]

    @property
    def winner_id(self) -> Optional[str]:
        return self.winner.user_id if self.winner else None

    def to_dict(self):
        return {
            'isComplete': True,
            'matchId': self.match_id,
            'isTie': self.is_tie,
            'winner': self.winner.to_dict() if self.winner else None,
            'loser': self.loser.to_dict() if self.loser else None,
            'allParticipants': [p.to_dict() for p in self.participants],
        }

    def completion_payload(self):
        """Data for the MATCH_COMPLETED channel broadcast."""
        top = self.participants[0] if self.participants else None
        metrics = top.metrics if top else {}
        return {
            'matchId': self.match_id,
            'isTie': self.is_tie,
            'winnerId': self.winner_id,
            'winnerUsername': self.winner.username if self.winner else None,
            'completedAt': int(self.completed_at.timestamp() * 1000) if self.completed_at else None,
            'executionTime': metrics.get('executionTime'),
            'passedTests': metrics.get('passedTests'),
            'totalTests': metrics.get('totalTests'),
            'ranking': [p.to_dict() for p in self.participants],
        }


def rank_participants(match_id, submissions_by_user, usernames=None):
    """Pure ranking over ``{user_id: [submissions]}``; no database access."""
    usernames = usernames or {}
    results = []
    for user_id, submissions in submissions_by_user.items():
        best = best_submission(submissions)
        if best is None:
            continue
        results.append(ParticipantResult(user_id=user_id, username=usernames.get(user_id),
                                         score=score_submission(best), best=best))
    # Stable sort keeps first-submitter order between equal scores
    results.sort(key=lambda r: r.score, reverse=True)
    for idx, result in enumerate(results, start=1):
        result.rank = idx
    is_tie = len(results) > 1 and results[0].score == results[1].score
    return MatchOutcome(match_id=match_id, participants=results, is_tie=is_tie)


class MatchOutcomeEvaluator:
    """Computes and records the outcome of a match whose players all submitted."""

    def determine(self, match_id) -> Optional[MatchOutcome]:
        match = db.session.get(Match, match_id)
        if match is None:
            raise NotFound('Match not found')
        if match.status == MATCH_COMPLETED:
            logger.info(f"[outcome-skip] match={match_id} already completed")
            return None
        if not match.solutions:
            raise NotFound('No solutions found for this match')

        # Flip ACTIVE -> COMPLETED in the database; only the caller whose
        # update hits the row goes on to rank and notify.
        claimed = Match.query.filter_by(id=match_id, status=MATCH_ACTIVE).update(
            {'status': MATCH_COMPLETED}, synchronize_session=False)
        if claimed != 1:
            db.session.rollback()
            logger.info(f"[outcome-skip] match={match_id} claimed elsewhere")
            return None

        grouped = OrderedDict()
        for solution in sorted(match.solutions, key=lambda s: s.id):
            grouped.setdefault(solution.user_id, []).append(solution)
        usernames = {uid: subs[0].user.username if subs[0].user else None for uid, subs in grouped.items()}

        outcome = rank_participants(match.id, grouped, usernames)
        ended_at = utcnow()
        match.status = MATCH_COMPLETED
        match.winner_id = outcome.winner_id
        match.end_time = ended_at
        self._apply_rankings(outcome)
        save(match)
        logger.info(f"[outcome] match={match_id} winner={outcome.winner_id} tie={outcome.is_tie}")
        outcome.completed_at = ended_at
        return outcome

    def _apply_rankings(self, outcome: MatchOutcome) -> None:
        """Add ranking points as SQL increments so concurrent matches never overwrite each other."""
        loser_id = outcome.loser.user_id if outcome.loser else None
        for participant in outcome.participants:
            points, wins = 0, 0
            if outcome.is_tie:
                points = TIE_POINTS
            elif participant.user_id == outcome.winner_id:
                points, wins = WIN_POINTS, 1
            elif participant.user_id == loser_id:
                points = LOSS_POINTS
            User.query.filter_by(id=participant.user_id).update({
                User.points: User.points + points,
                User.wins: User.wins + wins,
                User.matches_played: User.matches_played + 1,
            }, synchronize_session=False)
