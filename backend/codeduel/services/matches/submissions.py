"""Submission pipeline: run a solution against every test case of the match's
problem, record the aggregates, and settle the match once everyone submitted.
"""

import logging
import re

from codeduel import db
from codeduel.errors import Forbidden, InvalidRequest, NoTestCases, NotFound
from codeduel.models import MATCH_COMPLETED, Match, Solution, save
from codeduel.services.execution import STATUS_ACCEPTED, language_id
from .outcome import MatchOutcomeEvaluator
from .testcases import normalize_test_cases

logger = logging.getLogger(__name__)

_LEADING_BLANK_LINE = re.compile(r'^\s*\n')


def sanitize_source(source):
    return _LEADING_BLANK_LINE.sub('', source.replace('\r', '')).strip()


def _as_float(value):
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return 0.0


def _trimmed(value):
    return value.strip() if isinstance(value, str) else value


class SubmissionPipeline:
    def __init__(self, judge, evaluator=None, max_wait=30.0, poll_interval=1.0,
                 on_match_completed=None):
        self.judge = judge
        self.evaluator = evaluator or MatchOutcomeEvaluator()
        self.max_wait = max_wait
        self.poll_interval = poll_interval
        self.on_match_completed = on_match_completed

    def submit(self, match_id, user_id, source, language):
        if not source or not language:
            raise InvalidRequest('Answer and language are required')
        if not match_id:
            raise InvalidRequest('Match ID is required (missing from cookies)')

        match = db.session.get(Match, match_id)
        if match is None or match.question is None:
            raise NotFound('Match or question not found')
        if match.team and user_id not in match.team.participant_ids():
            raise Forbidden('You are not a participant of this match')

        test_cases = normalize_test_cases(match.question.test_cases)
        if not test_cases:
            raise NoTestCases()
        lang_id = language_id(language)

        # Recorded before running so a crashed run is still attributable
        solution = Solution(match_id=match.id, user_id=user_id, code=source, language=language)
        save(solution)

        code = sanitize_source(source)
        results = [self._run_case(idx, code, lang_id, case)
                   for idx, case in enumerate(test_cases, start=1)]

        passed = sum(1 for r in results if r['passed'])
        total_time = sum(_as_float(r.get('time')) for r in results)
        total_memory = sum(_as_float(r.get('memory')) for r in results)
        solution.passed_tests = passed
        solution.total_tests = len(test_cases)
        solution.execution_time = total_time
        solution.memory_used = total_memory
        save(solution)
        logger.info(f"[submission] match={match.id} user={user_id} passed={passed}/{len(test_cases)} time={total_time}")

        count = len(test_cases)
        report = {
            'success': True,
            'message': 'Code submitted and executed successfully',
            'submission': {
                'id': solution.id,
                'language': language,
                'createdAt': solution.submitted_at.isoformat() if solution.submitted_at else None,
            },
            'execution': {
                'allPassed': passed == count,
                'passedTests': passed,
                'totalTests': count,
                'passRate': f'{passed}/{count}',
                'totalTime': total_time,
                'avgTime': total_time / count,
                'totalMemory': total_memory,
                'avgMemory': total_memory / count,
                'expectedTime': match.question.expected_time_complexity,
                'expectedSpace': match.question.expected_space_complexity,
            },
            'testResults': results,
        }
        report['matchResult'] = self._settle(match.id)
        return report

    def _run_case(self, idx, code, lang_id, case):
        try:
            token = self.judge.submit(code, lang_id, case['input'], case['output'])
            result = self.judge.wait_for_result(token, max_wait=self.max_wait,
                                                poll_interval=self.poll_interval)
        except Exception as exc:
            # One failing case never aborts the rest of the run
            logger.warning(f"[submission-case-failed] case={idx} error={exc}")
            return {
                'testCase': idx,
                'token': None,
                'passed': False,
                'status': {'id': -1, 'description': 'Error'},
                'error': getattr(exc, 'code', None) or str(exc),
                'input': case['input'],
                'expectedOutput': case['output'],
            }

        status = result.get('status') or {}
        actual = _trimmed(result.get('stdout'))
        passed = status.get('id') == STATUS_ACCEPTED and actual == _trimmed(case['output'])
        return {
            'testCase': idx,
            'token': token,
            'passed': passed,
            'status': status,
            'stdout': result.get('stdout'),
            'stderr': result.get('stderr'),
            'time': result.get('time'),
            'memory': result.get('memory'),
            'input': case['input'],
            'expectedOutput': case['output'],
            'actualOutput': actual,
        }

    def _settle(self, match_id):
        """Evaluate the match once every paired participant has submitted.

        Failures here are logged and never fail the submission itself.
        """
        try:
            match = db.session.get(Match, match_id)
            if match.status == MATCH_COMPLETED:
                return {'isComplete': True, 'alreadyCompleted': True, 'winnerId': match.winner_id}
            expected = match.expected_participants
            submitters = {s.user_id for s in match.solutions}
            if match.team:
                submitters &= set(match.team.participant_ids())
            logger.info(f"[submission-completion] match={match_id} submitted={len(submitters)}/{expected}")
            if expected == 0 or len(submitters) < expected:
                return {'isComplete': False,
                        'message': 'Waiting for other participants to submit their solutions'}

            outcome = self.evaluator.determine(match_id)
            if outcome is None:
                return {'isComplete': True, 'alreadyCompleted': True}
        except Exception:
            db.session.rollback()
            logger.exception(f"[submission-outcome-failed] match={match_id}")
            return {'isComplete': False, 'message': 'Match result unavailable'}

        if self.on_match_completed is not None:
            try:
                self.on_match_completed(match_id, outcome.completion_payload())
            except Exception:
                logger.exception(f"[submission-notify-failed] match={match_id}")
        return outcome.to_dict()
