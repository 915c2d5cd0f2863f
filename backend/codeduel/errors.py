"""Error taxonomy shared by the HTTP routes, the channel and the pipeline.

Every domain failure carries a stable ``code`` (what clients switch on) and
the HTTP ``status`` used when it reaches a route.
"""


class MatchError(Exception):
    code = 'INTERNAL_ERROR'
    status = 500
    default_message = 'Something went wrong'

    def __init__(self, message=None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message

    def to_dict(self):
        return {'success': False, 'code': self.code, 'message': self.message}


class AuthMissing(MatchError):
    code = 'AUTH_MISSING'
    status = 401
    default_message = 'Access token is missing'


class AuthInvalid(MatchError):
    code = 'AUTH_INVALID'
    status = 401
    default_message = 'Invalid or expired token'


class Forbidden(MatchError):
    code = 'FORBIDDEN'
    status = 403
    default_message = 'You are not allowed to do this'


class InvalidRequest(MatchError):
    code = 'INVALID_REQUEST'
    status = 400
    default_message = 'Invalid request'


class NotFound(MatchError):
    code = 'NOT_FOUND'
    status = 404
    default_message = 'Not found'


class Expired(MatchError):
    code = 'EXPIRED'
    status = 410
    default_message = 'This joining code has expired'


class SelfJoin(MatchError):
    code = 'SELF_JOIN'
    status = 400
    default_message = 'You cannot join your own game'


class AlreadyMatched(MatchError):
    code = 'ALREADY_MATCHED'
    status = 409
    default_message = 'This game is already in progress'


class ConstraintMismatch(MatchError):
    code = 'CONSTRAINT_MISMATCH'
    status = 400
    default_message = 'Both players must have the same difficulty and topic to join the match'


class UnsupportedLanguage(MatchError):
    code = 'UNSUPPORTED_LANGUAGE'
    status = 400
    default_message = 'Unsupported language'


class NoTestCases(MatchError):
    code = 'NO_TEST_CASES'
    status = 500
    default_message = 'No valid test cases found'


class PersistenceError(MatchError):
    code = 'PERSISTENCE_ERROR'
    status = 500
    default_message = 'Database operation failed'


class ExecutionTimeout(MatchError):
    code = 'EXECUTION_TIMEOUT'
    status = 504
    default_message = 'Timeout waiting for execution result'


class ExecutionCollaboratorError(MatchError):
    code = 'EXECUTION_COLLABORATOR_ERROR'
    status = 502
    default_message = 'Execution service failed'


class InvalidFormat(MatchError):
    code = 'INVALID_FORMAT'
    status = 400
    default_message = 'Invalid message format'


class InsufficientPlayers(MatchError):
    code = 'INSUFFICIENT_PLAYERS'
    status = 409
    default_message = 'Waiting for another player before sharing the code'
