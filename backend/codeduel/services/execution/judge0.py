"""Client for the Judge0 code-execution service (RapidAPI flavour)."""

import logging
import urllib.parse

import requests
from tenacity import (
    RetryError,
    Retrying,
    retry_if_exception_type,
    retry_if_result,
    stop_after_delay,
    wait_fixed,
)

from codeduel.errors import ExecutionCollaboratorError, ExecutionTimeout, UnsupportedLanguage

logger = logging.getLogger(__name__)

LANGUAGE_IDS = {
    'PYTHON': 71,
    'CPP': 54,
    'JAVASCRIPT': 63,
    'JAVA': 62,
    'C': 50,
}

# Judge0 status ids: 1 in queue, 2 processing, 3 accepted, >3 finished with a verdict
STATUS_ACCEPTED = 3


def language_id(language):
    lang_id = LANGUAGE_IDS.get((language or '').strip().upper())
    if lang_id is None:
        raise UnsupportedLanguage(f'Unsupported language: {language}')
    return lang_id


def is_finished(result):
    status = (result or {}).get('status') or {}
    return int(status.get('id') or 0) > 2


class Judge0Client:
    def __init__(self, url, api_key='', host=None, timeout=10.0, session=None, sleep=None):
        self.url = url.rstrip('/') + '/'
        self.timeout = timeout
        self.session = session or requests.Session()
        self.headers = {'Content-Type': 'application/json'}
        if api_key:
            self.headers['X-RapidAPI-Key'] = api_key
        if host:
            self.headers['X-RapidAPI-Host'] = host
        # Injected in tests to poll without real delays
        self._sleep = sleep

    @classmethod
    def from_config(cls, config):
        return cls(
            config.get('JUDGE0_URL', 'https://judge0-ce.p.rapidapi.com'),
            api_key=config.get('RAPIDAPI_KEY', ''),
            host=config.get('JUDGE0_HOST'),
            timeout=float(config.get('JUDGE_REQUEST_TIMEOUT_SEC', 10)),
        )

    def _endpoint(self, path):
        return urllib.parse.urljoin(self.url, path)

    def submit(self, source_code, lang_id, stdin, expected_output):
        """Queue one run; returns the Judge0 token."""
        try:
            r = self.session.post(
                self._endpoint('submissions?base64_encoded=false'),
                json={
                    'source_code': source_code,
                    'language_id': lang_id,
                    'stdin': stdin,
                    'expected_output': expected_output,
                },
                headers=self.headers,
                timeout=self.timeout,
            )
            r.raise_for_status()
            token = r.json().get('token')
        except (requests.RequestException, ValueError) as exc:
            raise ExecutionCollaboratorError(f'Submission failed: {exc}') from exc
        if not token:
            raise ExecutionCollaboratorError('Execution service returned no token')
        return token

    def fetch(self, token):
        r = self.session.get(
            self._endpoint(f'submissions/{token}?base64_encoded=false'),
            headers=self.headers,
            timeout=self.timeout,
        )
        r.raise_for_status()
        return r.json()

    def wait_for_result(self, token, max_wait=30.0, poll_interval=1.0):
        """Poll until the run finishes; ExecutionTimeout once ``max_wait`` elapses.

        Transport errors while polling are retried like an unfinished run.
        """
        kwargs = {}
        if self._sleep is not None:
            kwargs['sleep'] = self._sleep
        retrying = Retrying(
            stop=stop_after_delay(max_wait),
            wait=wait_fixed(poll_interval),
            retry=(retry_if_exception_type(requests.RequestException)
                   | retry_if_result(lambda result: not is_finished(result))),
            **kwargs,
        )
        try:
            return retrying(self.fetch, token)
        except RetryError as exc:
            logger.warning(f"[judge-timeout] token={token} max_wait={max_wait}s")
            raise ExecutionTimeout() from exc
