# -*- coding: utf-8 -*-
"""HTTP plumbing shared by the UAA and CredHub clients

Every request carries an explicit (connect, read) timeout clamped to what is left of the
overall run deadline. Read only calls are retried when the connection is refused or reset,
each attempt with a freshly clamped timeout. Connect timeouts and mutating calls are never
retried.
"""

import json
import logging
import re
import time
from dataclasses import dataclass

import requests
import urllib3
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from ._version import __version__
from .exceptions import ConnectivityError, RotationTimeoutError

REDACTED = "*********"
RETRY_BACKOFF_SECONDS = 0.5

_SENSITIVE_FIELDS = re.compile(
    r'("(?:access_token|refresh_token|id_token|client_secret|value|password)"\s*:\s*)"[^"]*"')


def redact(text, *secrets):
    """Replace secret values and well known sensitive json fields in text."""
    if text is None:
        return ""
    if not isinstance(text, str):
        text = str(text)
    for secret in secrets:
        if secret:
            text = text.replace(secret, REDACTED)
    return _SENSITIVE_FIELDS.sub(r'\1"' + REDACTED + '"', text)


@dataclass(frozen=True)
class HttpResponse:
    method: str
    url: str
    status: int
    body: str

    @property
    def ok(self):
        return 200 <= self.status < 300

    def json(self):
        """Body parsed as json or None if it is not json."""
        try:
            return json.loads(self.body)
        except ValueError:
            return None

    def sanitized_body(self, *secrets):
        return redact(self.body, *secrets)


class Deadline:
    """An overall budget for the run measured on a monotonic clock."""

    def __init__(self, seconds, clock=time.monotonic):
        self._seconds = seconds
        self._clock = clock
        self._expires = clock() + seconds

    @property
    def seconds(self):
        return self._seconds

    @property
    def remaining(self):
        return max(self._expires - self._clock(), 0.0)

    @property
    def expired(self):
        return self.remaining <= 0.0

    def extend(self, seconds):
        """Make sure at least seconds remain from now."""
        self._expires = max(self._expires, self._clock() + seconds)

    def check(self):
        if self.expired:
            raise RotationTimeoutError(self._seconds)

    def timeout(self, connect, read):
        """A requests timeout tuple that cannot outlive the deadline."""
        self.check()
        remaining = self.remaining
        return min(connect, remaining), min(read, remaining)


def _no_retry():
    # retries happen in ServiceClient.request so each attempt gets a fresh clamped timeout
    return Retry(total=0, read=False, redirect=False, raise_on_status=False)


def _retryable(error):
    """Refused or reset connections only, never a connect timeout or a TLS failure."""
    return isinstance(error, requests.exceptions.ConnectionError) and not isinstance(
        error, (requests.exceptions.ConnectTimeout,
                requests.exceptions.SSLError,
                requests.exceptions.ProxyError))


class ServiceClient:
    """Base for the clients talking to an external HTTP service."""

    def __init__(self, base_url, service, plan, deadline=None):
        self._base_url = base_url.rstrip("/")
        self._service = service
        self._plan = plan
        self._deadline = deadline if deadline is not None else Deadline(plan.deadline)
        self._session = self._create_session(HTTPAdapter(max_retries=_no_retry()))

        if plan.skip_tls_verify:
            urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)
            logging.getLogger(__name__).warning(
                f"TLS certificate verification is DISABLED for {service} at {self._base_url}")

    def _create_session(self, adapter):
        session = requests.Session()
        session.mount("http://", adapter)
        session.mount("https://", adapter)
        session.headers.update({
            "Accept": "application/json",
            "User-Agent": f"uaa-credhub-rotator/{__version__}",
        })
        session.verify = not self._plan.skip_tls_verify
        return session

    @property
    def base_url(self):
        return self._base_url

    @property
    def service(self):
        return self._service

    @property
    def plan(self):
        return self._plan

    @property
    def deadline(self):
        return self._deadline

    def url(self, path):
        return f"{self._base_url}/{path.lstrip('/')}"

    def request(self, method, path, idempotent=True, **kwargs):
        """Issue a request and return an HttpResponse whatever its status.

        Idempotent calls are retried up to plan.retries times when the connection is
        refused or reset. Every attempt gets its own timeout clamped to the deadline and
        no attempt starts once the deadline has passed.

        Raises ConnectivityError on transport failures and RotationTimeoutError when the
        overall deadline runs out.
        """
        url = self.url(path)
        attempts = self._plan.retries + 1 if idempotent else 1

        for attempt in range(attempts):
            timeout = self._deadline.timeout(self._plan.connect_timeout, self._plan.read_timeout)
            logging.getLogger(__name__).debug(f"{self._service} {method} {url}")
            try:
                response = self._session.request(method, url, timeout=timeout, **kwargs)
            except requests.exceptions.RequestException as e:
                # clamped timeouts mean a timeout here may really be the deadline
                if self._deadline.expired:
                    raise RotationTimeoutError(self._deadline.seconds) from e
                logging.getLogger(__name__).debug(f"{self._service} {method} {url} failed {e}")
                if attempt + 1 < attempts and _retryable(e):
                    time.sleep(min(RETRY_BACKOFF_SECONDS * 2 ** attempt, self._deadline.remaining))
                    continue
                raise ConnectivityError(self._service, url, e) from e

            logging.getLogger(__name__).debug(
                f"{self._service} {method} {url} HTTP {response.status_code}")
            return HttpResponse(method=method, url=url, status=response.status_code,
                                body=response.text)

    def close(self):
        self._session.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
