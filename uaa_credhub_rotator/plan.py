# -*- coding: utf-8 -*-
"""
The run configuration for a rotation.

A RotationPlan is read once from the environment (and optional command line overrides)
and then handed unchanged to every stage of the rotation. Nothing reads os.environ after
the plan has been built.

Environment variables understood

UAA_URL            base url of the UAA (required)
CREDHUB_URL        base url of CredHub, defaults to UAA_URL
CLIENT_ID          admin client used to update the target client (default admin)
CLIENT_SECRET      secret of the admin client (required)
TARGET_CLIENT      client whose secret is rotated (default concourse_client)
CREDHUB_CLIENT     client used to write to CredHub (default credhub_admin_client)
CREDHUB_SECRET     secret of the CredHub client (required)
CREDHUB_PATH       CredHub credential name (default /concourse/main/uaa_client_secret)
SKIP_TLS_VERIFY    disable TLS certificate checks (default false)
CONNECT_TIMEOUT    per request connect timeout seconds (default 10)
READ_TIMEOUT       per request read timeout seconds (default 30)
ROTATION_DEADLINE  overall deadline for the run in seconds (default 60)
HTTP_RETRIES       retries of refused or reset connections on read only calls (default 2)
SETTLE_SECONDS     pause after the UAA update before the secret is relied on (default 2)
SECRET_LENGTH      length of generated secrets, minimum 25 (default 32)
SKIP_PROBE         skip the connectivity probe (default false)
ROLLBACK           restore the old secret on a late failure (default true)
DEBUG              debug logging (default false)
"""

import dataclasses
import os
from dataclasses import dataclass, field

from .exceptions import ConfigError

DEFAULT_CLIENT_ID = "admin"
DEFAULT_TARGET_CLIENT = "concourse_client"
DEFAULT_CREDHUB_CLIENT = "credhub_admin_client"
DEFAULT_CREDHUB_PATH = "/concourse/main/uaa_client_secret"
MIN_SECRET_LENGTH = 25

_TRUE = ("1", "true", "yes", "on")
_FALSE = ("0", "false", "no", "off", "")


def _env_bool(environ, name, default):
    value = environ.get(name)
    if value is None:
        return default
    value = value.strip().lower()
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    raise ConfigError(f"{name} must be a boolean got {value!r}")


def _env_number(environ, name, default, convert=float):
    value = environ.get(name)
    if value is None or value.strip() == "":
        return default
    try:
        return convert(value.strip())
    except ValueError:
        raise ConfigError(f"{name} must be a number got {value!r}") from None


def _strip_url(url):
    return url.strip().rstrip("/") if url else ""


@dataclass(frozen=True)
class RotationPlan:
    uaa_url: str
    client_secret: str = field(repr=False)
    credhub_secret: str = field(repr=False)
    credhub_url: str = ""
    client_id: str = DEFAULT_CLIENT_ID
    target_client: str = DEFAULT_TARGET_CLIENT
    credhub_client: str = DEFAULT_CREDHUB_CLIENT
    credhub_path: str = DEFAULT_CREDHUB_PATH
    skip_tls_verify: bool = False
    connect_timeout: float = 10.0
    read_timeout: float = 30.0
    deadline: float = 60.0
    retries: int = 2
    settle_seconds: float = 2.0
    secret_length: int = 32
    probe: bool = True
    rollback: bool = True
    debug: bool = False

    def __post_init__(self):
        # frozen so normalise through object.__setattr__
        object.__setattr__(self, "uaa_url", _strip_url(self.uaa_url))
        object.__setattr__(self, "credhub_url",
                           _strip_url(self.credhub_url) or self.uaa_url)

    @classmethod
    def from_environ(cls, environ=None, **overrides):
        """Build a plan from environment variables.

        Keyword overrides that are None are ignored so callers can pass optional
        command line values straight through.
        """
        if environ is None:
            environ = os.environ

        values = dict(
            uaa_url=environ.get("UAA_URL", ""),
            credhub_url=environ.get("CREDHUB_URL", ""),
            client_id=environ.get("CLIENT_ID") or DEFAULT_CLIENT_ID,
            client_secret=environ.get("CLIENT_SECRET", ""),
            target_client=environ.get("TARGET_CLIENT") or DEFAULT_TARGET_CLIENT,
            credhub_client=environ.get("CREDHUB_CLIENT") or DEFAULT_CREDHUB_CLIENT,
            credhub_secret=environ.get("CREDHUB_SECRET", ""),
            credhub_path=environ.get("CREDHUB_PATH") or DEFAULT_CREDHUB_PATH,
            skip_tls_verify=_env_bool(environ, "SKIP_TLS_VERIFY", False),
            connect_timeout=_env_number(environ, "CONNECT_TIMEOUT", 10.0),
            read_timeout=_env_number(environ, "READ_TIMEOUT", 30.0),
            deadline=_env_number(environ, "ROTATION_DEADLINE", 60.0),
            retries=_env_number(environ, "HTTP_RETRIES", 2, int),
            settle_seconds=_env_number(environ, "SETTLE_SECONDS", 2.0),
            secret_length=_env_number(environ, "SECRET_LENGTH", 32, int),
            probe=not _env_bool(environ, "SKIP_PROBE", False),
            rollback=_env_bool(environ, "ROLLBACK", True),
            debug=_env_bool(environ, "DEBUG", False),
        )
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)

    def with_overrides(self, **overrides):
        """Copy of this plan with the non None overrides applied."""
        overrides = {k: v for k, v in overrides.items() if v is not None}
        if "uaa_url" in overrides and "credhub_url" not in overrides \
                and self.credhub_url == self.uaa_url:
            overrides["credhub_url"] = ""
        return dataclasses.replace(self, **overrides)

    def validate(self):
        """Raise ConfigError for the first problem found, before any network call is made."""
        required = [
            ("UAA_URL", self.uaa_url),
            ("CLIENT_ID", self.client_id),
            ("CLIENT_SECRET", self.client_secret),
            ("TARGET_CLIENT", self.target_client),
            ("CREDHUB_CLIENT", self.credhub_client),
            ("CREDHUB_SECRET", self.credhub_secret),
            ("CREDHUB_PATH", self.credhub_path),
        ]
        for name, value in required:
            if not value or not str(value).strip():
                raise ConfigError(f"{name} is required")

        # client ids and secrets travel in a Basic auth header which only carries latin-1
        for name, value in required[1:6]:
            try:
                value.encode("latin-1")
            except UnicodeEncodeError:
                raise ConfigError(f"{name} contains characters that cannot be sent in "
                                  f"HTTP Basic authentication") from None

        for name, url in [("UAA_URL", self.uaa_url), ("CREDHUB_URL", self.credhub_url)]:
            if not url.startswith(("https://", "http://")):
                raise ConfigError(f"{name} must be an http(s) url got {url!r}")

        if "/" in self.target_client:
            raise ConfigError(f"TARGET_CLIENT {self.target_client!r} must not contain '/'")

        for name, value in [("CONNECT_TIMEOUT", self.connect_timeout),
                            ("READ_TIMEOUT", self.read_timeout),
                            ("ROTATION_DEADLINE", self.deadline)]:
            if value <= 0:
                raise ConfigError(f"{name} must be greater than 0")

        if self.retries < 0:
            raise ConfigError("HTTP_RETRIES must not be negative")
        if self.settle_seconds < 0:
            raise ConfigError("SETTLE_SECONDS must not be negative")
        if self.secret_length < MIN_SECRET_LENGTH:
            raise ConfigError(f"SECRET_LENGTH must be at least {MIN_SECRET_LENGTH}")
        return self
