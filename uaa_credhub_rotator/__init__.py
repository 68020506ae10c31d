# -*- coding: utf-8 -*-
"""uaa_credhub_rotator

Rotate the secret of a UAA OAuth2 client, mirror the new value into CredHub and check the
new secret authenticates, rolling back where the old secret is known.

"""

from __future__ import absolute_import

from uaa_credhub_rotator.exceptions import SecretRotatorError, \
    ConfigError, \
    ConnectivityError, \
    HttpStatusError, \
    AuthError, \
    NotFoundError, \
    UpdateError, \
    VerificationError, \
    RotationTimeoutError
from uaa_credhub_rotator.plan import RotationPlan
from uaa_credhub_rotator.transport import HttpResponse, Deadline, redact
from uaa_credhub_rotator.uaa import UAAClient
from uaa_credhub_rotator.credhub import CredHubClient, SecretRecord
from uaa_credhub_rotator.managers import CredentialRotator, \
    RotationResult, \
    RotationStage, \
    generate_client_secret, \
    rotate
from ._version import __version__

__all__ = ["__version__",
           "SecretRotatorError",
           "ConfigError",
           "ConnectivityError",
           "HttpStatusError",
           "AuthError",
           "NotFoundError",
           "UpdateError",
           "VerificationError",
           "RotationTimeoutError",
           "RotationPlan",
           "HttpResponse",
           "Deadline",
           "redact",
           "UAAClient",
           "CredHubClient",
           "SecretRecord",
           "CredentialRotator",
           "RotationResult",
           "RotationStage",
           "generate_client_secret",
           "rotate"]
