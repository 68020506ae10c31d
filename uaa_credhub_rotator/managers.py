# -*- coding: utf-8 -*-
"""
Rotation of a UAA client secret mirrored into CredHub.

A run moves through these stages, any failure aborts the run

config          the plan is validated, no network traffic yet
connectivity    unauthenticated probe of UAA /info
auth            admin client credentials grant
fetch           current registration of the target client is read
update-uaa      registration is written back with the new client_secret
update-credhub  CredHub token is obtained and the new secret stored at the credential path
verify          client credentials grant as the target client with the new secret

UAA is always written before CredHub so CredHub, which consumers read, only ever holds a
secret UAA has accepted. Once update-uaa has succeeded any later failure leaves the two
stores disagreeing and is reported as inconsistent.

When the registration read in the fetch stage carries the old client_secret any failure after
update-uaa triggers a best effort rollback that writes the old secret back.
Rollback failures are reported next to the original error and never replace it.
"""

import enum
import logging
import secrets
import string
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone

from .credhub import CredHubClient
from .exceptions import SecretRotatorError, ConfigError, ConnectivityError, AuthError, \
    NotFoundError, UpdateError, VerificationError, RotationTimeoutError
from .plan import MIN_SECRET_LENGTH
from .transport import Deadline
from .uaa import UAAClient


class RotationStage(enum.Enum):
    CONFIG = "config"
    CONNECTIVITY = "connectivity"
    AUTH = "auth"
    FETCH = "fetch"
    UPDATE_UAA = "update-uaa"
    UPDATE_CREDHUB = "update-credhub"
    VERIFY = "verify"
    TIMEOUT = "timeout"


EXIT_CODES = {
    None: 0,
    RotationStage.CONFIG: 2,
    RotationStage.CONNECTIVITY: 3,
    RotationStage.AUTH: 4,
    RotationStage.FETCH: 5,
    RotationStage.UPDATE_UAA: 6,
    RotationStage.UPDATE_CREDHUB: 7,
    RotationStage.VERIFY: 8,
    RotationStage.TIMEOUT: 9,
}

SECRET_ALPHABET = string.ascii_letters + string.digits
ROLLBACK_GRACE_SECONDS = 30.0


def generate_client_secret(length=32, exclude_characters=None):
    """Generates a cryptographically secure random client secret.

    The secret consists of ASCII letters and digits only so it survives form encoding,
    json and shell quoting untouched. At the minimum length of 25 that is still over
    140 bits of randomness.

    Args:
        length (int): number of characters, at least 25.
        exclude_characters (str, optional): characters never to use.

    Returns:
        str: the new secret.
    """
    if length < MIN_SECRET_LENGTH:
        raise ValueError(f"Client secrets must be at least {MIN_SECRET_LENGTH} characters")
    letters = SECRET_ALPHABET
    if exclude_characters:
        letters = "".join(c for c in letters if c not in exclude_characters)
    return "".join(secrets.choice(letters) for _ in range(length))


def stage_of(error):
    """The RotationStage a SecretRotatorError belongs to."""
    if isinstance(error, ConfigError):
        return RotationStage.CONFIG
    if isinstance(error, ConnectivityError):
        return RotationStage.CONNECTIVITY
    if isinstance(error, RotationTimeoutError):
        return RotationStage.TIMEOUT
    if isinstance(error, AuthError):
        return RotationStage.AUTH
    if isinstance(error, NotFoundError):
        return RotationStage.FETCH
    if isinstance(error, VerificationError):
        return RotationStage.VERIFY
    if isinstance(error, UpdateError):
        return RotationStage(error.stage)
    raise ValueError(f"No rotation stage for {type(error).__name__}")


@dataclass
class RotationResult:
    target_client: str
    credhub_path: str
    success: bool = False
    stage: RotationStage = None
    error: SecretRotatorError = None
    inconsistent: bool = False
    rollback_attempted: bool = False
    rollback_succeeded: bool = False
    rollback_error: SecretRotatorError = None
    remediation: str = None
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: datetime = None

    @property
    def exit_code(self):
        return EXIT_CODES[None] if self.success else EXIT_CODES[self.stage]

    @property
    def duration(self):
        if self.finished_at is None:
            return None
        return (self.finished_at - self.started_at).total_seconds()


class CredentialRotator:
    """Drives one rotation of the target client's secret.

    Attributes:
        plan (RotationPlan): configuration for the run, never modified.
    """

    def __init__(self, plan, uaa=None, credhub=None, sleep=time.sleep, clock=time.monotonic):
        """Initializes the CredentialRotator.

        Args:
            plan (RotationPlan): the run configuration.
            uaa (UAAClient, optional): client to use instead of one built from the plan.
            credhub (CredHubClient, optional): client to use instead of one built from the plan.
            sleep (callable, optional): used for the settle delay after the UAA update.
            clock (callable, optional): monotonic clock the overall deadline is measured on.
        """
        self._plan = plan
        self._uaa = uaa
        self._credhub = credhub
        self._sleep = sleep
        self._clock = clock

    @property
    def plan(self):
        return self._plan

    def rotate(self):
        """Runs every stage and returns a RotationResult, it does not raise for stage failures.

        Each call generates a fresh secret, rerunning after a failure starts a whole new
        rotation rather than resuming the failed one.
        """
        plan = self._plan
        result = RotationResult(target_client=plan.target_client, credhub_path=plan.credhub_path)
        state = _RunState()
        owned = []
        uaa = credhub = deadline = None
        try:
            plan.validate()
            deadline = Deadline(plan.deadline, self._clock)
            uaa = self._uaa
            if uaa is None:
                uaa = UAAClient(plan, deadline)
                owned.append(uaa)
            credhub = self._credhub
            if credhub is None:
                credhub = CredHubClient(plan, deadline)
                owned.append(credhub)
            self._run(plan, uaa, credhub, deadline, state)
            result.success = True
            logging.getLogger(__name__).info(
                f"Credential rotation for client {plan.target_client} completed successfully")
        except SecretRotatorError as e:
            result.stage = stage_of(e)
            result.error = e
            result.inconsistent = state.uaa_updated
            logging.getLogger(__name__).error(f"Rotation failed at stage {result.stage.value}: {e}")
            if state.uaa_updated:
                # a rollback has to be able to run even when the deadline is what failed
                deadline.extend(ROLLBACK_GRACE_SECONDS)
                self._rollback(plan, uaa, credhub, state, result)
            result.remediation = self._remediation(plan, result, state)
            if result.remediation:
                logging.getLogger(__name__).error(result.remediation)
        finally:
            for client in owned:
                client.close()
            result.finished_at = datetime.now(timezone.utc)
        return result

    def _run(self, plan, uaa, credhub, deadline, state):
        log = logging.getLogger(__name__)
        log.info(f"Starting credential rotation for client {plan.target_client} "
                 f"CredHub path {plan.credhub_path}")

        if plan.probe:
            uaa.probe()

        log.info("Authenticating with UAA admin client")
        state.admin_token = uaa.fetch_token(plan.client_id, plan.client_secret, service="UAA")

        new_secret = generate_client_secret(plan.secret_length)
        log.info("Generated new secret")

        deadline.check()
        log.info(f"Retrieving current configuration for client {plan.target_client}")
        document = uaa.get_client(state.admin_token, plan.target_client)
        state.document = document
        state.old_secret = document.get("client_secret") or None

        log.info(f"Updating UAA client secret for {plan.target_client}")
        uaa.update_client(state.admin_token,
                          plan.target_client,
                          dict(document, client_secret=new_secret),
                          secret=new_secret)
        state.uaa_updated = True
        log.info(f"Successfully updated UAA client secret for {plan.target_client}")

        if plan.settle_seconds:
            deadline.check()
            self._sleep(min(plan.settle_seconds, deadline.remaining))

        deadline.check()
        log.info(f"Updating CredHub secret at {plan.credhub_path}")
        state.credhub_token = uaa.fetch_token(plan.credhub_client, plan.credhub_secret,
                                              service="CredHub")
        credhub.set_password(state.credhub_token, plan.credhub_path, new_secret)
        state.credhub_updated = True
        log.info(f"Successfully updated CredHub secret at {plan.credhub_path}")

        deadline.check()
        log.info(f"Verifying new secret for client {plan.target_client}")

        def verification_failed(status, body):
            return VerificationError(plan.target_client, status, body)

        uaa.fetch_token(plan.target_client, new_secret, error=verification_failed)
        log.info("New credentials verified successfully")

    def _rollback(self, plan, uaa, credhub, state, result):
        log = logging.getLogger(__name__)
        if not plan.rollback:
            log.warning("Rollback disabled, the new secret has been left in place")
            return
        if not state.old_secret:
            log.warning(f"Cannot roll back, UAA did not return the previous secret "
                        f"for client {plan.target_client}")
            return

        result.rollback_attempted = True
        log.warning(f"Rolling back UAA client secret for {plan.target_client}")
        try:
            uaa.update_client(state.admin_token,
                              plan.target_client,
                              dict(state.document, client_secret=state.old_secret),
                              secret=state.old_secret,
                              stage="update-uaa")
            if state.credhub_updated:
                log.warning(f"Rolling back CredHub secret at {plan.credhub_path}")
                credhub.set_password(state.credhub_token, plan.credhub_path, state.old_secret)
        except SecretRotatorError as e:
            result.rollback_error = e
            log.error(f"Rollback failed: {e}")
            return

        result.rollback_succeeded = True
        log.warning("Rollback restored the previous secret")

    @staticmethod
    def _remediation(plan, result, state):
        if not result.inconsistent:
            return None

        if result.rollback_succeeded:
            return (f"The previous secret was restored for UAA client {plan.target_client}"
                    f" and CredHub {plan.credhub_path}. Investigate the {result.stage.value}"
                    f" failure before rerunning the rotation.")

        if result.rollback_error is not None:
            prefix = "Rollback failed, manual action required. "
        else:
            prefix = "Manual action required. "

        if state.credhub_updated:
            return (prefix + f"UAA client {plan.target_client} and CredHub {plan.credhub_path}"
                    f" may hold a new secret that does not authenticate. Check the client"
                    f" registration in UAA and rerun the rotation.")

        return (prefix + f"UAA client {plan.target_client} holds a new secret but CredHub"
                f" {plan.credhub_path} still has the old one, consumers reading CredHub will"
                f" fail to authenticate. Rerun the rotation once CredHub is reachable.")


@dataclass
class _RunState:
    admin_token: str = field(default=None, repr=False)
    credhub_token: str = field(default=None, repr=False)
    document: dict = field(default=None, repr=False)
    old_secret: str = field(default=None, repr=False)
    uaa_updated: bool = False
    credhub_updated: bool = False


def rotate(plan, **kwargs):
    """Rotate with a CredentialRotator built for plan."""
    return CredentialRotator(plan, **kwargs).rotate()
