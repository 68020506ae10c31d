# -*- coding: utf-8 -*-
"""Command line entry point

    rotate-uaa-credentials [TARGET_CLIENT] [CREDHUB_PATH] [--debug] [--skip-probe]
                           [--no-rollback] [--skip-tls-verify]

Everything else is read from the environment, see uaa_credhub_rotator.plan. The exit
code is 0 on success, otherwise it names the stage that failed

2 config, 3 connectivity, 4 auth, 5 fetch, 6 update-uaa, 7 update-credhub, 8 verify,
9 timeout
"""

import argparse
import logging

from .exceptions import ConfigError
from .managers import CredentialRotator, EXIT_CODES, RotationStage
from .plan import RotationPlan

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        prog="rotate-uaa-credentials",
        description="Rotate a UAA client secret and mirror the new value into CredHub")
    parser.add_argument("target_client", nargs="?", default=None,
                        help="UAA client to rotate, overrides TARGET_CLIENT")
    parser.add_argument("credhub_path", nargs="?", default=None,
                        help="CredHub credential name, overrides CREDHUB_PATH")
    parser.add_argument("--debug", action="store_true", default=None,
                        help="log every HTTP exchange, overrides DEBUG")
    parser.add_argument("--skip-probe", action="store_false", dest="probe", default=None,
                        help="do not probe UAA /info before rotating")
    parser.add_argument("--no-rollback", action="store_false", dest="rollback", default=None,
                        help="leave the new secret in place when a late stage fails")
    parser.add_argument("--skip-tls-verify", action="store_true", dest="skip_tls_verify",
                        default=None,
                        help="DISABLE TLS certificate verification, overrides SKIP_TLS_VERIFY")
    return parser.parse_args(argv)


def configure_logging(debug):
    logging.basicConfig(level=logging.DEBUG if debug else logging.INFO, format=LOG_FORMAT)
    # urllib3 connection chatter is noise next to our own debug lines
    logging.getLogger("urllib3").setLevel(logging.INFO if debug else logging.WARNING)


def log_banner(plan):
    log = logging.getLogger(__name__)
    log.info("UAA Credential Rotation")
    log.info(f"Target Client: {plan.target_client}")
    log.info(f"CredHub Path: {plan.credhub_path}")
    log.info(f"UAA URL: {plan.uaa_url}")
    log.info(f"CredHub URL: {plan.credhub_url}")
    log.debug(f"Admin client: {plan.client_id} CredHub client: {plan.credhub_client}")
    log.debug(f"Timeouts connect {plan.connect_timeout}s read {plan.read_timeout}s "
              f"deadline {plan.deadline}s retries {plan.retries}")
    if plan.skip_tls_verify:
        log.warning("TLS Verification: DISABLED")
    else:
        log.debug("TLS Verification: ENABLED")


def main(argv=None, environ=None):
    args = parse_args(argv)
    try:
        plan = RotationPlan.from_environ(environ).with_overrides(
            target_client=args.target_client,
            credhub_path=args.credhub_path,
            debug=args.debug,
            probe=args.probe,
            rollback=args.rollback,
            skip_tls_verify=args.skip_tls_verify)
    except ConfigError as e:
        configure_logging(args.debug)
        logging.getLogger(__name__).error(str(e))
        return EXIT_CODES[RotationStage.CONFIG]

    configure_logging(plan.debug)
    log_banner(plan)

    result = CredentialRotator(plan).rotate()
    if result.success:
        logging.getLogger(__name__).info(f"Rotation finished in {result.duration:.1f}s")
    else:
        logging.getLogger(__name__).error(
            f"Rotation failed at stage {result.stage.value} exit code {result.exit_code}")
        if result.rollback_attempted and not result.rollback_succeeded:
            logging.getLogger(__name__).error(f"Rollback error: {result.rollback_error}")
    return result.exit_code
