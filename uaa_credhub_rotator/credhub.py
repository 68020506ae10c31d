# -*- coding: utf-8 -*-
"""Client for the CredHub data endpoint."""

import json
import logging
from dataclasses import asdict, dataclass, field

from .exceptions import UpdateError
from .transport import ServiceClient

DATA_PATH = "/v1/data"
CREDHUB_SUCCESS = (200, 201)


@dataclass(frozen=True)
class SecretRecord:
    name: str
    value: str = field(repr=False)
    type: str = "password"


class CredHubClient(ServiceClient):

    def __init__(self, plan, deadline=None):
        super(CredHubClient, self).__init__(plan.credhub_url, "CredHub", plan, deadline)

    def set_password(self, token, name, value, inconsistent=True, stage="update-credhub"):
        """Write a password credential at name, never retried.

        A failure here normally means UAA already holds the new value so the error is
        flagged inconsistent unless the caller says otherwise.
        """
        record = SecretRecord(name=name, value=value)
        logging.getLogger(__name__).debug(f"Setting CredHub {record.type} credential {name}")
        response = self.request("PUT",
                                DATA_PATH,
                                idempotent=False,
                                headers={"Authorization": f"Bearer {token}",
                                         "Content-Type": "application/json"},
                                data=json.dumps(asdict(record)))
        if response.status not in CREDHUB_SUCCESS:
            raise UpdateError(stage,
                              name,
                              response.status,
                              response.sanitized_body(token, value),
                              inconsistent=inconsistent)
        return response
