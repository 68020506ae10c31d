# -*- coding: utf-8 -*-
"""Client for the handful of UAA endpoints a rotation needs."""

import json
import logging
from urllib.parse import quote

from .exceptions import AuthError, NotFoundError, UpdateError
from .transport import ServiceClient

TOKEN_PATH = "/oauth/token"
CLIENTS_PATH = "/oauth/clients/{}"
INFO_PATH = "/info"


class UAAClient(ServiceClient):

    def __init__(self, plan, deadline=None):
        super(UAAClient, self).__init__(plan.uaa_url, "UAA", plan, deadline)

    def probe(self):
        """Unauthenticated request to show UAA is reachable.

        Any HTTP status counts as reachable, only transport failures raise
        (as ConnectivityError).
        """
        response = self.request("GET", INFO_PATH)
        logging.getLogger(__name__).info(f"Connectivity to UAA at {self.base_url} confirmed")
        return response

    def request_token(self, client_id, client_secret):
        """Client credentials grant returning the raw HttpResponse."""
        return self.request("POST",
                            TOKEN_PATH,
                            auth=(client_id, client_secret),
                            data={"grant_type": "client_credentials"})

    def fetch_token(self, client_id, client_secret, service="UAA", error=None):
        """Client credentials grant for client_id returning the access token.

        Raises AuthError tagged with service, or whatever error factory is passed in,
        when the grant is refused or the response carries no access_token.
        """
        if error is None:
            def error(status, body):
                return AuthError(service, client_id, status, body)

        logging.getLogger(__name__).debug(f"Requesting {service} token for client {client_id}")
        response = self.request_token(client_id, client_secret)
        body = response.sanitized_body(client_secret)
        if not response.ok:
            raise error(response.status, body)

        payload = response.json()
        token = payload.get("access_token") if isinstance(payload, dict) else None
        if not token or not isinstance(token, str):
            raise error(response.status, body)
        return token

    def _client_path(self, client_id):
        return CLIENTS_PATH.format(quote(client_id, safe=""))

    def get_client(self, token, client_id):
        """Current registration of client_id as a dict."""
        response = self.request("GET",
                                self._client_path(client_id),
                                headers={"Authorization": f"Bearer {token}"})
        body = response.sanitized_body(token)
        if response.status == 404:
            raise NotFoundError(client_id, response.status, body)
        if response.status in (401, 403):
            raise AuthError(self.service, client_id, response.status, body)
        if not response.ok:
            raise UpdateError("fetch", client_id, response.status, body)

        document = response.json()
        if not isinstance(document, dict):
            raise UpdateError("fetch", client_id, response.status, "response was not a json object")
        return document

    def update_client(self, token, client_id, document, secret=None, stage="update-uaa"):
        """PUT the client registration back, never retried."""
        response = self.request("PUT",
                                self._client_path(client_id),
                                idempotent=False,
                                headers={"Authorization": f"Bearer {token}",
                                         "Content-Type": "application/json"},
                                data=json.dumps(document))
        if not response.ok:
            raise UpdateError(stage,
                              client_id,
                              response.status,
                              response.sanitized_body(token, secret))
        return response
