# -*- coding: utf-8 -*-
"""
Runs whole rotations, through the command line entry point, against a stub server that
plays both UAA and CredHub.

"""
import base64
import json
import logging
import socket
import threading
import time
import unittest
import uuid
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from time import perf_counter
from urllib.parse import parse_qs

from uaa_credhub_rotator import *
from uaa_credhub_rotator.cli import main


def setup_module():
    logging.basicConfig(level=logging.DEBUG)


INITIAL_SECRET = "initial-secret-for-my-app"


class StubState:

    def __init__(self):
        self.secrets = {"admin": "s3cr3t",
                        "credhub_admin_client": "credhub-s3cr3t",
                        "my-app": INITIAL_SECRET,
                        "other-app": INITIAL_SECRET}
        self.registrations = {name: {"client_id": name,
                                     "scope": ["uaa.none"],
                                     "authorized_grant_types": ["client_credentials"]}
                              for name in ("my-app", "other-app")}
        self.tokens = {}
        self.credhub = {}
        self.requests = []
        self.return_secret = True
        self.credhub_status = None
        self.lock = threading.Lock()


class StubHandler(BaseHTTPRequestHandler):

    def log_message(self, format, *args):
        logging.getLogger(__name__).debug("stub " + format % args)

    @property
    def state(self):
        return self.server.state

    def _send(self, status, payload):
        body = json.dumps(payload).encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def _body(self):
        length = int(self.headers.get("Content-Length") or 0)
        return self.rfile.read(length).decode("utf-8")

    def _bearer_client(self):
        header = self.headers.get("Authorization", "")
        if not header.startswith("Bearer "):
            return None
        return self.state.tokens.get(header[len("Bearer "):])

    def _record(self):
        with self.state.lock:
            self.state.requests.append((self.command, self.path))

    def do_GET(self):
        self._record()
        if self.path == "/info":
            return self._send(200, {"app": {"version": "stub"}})
        if self.path.startswith("/oauth/clients/"):
            if self._bearer_client() != "admin":
                return self._send(401, {"error": "unauthorized"})
            client_id = self.path[len("/oauth/clients/"):]
            if client_id not in self.state.registrations:
                return self._send(404, {"error": "not_found"})
            document = dict(self.state.registrations[client_id])
            if self.state.return_secret:
                document["client_secret"] = self.state.secrets[client_id]
            return self._send(200, document)
        return self._send(404, {"error": "not_found"})

    def do_POST(self):
        self._record()
        if self.path != "/oauth/token":
            return self._send(404, {"error": "not_found"})
        form = parse_qs(self._body())
        header = self.headers.get("Authorization", "")
        try:
            client_id, client_secret = base64.b64decode(header[len("Basic "):]).decode(
                "utf-8").split(":", 1)
        except ValueError:
            return self._send(401, {"error": "unauthorized"})
        if form.get("grant_type") != ["client_credentials"] \
                or self.state.secrets.get(client_id) != client_secret:
            return self._send(401, {"error": "unauthorized",
                                    "error_description": "Bad credentials"})
        token = uuid.uuid4().hex
        self.state.tokens[token] = client_id
        return self._send(200, {"access_token": token, "token_type": "bearer"})

    def do_PUT(self):
        self._record()
        document = json.loads(self._body())
        if self.path.startswith("/oauth/clients/"):
            if self._bearer_client() != "admin":
                return self._send(401, {"error": "unauthorized"})
            client_id = self.path[len("/oauth/clients/"):]
            self.state.secrets[client_id] = document.pop("client_secret")
            self.state.registrations[client_id] = document
            return self._send(200, document)
        if self.path == "/v1/data":
            if self._bearer_client() != "credhub_admin_client":
                return self._send(401, {"error": "unauthorized"})
            if self.state.credhub_status:
                return self._send(self.state.credhub_status, {"error": "unavailable"})
            status = 200 if document["name"] in self.state.credhub else 201
            self.state.credhub[document["name"]] = document["value"]
            return self._send(status, {"name": document["name"], "type": document["type"]})
        return self._send(404, {"error": "not_found"})


def free_port():
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


class TestEndToEnd(unittest.TestCase):

    def setUp(self):
        self.server = ThreadingHTTPServer(("127.0.0.1", 0), StubHandler)
        self.server.state = StubState()
        self.state = self.server.state
        t = threading.Thread(target=self.server.serve_forever, name="stub_uaa_credhub")
        t.daemon = True
        t.start()
        self.thread = t
        self.url = f"http://127.0.0.1:{self.server.server_address[1]}"
        self.environ = {"UAA_URL": self.url,
                        "CLIENT_ID": "admin",
                        "CLIENT_SECRET": "s3cr3t",
                        "TARGET_CLIENT": "my-app",
                        "CREDHUB_SECRET": "credhub-s3cr3t",
                        "CREDHUB_PATH": "/my-app/secret",
                        "SETTLE_SECONDS": "0"}

    def tearDown(self):
        self.server.shutdown()
        self.server.server_close()
        self.thread.join(5.0)

    def credhub_requests(self):
        return [r for r in self.state.requests if r[1] == "/v1/data"]

    def test_full_rotation(self):
        self.state.credhub["/my-app/secret"] = INITIAL_SECRET
        with self.assertLogs("uaa_credhub_rotator", level="DEBUG") as logs:
            exit_code = main([], environ=self.environ)
        assert exit_code == 0, "Rotation should succeed"

        new_secret = self.state.credhub["/my-app/secret"]
        assert len(new_secret) >= 25
        assert new_secret != INITIAL_SECRET
        assert self.state.secrets["my-app"] == new_secret, "UAA and CredHub must agree"

        output = "\n".join(logs.output)
        for secret in (new_secret, INITIAL_SECRET, "s3cr3t"):
            assert secret not in output, "Secret value leaked into the log"
        assert "PUT" in output and "HTTP 200" in output, "HTTP exchanges should be logged at debug"

        plan = RotationPlan.from_environ(self.environ)
        with UAAClient(plan) as uaa:
            assert uaa.fetch_token("my-app", new_secret)
            with self.assertRaises(AuthError):
                uaa.fetch_token("my-app", INITIAL_SECRET)

    def test_library_rotation_result(self):
        result = rotate(RotationPlan.from_environ(self.environ))
        assert result.success and result.stage is None
        assert result.target_client == "my-app" and result.credhub_path == "/my-app/secret"
        assert ("GET", "/info") in self.state.requests

    def test_positional_overrides(self):
        exit_code = main(["other-app", "/other/secret"], environ=self.environ)
        assert exit_code == 0
        assert self.state.credhub["/other/secret"] == self.state.secrets["other-app"]
        assert self.state.secrets["my-app"] == INITIAL_SECRET, "Default target must be untouched"

    def test_missing_secrets_make_no_network_calls(self):
        for name in ("CLIENT_SECRET", "CREDHUB_SECRET"):
            environ = dict(self.environ)
            del environ[name]
            assert main([], environ=environ) == 2
        assert self.state.requests == [], "No requests expected on a config error"

    def test_bad_admin_secret(self):
        exit_code = main([], environ=dict(self.environ, CLIENT_SECRET="wrong"))
        assert exit_code == 4
        assert self.credhub_requests() == [], "CredHub must not be called after admin auth fails"
        assert self.state.secrets["my-app"] == INITIAL_SECRET

    def test_bad_credhub_secret_rolls_back(self):
        exit_code = main([], environ=dict(self.environ, CREDHUB_SECRET="wrong"))
        assert exit_code == 4
        assert self.credhub_requests() == []
        assert self.state.secrets["my-app"] == INITIAL_SECRET, "UAA should have been rolled back"

    def test_unknown_target(self):
        assert main(["nobody"], environ=self.environ) == 5

    def test_credhub_failure_rolls_back(self):
        self.state.credhub_status = 500
        plan = RotationPlan.from_environ(self.environ)
        result = CredentialRotator(plan).rotate()
        assert result.exit_code == 7
        assert isinstance(result.error, UpdateError) and result.error.stage == "update-credhub"
        assert result.inconsistent and result.rollback_succeeded
        assert self.state.secrets["my-app"] == INITIAL_SECRET

    def test_credhub_failure_left_inconsistent(self):
        self.state.credhub_status = 503
        self.state.return_secret = False
        plan = RotationPlan.from_environ(self.environ)
        result = CredentialRotator(plan).rotate()
        assert result.stage == RotationStage.UPDATE_CREDHUB
        assert result.inconsistent and not result.rollback_attempted
        assert "still has the old one" in result.remediation
        assert self.state.secrets["my-app"] != INITIAL_SECRET
        assert "/my-app/secret" not in self.state.credhub

    def test_no_rollback_flag_overrides_environment(self):
        self.state.credhub_status = 500
        exit_code = main(["--no-rollback"], environ=dict(self.environ, ROLLBACK="true"))
        assert exit_code == 7
        assert self.state.secrets["my-app"] != INITIAL_SECRET, "Rollback should have been skipped"

    def test_skip_tls_verify_warns(self):
        with self.assertLogs("uaa_credhub_rotator", level="WARNING") as logs:
            assert main(["--skip-tls-verify"], environ=self.environ) == 0
        assert any("DISABLED" in line for line in logs.output)


class TestConnectivity(unittest.TestCase):

    def test_refused_is_connectivity_error(self):
        environ = {"UAA_URL": f"http://127.0.0.1:{free_port()}",
                   "CLIENT_SECRET": "s3cr3t",
                   "CREDHUB_SECRET": "credhub-s3cr3t",
                   "HTTP_RETRIES": "0"}
        assert main([], environ=environ) == 3

    def test_unresponsive_server_times_out_in_window(self):
        # accepts connections at the kernel level but never answers
        listener = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        listener.bind(("127.0.0.1", 0))
        listener.listen(5)
        try:
            plan = RotationPlan(uaa_url=f"http://127.0.0.1:{listener.getsockname()[1]}",
                                client_secret="s3cr3t",
                                credhub_secret="credhub-s3cr3t",
                                connect_timeout=0.5,
                                read_timeout=0.5,
                                retries=0)
            start = perf_counter()
            with UAAClient(plan) as uaa:
                with self.assertRaises(ConnectivityError) as ctx:
                    uaa.probe()
            elapsed = perf_counter() - start
        finally:
            listener.close()
        assert not isinstance(ctx.exception, AuthError)
        assert 0.4 <= elapsed < 5.0, f"Probe gave up after {elapsed}s"

    def _syn_dropping_listener(self):
        """A listener whose accept queue is full so new connection attempts go unanswered."""
        listener = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        listener.bind(("127.0.0.1", 0))
        listener.listen(0)
        self.addCleanup(listener.close)
        address = listener.getsockname()
        for _ in range(8):
            filler = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
            filler.setblocking(False)
            filler.connect_ex(address)
            self.addCleanup(filler.close)
        time.sleep(0.2)
        return f"http://127.0.0.1:{address[1]}"

    def test_dropped_connection_attempts_stay_in_timeout(self):
        plan = RotationPlan(uaa_url=self._syn_dropping_listener(),
                            client_secret="s3cr3t",
                            credhub_secret="credhub-s3cr3t",
                            connect_timeout=1.0,
                            read_timeout=1.5)
        assert plan.retries == 2
        start = perf_counter()
        with UAAClient(plan) as uaa:
            with self.assertRaises(ConnectivityError):
                uaa.probe()
        elapsed = perf_counter() - start
        assert elapsed < 2.5, f"Probe gave up after {elapsed}s"

    def test_dropped_connection_attempts_stay_in_deadline(self):
        plan = RotationPlan(uaa_url=self._syn_dropping_listener(),
                            client_secret="s3cr3t",
                            credhub_secret="credhub-s3cr3t",
                            connect_timeout=2.0,
                            read_timeout=2.0,
                            deadline=2.0)
        start = perf_counter()
        result = rotate(plan)
        elapsed = perf_counter() - start
        assert result.stage in (RotationStage.TIMEOUT, RotationStage.CONNECTIVITY)
        assert not result.inconsistent
        assert elapsed < 3.5, f"Rotation with a 2s deadline took {elapsed}s"
