# -*- coding: utf-8 -*-

class SecretRotatorError(Exception):
    """Base Error class."""


class ConfigError(SecretRotatorError):
    CUSTOM_ERROR_MESSAGE = "Invalid configuration {}"

    def __init__(self, problem):
        super(ConfigError, self).__init__(self.CUSTOM_ERROR_MESSAGE.format(problem))
        self._problem = problem

    @property
    def problem(self):
        return self._problem


class ConnectivityError(SecretRotatorError):
    CUSTOM_ERROR_MESSAGE = "Cannot connect to {} at {} error {}"

    def __init__(self, service, url, cause):
        super(ConnectivityError, self).__init__(self.CUSTOM_ERROR_MESSAGE.format(service,
                                                                                 url,
                                                                                 str(cause)))
        self._service = service
        self._url = url
        self._cause = cause

    @property
    def service(self):
        return self._service

    @property
    def url(self):
        return self._url

    @property
    def cause(self):
        return self._cause


class HttpStatusError(SecretRotatorError):
    """Base for errors raised from a non successful HTTP response.

    The body held here has always been through redaction already.
    """

    def __init__(self, message, status, body):
        super(HttpStatusError, self).__init__(message)
        self._status = status
        self._body = body

    @property
    def status(self):
        return self._status

    @property
    def body(self):
        return self._body


class AuthError(HttpStatusError):
    CUSTOM_ERROR_MESSAGE = "{} token request for client {} failed HTTP {} response {}"

    def __init__(self, service, client_id, status, body):
        super(AuthError, self).__init__(self.CUSTOM_ERROR_MESSAGE.format(service,
                                                                         client_id,
                                                                         status,
                                                                         body),
                                        status,
                                        body)
        self._service = service
        self._client_id = client_id

    @property
    def service(self):
        return self._service

    @property
    def client_id(self):
        return self._client_id


class NotFoundError(HttpStatusError):
    CUSTOM_ERROR_MESSAGE = "UAA client {} not found HTTP {} response {}"

    def __init__(self, client_id, status, body):
        super(NotFoundError, self).__init__(self.CUSTOM_ERROR_MESSAGE.format(client_id,
                                                                             status,
                                                                             body),
                                            status,
                                            body)
        self._client_id = client_id

    @property
    def client_id(self):
        return self._client_id


class UpdateError(HttpStatusError):
    CUSTOM_ERROR_MESSAGE = "{} of {} failed HTTP {} response {}"

    def __init__(self, stage, target, status, body, inconsistent=False):
        super(UpdateError, self).__init__(self.CUSTOM_ERROR_MESSAGE.format(stage,
                                                                           target,
                                                                           status,
                                                                           body),
                                          status,
                                          body)
        self._stage = stage
        self._target = target
        self._inconsistent = inconsistent

    @property
    def stage(self):
        return self._stage

    @property
    def target(self):
        return self._target

    @property
    def inconsistent(self):
        return self._inconsistent


class VerificationError(HttpStatusError):
    CUSTOM_ERROR_MESSAGE = "New secret for client {} does not authenticate HTTP {} response {}"

    def __init__(self, client_id, status, body):
        super(VerificationError, self).__init__(self.CUSTOM_ERROR_MESSAGE.format(client_id,
                                                                                 status,
                                                                                 body),
                                                status,
                                                body)
        self._client_id = client_id

    @property
    def client_id(self):
        return self._client_id

    @property
    def inconsistent(self):
        return True


class RotationTimeoutError(SecretRotatorError):
    CUSTOM_ERROR_MESSAGE = "Rotation exceeded overall deadline of {} seconds"

    def __init__(self, seconds):
        super(RotationTimeoutError, self).__init__(self.CUSTOM_ERROR_MESSAGE.format(seconds))
        self._seconds = seconds

    @property
    def seconds(self):
        return self._seconds
