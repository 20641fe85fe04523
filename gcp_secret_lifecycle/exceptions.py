# -*- coding: utf-8 -*-

class SecretLifecycleError(Exception):
    """Base Error class."""


class ValidationError(SecretLifecycleError):
    """Malformed caller input, nothing was changed."""


class SecretNotFoundError(ValidationError):
    CUSTOM_ERROR_MESSAGE = "Secret {} does not exist"

    def __init__(self, secret_id):
        super(SecretNotFoundError, self).__init__(self.CUSTOM_ERROR_MESSAGE.format(secret_id))
        self._secret_id = secret_id

    @property
    def secret_id(self):
        return self._secret_id


class UnsupportedStrategyError(SecretLifecycleError):
    CUSTOM_ERROR_MESSAGE = "Rotation strategy {} is not supported"

    def __init__(self, strategy_type):
        super(UnsupportedStrategyError, self).__init__(
            self.CUSTOM_ERROR_MESSAGE.format(strategy_type))
        self._strategy_type = strategy_type

    @property
    def strategy_type(self):
        return self._strategy_type


class DecryptionError(SecretLifecycleError):
    """Ciphertext is malformed or no active key can open it."""


class NoActiveKeyVersion(DecryptionError):
    CUSTOM_ERROR_MESSAGE = "Key secret {} has no active enabled versions"

    def __init__(self, secret):
        super(NoActiveKeyVersion, self).__init__(self.CUSTOM_ERROR_MESSAGE.format(secret))


class RotationConflictError(SecretLifecycleError):
    CUSTOM_ERROR_MESSAGE = "Secret {} rotation conflict {}"

    def __init__(self, secret_id, reason):
        super(RotationConflictError, self).__init__(
            self.CUSTOM_ERROR_MESSAGE.format(secret_id, reason))
        self._secret_id = secret_id
        self._reason = reason

    @property
    def secret_id(self):
        return self._secret_id

    @property
    def reason(self):
        return self._reason


class DeliveryError(SecretLifecycleError):
    """Base class for failures handling a bus message."""


class TransientDeliveryError(DeliveryError):
    """Failure that may succeed when the bus redelivers the message."""


class PermanentDeliveryError(DeliveryError):
    """Failure that will never succeed, the message goes to the dead-letter sink."""


class AuditSinkUnavailable(SecretLifecycleError):
    CUSTOM_ERROR_MESSAGE = "Audit sink {} unavailable for action {} error {}"

    def __init__(self, url, action, error):
        super(AuditSinkUnavailable, self).__init__(
            self.CUSTOM_ERROR_MESSAGE.format(url, action, str(error)))
        self._url = url
        self._action = action
        self._error = error

    @property
    def url(self):
        return self._url

    @property
    def action(self):
        return self._action

    @property
    def error(self):
        return self._error
