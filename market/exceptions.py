class SagaError(Exception):
    """Base class for failures raised by the order saga.

    ``retryable`` tells the event transport whether redelivering the message
    can succeed; ``status_code`` is what the HTTP surface answers with.
    """

    retryable = False
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(SagaError):
    status_code = 400


class NotFound(SagaError):
    # The creating write may simply not be visible yet, so the transport
    # gets a bounded number of attempts before dead-lettering.
    retryable = True
    status_code = 404


class InvalidTransition(SagaError):
    status_code = 409


class ConditionFailed(SagaError):
    """A conditional write found its predicate false: the effect already happened."""

    status_code = 409

    def __init__(self, message: str, index: int | None = None, table: str | None = None, key: str | None = None):
        super().__init__(message)
        self.index = index
        self.table = table
        self.key = key


class StoreUnavailable(SagaError):
    retryable = True
    status_code = 503


class BusUnavailable(SagaError):
    retryable = True
    status_code = 503


class GatewayError(SagaError):
    status_code = 502

    def __init__(self, message: str, retryable: bool = True):
        super().__init__(message)
        self.retryable = retryable


class IntegrityViolation(SagaError):
    """A write broke a schema constraint other than a key collision."""

    status_code = 500
