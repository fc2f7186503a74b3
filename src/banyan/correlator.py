"""
.. module:: correlator
   :synopsis: Tracks the in-flight operations of a connection and makes
              sure that each of them gets exactly one outcome.

"""
import logging
import threading

from concurrent.futures import Future
from typing import Any, Callable, Optional, Set

from .errors import ConnectionError, LDAPError
from .ldapresult import OperationType

logger = logging.getLogger(__name__)


class PendingRequest:
    """
    A single-assignment completion slot of an in-flight LDAP operation.
    Only the first call of :meth:`resolve` or :meth:`reject` takes effect,
    the rest of them are ignored.

    :param OperationType operation: the type of the operation.
    """

    def __init__(self, operation: OperationType) -> None:
        self.__operation = operation
        self.__lock = threading.Lock()
        self.__resolved = False
        self.__future = Future()  # type: Future
        self.msg_id = None  # type: Optional[int]

    @classmethod
    def failed(cls, operation: OperationType, exc: BaseException) -> "PendingRequest":
        """Create an already rejected request."""
        pending = cls(operation)
        pending.reject(exc)
        return pending

    def __complete(self, value: Any, exc: Optional[BaseException]) -> bool:
        with self.__lock:
            if self.__resolved:
                return False
            self.__resolved = True
        if exc is not None:
            self.__future.set_exception(exc)
        else:
            self.__future.set_result(value)
        return True

    def resolve(self, value: Any) -> bool:
        """
        Complete the request with a successful outcome.

        :param value: the result of the operation.
        :return: True, if this call completed the request.
        :rtype: bool
        """
        return self.__complete(value, None)

    def reject(self, exc: BaseException) -> bool:
        """
        Complete the request with an error.

        :param Exception exc: the error of the operation.
        :return: True, if this call completed the request.
        :rtype: bool
        """
        return self.__complete(None, exc)

    @property
    def operation(self) -> OperationType:
        """The type of the operation."""
        return self.__operation

    @property
    def done(self) -> bool:
        """True, if the request has been resolved."""
        with self.__lock:
            return self.__resolved

    @property
    def future(self) -> Future:
        """The future that holds the outcome of the request."""
        return self.__future

    def result(self, timeout: Optional[float] = None) -> Any:
        """
        Wait for the outcome of the request.

        :param float timeout: time limit in seconds for waiting.
        :return: the result of the operation.
        :raises LDAPError: if the operation failed.
        :raises concurrent.futures.TimeoutError: if the time limit exceeded.
        """
        return self.__future.result(timeout)

    def __repr__(self) -> str:
        return "<{}: {} msgid={} done={}>".format(
            self.__class__.__name__, self.__operation.name, self.msg_id, self.done
        )


class RequestCorrelator:
    """
    The dispatch table of a connection: it creates a :class:`PendingRequest`
    for every submitted operation and keeps it until it's resolved.
    """

    def __init__(self) -> None:
        self.__lock = threading.Lock()
        self.__pending = set()  # type: Set[PendingRequest]

    def submit(
        self,
        operation: OperationType,
        send: Callable[[Any], int],
        make_listener: Callable[[PendingRequest], Any],
    ) -> PendingRequest:
        """
        Submit an operation.

        :param OperationType operation: the type of the operation.
        :param send: a callable that dispatches the request to the \
        transport with the given listener and returns the message ID.
        :param make_listener: a callable that creates a new listener \
        for the pending request.
        :return: the pending request. Errors raised by `send` reject it \
        immediately.
        :rtype: PendingRequest
        """
        pending = PendingRequest(operation)
        with self.__lock:
            self.__pending.add(pending)
        pending.future.add_done_callback(lambda _: self.__discard(pending))
        try:
            pending.msg_id = send(make_listener(pending))
        except (LDAPError, TypeError, ValueError) as exc:
            # Malformed requests and transport errors are the outcome of
            # the operation, the caller receives them from the pending slot.
            logger.debug("Failed to dispatch %s operation: %s", operation.name, exc)
            pending.reject(exc)
        except Exception as exc:
            logger.debug("Transport failed to send %s operation: %r", operation.name, exc)
            err = ConnectionError("Failed to send %s request: %r" % (operation.name, exc))
            err.__cause__ = exc
            pending.reject(err)
        else:
            logger.debug("Dispatched %s operation (msgid=%s).", operation.name, pending.msg_id)
        return pending

    def __discard(self, pending: PendingRequest) -> None:
        with self.__lock:
            self.__pending.discard(pending)

    @property
    def pending_count(self) -> int:
        """The number of requests that are not resolved yet."""
        with self.__lock:
            return len(self.__pending)

    def fail_all(self, exc_factory: Callable[[], BaseException]) -> int:
        """
        Reject every request that is still pending.

        :param exc_factory: a callable that creates the error for each \
        request.
        :return: the number of rejected requests.
        :rtype: int
        """
        with self.__lock:
            pending = list(self.__pending)
        count = 0
        for req in pending:
            if req.reject(exc_factory()):
                count += 1
        if count:
            logger.debug("Rejected %d pending request(s).", count)
        return count
