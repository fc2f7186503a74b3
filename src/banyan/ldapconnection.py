import logging
import threading

from abc import ABCMeta, abstractmethod
from concurrent import futures
from enum import IntEnum
from typing import Any, Callable, List, Mapping, Optional, Union

from .codec import AttributeCodec
from .correlator import PendingRequest, RequestCorrelator
from .errors import ClosedConnection, LDAPError, TimeoutError
from .ldapentry import LDAPEntry
from .ldapresult import OperationType, ResponseTranslator, SearchResult
from .ldaptransport import CLOSED_CONNECTION_ERROR, BaseTransport, ResponseHandler
from .listeners import (
    CompareListener,
    EntryListener,
    ResultListener,
    SearchAccumulator,
    TypedSearchAccumulator,
)

MYPY = False

if MYPY:
    from .ldapclient import LDAPClient

logger = logging.getLogger(__name__)

DEFAULT_FILTER = "(objectClass=*)"


class LDAPSearchScope(IntEnum):
    """ Enumeration for LDAP search scopes. """

    BASE = 0  #: For searching only the base DN.
    ONELEVEL = 1  #: For searching one tree level under the base DN.
    ONE = ONELEVEL  #: Alias for :attr:`LDAPSearchScope.ONELEVEL`.
    SUBTREE = 2  #: For searching the entire subtree, including the base DN.
    SUB = SUBTREE  #: Alias for :attr:`LDAPSearchScope.SUBTREE`.
    SUBORDINATE = 3  #: For searching the subtree without the base DN.
    SUBORDINATE_SUBTREE = SUBORDINATE  #: Alias for :attr:`LDAPSearchScope.SUBORDINATE`.

    @classmethod
    def parse(cls, value: Union["LDAPSearchScope", int, str]) -> "LDAPSearchScope":
        """
        Get the scope from a member, its integer value or its name.

        :param value: the scope.
        :rtype: LDAPSearchScope
        :raises ValueError: if the value is not a valid scope.
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls[value.upper()]
            except KeyError:
                raise ValueError("Invalid scope value: %s" % value) from None
        if isinstance(value, int) and not isinstance(value, bool):
            try:
                return cls(value)
            except ValueError:
                raise ValueError("Invalid scope value: %s" % value) from None
        raise ValueError("Invalid scope value: %r" % (value,))


class BaseLDAPConnection(metaclass=ABCMeta):
    """
    The common part of the blocking and the asyncio connections: the
    operations build the request, hand it to the transport through the
    :class:`RequestCorrelator` and pass the pending request to
    :meth:`_evaluate`, that returns the outcome in the connection's own
    manner.

    :param LDAPClient client: a client object.
    :param AttributeCodec codec: converts attribute values, a default \
    codec is used if it's not set.
    :param ResponseTranslator translator: builds the responses and the \
    errors, a default translator is used if it's not set.
    """

    def __init__(
        self,
        client: "LDAPClient",
        codec: Optional[AttributeCodec] = None,
        translator: Optional[ResponseTranslator] = None,
    ) -> None:
        self.__client = client
        self.__lock = threading.Lock()
        self.__transport = None  # type: Optional[BaseTransport]
        self.__closed = True
        self._correlator = RequestCorrelator()
        self._codec = codec if codec is not None else AttributeCodec()
        self._translator = translator if translator is not None else ResponseTranslator()

    def __enter__(self) -> "BaseLDAPConnection":
        """ Context manager entry point. """
        return self

    def __exit__(self, type, value, traceback) -> None:
        """ Context manager exit point. """
        self.close()

    @property
    def client(self) -> "LDAPClient":
        """The client that created the connection."""
        return self.__client

    @property
    def closed(self) -> bool:
        """True, if the connection is closed or it's not opened yet."""
        return self.__closed

    @property
    def pending_count(self) -> int:
        """The number of operations waiting for their outcome."""
        return self._correlator.pending_count

    def _open(self) -> None:
        with self.__lock:
            if not self.__closed:
                return
        transport = self.__client.transport_factory(self.__client, self._disconnected)
        with self.__lock:
            self.__transport = transport
            self.__closed = False
        logger.debug("Connection to %s is opened.", self.__client.url)

    def _disconnected(self, exc: BaseException) -> None:
        """Called by the transport, when the connection is lost."""
        with self.__lock:
            self.__closed = True
            self.__transport = None

        def closed_error() -> LDAPError:
            err = ClosedConnection(CLOSED_CONNECTION_ERROR)
            err.__cause__ = exc
            return err

        self._correlator.fail_all(closed_error)

    def is_connected(self) -> bool:
        """
        Check the state of the connection.

        :return: True, if the connection is opened and the transport is \
        still connected.
        :rtype: bool
        """
        with self.__lock:
            transport = self.__transport
            closed = self.__closed
        return not closed and transport is not None and transport.is_connected()

    def validate(self) -> BaseTransport:
        """
        Check that an operation can be sent on the connection.

        :return: the transport of the connection.
        :raises ClosedConnection: if the connection is closed.
        """
        with self.__lock:
            transport = self.__transport
            closed = self.__closed
        if closed or transport is None or not transport.is_connected():
            raise ClosedConnection(CLOSED_CONNECTION_ERROR)
        return transport

    def close(self) -> None:
        """
        Close the connection. The operations that are still waiting for
        their outcome fail with :class:`ClosedConnection`. Closing a closed
        connection has no effect.
        """
        with self.__lock:
            if self.__closed:
                return
            self.__closed = True
            transport, self.__transport = self.__transport, None
        # The transport is closed first: a request that is sent concurrently
        # is either refused by it or already in the correlator's table.
        if transport is not None:
            transport.close()
        self._correlator.fail_all(lambda: ClosedConnection(CLOSED_CONNECTION_ERROR))
        logger.debug("Connection to %s is closed.", self.__client.url)

    def _dispatch(
        self,
        operation: OperationType,
        send: Callable[[BaseTransport, ResponseHandler], int],
        make_listener: Callable[[PendingRequest], ResponseHandler],
    ) -> PendingRequest:
        try:
            transport = self.validate()
        except ClosedConnection as exc:
            return PendingRequest.failed(operation, exc)
        return self._correlator.submit(
            operation, lambda handler: send(transport, handler), make_listener
        )

    def __result_listener(self, pending: PendingRequest) -> ResponseHandler:
        return ResultListener(pending, self._translator)

    def add(
        self, dn: str, entry: Mapping[str, Any], timeout: Optional[float] = None
    ) -> Any:
        pending = self._dispatch(
            OperationType.ADD,
            lambda transport, handler: transport.add(
                _check_dn(dn), self._codec.build_attributes(entry), handler
            ),
            self.__result_listener,
        )
        return self._evaluate(pending, timeout)

    def modify(
        self, dn: str, changes: Mapping[str, Any], timeout: Optional[float] = None
    ) -> Any:
        pending = self._dispatch(
            OperationType.MODIFY,
            lambda transport, handler: transport.modify(
                _check_dn(dn), self._codec.build_changes(changes), handler
            ),
            self.__result_listener,
        )
        return self._evaluate(pending, timeout)

    def modify_dn(
        self,
        dn: str,
        new_rdn: str,
        delete_old_rdn: bool = True,
        timeout: Optional[float] = None,
    ) -> Any:
        pending = self._dispatch(
            OperationType.MODIFY_DN,
            lambda transport, handler: transport.modify_dn(
                _check_dn(dn), _check_dn(new_rdn, "new_rdn"), bool(delete_old_rdn), handler
            ),
            self.__result_listener,
        )
        return self._evaluate(pending, timeout)

    def delete(self, dn: str, timeout: Optional[float] = None) -> Any:
        pending = self._dispatch(
            OperationType.DELETE,
            lambda transport, handler: transport.delete(_check_dn(dn), handler),
            self.__result_listener,
        )
        return self._evaluate(pending, timeout)

    def compare(
        self, dn: str, attribute: str, value: Any, timeout: Optional[float] = None
    ) -> Any:
        pending = self._dispatch(
            OperationType.COMPARE,
            lambda transport, handler: transport.compare(
                _check_dn(dn),
                attribute,
                self._codec.value_to_bytes(attribute, value),
                handler,
            ),
            lambda pending: CompareListener(pending, self._translator),
        )
        return self._evaluate(pending, timeout)

    def get_entry(
        self,
        dn: str,
        attrlist: Optional[List[str]] = None,
        timeout: Optional[float] = None,
    ) -> Any:
        pending = self._dispatch(
            OperationType.SEARCH,
            lambda transport, handler: transport.search(
                _check_dn(dn), LDAPSearchScope.BASE, DEFAULT_FILTER, attrlist, handler
            ),
            lambda pending: EntryListener(pending, dn, self._translator, self._codec),
        )
        return self._evaluate(pending, timeout)

    def __send_search(
        self,
        base: str,
        filter_exp: Optional[str],
        scope: Union[LDAPSearchScope, int, str],
        attrlist: Optional[List[str]],
    ) -> Callable[[BaseTransport, ResponseHandler], int]:
        def send(transport: BaseTransport, handler: ResponseHandler) -> int:
            _scope = LDAPSearchScope.parse(scope)
            _filter = filter_exp if filter_exp is not None else DEFAULT_FILTER
            if not isinstance(_filter, str):
                raise TypeError("The filter_exp parameter must be a string.")
            return transport.search(_check_dn(base), _scope, _filter, attrlist, handler)

        return send

    def search(
        self,
        base: str,
        filter_exp: Optional[str] = None,
        scope: Union[LDAPSearchScope, int, str] = LDAPSearchScope.SUBTREE,
        attrlist: Optional[List[str]] = None,
        timeout: Optional[float] = None,
    ) -> Any:
        pending = self._dispatch(
            OperationType.SEARCH,
            self.__send_search(base, filter_exp, scope, attrlist),
            lambda pending: SearchAccumulator(
                pending, base, self._translator, self._codec
            ),
        )
        return self._evaluate(pending, timeout)

    def search_typed(
        self,
        base: str,
        filter_exp: Optional[str],
        scope: Union[LDAPSearchScope, int, str],
        shape: Any,
        attrlist: Optional[List[str]] = None,
        timeout: Optional[float] = None,
    ) -> Any:
        pending = self._dispatch(
            OperationType.SEARCH,
            self.__send_search(base, filter_exp, scope, attrlist),
            lambda pending: TypedSearchAccumulator(
                pending, base, shape, self._translator, self._codec
            ),
        )
        return self._evaluate(pending, timeout)

    @abstractmethod
    def _evaluate(self, pending: PendingRequest, timeout: Optional[float] = None) -> Any:
        pass

    def __repr__(self) -> str:
        return "<{0} {1} ({2})>".format(
            self.__class__.__name__,
            self.__client.url,
            "closed" if self.closed else "opened",
        )


def _check_dn(value: Any, name: str = "dn") -> str:
    if not isinstance(value, str):
        raise TypeError("The %s parameter must be a string." % name)
    return value


class LDAPConnection(BaseLDAPConnection):
    """
    Handles synchronous connection to an LDAP server. The operations
    block until their outcome arrives or the time limit exceeds.

    :param LDAPClient client: a client object.
    :param \\*\\*kwargs: the `codec` and `translator` keyword arguments \
    of :class:`BaseLDAPConnection`.
    """

    def __init__(self, client: "LDAPClient", **kwargs: Any) -> None:
        super().__init__(client, **kwargs)

    def _evaluate(self, pending: PendingRequest, timeout: Optional[float] = None) -> Any:
        """
        It returns the result of the LDAP operation.

        :param PendingRequest pending: the pending operation.
        :param float timeout: time limit in seconds for waiting.
        :return: the result of the operation.
        """
        try:
            return pending.result(timeout)
        except futures.TimeoutError as exc:
            raise TimeoutError(
                "%s operation timed out after %s seconds."
                % (pending.operation.name, timeout)
            ) from exc

    def open(self) -> "LDAPConnection":
        """
        Open the LDAP connection.

        :return: The :class:`LDAPConnection` object itself.
        :rtype: :class:`LDAPConnection`.
        :raises LDAPError: if connecting or binding is failed.
        """
        self._open()
        return self

    def add(
        self, dn: str, entry: Mapping[str, Any], timeout: Optional[float] = None
    ) -> Any:
        """
        Add a new entry to the directory server.

        :param str dn: the DN of the new entry.
        :param dict entry: the attributes of the entry. A list value is \
        sent as a multi-valued attribute, `None` values are skipped.
        :param float timeout: time limit in seconds for waiting.
        :return: the response of the server.
        :rtype: LDAPResponse
        """
        return super().add(dn, entry, timeout)

    def modify(
        self, dn: str, changes: Mapping[str, Any], timeout: Optional[float] = None
    ) -> Any:
        """
        Replace the values of the given attributes of an entry. `None`
        values are skipped, an empty list removes the attribute.

        :param str dn: the DN of the entry.
        :param dict changes: attribute names mapped to the new values.
        :param float timeout: time limit in seconds for waiting.
        :return: the response of the server.
        :rtype: LDAPResponse
        """
        return super().modify(dn, changes, timeout)

    def modify_dn(
        self,
        dn: str,
        new_rdn: str,
        delete_old_rdn: bool = True,
        timeout: Optional[float] = None,
    ) -> Any:
        """
        Rename an entry.

        :param str dn: the DN of the entry.
        :param str new_rdn: the new RDN.
        :param bool delete_old_rdn: remove the old RDN value from the entry.
        :param float timeout: time limit in seconds for waiting.
        :rtype: LDAPResponse
        """
        return super().modify_dn(dn, new_rdn, delete_old_rdn, timeout)

    def delete(self, dn: str, timeout: Optional[float] = None) -> Any:
        """
        Remove an entry from the directory server.

        :param str dn: the DN of the entry.
        :param float timeout: time limit in seconds for waiting.
        :rtype: LDAPResponse
        """
        return super().delete(dn, timeout)

    def compare(
        self, dn: str, attribute: str, value: Any, timeout: Optional[float] = None
    ) -> bool:
        """
        Compare an attribute value of an entry.

        :param str dn: the DN of the entry.
        :param str attribute: the name of the attribute.
        :param value: the asserted value.
        :param float timeout: time limit in seconds for waiting.
        :return: True, if the entry has the value.
        :rtype: bool
        """
        return super().compare(dn, attribute, value, timeout)

    def get_entry(
        self,
        dn: str,
        attrlist: Optional[List[str]] = None,
        timeout: Optional[float] = None,
    ) -> LDAPEntry:
        """
        Get an entry by its DN.

        :param str dn: the DN of the entry.
        :param list attrlist: the attributes to return, every user \
        attribute if it's not set.
        :param float timeout: time limit in seconds for waiting.
        :rtype: LDAPEntry
        :raises EntryNotFoundError: if the entry does not exist.
        """
        return super().get_entry(dn, attrlist, timeout)

    def search(
        self,
        base: str,
        filter_exp: Optional[str] = None,
        scope: Union[LDAPSearchScope, int, str] = LDAPSearchScope.SUBTREE,
        attrlist: Optional[List[str]] = None,
        timeout: Optional[float] = None,
    ) -> SearchResult:
        """
        Search the directory.

        :param str base: the base DN of the search.
        :param str filter_exp: the search filter, `(objectClass=*)` \
        if it's not set.
        :param scope: the scope, as an :class:`LDAPSearchScope`, its \
        integer value or its name.
        :param list attrlist: the attributes to return.
        :param float timeout: time limit in seconds for waiting.
        :return: the entries and the continuation references.
        :rtype: SearchResult
        :raises EntryNotFoundError: if the search returns no entry.
        """
        return super().search(base, filter_exp, scope, attrlist, timeout)

    def search_typed(
        self,
        base: str,
        filter_exp: Optional[str],
        scope: Union[LDAPSearchScope, int, str],
        shape: Any,
        attrlist: Optional[List[str]] = None,
        timeout: Optional[float] = None,
    ) -> List[Any]:
        """
        Search the directory and convert every entry to `shape`.

        :param str base: the base DN of the search.
        :param str filter_exp: the search filter.
        :param scope: the scope of the search.
        :param shape: a dataclass, or a callable that gets the \
        :class:`LDAPEntry`.
        :param list attrlist: the attributes to return.
        :param float timeout: time limit in seconds for waiting.
        :return: the converted entries.
        :rtype: list
        """
        return super().search_typed(base, filter_exp, scope, shape, attrlist, timeout)
