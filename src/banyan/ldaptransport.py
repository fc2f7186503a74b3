"""
.. module:: ldaptransport
   :synopsis: The transport interface the connection dispatches requests
              through, and its implementation with python-ldap.

"""
import logging
import os
import tempfile
import threading

from abc import ABCMeta, abstractmethod
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

import ldap

from .errors import ClosedConnection
from .ldapreference import LDAPControl, LDAPReference
from .ldapresult import LDAPResult, OperationType, ResponseTranslator
from .resultcode import ResultCode

MYPY = False

if MYPY:
    from .ldapclient import LDAPClient
    from .tlsconfig import TLSConfig

logger = logging.getLogger(__name__)

CLOSED_CONNECTION_ERROR = "LDAP Connection has been closed"


class ResponseHandler(metaclass=ABCMeta):
    """
    Receives the messages of one operation from a transport. The
    transport calls :meth:`entry_returned` and :meth:`reference_returned`
    (searches only) zero or more times, then :meth:`result_received` once.
    """

    @abstractmethod
    def result_received(self, result: LDAPResult) -> None:
        pass

    def entry_returned(self, dn: str, attributes: Mapping[str, Sequence[bytes]]) -> None:
        logger.debug("Unexpected search entry for %s is ignored.", dn)

    def reference_returned(self, reference: LDAPReference) -> None:
        logger.debug("Unexpected search reference %r is ignored.", reference)


class BaseTransport(metaclass=ABCMeta):
    """
    Interface of the transport that sends LDAP requests and calls back
    the given handler with the responses. The methods return the message
    ID of the request and raise :class:`LDAPError` if the request cannot
    be sent.
    """

    @abstractmethod
    def add(
        self, dn: str, attributes: List[Tuple[str, List[bytes]]], handler: ResponseHandler
    ) -> int:
        pass

    @abstractmethod
    def modify(
        self, dn: str, changes: List[Tuple[str, List[bytes]]], handler: ResponseHandler
    ) -> int:
        pass

    @abstractmethod
    def modify_dn(
        self, dn: str, new_rdn: str, delete_old_rdn: bool, handler: ResponseHandler
    ) -> int:
        pass

    @abstractmethod
    def delete(self, dn: str, handler: ResponseHandler) -> int:
        pass

    @abstractmethod
    def compare(
        self, dn: str, attribute: str, value: bytes, handler: ResponseHandler
    ) -> int:
        pass

    @abstractmethod
    def search(
        self,
        base: str,
        scope: int,
        filter_exp: str,
        attrlist: Optional[List[str]],
        handler: ResponseHandler,
    ) -> int:
        pass

    @abstractmethod
    def is_connected(self) -> bool:
        pass

    @abstractmethod
    def close(self) -> None:
        pass


_TERMINAL_TYPES = {
    ldap.RES_ADD,
    ldap.RES_MODIFY,
    ldap.RES_MODRDN,
    ldap.RES_DELETE,
    ldap.RES_COMPARE,
    ldap.RES_SEARCH_RESULT,
}

# libldap encodes the protocol versions as (major << 8) | minor.
_TLS_PROTOCOLS = {
    "TLSv1": 0x301,
    "TLSv1.0": 0x301,
    "TLSv1.1": 0x302,
    "TLSv1.2": 0x303,
    "TLSv1.3": 0x304,
}


def _text(value: Any) -> str:
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return str(value) if value is not None else ""


def error_info(exc: ldap.LDAPError) -> Dict[str, Any]:
    """Return the info dict that python-ldap attaches to its exceptions."""
    if exc.args and isinstance(exc.args[0], dict):
        return exc.args[0]
    return {}


def result_from_error(
    exc: ldap.LDAPError, operation: OperationType, msg_id: Optional[int] = None
) -> LDAPResult:
    """
    Create an :class:`LDAPResult` from a python-ldap exception.

    :param ldap.LDAPError exc: the exception.
    :param OperationType operation: the type of the failed operation.
    :param int msg_id: the message ID, if it's not in the exception.
    :rtype: LDAPResult
    """
    info = error_info(exc)
    code = info.get("result", getattr(exc, "errnum", ResultCode.OTHER))
    referrals = [_text(ref) for ref in info.get("referrals", None) or []]
    return LDAPResult(
        msg_id=info.get("msgid", msg_id),
        code=code,
        operation=operation,
        matched_dn=_text(info.get("matched", "")),
        diagnostic_message=_text(info.get("info", "")) or _text(info.get("desc", "")),
        referrals=referrals,
        cause=exc,
    )


def _controls(ctrls: Optional[Sequence[Any]]) -> List[LDAPControl]:
    return [
        LDAPControl(
            oid=ctrl.controlType,
            is_critical=bool(ctrl.criticality),
            value=getattr(ctrl, "encodedControlValue", None),
        )
        for ctrl in ctrls or []
    ]


class LDAPTransport(BaseTransport):
    """
    Transport implemented with python-ldap. Requests are sent with the
    asynchronous API of the libldap handle, a reader thread polls the
    responses and routes them to the handlers by message ID.

    Use :meth:`LDAPTransport.open` to create a bound transport.

    :param ldap_obj: an initialized python-ldap object.
    :param on_disconnect: called with the exception when the connection \
    is lost.
    :param float poll_interval: how long the reader waits for a response \
    in one round.
    """

    def __init__(
        self,
        ldap_obj: Any,
        on_disconnect: Optional[Callable[[BaseException], None]] = None,
        poll_interval: float = 0.05,
    ) -> None:
        self.__ldap = ldap_obj
        self.__on_disconnect = on_disconnect
        self.__poll_interval = poll_interval
        self.__lock = threading.Lock()
        self.__handlers = {}  # type: Dict[int, Tuple[ResponseHandler, OperationType]]
        self.__closed = threading.Event()
        self.__work = threading.Event()
        self.__tmp_files = []  # type: List[str]
        self.__reader = threading.Thread(
            target=self.__run, name="banyan-reader", daemon=True
        )

    @classmethod
    def open(
        cls,
        client: "LDAPClient",
        on_disconnect: Optional[Callable[[BaseException], None]] = None,
    ) -> "LDAPTransport":
        """
        Connect and bind to the server set in the client, and start the
        reader thread.

        :param LDAPClient client: the client with the connection settings.
        :param on_disconnect: called with the exception when the \
        connection is lost.
        :return: a running transport.
        :raises LDAPError: if connecting or binding is failed.
        """
        translator = ResponseTranslator()
        tmp_files = []  # type: List[str]
        try:
            ldap_obj = ldap.initialize(client.url)
            ldap_obj.set_option(ldap.OPT_PROTOCOL_VERSION, ldap.VERSION3)
            ldap_obj.set_option(ldap.OPT_REFERRALS, 0)
            if client.network_timeout is not None:
                ldap_obj.set_option(ldap.OPT_NETWORK_TIMEOUT, client.network_timeout)
            if client.tls is not None:
                tmp_files = cls._apply_tls(ldap_obj, client.tls)
            user, password = client.credentials or ("", "")
            ldap_obj.simple_bind_s(user or "", password or "")
        except ldap.LDAPError as exc:
            _remove_files(tmp_files)
            info = error_info(exc)
            raise translator.from_failure(
                info.get("result", getattr(exc, "errnum", ResultCode.OTHER)),
                _text(info.get("info", "")) or _text(info.get("desc", "")),
                _text(info.get("matched", "")),
                cause=exc,
            ) from exc
        transport = cls(ldap_obj, on_disconnect, client.poll_interval)
        transport.__tmp_files = tmp_files
        transport.__reader.start()
        logger.debug("Connected to %s.", client.url)
        return transport

    @staticmethod
    def _apply_tls(ldap_obj: Any, tls: "TLSConfig") -> List[str]:
        """
        Set the TLS options of the libldap handle. Returns the temporary
        files that have to be removed when the connection is closed.
        """
        tmp_files = []
        if tls.cert_file:
            ldap_obj.set_option(ldap.OPT_X_TLS_CACERTFILE, tls.cert_file)
        else:
            # libldap reads the CA certificates only from PEM files.
            pem = tls.trust_pem()
            fd, path = tempfile.mkstemp(prefix="banyan-", suffix=".pem")
            with os.fdopen(fd, "wb") as pem_file:
                pem_file.write(pem)
            tmp_files.append(path)
            ldap_obj.set_option(ldap.OPT_X_TLS_CACERTFILE, path)
        ldap_obj.set_option(ldap.OPT_X_TLS_REQUIRE_CERT, ldap.OPT_X_TLS_DEMAND)
        if not tls.verify_hostname:
            # libldap checks the hostname whenever the certificate is demanded,
            # it has no option to turn off only the hostname check.
            logger.warning(
                "Hostname verification cannot be turned off, the server's "
                "hostname is still checked against its certificate."
            )
        versions = sorted(_TLS_PROTOCOLS[name] for name in tls.tls_versions)
        ldap_obj.set_option(ldap.OPT_X_TLS_PROTOCOL_MIN, versions[0])
        # PROTOCOL_MAX is only defined with OpenLDAP 2.5+.
        protocol_max = getattr(ldap, "OPT_X_TLS_PROTOCOL_MAX", None)
        if protocol_max is not None:
            ldap_obj.set_option(protocol_max, versions[-1])
        # Reinitialize TLS context to materialize settings.
        ldap_obj.set_option(ldap.OPT_X_TLS_NEWCTX, 0)
        return tmp_files

    def __submit(
        self,
        operation: OperationType,
        handler: ResponseHandler,
        func: Callable[..., int],
        *args: Any
    ) -> int:
        with self.__lock:
            if self.__closed.is_set():
                raise ClosedConnection(CLOSED_CONNECTION_ERROR)
            try:
                msg_id = func(*args)
            except ldap.LDAPError as exc:
                raise ResponseTranslator().from_failed_result(
                    result_from_error(exc, operation)
                ) from exc
            # Registered under the lock that the reader needs for routing,
            # so the response cannot overtake its handler.
            self.__handlers[msg_id] = (handler, operation)
            self.__work.set()
        return msg_id

    def add(
        self, dn: str, attributes: List[Tuple[str, List[bytes]]], handler: ResponseHandler
    ) -> int:
        return self.__submit(
            OperationType.ADD, handler, self.__ldap.add_ext, dn, list(attributes)
        )

    def modify(
        self, dn: str, changes: List[Tuple[str, List[bytes]]], handler: ResponseHandler
    ) -> int:
        modlist = [
            (ldap.MOD_REPLACE, name, values or None) for name, values in changes
        ]
        return self.__submit(
            OperationType.MODIFY, handler, self.__ldap.modify_ext, dn, modlist
        )

    def modify_dn(
        self, dn: str, new_rdn: str, delete_old_rdn: bool, handler: ResponseHandler
    ) -> int:
        return self.__submit(
            OperationType.MODIFY_DN,
            handler,
            self.__ldap.rename,
            dn,
            new_rdn,
            None,
            int(delete_old_rdn),
        )

    def delete(self, dn: str, handler: ResponseHandler) -> int:
        return self.__submit(OperationType.DELETE, handler, self.__ldap.delete_ext, dn)

    def compare(
        self, dn: str, attribute: str, value: bytes, handler: ResponseHandler
    ) -> int:
        return self.__submit(
            OperationType.COMPARE, handler, self.__ldap.compare_ext, dn, attribute, value
        )

    def search(
        self,
        base: str,
        scope: int,
        filter_exp: str,
        attrlist: Optional[List[str]],
        handler: ResponseHandler,
    ) -> int:
        return self.__submit(
            OperationType.SEARCH,
            handler,
            self.__ldap.search_ext,
            base,
            int(scope),
            filter_exp,
            attrlist,
        )

    def is_connected(self) -> bool:
        return not self.__closed.is_set()

    @property
    def pending_count(self) -> int:
        """The number of requests that wait for their terminal message."""
        with self.__lock:
            return len(self.__handlers)

    def __run(self) -> None:
        while not self.__closed.is_set():
            with self.__lock:
                if not self.__handlers:
                    self.__work.clear()
            if not self.__work.wait(self.__poll_interval):
                continue
            if self.__closed.is_set():
                break
            try:
                rtype, rdata, msg_id, ctrls = self.__ldap.result3(
                    ldap.RES_ANY, 0, self.__poll_interval
                )
            except ldap.TIMEOUT:
                continue
            except ldap.LDAPError as exc:
                msg_id = error_info(exc).get("msgid")
                if msg_id is None:
                    self.__disconnected(exc)
                    break
                self.__deliver_error(msg_id, exc)
                continue
            if rtype is None:
                continue
            self.__deliver(rtype, rdata, msg_id, ctrls)

    def __route(self, msg_id: int, terminal: bool) -> Optional[Tuple[ResponseHandler, OperationType]]:
        with self.__lock:
            if terminal:
                slot = self.__handlers.pop(msg_id, None)
            else:
                slot = self.__handlers.get(msg_id)
        if slot is None:
            logger.debug("Response for unknown message ID %s is dropped.", msg_id)
        return slot

    def __deliver(self, rtype: int, rdata: Any, msg_id: int, ctrls: Any) -> None:
        slot = self.__route(msg_id, rtype in _TERMINAL_TYPES)
        if slot is None:
            return
        handler, operation = slot
        try:
            if rtype == ldap.RES_SEARCH_ENTRY:
                for dn, attrs in rdata:
                    handler.entry_returned(dn, attrs)
            elif rtype == ldap.RES_SEARCH_REFERENCE:
                for _, uris in rdata:
                    handler.reference_returned(
                        LDAPReference(msg_id, uris or [], _controls(ctrls))
                    )
            else:
                handler.result_received(
                    LDAPResult(msg_id=msg_id, code=ResultCode.SUCCESS, operation=operation)
                )
        except Exception:
            # The reader serves every request of the connection, a failing
            # handler must not stop it.
            logger.exception("Handler of message ID %s raised an error.", msg_id)

    def __deliver_error(self, msg_id: int, exc: ldap.LDAPError) -> None:
        slot = self.__route(msg_id, True)
        if slot is None:
            return
        handler, operation = slot
        try:
            handler.result_received(result_from_error(exc, operation, msg_id))
        except Exception:
            logger.exception("Handler of message ID %s raised an error.", msg_id)

    def __disconnected(self, exc: BaseException) -> None:
        with self.__lock:
            already_closed = self.__closed.is_set()
            self.__closed.set()
            pending = len(self.__handlers)
            self.__handlers.clear()
        if already_closed:
            return
        logger.warning(
            "Connection is lost with %d pending request(s): %s", pending, exc
        )
        self.__release()
        if self.__on_disconnect is not None:
            self.__on_disconnect(exc)

    def __release(self) -> None:
        try:
            self.__ldap.unbind_ext_s()
        except ldap.LDAPError as exc:
            logger.debug("Unbind failed: %s", exc)
        _remove_files(self.__tmp_files)
        self.__tmp_files = []

    def close(self) -> None:
        """Stop the reader thread and unbind. Closing twice has no effect."""
        with self.__lock:
            if self.__closed.is_set():
                return
            self.__closed.set()
            self.__handlers.clear()
            self.__work.set()
        if self.__reader.is_alive() and self.__reader is not threading.current_thread():
            self.__reader.join()
        self.__release()
        logger.debug("Transport is closed.")


def _remove_files(paths: List[str]) -> None:
    for path in paths:
        try:
            os.remove(path)
        except OSError as exc:
            logger.debug("Cannot remove %s: %s", path, exc)
