import itertools
import logging
import os
import queue
import threading

import ldap
import pytest

from banyan import LDAPClient, TLSConfig
from banyan.errors import (
    AuthenticationError,
    ClosedConnection,
    CodecError,
    ConnectionError,
    TimeoutError,
)
from banyan.ldapresult import OperationType
from banyan.ldaptransport import LDAPTransport, ResponseHandler
from banyan.resultcode import ResultCode


class StubLDAPObject:
    """Stands in for the object that `ldap.initialize` returns."""

    bind_error = None

    def __init__(self, uri):
        self.uri = uri
        self.options = {}
        self.bound = None
        self.unbound = False
        self.requests = []
        self.responses = queue.Queue()
        self.__ids = itertools.count(1)

    def set_option(self, option, value):
        self.options[option] = value

    def simple_bind_s(self, who, cred):
        if self.bind_error is not None:
            raise self.bind_error
        self.bound = (who, cred)

    def unbind_ext_s(self):
        self.unbound = True

    def _request(self, *args):
        msg_id = next(self.__ids)
        self.requests.append((msg_id,) + args)
        return msg_id

    def add_ext(self, dn, modlist):
        return self._request("add", dn, modlist)

    def modify_ext(self, dn, modlist):
        return self._request("modify", dn, modlist)

    def rename(self, dn, newrdn, newsuperior, delold):
        return self._request("rename", dn, newrdn, newsuperior, delold)

    def delete_ext(self, dn):
        return self._request("delete", dn)

    def compare_ext(self, dn, attr, value):
        return self._request("compare", dn, attr, value)

    def search_ext(self, base, scope, filterstr, attrlist):
        return self._request("search", base, scope, filterstr, attrlist)

    def result3(self, msgid, all, timeout):
        try:
            item = self.responses.get(timeout=timeout)
        except queue.Empty:
            raise ldap.TIMEOUT({"desc": "Timed out"})
        if isinstance(item, Exception):
            raise item
        return item


class RecordingHandler(ResponseHandler):
    def __init__(self):
        self.entries = []
        self.references = []
        self.results = []
        self.done = threading.Event()

    def entry_returned(self, dn, attributes):
        self.entries.append((dn, attributes))

    def reference_returned(self, reference):
        self.references.append(reference)

    def result_received(self, result):
        self.results.append(result)
        self.done.set()


@pytest.fixture
def stubs(monkeypatch):
    """The stub objects created by `ldap.initialize`."""
    created = []

    def initialize(uri):
        obj = StubLDAPObject(uri)
        created.append(obj)
        return obj

    monkeypatch.setattr(ldap, "initialize", initialize)
    return created


@pytest.fixture
def ldap_client():
    client = LDAPClient("ldap.example.org")
    client.set_credentials("cn=admin,dc=example,dc=org", "p@ssword")
    client.set_poll_interval(0.01)
    return client


@pytest.fixture
def transport(stubs, ldap_client):
    disconnects = []
    trans = LDAPTransport.open(ldap_client, disconnects.append)
    trans.disconnects = disconnects
    yield trans
    trans.close()


def test_open(transport, stubs):
    """Test initializing and binding."""
    stub = stubs[0]
    assert stub.uri == "ldap://ldap.example.org:389"
    assert stub.bound == ("cn=admin,dc=example,dc=org", "p@ssword")
    assert stub.options[ldap.OPT_PROTOCOL_VERSION] == ldap.VERSION3
    assert stub.options[ldap.OPT_REFERRALS] == 0
    assert transport.is_connected()


def test_close(transport, stubs):
    """Test closing the transport."""
    transport.close()
    assert not transport.is_connected()
    assert stubs[0].unbound
    transport.close()
    with pytest.raises(ClosedConnection):
        transport.delete("cn=a,dc=example,dc=org", RecordingHandler())


@pytest.mark.parametrize(
    "error, expected",
    [
        (
            ldap.INVALID_CREDENTIALS({"result": 49, "desc": "Invalid credentials"}),
            AuthenticationError,
        ),
        (
            ldap.SERVER_DOWN({"result": -1, "desc": "Can't contact LDAP server"}),
            ConnectionError,
        ),
    ],
)
def test_bind_errors(monkeypatch, stubs, ldap_client, error, expected):
    """Test that the errors of binding are mapped."""
    monkeypatch.setattr(StubLDAPObject, "bind_error", error)
    with pytest.raises(expected) as excinfo:
        LDAPTransport.open(ldap_client)
    assert excinfo.value.__cause__ is error


def test_network_timeout(stubs, ldap_client):
    """Test setting the network timeout."""
    ldap_client.set_network_timeout(3)
    trans = LDAPTransport.open(ldap_client)
    try:
        assert stubs[0].options[ldap.OPT_NETWORK_TIMEOUT] == 3.0
    finally:
        trans.close()


def test_tls_pem(stubs, ldap_client, pem_file):
    """Test the TLS options with a PEM file."""
    ldap_client.set_tls(TLSConfig(cert_file=pem_file))
    trans = LDAPTransport.open(ldap_client)
    try:
        opts = stubs[0].options
        assert stubs[0].uri == "ldaps://ldap.example.org:389"
        assert opts[ldap.OPT_X_TLS_CACERTFILE] == pem_file
        assert opts[ldap.OPT_X_TLS_REQUIRE_CERT] == ldap.OPT_X_TLS_DEMAND
        assert opts[ldap.OPT_X_TLS_PROTOCOL_MIN] == 0x303
        assert ldap.OPT_X_TLS_NEWCTX in opts
    finally:
        trans.close()


def test_tls_pkcs12(stubs, ldap_client, p12_file, ca_cert):
    """Test that a PKCS12 trust store is passed as a temporary PEM file."""
    ldap_client.set_tls(
        TLSConfig(
            truststore=p12_file,
            truststore_password="changeit",
            tls_versions=["TLSv1.3", "TLSv1.2"],
        )
    )
    trans = LDAPTransport.open(ldap_client)
    path = stubs[0].options[ldap.OPT_X_TLS_CACERTFILE]
    assert path != p12_file
    assert os.path.exists(path)
    assert stubs[0].options[ldap.OPT_X_TLS_PROTOCOL_MIN] == 0x303
    trans.close()
    assert not os.path.exists(path)


def test_requests(transport, stubs):
    """Test the python-ldap calls of the operations."""
    stub = stubs[0]
    handler = RecordingHandler()
    assert transport.add("cn=a", [("cn", [b"a"])], handler) == 1
    transport.modify("cn=a", [("mail", [b"x"]), ("sn", [])], handler)
    transport.modify_dn("cn=a", "cn=b", True, handler)
    transport.delete("cn=b", handler)
    transport.compare("cn=b", "cn", b"b", handler)
    transport.search("dc=example,dc=org", 2, "(cn=*)", ["cn"], handler)
    assert stub.requests == [
        (1, "add", "cn=a", [("cn", [b"a"])]),
        (
            2,
            "modify",
            "cn=a",
            [(ldap.MOD_REPLACE, "mail", [b"x"]), (ldap.MOD_REPLACE, "sn", None)],
        ),
        (3, "rename", "cn=a", "cn=b", None, 1),
        (4, "delete", "cn=b"),
        (5, "compare", "cn=b", "cn", b"b"),
        (6, "search", "dc=example,dc=org", 2, "(cn=*)", ["cn"]),
    ]
    assert transport.pending_count == 6


def test_send_error(transport, stubs):
    """Test that errors of the asynchronous calls are raised as LDAPError."""

    def fail(dn):
        raise ldap.SERVER_DOWN({"result": -1, "desc": "Can't contact LDAP server"})

    stubs[0].delete_ext = fail
    with pytest.raises(ConnectionError):
        transport.delete("cn=a", RecordingHandler())
    assert transport.pending_count == 0


def test_search_routing(transport, stubs):
    """Test routing the messages of a search."""
    stub = stubs[0]
    handler = RecordingHandler()
    other = RecordingHandler()
    msg_id = transport.search("dc=example,dc=org", 2, "(cn=*)", None, handler)
    other_id = transport.delete("cn=x", other)
    stub.responses.put((ldap.RES_SEARCH_ENTRY, [("cn=a", {"cn": [b"a"]})], msg_id, []))
    stub.responses.put((ldap.RES_DELETE, [], other_id, []))
    stub.responses.put((ldap.RES_SEARCH_REFERENCE, [(None, [b"ldap://b/dc=b"])], msg_id, []))
    stub.responses.put((ldap.RES_SEARCH_RESULT, [], msg_id, []))
    assert handler.done.wait(5)
    assert other.done.wait(5)
    assert handler.entries == [("cn=a", {"cn": [b"a"]})]
    assert handler.references[0].references == ["ldap://b/dc=b"]
    assert handler.references[0].message_id == msg_id
    assert handler.results[0].code == ResultCode.SUCCESS
    assert handler.results[0].operation == OperationType.SEARCH
    assert other.results[0].operation == OperationType.DELETE
    assert transport.pending_count == 0


def test_error_result(transport, stubs):
    """Test that exceptions with a message ID are terminal results."""
    stub = stubs[0]
    handler = RecordingHandler()
    msg_id = transport.compare("cn=a", "cn", b"a", handler)
    stub.responses.put(
        ldap.COMPARE_TRUE({"msgid": msg_id, "msgtype": ldap.RES_COMPARE, "result": 6})
    )
    assert handler.done.wait(5)
    assert handler.results[0].code == ResultCode.COMPARE_TRUE
    handler = RecordingHandler()
    msg_id = transport.delete("cn=a", handler)
    error = ldap.NO_SUCH_OBJECT(
        {
            "msgid": msg_id,
            "result": 32,
            "desc": "No such object",
            "matched": "dc=example,dc=org",
        }
    )
    stub.responses.put(error)
    assert handler.done.wait(5)
    result = handler.results[0]
    assert result.code == ResultCode.NO_SUCH_OBJECT
    assert result.matched_dn == "dc=example,dc=org"
    assert result.diagnostic_message == "No such object"
    assert result.cause is error
    assert transport.is_connected()


def test_unknown_message(transport, stubs):
    """Test that responses of unknown requests are dropped."""
    stub = stubs[0]
    handler = RecordingHandler()
    msg_id = transport.delete("cn=a", handler)
    stub.responses.put((ldap.RES_DELETE, [], 99, []))
    stub.responses.put((ldap.RES_DELETE, [], msg_id, []))
    assert handler.done.wait(5)
    assert len(handler.results) == 1


def test_failing_handler(transport, stubs):
    """Test that an exception of a handler doesn't stop the reader."""

    class FailingHandler(RecordingHandler):
        def entry_returned(self, dn, attributes):
            raise RuntimeError("broken")

    stub = stubs[0]
    handler = FailingHandler()
    msg_id = transport.search("dc=example,dc=org", 2, "(cn=*)", None, handler)
    stub.responses.put((ldap.RES_SEARCH_ENTRY, [("cn=a", {})], msg_id, []))
    stub.responses.put((ldap.RES_SEARCH_RESULT, [], msg_id, []))
    assert handler.done.wait(5)


def test_disconnect(transport, stubs):
    """Test that a lost connection closes the transport."""
    stub = stubs[0]
    transport.delete("cn=a", RecordingHandler())
    error = ldap.SERVER_DOWN({"result": -1, "desc": "Can't contact LDAP server"})
    stub.responses.put(error)
    for _ in range(500):
        if transport.disconnects:
            break
        threading.Event().wait(0.01)
    assert transport.disconnects == [error]
    assert not transport.is_connected()
    assert transport.pending_count == 0
    assert stub.unbound


def test_search_processing_error(stubs, ldap_client):
    """Test that an error of converting an entry fails the search."""
    with ldap_client.connect() as conn:
        stub = stubs[0]
        stub.responses.put(
            (ldap.RES_SEARCH_ENTRY, [("cn=a,dc=example,dc=org", {"cn": [b"a"]})], 1, [])
        )
        stub.responses.put(
            (
                ldap.RES_SEARCH_ENTRY,
                [("cn=b,dc=example,dc=org", {"cn": [b"b"], "mail": [b"b@example.org"]})],
                1,
                [],
            )
        )
        stub.responses.put((ldap.RES_SEARCH_RESULT, [], 1, []))
        with pytest.raises(CodecError) as excinfo:
            conn.search_typed(
                "dc=example,dc=org",
                "(cn=*)",
                "SUB",
                lambda entry: entry["mail"],
                timeout=5,
            )
        assert isinstance(excinfo.value.__cause__, KeyError)
        assert conn.pending_count == 0


def test_close_during_dispatch(stubs, ldap_client):
    """Test that closing fails a request that is sent at the same time."""
    conn = ldap_client.connect()
    transport = conn.validate()
    entered = threading.Event()
    release = threading.Event()
    submit = conn._correlator.submit
    close = transport.close

    def delayed_submit(*args):
        entered.set()
        release.wait(5)
        return submit(*args)

    def delayed_close():
        # Let the request reach the transport before it's closed.
        release.set()
        for _ in range(500):
            if transport.pending_count:
                break
            threading.Event().wait(0.01)
        close()

    conn._correlator.submit = delayed_submit
    transport.close = delayed_close
    errors = []

    def call():
        try:
            conn.delete("cn=a,dc=example,dc=org", timeout=5)
        except (ClosedConnection, TimeoutError) as exc:
            errors.append(exc)

    thread = threading.Thread(target=call)
    thread.start()
    assert entered.wait(5)
    conn.close()
    thread.join(10)
    assert len(errors) == 1
    assert isinstance(errors[0], ClosedConnection)
    assert conn.pending_count == 0


def test_tls_hostname_verification(stubs, ldap_client, pem_file, caplog):
    """Test that turning off the hostname verification only warns."""
    ldap_client.set_tls(TLSConfig(cert_file=pem_file, verify_hostname=False))
    with caplog.at_level(logging.WARNING, logger="banyan"):
        trans = LDAPTransport.open(ldap_client)
    try:
        opts = stubs[0].options
        assert opts[ldap.OPT_X_TLS_REQUIRE_CERT] == ldap.OPT_X_TLS_DEMAND
        if hasattr(ldap, "OPT_X_TLS_REQUIRE_SAN"):
            assert ldap.OPT_X_TLS_REQUIRE_SAN not in opts
        assert "Hostname verification cannot be turned off" in caplog.text
    finally:
        trans.close()
