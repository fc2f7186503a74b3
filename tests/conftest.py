import asyncio
import datetime
import itertools
import threading
from functools import wraps

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.serialization import pkcs12
from cryptography.x509.oid import NameOID

from banyan import LDAPClient
from banyan.ldapreference import LDAPReference
from banyan.ldapresult import LDAPResult, OperationType
from banyan.ldaptransport import BaseTransport
from banyan.resultcode import ResultCode


def asyncio_test(func):
    @wraps(func)
    def wrapper(*args, **kwargs):
        future = func(*args, **kwargs)
        asyncio.run(future)

    return wrapper


class FakeTransport(BaseTransport):
    """
    A transport that records the requests and lets the tests deliver the
    responses by hand.
    """

    def __init__(self, client=None, on_disconnect=None):
        self.client = client
        self.on_disconnect = on_disconnect
        self.calls = []
        self.handlers = {}
        self.operations = {}
        self.connected = True
        self.close_count = 0
        self.send_error = None
        self.responder = None
        self.requests = {}
        self.__ids = itertools.count(1)
        self.__lock = threading.Lock()

    def _send(self, operation, handler, *args):
        with self.__lock:
            self.calls.append((operation, args))
            if self.send_error is not None:
                raise self.send_error
            msg_id = next(self.__ids)
            self.requests[msg_id] = args
            self.operations[msg_id] = operation
            self.handlers[msg_id] = handler
        if self.responder is not None:
            # Answer from another thread, like the reader of a real transport.
            threading.Thread(
                target=self.responder, args=(self, msg_id, operation, args)
            ).start()
        return msg_id

    def add(self, dn, attributes, handler):
        return self._send(OperationType.ADD, handler, dn, attributes)

    def modify(self, dn, changes, handler):
        return self._send(OperationType.MODIFY, handler, dn, changes)

    def modify_dn(self, dn, new_rdn, delete_old_rdn, handler):
        return self._send(OperationType.MODIFY_DN, handler, dn, new_rdn, delete_old_rdn)

    def delete(self, dn, handler):
        return self._send(OperationType.DELETE, handler, dn)

    def compare(self, dn, attribute, value, handler):
        return self._send(OperationType.COMPARE, handler, dn, attribute, value)

    def search(self, base, scope, filter_exp, attrlist, handler):
        return self._send(OperationType.SEARCH, handler, base, scope, filter_exp, attrlist)

    def is_connected(self):
        return self.connected

    def close(self):
        self.close_count += 1
        self.connected = False

    @property
    def last_msg_id(self):
        return max(self.handlers)

    def entry(self, msg_id, dn, attributes):
        self.handlers[msg_id].entry_returned(dn, attributes)

    def reference(self, msg_id, uris):
        self.handlers[msg_id].reference_returned(LDAPReference(msg_id, uris))

    def result(self, msg_id, code=ResultCode.SUCCESS, message="", matched_dn=""):
        self.handlers[msg_id].result_received(
            LDAPResult(
                msg_id=msg_id,
                code=code,
                operation=self.operations[msg_id],
                matched_dn=matched_dn,
                diagnostic_message=message,
            )
        )

    def result_in_thread(self, msg_id, code=ResultCode.SUCCESS, message=""):
        thread = threading.Thread(target=self.result, args=(msg_id, code, message))
        thread.start()
        return thread

    def drop(self, exc):
        self.connected = False
        self.on_disconnect(exc)


@pytest.fixture
def transports():
    """The transports created by the client fixture."""
    return []


@pytest.fixture
def client(transports):
    """Get an LDAPClient that connects with fake transports."""

    def factory(cli, on_disconnect):
        transport = FakeTransport(cli, on_disconnect)
        transports.append(transport)
        return transport

    cli = LDAPClient("ldap.example.org", 389)
    cli.set_credentials("cn=admin,dc=example,dc=org", "p@ssword")
    cli.set_transport_factory(factory)
    return cli


@pytest.fixture
def conn(client):
    """Get an opened blocking connection."""
    connection = client.connect()
    yield connection
    connection.close()


@pytest.fixture
def transport(conn, transports):
    """The transport of the `conn` fixture."""
    return transports[0]


@pytest.fixture(scope="module")
def basedn():
    """Get base DN."""
    return "ou=people,dc=example,dc=org"


@pytest.fixture(scope="module")
def ca_cert():
    """Create a self-signed CA certificate and its key."""
    key = ec.generate_private_key(ec.SECP256R1())
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "banyan test CA")])
    now = datetime.datetime.now(datetime.timezone.utc)
    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now)
        .not_valid_after(now + datetime.timedelta(days=1))
        .add_extension(x509.BasicConstraints(ca=True, path_length=None), critical=True)
        .sign(key, hashes.SHA256())
    )
    return key, cert


@pytest.fixture
def pem_file(tmp_path, ca_cert):
    """A PEM file with the test CA certificate."""
    path = tmp_path / "ca.pem"
    path.write_bytes(ca_cert[1].public_bytes(serialization.Encoding.PEM))
    return str(path)


@pytest.fixture
def p12_file(tmp_path, ca_cert):
    """A PKCS12 trust store with the test CA, its password is `changeit`."""
    path = tmp_path / "truststore.p12"
    path.write_bytes(
        pkcs12.serialize_key_and_certificates(
            b"ca",
            ca_cert[0],
            ca_cert[1],
            None,
            serialization.BestAvailableEncryption(b"changeit"),
        )
    )
    return str(path)
