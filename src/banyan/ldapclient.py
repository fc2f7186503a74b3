"""
.. module:: LDAPClient
   :platform: Unix
   :synopsis: For managing LDAP connections.

"""
from typing import Any, Callable, Mapping, Optional, Tuple, Type

from .asyncio import AIOLDAPConnection
from .errors import ConfigurationError
from .ldapconnection import BaseLDAPConnection, LDAPConnection
from .ldaptransport import BaseTransport, LDAPTransport
from .tlsconfig import TLSConfig

TransportFactory = Callable[["LDAPClient", Callable[[BaseException], None]], BaseTransport]


class LDAPClient:
    """
    A class for configuring the connection to the directory server.

    :param str host: the hostname or IP address of the server.
    :param int port: the port of the server.
    :raises TypeError: if the `host` is not a string or the `port` is \
    not an int.
    :raises ValueError: if the `host` is empty or the `port` is out of \
    range.
    """

    def __init__(self, host: str, port: int = 389) -> None:
        """Init method."""
        if not isinstance(host, str):
            raise TypeError("The host parameter must be a string.")
        if not host.strip():
            raise ValueError("The host parameter cannot be empty.")
        if not isinstance(port, int) or isinstance(port, bool):
            raise TypeError("The port parameter must be an int.")
        if not 0 < port < 65536:
            raise ValueError("'%d' is an invalid port number." % port)
        self.__host = host
        self.__port = port
        self.__credentials = None  # type: Optional[Tuple[str, str]]
        self.__tls = None  # type: Optional[TLSConfig]
        self.__poll_interval = 0.05
        self.__network_timeout = None  # type: Optional[float]
        self.__transport_factory = LDAPTransport.open  # type: TransportFactory
        self.__async_conn = AIOLDAPConnection  # type: Type[BaseLDAPConnection]

    def set_credentials(self, user: str, password: str) -> None:
        """
        Set the identity and the password for simple binding. The user
        can be a bind DN or a principal such as `user@domain`.

        :param str user: the identification of the binding user.
        :param str password: the password of the user.
        :raises TypeError: if any of the parameters is not a string.
        """
        if not isinstance(user, str) or not isinstance(password, str):
            raise TypeError("The user and password parameters must be strings.")
        self.__credentials = (user, password)

    def set_tls(self, tls: Optional[TLSConfig]) -> None:
        """
        Set the TLS configuration. With a :class:`TLSConfig` the client
        connects with `ldaps://`, with None with plain `ldap://`.

        :param TLSConfig tls: the TLS settings or None.
        :raises TypeError: if the parameter is not a TLSConfig or None.
        """
        if tls is not None and not isinstance(tls, TLSConfig):
            raise TypeError("The tls parameter must be a TLSConfig or None.")
        self.__tls = tls

    def set_poll_interval(self, seconds: float) -> None:
        """
        Set how long the reader thread of the transport waits for a
        response in one round.

        :param float seconds: the interval in seconds.
        :raises TypeError: if the parameter is not a number.
        :raises ValueError: if the parameter is not positive.
        """
        if not isinstance(seconds, (int, float)) or isinstance(seconds, bool):
            raise TypeError("The poll interval must be a number.")
        if seconds <= 0:
            raise ValueError("The poll interval must be greater than zero.")
        self.__poll_interval = float(seconds)

    def set_network_timeout(self, seconds: Optional[float]) -> None:
        """
        Set the time limit of establishing the network connection.

        :param float seconds: the time limit in seconds, or None to use \
        the default of libldap.
        :raises TypeError: if the parameter is not a number or None.
        :raises ValueError: if the parameter is negative.
        """
        if seconds is not None:
            if not isinstance(seconds, (int, float)) or isinstance(seconds, bool):
                raise TypeError("The network timeout must be a number or None.")
            if seconds < 0:
                raise ValueError("The network timeout must be a positive number.")
            seconds = float(seconds)
        self.__network_timeout = seconds

    def set_transport_factory(self, factory: TransportFactory) -> None:
        """
        Set the callable that creates the transport of a new connection.
        It's called with the client and a callback, that the transport
        has to call with the error when the connection is lost. The
        default factory is :meth:`LDAPTransport.open`.

        :param factory: the transport factory.
        :raises TypeError: if the parameter is not callable.
        """
        if not callable(factory):
            raise TypeError("The transport factory must be callable.")
        self.__transport_factory = factory

    def set_async_connection_class(self, conn: Type[BaseLDAPConnection]) -> None:
        """
        Set the LDAP connection class for asynchronous connection. The \
        default connection class is :class:`banyan.asyncio.AIOLDAPConnection`
        that uses the asyncio event loop.

        :param BaseLDAPConnection conn: the new asynchronous connection class \
        that is a subclass of BaseLDAPConnection.
        :raises TypeError: if `conn` parameter is not a subclass \
        of :class:`BaseLDAPConnection`.
        """
        if not isinstance(conn, type) or not issubclass(conn, BaseLDAPConnection):
            raise TypeError("Class must be a subclass of BaseLDAPConnection. ")
        self.__async_conn = conn

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "LDAPClient":
        """
        Create a client from a mapping, e.g. a dict or a section of a
        :class:`configparser.ConfigParser`. The recognised keys are `host`,
        `port`, `user`, `password` and `secure_socket`. The latter is a
        mapping with `cert` (path of a PEM file), or `truststore` and
        `password`, and optionally `verify_hostname` and `tls_versions`.

        :param dict config: the configuration.
        :rtype: LDAPClient
        :raises ConfigurationError: if a required key is missing or a \
        value is invalid.
        """
        try:
            host = config["host"]
        except KeyError:
            raise ConfigurationError("The host is missing from the configuration.") from None
        try:
            port = int(config.get("port", 389))
        except (TypeError, ValueError) as err:
            raise ConfigurationError("Invalid port: %s" % config.get("port")) from err
        try:
            client = cls(host, port)
        except (TypeError, ValueError) as err:
            raise ConfigurationError(str(err)) from err
        user = config.get("user")
        if user is not None:
            client.set_credentials(user, config.get("password") or "")
        secure_socket = config.get("secure_socket")
        if secure_socket is not None:
            versions = secure_socket.get("tls_versions")
            if isinstance(versions, str):
                versions = [ver.strip() for ver in versions.split(",") if ver.strip()]
            verify = secure_socket.get("verify_hostname", True)
            if isinstance(verify, str):
                verify = verify.strip().lower() in ("1", "yes", "true", "on")
            client.set_tls(
                TLSConfig(
                    cert_file=secure_socket.get("cert"),
                    truststore=secure_socket.get("truststore"),
                    truststore_password=secure_socket.get("password"),
                    verify_hostname=verify,
                    tls_versions=versions,
                )
            )
        return client

    @property
    def host(self) -> str:
        """The hostname of the server. It cannot be set."""
        return self.__host

    @property
    def port(self) -> int:
        """The port of the server. It cannot be set."""
        return self.__port

    @property
    def url(self) -> str:
        """The URL of the directory server."""
        scheme = "ldaps" if self.__tls is not None else "ldap"
        return "{0}://{1}:{2}".format(scheme, self.__host, self.__port)

    @property
    def credentials(self) -> Optional[Tuple[str, str]]:
        """The user and password pair. It cannot be set."""
        return self.__credentials

    @property
    def tls(self) -> Optional[TLSConfig]:
        """The TLS settings."""
        return self.__tls

    @tls.setter
    def tls(self, value: Optional[TLSConfig]) -> None:
        self.set_tls(value)

    @property
    def poll_interval(self) -> float:
        """The poll interval of the reader thread in seconds."""
        return self.__poll_interval

    @poll_interval.setter
    def poll_interval(self, value: float) -> None:
        self.set_poll_interval(value)

    @property
    def network_timeout(self) -> Optional[float]:
        """The time limit of establishing the connection in seconds."""
        return self.__network_timeout

    @network_timeout.setter
    def network_timeout(self, value: Optional[float]) -> None:
        self.set_network_timeout(value)

    @property
    def transport_factory(self) -> TransportFactory:
        """The callable that creates the transport of a connection."""
        return self.__transport_factory

    @transport_factory.setter
    def transport_factory(self, value: TransportFactory) -> None:
        self.set_transport_factory(value)

    def connect(self, is_async: bool = False, **kwargs: Any) -> BaseLDAPConnection:
        """
        Open a connection to the LDAP server.

        :param bool is_async: Set `True` to use asynchronous connection.
        :param \\*\\*kwargs: additional keyword arguments that are passed to
                         the connection object (e.g. an eventloop
                         object as `loop` parameter for the async connection,
                         or a `codec`).
        :return: an LDAP connection.
        :rtype: :class:`LDAPConnection`
        """
        if is_async:
            return self.__async_conn(self, **kwargs).open()
        else:
            return LDAPConnection(self, **kwargs).open()

    def __repr__(self) -> str:
        return "<LDAPClient %s>" % self.url
