"""
.. module:: tlsconfig
   :synopsis: TLS settings of an LDAP client.

"""
from typing import List, Optional

from cryptography import x509
from cryptography.hazmat.primitives.serialization import Encoding, pkcs12

from .errors import ConfigurationError

EMPTY_CERT_FILE_PATH_ERROR = "Certificate file path cannot be empty"
EMPTY_TRUST_STORE_FILE_PATH_ERROR = "Truststore file path cannot be empty"
EMPTY_TRUST_STORE_PASSWORD_ERROR = "Truststore password cannot be empty"
UNSUPPORTED_TRUST_STORE_TYPE_ERROR = "Unsupported trust store type"
TRUST_STORE_INITIALIZATION_ERROR = "Error occurred while initializing trust store"

SUPPORTED_TLS_VERSIONS = ("TLSv1", "TLSv1.0", "TLSv1.1", "TLSv1.2", "TLSv1.3")
DEFAULT_TLS_VERSIONS = ["TLSv1.2"]


class TLSConfig:
    """
    Trust material and protocol settings of a TLS protected connection.
    Exactly one of `cert_file` and `truststore` has to be set.

    :param str cert_file: path to a PEM file of trusted CA certificates.
    :param str truststore: path to a PKCS12 trust store.
    :param str truststore_password: password of the trust store.
    :param bool verify_hostname: check that the server's certificate \
    belongs to the host. libldap always matches the hostname when it \
    demands a trusted certificate, so False only logs a warning.
    :param list tls_versions: the enabled protocol versions, \
    `["TLSv1.2"]` by default.
    :raises ConfigurationError: if the settings are invalid.
    """

    def __init__(
        self,
        cert_file: Optional[str] = None,
        truststore: Optional[str] = None,
        truststore_password: Optional[str] = None,
        verify_hostname: bool = True,
        tls_versions: Optional[List[str]] = None,
    ) -> None:
        if cert_file is not None and truststore is not None:
            raise ConfigurationError(
                "Either the certificate file or the trust store should be set, "
                "but not both."
            )
        if cert_file is None and truststore is None:
            raise ConfigurationError(
                "One of the certificate file or the trust store is required."
            )
        if cert_file is not None:
            if not isinstance(cert_file, str):
                raise ConfigurationError(UNSUPPORTED_TRUST_STORE_TYPE_ERROR)
            if not cert_file.strip():
                raise ConfigurationError(EMPTY_CERT_FILE_PATH_ERROR)
        else:
            if not isinstance(truststore, str):
                raise ConfigurationError(UNSUPPORTED_TRUST_STORE_TYPE_ERROR)
            if not truststore.strip():
                raise ConfigurationError(EMPTY_TRUST_STORE_FILE_PATH_ERROR)
            if not isinstance(truststore_password, str) or not truststore_password.strip():
                raise ConfigurationError(EMPTY_TRUST_STORE_PASSWORD_ERROR)
        if not isinstance(verify_hostname, bool):
            raise TypeError("The verify_hostname parameter must be bool.")
        if tls_versions is None:
            tls_versions = list(DEFAULT_TLS_VERSIONS)
        if not tls_versions:
            raise ConfigurationError("At least one TLS version must be enabled.")
        for version in tls_versions:
            if version not in SUPPORTED_TLS_VERSIONS:
                raise ConfigurationError("'%s' is an unsupported TLS version." % version)
        self.__cert_file = cert_file
        self.__truststore = truststore
        self.__truststore_password = truststore_password
        self.__verify_hostname = verify_hostname
        self.__tls_versions = list(tls_versions)

    @property
    def cert_file(self) -> Optional[str]:
        """Path to the PEM file of the trusted certificates."""
        return self.__cert_file

    @property
    def truststore(self) -> Optional[str]:
        """Path to the PKCS12 trust store."""
        return self.__truststore

    @property
    def verify_hostname(self) -> bool:
        """Whether the hostname of the server is verified."""
        return self.__verify_hostname

    @property
    def tls_versions(self) -> List[str]:
        """The enabled TLS protocol versions."""
        return list(self.__tls_versions)

    def trust_pem(self) -> bytes:
        """
        Return the trusted certificates in PEM format. A PKCS12 trust
        store is opened with its password.

        :rtype: bytes
        :raises ConfigurationError: if the file cannot be read or decoded.
        """
        path = self.__cert_file or self.__truststore
        try:
            with open(path, "rb") as trust_file:
                data = trust_file.read()
        except OSError as err:
            raise ConfigurationError(
                "%s: %s" % (TRUST_STORE_INITIALIZATION_ERROR, err)
            ) from err
        if self.__cert_file is not None:
            try:
                certs = x509.load_pem_x509_certificates(data)
            except ValueError as err:
                raise ConfigurationError(
                    "%s: %s" % (TRUST_STORE_INITIALIZATION_ERROR, err)
                ) from err
        else:
            try:
                _, cert, additional = pkcs12.load_key_and_certificates(
                    data, self.__truststore_password.encode("utf-8")
                )
            except ValueError as err:
                raise ConfigurationError(
                    "%s: %s" % (TRUST_STORE_INITIALIZATION_ERROR, err)
                ) from err
            certs = ([cert] if cert is not None else []) + list(additional)
        if not certs:
            raise ConfigurationError(
                "%s: no certificate is found." % TRUST_STORE_INITIALIZATION_ERROR
            )
        return b"".join(cert.public_bytes(Encoding.PEM) for cert in certs)

    def __repr__(self) -> str:
        source = (
            "cert_file=%r" % self.__cert_file
            if self.__cert_file is not None
            else "truststore=%r" % self.__truststore
        )
        return "<TLSConfig %s verify_hostname=%s tls_versions=%s>" % (
            source,
            self.__verify_hostname,
            self.__tls_versions,
        )
