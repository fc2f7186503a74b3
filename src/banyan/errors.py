from dataclasses import dataclass
from typing import Any, Dict, Optional, Type

from .resultcode import result_code_name


@dataclass(frozen=True)
class ErrorDetail:
    """
    Structured payload attached to errors that come from a directory result.

    :param str result_code: the upper-cased name of the result code.
    :param int code: the numeric result code.
    :param str diagnostic_message: the server's diagnostic message.
    :param str matched_dn: the matched DN returned by the server.
    """

    result_code: str
    code: int
    diagnostic_message: str = ""
    matched_dn: str = ""


class LDAPError(Exception):
    """General LDAP error."""

    code = 0

    def __init__(self, *args: Any, detail: Optional[ErrorDetail] = None) -> None:
        super().__init__(*args)
        self.detail = detail
        if detail is not None:
            self.code = detail.code

    @property
    def hexcode(self) -> int:
        """ Error code in 16 bit length hexadecimal format. """
        return (self.code + (1 << 16)) % (1 << 16)

    @property
    def result_code(self) -> str:
        """ Upper-cased name of the result code behind the error. """
        if self.detail is not None:
            return self.detail.result_code
        return result_code_name(self.code)

    def __str__(self) -> str:
        return "{} (0x{:04X} [{:d}])".format(
            self.args[0] if self.args else "", self.hexcode, self.code
        )


class ConfigurationError(LDAPError, ValueError):
    """Raised, when the client or its TLS settings are misconfigured."""

    code = -102


class CodecError(LDAPError, ValueError):
    """
    Raised, when an attribute value cannot be converted between its binary
    and text representation.
    """

    code = -103


class ConnectionError(LDAPError):
    """Raised, when client is not able to connect to the server."""

    code = -1


class ClosedConnection(LDAPError):
    """Raised, when try to perform LDAP operation with closed connection."""

    code = -101


ConnectionClosedError = ClosedConnection


class TimeoutError(LDAPError):
    """Raised, when the specified timeout is exceeded. """

    code = -5


class ProtocolError(LDAPError):
    """
    Raised, when the server answers an operation with a result code that
    is not a success.
    """

    code = 0x02


class SizeLimitError(ProtocolError):
    """
    Raised, when the search operation exceeds the client side size
    limit or server side size limit that's applied to the bound user.
    """

    code = 0x04


class AuthMethodNotSupported(ProtocolError):
    """Raised, when the chosen authentication method is not supported. """

    code = 0x07


class NoSuchAttribute(ProtocolError):
    """Raised, when the given attribute of an entry does not exist."""

    code = 0x10


class TypeOrValueExists(ProtocolError):
    """
    Raised, when the attribute already exists or the value
    has been already assigned.
    """

    code = 0x14


class NoSuchObjectError(ProtocolError):
    """
    Raised, when operation (except search) is performed on
    an entry that is not found in the directory.
    """

    code = 0x20


class InvalidDN(ProtocolError):
    """Raised, when dn string is not a valid distinguished name."""

    code = 0x22


class AuthenticationError(ProtocolError):
    """Raised, when authentication is failed with the server."""

    code = 0x31


class InsufficientAccess(ProtocolError):
    """Raised, when the user has insufficient access rights."""

    code = 0x32


class UnwillingToPerform(ProtocolError):
    """Raised, when the server is not willing to handle requests."""

    code = 0x35


class ObjectClassViolation(ProtocolError):
    """Raised, when try to add or modify an LDAP entry and it violates the
    object class rules."""

    code = 0x41


class NotAllowedOnNonleaf(ProtocolError):
    """Raised, when the operation is not allowed on a nonleaf object."""

    code = 0x42


class AlreadyExists(ProtocolError):
    """Raised, when try to add an entry and it already exists in the
    dictionary. """

    code = 0x44


class AffectsMultipleDSA(ProtocolError):
    """Raised, when multiple directory server agents are affected. """

    code = 0x47


class EntryNotFoundError(ProtocolError):
    """
    Raised, when the entry of a get-entry call does not exist, or when a
    search finishes successfully without returning any entry.
    """

    code = 0x20


_ERRORS: Dict[int, Type[LDAPError]] = {
    0x02: ProtocolError,
    0x04: SizeLimitError,
    0x07: AuthMethodNotSupported,
    0x10: NoSuchAttribute,
    0x14: TypeOrValueExists,
    0x20: NoSuchObjectError,
    0x22: InvalidDN,
    0x31: AuthenticationError,
    0x32: InsufficientAccess,
    0x35: UnwillingToPerform,
    0x41: ObjectClassViolation,
    0x42: NotAllowedOnNonleaf,
    0x44: AlreadyExists,
    0x47: AffectsMultipleDSA,
}


def get_error(code: int) -> Type[LDAPError]:
    """ Return an error class by code number. """
    if code == -1 or code == 0x51 or code == -11 or code == 0x5B:
        # libldap returns -1 (0x51) for Server Down
        # and -11 (0x5B) for Connection error.
        return ConnectionError
    elif code == -5 or code == 0x55:
        return TimeoutError
    elif code == -101:
        return ClosedConnection
    else:
        return _ERRORS.get(code, ProtocolError)
