import logging

from .ldapconnection import LDAPConnection
from .ldapconnection import LDAPSearchScope
from .ldapentry import LDAPEntry
from .ldapclient import LDAPClient
from .ldapreference import LDAPControl, LDAPReference
from .ldapresult import LDAPResponse, OperationType, SearchResult
from .codec import AttributeCodec
from .resultcode import ResultCode
from .tlsconfig import TLSConfig
from .errors import *
from .utils import *

__version__ = "0.3.0"

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    "AttributeCodec",
    "LDAPClient",
    "LDAPConnection",
    "LDAPControl",
    "LDAPEntry",
    "LDAPReference",
    "LDAPResponse",
    "LDAPSearchScope",
    "OperationType",
    "ResultCode",
    "SearchResult",
    "TLSConfig",
    # Errors
    "ErrorDetail",
    "LDAPError",
    "ConfigurationError",
    "CodecError",
    "ConnectionError",
    "ClosedConnection",
    "ConnectionClosedError",
    "TimeoutError",
    "ProtocolError",
    "SizeLimitError",
    "AuthMethodNotSupported",
    "NoSuchAttribute",
    "TypeOrValueExists",
    "NoSuchObjectError",
    "InvalidDN",
    "AuthenticationError",
    "InsufficientAccess",
    "UnwillingToPerform",
    "ObjectClassViolation",
    "NotAllowedOnNonleaf",
    "AlreadyExists",
    "AffectsMultipleDSA",
    "EntryNotFoundError",
    # Util functions
    "set_debug",
]
