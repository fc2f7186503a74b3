from enum import IntEnum


class ResultCode(IntEnum):
    """Enumeration for LDAP result codes (RFC 4511 and libldap client codes)."""

    SUCCESS = 0x00
    OPERATIONS_ERROR = 0x01
    PROTOCOL_ERROR = 0x02
    TIME_LIMIT_EXCEEDED = 0x03
    SIZE_LIMIT_EXCEEDED = 0x04
    COMPARE_FALSE = 0x05
    COMPARE_TRUE = 0x06
    AUTH_METHOD_NOT_SUPPORTED = 0x07
    STRONGER_AUTH_REQUIRED = 0x08
    REFERRAL = 0x0A
    ADMIN_LIMIT_EXCEEDED = 0x0B
    UNAVAILABLE_CRITICAL_EXTENSION = 0x0C
    CONFIDENTIALITY_REQUIRED = 0x0D
    SASL_BIND_IN_PROGRESS = 0x0E
    NO_SUCH_ATTRIBUTE = 0x10
    UNDEFINED_ATTRIBUTE_TYPE = 0x11
    INAPPROPRIATE_MATCHING = 0x12
    CONSTRAINT_VIOLATION = 0x13
    ATTRIBUTE_OR_VALUE_EXISTS = 0x14
    INVALID_ATTRIBUTE_SYNTAX = 0x15
    NO_SUCH_OBJECT = 0x20
    ALIAS_PROBLEM = 0x21
    INVALID_DN_SYNTAX = 0x22
    ALIAS_DEREFERENCING_PROBLEM = 0x24
    INAPPROPRIATE_AUTHENTICATION = 0x30
    INVALID_CREDENTIALS = 0x31
    INSUFFICIENT_ACCESS_RIGHTS = 0x32
    BUSY = 0x33
    UNAVAILABLE = 0x34
    UNWILLING_TO_PERFORM = 0x35
    LOOP_DETECT = 0x36
    NAMING_VIOLATION = 0x40
    OBJECT_CLASS_VIOLATION = 0x41
    NOT_ALLOWED_ON_NONLEAF = 0x42
    NOT_ALLOWED_ON_RDN = 0x43
    ENTRY_ALREADY_EXISTS = 0x44
    OBJECT_CLASS_MODS_PROHIBITED = 0x45
    AFFECTS_MULTIPLE_DSAS = 0x47
    OTHER = 0x50
    SERVER_DOWN = 0x51
    LOCAL_ERROR = 0x52
    ENCODING_ERROR = 0x53
    DECODING_ERROR = 0x54
    TIMEOUT = 0x55
    AUTH_UNKNOWN = 0x56
    FILTER_ERROR = 0x57
    USER_CANCELED = 0x58
    PARAM_ERROR = 0x59
    NO_MEMORY = 0x5A
    CONNECT_ERROR = 0x5B
    NOT_SUPPORTED = 0x5C


# libldap reports client side failures with negative codes.
_CLIENT_CODES = {
    -1: ResultCode.SERVER_DOWN,
    -2: ResultCode.LOCAL_ERROR,
    -3: ResultCode.ENCODING_ERROR,
    -4: ResultCode.DECODING_ERROR,
    -5: ResultCode.TIMEOUT,
    -6: ResultCode.AUTH_UNKNOWN,
    -7: ResultCode.FILTER_ERROR,
    -8: ResultCode.USER_CANCELED,
    -9: ResultCode.PARAM_ERROR,
    -10: ResultCode.NO_MEMORY,
    -11: ResultCode.CONNECT_ERROR,
    -12: ResultCode.NOT_SUPPORTED,
}


def result_code_name(code: int) -> str:
    """
    Return the upper-cased name of a result code.

    :param int code: the numeric result code.
    :return: the name, e.g. `NO_SUCH_OBJECT`, or `UNKNOWN_<code>` for \
    codes that are not known.
    :rtype: str
    """
    if code in _CLIENT_CODES:
        return _CLIENT_CODES[code].name
    try:
        return ResultCode(code).name
    except ValueError:
        return "UNKNOWN_%d" % code
