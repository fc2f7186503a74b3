import uuid

from ..errors import CodecError

GUID_LENGTH_ERROR = "objectGUID must be a 16-byte array"


def guid_to_str(value: bytes) -> str:
    """
    Convert a binary objectGUID value to its string form. The first three
    groups are stored in little-endian byte order, the rest as is.

    :param bytes value: the 16 bytes of the GUID.
    :return: the GUID in `xxxxxxxx-xxxx-xxxx-xxxx-xxxxxxxxxxxx` format.
    :raises CodecError: if the value is not 16 bytes long.
    """
    if not isinstance(value, (bytes, bytearray)) or len(value) != 16:
        raise CodecError(GUID_LENGTH_ERROR)
    return str(uuid.UUID(bytes_le=bytes(value)))


def str_to_guid(value: str) -> bytes:
    """
    Convert the string form of a GUID back to the binary objectGUID value.

    :param str value: the GUID string.
    :return: the 16 bytes of the GUID.
    :raises CodecError: if the string is not a valid GUID.
    """
    try:
        return uuid.UUID(value).bytes_le
    except (ValueError, AttributeError, TypeError) as err:
        raise CodecError(f"String `{value}` is not a valid GUID") from err
