"""
.. module:: codec
   :synopsis: Conversion of attribute values between the raw bytes of the
              directory and the strings of an :class:`LDAPEntry`.

"""
import base64

from typing import Any, Callable, List, Mapping, Optional, Sequence, Tuple

from case_insensitive_dict import CaseInsensitiveDict

from .active_directory import guid_to_str, sid_to_str
from .errors import CodecError
from .ldapentry import AttributeValue, LDAPEntry

BinaryTransform = Callable[[bytes], str]
RawAttribute = Tuple[str, List[bytes]]

DEFAULT_TRANSFORMS = {
    "objectSid": sid_to_str,
    "objectGUID": guid_to_str,
}


def needs_base64(value: bytes) -> bool:
    """
    Check that a raw attribute value has to be encoded to be represented
    as text: it's not valid UTF-8 or it contains control characters.

    :param bytes value: the raw value.
    :rtype: bool
    """
    try:
        text = value.decode("utf-8")
    except UnicodeDecodeError:
        return True
    return any(not char.isprintable() and char not in "\t\r\n" for char in text)


class AttributeCodec:
    """
    Converts attribute values between the directory's binary form and
    strings.

    :param transforms: additional binary transforms keyed by attribute \
    name. They extend (and can override) the default transforms of \
    `objectSid` and `objectGUID`.
    """

    def __init__(
        self, transforms: Optional[Mapping[str, BinaryTransform]] = None
    ) -> None:
        self.__transforms = CaseInsensitiveDict(DEFAULT_TRANSFORMS)
        if transforms:
            for name, func in transforms.items():
                if not callable(func):
                    raise TypeError("Transform of '%s' must be callable." % name)
                self.__transforms[name] = func

    @property
    def transforms(self) -> Mapping[str, BinaryTransform]:
        """The binary transforms of the codec."""
        return self.__transforms

    def encode_value(self, name: str, value: bytes) -> str:
        """
        Convert a single raw value of the `name` attribute to string.

        :param str name: the attribute name.
        :param bytes value: the raw value.
        :rtype: str
        :raises CodecError: if a transform fails.
        """
        transform = self.__transforms.get(name)
        if transform is not None:
            try:
                return transform(value)
            except CodecError:
                raise
            except Exception as err:
                raise CodecError(
                    "Cannot convert the value of '%s': %s" % (name, err)
                ) from err
        if needs_base64(value):
            return base64.b64encode(value).decode("ascii")
        return value.decode("utf-8")

    def encode(self, name: str, raw_values: Sequence[bytes]) -> AttributeValue:
        """
        Convert the raw values of an attribute. One value becomes a string,
        more values a list of strings in the same order.

        :param str name: the attribute name.
        :param list raw_values: the raw values returned by the server.
        :return: a string or a list of strings.
        :raises CodecError: if a value cannot be converted.
        """
        values = [self.encode_value(name, value) for value in raw_values]
        if len(values) == 1:
            return values[0]
        return values

    def decode(self, dn: str, raw_attributes: Mapping[str, Sequence[bytes]]) -> LDAPEntry:
        """
        Build an :class:`LDAPEntry` from the raw attributes of a search
        entry.

        :param str dn: the DN of the entry.
        :param dict raw_attributes: attribute names mapped to raw values.
        :rtype: LDAPEntry
        :raises CodecError: if a value cannot be converted.
        """
        entry = LDAPEntry(dn)
        for name, raw_values in raw_attributes.items():
            entry[name] = self.encode(name, raw_values)
        return entry

    @staticmethod
    def value_to_bytes(name: str, value: Any) -> bytes:
        """
        Convert a single request value to bytes: `bytes` are kept, other
        values are sent as their UTF-8 encoded string form.
        """
        if isinstance(value, bytes):
            return value
        if isinstance(value, bytearray):
            return bytes(value)
        try:
            return str(value).encode("utf-8")
        except (UnicodeEncodeError, TypeError, ValueError) as err:
            raise CodecError("Cannot encode the value of '%s': %s" % (name, err)) from err

    def _values(self, name: str, value: Any) -> List[bytes]:
        if not isinstance(name, str) or not name:
            raise CodecError("Attribute names must be non-empty strings.")
        if isinstance(value, (list, tuple)):
            return [self.value_to_bytes(name, item) for item in value if item is not None]
        return [self.value_to_bytes(name, value)]

    def build_attributes(self, entry: Mapping[str, Any]) -> List[RawAttribute]:
        """
        Build the attribute list of an add request. `None` values and empty
        lists are skipped.

        :param dict entry: attribute names mapped to a scalar or a list.
        :return: list of (name, raw values) pairs.
        :raises CodecError: if a name or a value is invalid.
        """
        attributes = []
        for name, value in entry.items():
            if value is None:
                continue
            values = self._values(name, value)
            if values:
                attributes.append((name, values))
        return attributes

    def build_changes(self, changes: Mapping[str, Any]) -> List[RawAttribute]:
        """
        Build the replace modifications of a modify request. `None` values
        are skipped, an empty list removes every value of the attribute.

        :param dict changes: attribute names mapped to the new values.
        :return: list of (name, raw values) pairs.
        :raises CodecError: if a name or a value is invalid.
        """
        return [
            (name, self._values(name, value))
            for name, value in changes.items()
            if value is not None
        ]

