from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from case_insensitive_dict import CaseInsensitiveDict

AttributeValue = Union[str, List[str]]


class LDAPEntry(CaseInsensitiveDict):
    """
    An LDAP entry: a distinguished name and its attributes. Attribute
    names are case-insensitive. A single-valued attribute maps to a
    string, a multi-valued attribute to a list of strings in the order
    the server returned them.

    :param str dn: the distinguished name of the entry.
    :param attributes: a mapping or a sequence of name/value pairs.
    :raises TypeError: if `dn` is not a string.
    """

    def __init__(
        self,
        dn: str,
        attributes: Optional[
            Union[Mapping[str, AttributeValue], Iterable[Tuple[str, AttributeValue]]]
        ] = None,
    ) -> None:
        if not isinstance(dn, str):
            raise TypeError("The dn parameter must be a string.")
        super().__init__()
        self.__dn = dn
        if attributes is not None:
            self.update(attributes)

    @property
    def dn(self) -> str:
        """The distinguished name of the entry. It cannot be set."""
        return self.__dn

    def get_values(self, name: str) -> List[str]:
        """
        Return the values of an attribute as a list, regardless of
        whether it's stored as a scalar or as a list.

        :param str name: the name of the attribute.
        :return: the values, an empty list for a missing attribute.
        :rtype: list
        """
        value = self.get(name)
        if value is None:
            return []
        if isinstance(value, list):
            return list(value)
        return [value]

    def to_dict(self) -> Dict[str, Any]:
        """Return a plain dict copy of the attributes (without the DN)."""
        return {
            key: list(value) if isinstance(value, list) else value
            for key, value in self.items()
        }

    def __eq__(self, other: object) -> bool:
        """
        Two LDAPEntry objects are considered equals, if their DN is the same.

        :param other: the other comparable object.
        :return: True if the two object are equals.
        :rtype: bool
        """
        if isinstance(other, LDAPEntry):
            return self.dn.lower() == other.dn.lower()
        return super().__eq__(other)

    __hash__ = None  # type: ignore

    def __repr__(self) -> str:
        return "<{}: {} {}>".format(self.__class__.__name__, self.dn, self.to_dict())
