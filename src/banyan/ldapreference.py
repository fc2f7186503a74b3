from dataclasses import dataclass
from typing import List, Optional, Sequence, Union


@dataclass(frozen=True)
class LDAPControl:
    """
    An LDAP control attached to a server message.

    :param str oid: the object identifier of the control.
    :param bool is_critical: the criticality of the control.
    :param bytes|None value: the encoded value of the control.
    """

    oid: str
    is_critical: bool = False
    value: Optional[bytes] = None


class LDAPReference:
    """
    Object for handling an LDAP search continuation reference.

    :param int message_id: the ID of the search operation that returned \
    the reference.
    :param list references: list of LDAP URLs (as string or bytes).
    :param list controls: list of :class:`LDAPControl` objects sent along \
    with the reference.
    """

    def __init__(
        self,
        message_id: int,
        references: Sequence[Union[str, bytes]],
        controls: Optional[Sequence[LDAPControl]] = None,
    ) -> None:
        if not isinstance(message_id, int) or isinstance(message_id, bool):
            raise TypeError("Message ID must be an int.")
        self.__msg_id = message_id
        self.__refs = []  # type: List[str]
        for ref in references:
            if isinstance(ref, bytes):
                self.__refs.append(ref.decode("utf-8"))
            elif isinstance(ref, str):
                self.__refs.append(ref)
            else:
                raise TypeError("Reference must be string or bytes.")
        self.__controls = list(controls or [])
        for ctrl in self.__controls:
            if not isinstance(ctrl, LDAPControl):
                raise TypeError("Controls must be LDAPControl objects.")

    @property
    def message_id(self) -> int:
        """The ID of the search operation."""
        return self.__msg_id

    @property
    def references(self) -> List[str]:
        """The list of referral URIs."""
        return self.__refs

    @property
    def controls(self) -> List[LDAPControl]:
        """The controls of the reference message."""
        return self.__controls

    def __eq__(self, other: object) -> bool:
        if isinstance(other, LDAPReference):
            return (
                self.message_id == other.message_id
                and self.references == other.references
                and self.controls == other.controls
            )
        return NotImplemented

    def __repr__(self) -> str:
        return "<{}: {} {}>".format(
            self.__class__.__name__, self.message_id, self.references
        )
