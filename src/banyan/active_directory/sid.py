import re
import struct

from dataclasses import dataclass
from typing import Optional, Tuple

from ..errors import CodecError

SID_REVISION_ERROR = "objectSid revision must be 1"

_SID_PATTERN = re.compile(r"^S-(\d+)-(0[xX][0-9A-Fa-f]+|\d+)((?:-\d+)*)$")
_HEADER = struct.Struct("<BB6s")
_MAX_AUTHORITY = (1 << 48) - 1
_MAX_SUBAUTHORITY = (1 << 32) - 1


@dataclass(frozen=True)
class SID:
    """
    A Security Identifier, that identifies users, groups and computer
    accounts in Active Directory.

    Use :meth:`SID.from_string` or :meth:`SID.from_bytes` to parse one.
    The string form is `S-<revision>-<authority>(-<subauthority>)*`, the
    authority is written in hexadecimal when it doesn't fit in 32 bits.

    :param int revision: the revision level.
    :param int identifier_authority: the authority under which the SID \
    was created.
    :param tuple subauthorities: the subauthorities that identify the \
    principal relative to the authority.
    """

    revision: int
    identifier_authority: int
    subauthorities: Tuple[int, ...] = ()

    @classmethod
    def from_string(cls, text: str) -> "SID":
        """
        Parse the string form of a SID.

        :param str text: the string, e.g. `S-1-5-32-544`.
        :rtype: SID
        :raises TypeError: if `text` is not a string.
        :raises CodecError: if `text` is not a valid SID.
        """
        if not isinstance(text, str):
            raise TypeError("The SID must be a string.")
        match = _SID_PATTERN.match(text)
        if match is None:
            raise CodecError("String '%s' is not a valid SID" % text)
        revision, authority, rest = match.groups()
        ident_auth = int(authority, 0) if authority[:2].lower() == "0x" else int(authority)
        subauths = tuple(int(sub) for sub in rest.split("-")[1:])
        if (
            int(revision) > 0xFF
            or ident_auth > _MAX_AUTHORITY
            or any(sub > _MAX_SUBAUTHORITY for sub in subauths)
            or len(subauths) > 0xFF
        ):
            raise CodecError("String '%s' is not a valid SID" % text)
        return cls(int(revision), ident_auth, subauths)

    @classmethod
    def from_bytes(cls, data: bytes) -> "SID":
        """
        Parse the binary form of a SID, as the directory stores the
        `objectSid` attribute: revision and subauthority count bytes,
        6-byte big-endian authority, 4-byte little-endian subauthorities.

        :param bytes data: the binary SID.
        :rtype: SID
        :raises TypeError: if `data` is not bytes.
        :raises CodecError: if the revision is not 1 or the data is \
        truncated.
        """
        if not isinstance(data, (bytes, bytearray)):
            raise TypeError("The binary SID must be bytes.")
        data = bytes(data)
        if data[:1] != b"\x01":
            raise CodecError(SID_REVISION_ERROR)
        if len(data) < _HEADER.size:
            raise CodecError("objectSid is truncated: %d bytes" % len(data))
        revision, count, authority = _HEADER.unpack_from(data)
        end = _HEADER.size + count * 4
        if len(data) < end:
            raise CodecError(
                "objectSid is truncated: %d subauthorities need %d bytes, got %d"
                % (count, end, len(data))
            )
        subauths = struct.unpack_from("<%dI" % count, data, _HEADER.size)
        return cls(revision, int.from_bytes(authority, "big"), subauths)

    def __str__(self) -> str:
        if self.identifier_authority > 0xFFFFFFFF:
            authority = "0x%X" % self.identifier_authority
        else:
            authority = str(self.identifier_authority)
        return "-".join(
            ["S", str(self.revision), authority]
            + [str(sub) for sub in self.subauthorities]
        )

    def __repr__(self) -> str:
        return "<SID: %s>" % self

    @property
    def bytes_le(self) -> bytes:
        """The binary form of the SID."""
        return _HEADER.pack(
            self.revision,
            len(self.subauthorities),
            self.identifier_authority.to_bytes(6, "big"),
        ) + struct.pack("<%dI" % len(self.subauthorities), *self.subauthorities)

    @property
    def size(self) -> int:
        """The size of the binary form in bytes."""
        return _HEADER.size + 4 * len(self.subauthorities)

    @property
    def sddl_alias(self) -> Optional[str]:
        """The SDDL alias of a well-known SID, or None."""
        alias = _WELL_KNOWN_ALIASES.get(str(self))
        if alias is None and self.identifier_authority == 5:
            # Domain relative SIDs: S-1-5-21-<domain>-<rid>.
            if len(self.subauthorities) > 1 and self.subauthorities[0] == 21:
                alias = _DOMAIN_ALIASES.get(self.subauthorities[-1])
        return alias


def sid_to_str(value: bytes) -> str:
    """
    Convert a binary objectSid value to its `S-1-...` string form.

    :param bytes value: the binary SID.
    :return: the string representation.
    :raises CodecError: if the value is not a valid SID.
    """
    return str(SID.from_bytes(value))


_WELL_KNOWN_ALIASES = {
    "S-1-1-0": "WD",
    "S-1-3-0": "CO",
    "S-1-3-1": "CG",
    "S-1-3-4": "OW",
    "S-1-5-7": "AN",
    "S-1-5-9": "ED",
    "S-1-5-10": "PS",
    "S-1-5-11": "AU",
    "S-1-5-12": "RC",
    "S-1-5-18": "SY",
    "S-1-5-19": "LS",
    "S-1-5-20": "NS",
    "S-1-5-32-544": "BA",
    "S-1-5-32-545": "BU",
    "S-1-5-32-546": "BG",
    "S-1-5-32-548": "AO",
    "S-1-5-32-549": "SO",
    "S-1-5-32-550": "PO",
    "S-1-5-32-551": "BO",
    "S-1-5-32-555": "RD",
    "S-1-5-32-559": "LU",
    "S-1-16-4096": "LW",
    "S-1-16-8192": "ME",
    "S-1-16-12288": "HI",
    "S-1-16-16384": "SI",
}

# Relative identifiers of the well-known domain accounts and groups.
_DOMAIN_ALIASES = {
    500: "LA",
    501: "LG",
    512: "DA",
    513: "DU",
    514: "DG",
    515: "DC",
    516: "DD",
    517: "CA",
    518: "SA",
    519: "EA",
    520: "PA",
}
