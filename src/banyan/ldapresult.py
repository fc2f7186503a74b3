from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Iterator, List, Optional, Type

from .errors import ErrorDetail, LDAPError, get_error
from .ldapentry import LDAPEntry
from .ldapreference import LDAPReference
from .resultcode import ResultCode, result_code_name


class OperationType(Enum):
    """Enumeration for the LDAP operations the client issues."""

    ADD = "ADD"
    MODIFY = "MODIFY"
    MODIFY_DN = "MODIFY_DN"
    DELETE = "DELETE"
    COMPARE = "COMPARE"
    SEARCH = "SEARCH"


@dataclass(frozen=True)
class LDAPResult:
    """
    A terminal result message for an operation, as delivered by the
    transport.

    :param int msg_id: the message ID of the operation.
    :param int code: the numeric result code.
    :param OperationType operation: the type of the operation.
    :param str matched_dn: the matched DN.
    :param str diagnostic_message: the diagnostic message of the server.
    :param list referrals: the referral URLs.
    :param Exception cause: the transport exception the result was \
    created from, if there's any.
    """

    msg_id: Optional[int]
    code: int
    operation: OperationType
    matched_dn: str = ""
    diagnostic_message: str = ""
    referrals: List[str] = field(default_factory=list)
    cause: Optional[BaseException] = None

    @property
    def result_code(self) -> str:
        """The upper-cased name of the result code."""
        return result_code_name(self.code)


@dataclass(frozen=True)
class LDAPResponse:
    """The outcome of a successful add, modify, modify DN or delete."""

    matched_dn: str
    result_code: str
    diagnostic_message: str
    referrals: List[str]
    operation_type: str


@dataclass
class SearchResult:
    """
    The outcome of a successful search: the returned entries and
    continuation references, in arrival order.
    """

    entries: List[LDAPEntry]
    references: List[LDAPReference]
    result_code: str = ResultCode.SUCCESS.name
    matched_dn: str = ""
    diagnostic_message: str = ""

    def __iter__(self) -> Iterator[LDAPEntry]:
        return iter(self.entries)

    def __len__(self) -> int:
        return len(self.entries)

    def __getitem__(self, idx: int) -> LDAPEntry:
        return self.entries[idx]


class ResponseTranslator:
    """
    Translates terminal directory results into :class:`LDAPResponse`
    values or :class:`LDAPError` exceptions.

    :param error_factory: a callable that returns the exception class \
    for a numeric result code.
    """

    def __init__(
        self, error_factory: Callable[[int], Type[LDAPError]] = get_error
    ) -> None:
        self.__error_factory = error_factory

    def from_result(self, result: LDAPResult) -> LDAPResponse:
        """
        Create the response of a successful operation.

        :param LDAPResult result: the terminal result.
        :rtype: LDAPResponse
        """
        return LDAPResponse(
            matched_dn=result.matched_dn or "",
            result_code=result.result_code,
            diagnostic_message=result.diagnostic_message or "",
            referrals=list(result.referrals or []),
            operation_type=result.operation.value,
        )

    def from_failure(
        self,
        code: int,
        diagnostic_message: str = "",
        matched_dn: str = "",
        cause: Optional[BaseException] = None,
        error_class: Optional[Type[LDAPError]] = None,
    ) -> LDAPError:
        """
        Create the error of a failed operation. The error carries an
        :class:`ErrorDetail` with the result code name, so callers can
        branch on :attr:`LDAPError.result_code`.

        :param int code: the numeric result code.
        :param str diagnostic_message: the diagnostic message.
        :param str matched_dn: the matched DN.
        :param Exception cause: the underlying exception.
        :param type error_class: overrides the class that the error \
        factory would choose.
        :rtype: LDAPError
        """
        name = result_code_name(code)
        detail = ErrorDetail(
            result_code=name,
            code=code,
            diagnostic_message=diagnostic_message or "",
            matched_dn=matched_dn or "",
        )
        cls = error_class if error_class is not None else self.__error_factory(code)
        err = cls(diagnostic_message or name, detail=detail)
        if cause is not None:
            err.__cause__ = cause
        return err

    def from_failed_result(self, result: LDAPResult) -> LDAPError:
        """
        Create the error of a failed operation from its terminal result.

        :param LDAPResult result: the terminal result.
        :rtype: LDAPError
        """
        return self.from_failure(
            result.code, result.diagnostic_message, result.matched_dn, result.cause
        )
