"""
.. module:: listeners
   :synopsis: Per-request handlers that turn the messages of the transport
              into the outcome of a pending request.

"""
import dataclasses
import logging

from typing import Any, Callable, List, Mapping, Optional, Sequence

from .codec import AttributeCodec
from .correlator import PendingRequest
from .errors import CodecError, EntryNotFoundError, LDAPError
from .ldapentry import LDAPEntry
from .ldapreference import LDAPReference
from .ldapresult import LDAPResult, ResponseTranslator, SearchResult
from .ldaptransport import ResponseHandler
from .resultcode import ResultCode

logger = logging.getLogger(__name__)

ENTRY_NOT_FOUND_ERROR = "Entry is not found for DN: '%s'"


class BaseListener(ResponseHandler):
    """
    Common part of the listeners: each one is created for exactly one
    request and completes its :class:`PendingRequest`.

    :param PendingRequest pending: the completion slot of the request.
    :param ResponseTranslator translator: builds responses and errors.
    """

    def __init__(self, pending: PendingRequest, translator: ResponseTranslator) -> None:
        self._pending = pending
        self._translator = translator

    def _resolve(self, value: Any) -> None:
        if not self._pending.resolve(value):
            logger.debug("Duplicate outcome for %r is ignored.", self._pending)

    def _reject(self, exc: BaseException) -> None:
        if not self._pending.reject(exc):
            logger.debug("Duplicate error for %r is ignored: %s", self._pending, exc)


class ResultListener(BaseListener):
    """Listener of add, modify, modify DN and delete operations."""

    def result_received(self, result: LDAPResult) -> None:
        if result.code == ResultCode.SUCCESS:
            self._resolve(self._translator.from_result(result))
        else:
            self._reject(self._translator.from_failed_result(result))


class CompareListener(BaseListener):
    """
    Listener of a compare operation. The outcome is a bool: the server
    answers the comparison with the `COMPARE_TRUE` or `COMPARE_FALSE`
    result code, every other code is an error.
    """

    def result_received(self, result: LDAPResult) -> None:
        if result.code == ResultCode.COMPARE_TRUE:
            self._resolve(True)
        elif result.code == ResultCode.COMPARE_FALSE:
            self._resolve(False)
        else:
            self._reject(self._translator.from_failed_result(result))


class SearchAccumulator(BaseListener):
    """
    Collects the entries and continuation references of a search in
    arrival order, and completes the request at the terminal result.

    An error that occurs while an entry is processed is kept (only the
    first one) and reported at the terminal result instead of the
    entries. A successful search without entries is reported as
    :class:`EntryNotFoundError`.

    :param PendingRequest pending: the completion slot of the request.
    :param str base: the base DN of the search.
    :param ResponseTranslator translator: builds responses and errors.
    :param AttributeCodec codec: converts the raw attribute values.
    """

    def __init__(
        self,
        pending: PendingRequest,
        base: str,
        translator: ResponseTranslator,
        codec: AttributeCodec,
    ) -> None:
        super().__init__(pending, translator)
        self._base = base
        self._codec = codec
        self._items = []  # type: List[Any]
        self._references = []  # type: List[LDAPReference]
        self._error = None  # type: Optional[LDAPError]

    @property
    def error(self) -> Optional[LDAPError]:
        """The first error that occurred while processing the entries."""
        return self._error

    def _fold(self, entry: LDAPEntry) -> None:
        self._items.append(entry)

    def entry_returned(self, dn: str, attributes: Mapping[str, Sequence[bytes]]) -> None:
        if self._error is not None:
            return
        try:
            self._fold(self._codec.decode(dn, attributes))
        except LDAPError as err:
            logger.debug("Failed to process entry %s: %s", dn, err)
            self._error = err
        except Exception as err:
            logger.debug("Failed to process entry %s: %r", dn, err)
            error = CodecError("Cannot process entry '%s': %r" % (dn, err))
            error.__cause__ = err
            self._error = error

    def reference_returned(self, reference: LDAPReference) -> None:
        self._references.append(reference)

    def _not_found(self) -> LDAPError:
        return self._translator.from_failure(
            ResultCode.OTHER,
            ENTRY_NOT_FOUND_ERROR % self._base,
            error_class=EntryNotFoundError,
        )

    def _outcome(self, result: LDAPResult) -> Any:
        return SearchResult(
            entries=self._items,
            references=self._references,
            result_code=result.result_code,
            matched_dn=result.matched_dn,
            diagnostic_message=result.diagnostic_message,
        )

    def result_received(self, result: LDAPResult) -> None:
        if result.code != ResultCode.SUCCESS:
            self._items = []
            self._reject(self._translator.from_failed_result(result))
        elif self._error is not None:
            self._reject(self._error)
        elif not self._items:
            self._reject(self._not_found())
        else:
            self._resolve(self._outcome(result))


def shape_converter(shape: Any) -> Callable[[LDAPEntry], Any]:
    """
    Create the function that converts an entry into the given shape.
    For a dataclass the fields are filled from the entry's attributes
    with case-insensitive name matching, a `dn` field gets the DN of the
    entry. Any other callable is called with the entry itself.

    :param shape: a dataclass or a callable.
    :raises TypeError: if `shape` is neither.
    """
    if dataclasses.is_dataclass(shape) and isinstance(shape, type):
        fields = [fld.name for fld in dataclasses.fields(shape) if fld.init]

        def convert(entry: LDAPEntry) -> Any:
            kwargs = {}
            for name in fields:
                if name.lower() == "dn":
                    kwargs[name] = entry.dn
                elif name in entry:
                    kwargs[name] = entry[name]
            return shape(**kwargs)

        return convert
    if callable(shape):
        return shape
    raise TypeError("The shape must be a dataclass or a callable.")


class TypedSearchAccumulator(SearchAccumulator):
    """
    A :class:`SearchAccumulator` that converts every entry with a caller
    supplied shape as it arrives. The outcome is the list of the converted
    objects. A failed conversion is handled as a processing error.

    :param PendingRequest pending: the completion slot of the request.
    :param str base: the base DN of the search.
    :param shape: a dataclass or a callable, see :func:`shape_converter`.
    :param ResponseTranslator translator: builds responses and errors.
    :param AttributeCodec codec: converts the raw attribute values.
    """

    def __init__(
        self,
        pending: PendingRequest,
        base: str,
        shape: Any,
        translator: ResponseTranslator,
        codec: AttributeCodec,
    ) -> None:
        super().__init__(pending, base, translator, codec)
        self.__convert = shape_converter(shape)

    def _fold(self, entry: LDAPEntry) -> None:
        try:
            self._items.append(self.__convert(entry))
        except LDAPError:
            raise
        except Exception as err:
            raise CodecError(
                "Cannot convert entry '%s': %r" % (entry.dn, err)
            ) from err

    def _outcome(self, result: LDAPResult) -> Any:
        return list(self._items)


class EntryListener(SearchAccumulator):
    """
    Listener of a base scope search that looks up a single entry by its
    DN. A missing entry is an :class:`EntryNotFoundError` with the
    `NO_SUCH_OBJECT` result code.
    """

    def _not_found(self) -> LDAPError:
        return self._translator.from_failure(
            ResultCode.NO_SUCH_OBJECT,
            ENTRY_NOT_FOUND_ERROR % self._base,
            error_class=EntryNotFoundError,
        )

    def result_received(self, result: LDAPResult) -> None:
        if result.code == ResultCode.NO_SUCH_OBJECT:
            err = self._not_found()
            err.__cause__ = result.cause
            self._reject(err)
        else:
            super().result_received(result)

    def _outcome(self, result: LDAPResult) -> Any:
        return self._items[0]
