import asyncio

from ..correlator import PendingRequest
from ..errors import TimeoutError
from ..ldapconnection import BaseLDAPConnection


class AIOLDAPConnection(BaseLDAPConnection):
    """
    Asynchronous LDAP connection object that works with asyncio.
    It has the same methods and properties as :class:`banyan.LDAPConnection`,
    but with the exception of :meth:`banyan.LDAPConnection.close` all of
    them are awaitable.

    :param LDAPClient client: a client object.
    :param loop: an asyncio IO loop.
    :param \\*\\*kwargs: the `codec` and `translator` keyword arguments \
    of :class:`banyan.ldapconnection.BaseLDAPConnection`.
    """

    def __init__(self, client, loop=None, **kwargs):
        self._loop = loop or asyncio.get_running_loop()
        self.__open_coro = None
        super().__init__(client, **kwargs)

    async def __aenter__(self):
        """Async context manager entry point."""
        if self.closed:
            coro, self.__open_coro = self.__open_coro, None
            await (coro if coro is not None else self._open_in_executor())
        return self

    async def __aexit__(self, type, value, traceback):
        """Async context manager exit point."""
        self.close()

    def __await__(self):
        return self.__open_coro.__await__()  # Hack to avoid returning a coroutine.

    __iter__ = __await__

    async def _open_in_executor(self, timeout=None):
        # Connecting and binding block, the loop must not wait for them.
        await asyncio.wait_for(self._loop.run_in_executor(None, self._open), timeout)
        return self

    async def _poll(self, pending: PendingRequest, timeout=None):
        fut = asyncio.wrap_future(pending.future, loop=self._loop)
        try:
            # Shielded, a timed out wait leaves the request pending.
            return await asyncio.wait_for(asyncio.shield(fut), timeout)
        except asyncio.TimeoutError as exc:
            raise TimeoutError(
                "%s operation timed out after %s seconds."
                % (pending.operation.name, timeout)
            ) from exc

    def _evaluate(self, pending, timeout=None):
        return self._poll(pending, timeout)

    def open(self, timeout=None):
        self.__open_coro = self._open_in_executor(timeout)
        return self
