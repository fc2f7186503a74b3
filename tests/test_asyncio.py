import asyncio

import pytest
from conftest import asyncio_test

from banyan import LDAPEntry
from banyan.asyncio import AIOLDAPConnection
from banyan.errors import (
    AlreadyExists,
    ClosedConnection,
    EntryNotFoundError,
    TimeoutError,
)
from banyan.ldapconnection import BaseLDAPConnection
from banyan.resultcode import ResultCode


def answer(code=ResultCode.SUCCESS, entries=()):
    def respond(tr, msg_id, op, args):
        for dn, attrs in entries:
            tr.entry(msg_id, dn, attrs)
        tr.result(msg_id, code)

    return respond


@asyncio_test
async def test_connection(client, transports):
    """Test opening a connection."""
    conn = await client.connect(True)
    assert isinstance(conn, AIOLDAPConnection)
    assert conn.closed == False
    assert conn.is_connected()
    conn.close()
    assert transports[0].close_count == 1


@asyncio_test
async def test_context_manager(client, transports):
    """Test the async context manager."""
    async with client.connect(True) as conn:
        assert not conn.closed
    assert conn.closed
    assert transports[0].close_count == 1


@asyncio_test
async def test_add_and_delete(client, transports):
    """Test adding and deleting an LDAP entry."""
    async with client.connect(True) as conn:
        transports[0].responder = answer()
        resp = await conn.add("cn=async_test,dc=example,dc=org", {"sn": "async_test"})
        assert resp.operation_type == "ADD"
        transports[0].responder = answer(ResultCode.ENTRY_ALREADY_EXISTS)
        with pytest.raises(AlreadyExists):
            await conn.add("cn=async_test,dc=example,dc=org", {"sn": "async_test"})
        transports[0].responder = answer()
        resp = await conn.delete("cn=async_test,dc=example,dc=org")
        assert resp.result_code == "SUCCESS"


@asyncio_test
async def test_search(client, transports):
    """Test search."""
    async with client.connect(True) as conn:
        transports[0].responder = answer(
            entries=[("cn=a,dc=example,dc=org", {"cn": [b"a"]})]
        )
        res = await conn.search("dc=example,dc=org", "(cn=a)", "SUB")
        assert res[0] == LDAPEntry("cn=a,dc=example,dc=org")
        entry = await conn.get_entry("cn=a,dc=example,dc=org")
        assert entry["cn"] == "a"
        transports[0].responder = answer()
        with pytest.raises(EntryNotFoundError):
            await conn.search("dc=example,dc=org", "(cn=b)", "SUB")


@asyncio_test
async def test_compare_concurrently(client, transports):
    """Test many requests in flight on one connection."""
    async with client.connect(True) as conn:
        transport = transports[0]

        def respond(tr, msg_id, op, args):
            code = (
                ResultCode.COMPARE_TRUE
                if int(args[2]) % 2 == 0
                else ResultCode.COMPARE_FALSE
            )
            tr.result(msg_id, code)

        transport.responder = respond
        results = await asyncio.gather(
            *[conn.compare("cn=%d,dc=example,dc=org" % i, "cn", i) for i in range(10)]
        )
        assert results == [i % 2 == 0 for i in range(10)]


@asyncio_test
async def test_timeout(client, transports):
    """Test the time limit of the await."""
    async with client.connect(True) as conn:
        with pytest.raises(TimeoutError):
            await conn.delete("cn=a,dc=example,dc=org", timeout=0.1)
        assert conn.pending_count == 1
        transports[0].result(transports[0].last_msg_id)
        assert conn.pending_count == 0


@asyncio_test
async def test_close_fails_pending(client, transports):
    """Test that closing fails the awaited operations."""
    conn = await client.connect(True)
    task = asyncio.ensure_future(conn.modify("cn=a,dc=example,dc=org", {"sn": "b"}))
    while not transports[0].handlers:
        await asyncio.sleep(0.01)
    conn.close()
    with pytest.raises(ClosedConnection):
        await task
    with pytest.raises(ClosedConnection):
        await conn.modify("cn=a,dc=example,dc=org", {"sn": "b"})


def test_async_connection_class(client):
    """Test setting the class of the async connection."""
    with pytest.raises(TypeError):
        client.set_async_connection_class(int)
    with pytest.raises(TypeError):
        client.set_async_connection_class("AIOLDAPConnection")
    client.set_async_connection_class(AIOLDAPConnection)
    assert issubclass(AIOLDAPConnection, BaseLDAPConnection)
