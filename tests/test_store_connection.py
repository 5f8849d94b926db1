"""
Tests for StoreConnection.

Tests verify:
- Connect with and without AUTH
- Error kinds for refused connections, rejected AUTH, error replies
- Any failure during execute tears the connection down
- The redis-py wire behaviour over a local socket
"""

import asyncio
import contextlib
import logging

import pytest
from redis.asyncio.connection import Connection, UnixDomainSocketConnection
from redis.exceptions import InvalidResponse, ResponseError

from redis_writer.components.connection.errors import StoreError, StoreErrorKind
from redis_writer.components.connection.store import (
    ConnectionState,
    StoreConnection,
    StoreTarget,
    create_redis_connection,
)
from tests.conftest import FakeStore


class TestConnect:

    @pytest.mark.asyncio
    async def test_connect_without_password_sends_nothing(self, connection, fake_store):
        await connection.connect()

        assert connection.state == ConnectionState.CONNECTED
        assert connection.is_connected
        assert fake_store.commands == []

    @pytest.mark.asyncio
    async def test_connect_with_password_sends_auth_first(self):
        store = FakeStore(password="s3cret")
        connection = StoreConnection(StoreTarget(password="s3cret"), store.connection_factory)

        await connection.connect()
        await connection.execute("INCR", "icinga:event.idx")

        assert store.commands == [("AUTH", "s3cret"), ("INCR", "icinga:event.idx")]

    @pytest.mark.asyncio
    async def test_auth_reply_is_logged(self, caplog):
        store = FakeStore(password="s3cret")
        connection = StoreConnection(StoreTarget(password="s3cret"), store.connection_factory)

        with caplog.at_level(logging.INFO):
            await connection.connect()

        auth_records = [r for r in caplog.records if r.getMessage() == "AUTH"]
        assert len(auth_records) == 1
        assert auth_records[0].extra_data["reply"] == "OK"

    @pytest.mark.asyncio
    async def test_wrong_password_is_auth_failed(self):
        store = FakeStore(password="s3cret")
        connection = StoreConnection(StoreTarget(password="wrong"), store.connection_factory)

        with pytest.raises(StoreError) as exc_info:
            await connection.connect()

        assert exc_info.value.kind == StoreErrorKind.AUTH_FAILED
        assert exc_info.value.command == "AUTH"
        assert not connection.is_connected
        assert store.connections[0].connected is False

    @pytest.mark.asyncio
    async def test_auth_without_server_password_is_auth_failed(self):
        store = FakeStore(password=None)
        connection = StoreConnection(StoreTarget(password="s3cret"), store.connection_factory)

        with pytest.raises(StoreError) as exc_info:
            await connection.connect()

        assert exc_info.value.kind == StoreErrorKind.AUTH_FAILED
        assert not connection.is_connected

    @pytest.mark.asyncio
    async def test_refused_connection_is_unreachable(self, connection, fake_store):
        fake_store.refuse_connections()

        with pytest.raises(StoreError) as exc_info:
            await connection.connect()

        assert exc_info.value.kind == StoreErrorKind.UNREACHABLE
        assert connection.state == ConnectionState.DISCONNECTED

    @pytest.mark.asyncio
    async def test_connect_is_noop_when_connected(self, connection, fake_store):
        await connection.connect()
        await connection.connect()

        assert len(fake_store.connections) == 1
        assert connection.get_stats()["connects"] == 1


class TestExecute:

    @pytest.mark.asyncio
    async def test_execute_returns_reply(self, connection):
        await connection.connect()

        assert await connection.execute("INCR", "icinga:event.idx", expect=int) == 1
        assert await connection.execute("INCR", "icinga:event.idx", expect=int) == 2

    @pytest.mark.asyncio
    async def test_execute_while_disconnected_sends_nothing(self, connection, fake_store):
        with pytest.raises(StoreError) as exc_info:
            await connection.execute("INCR", "icinga:event.idx")

        assert exc_info.value.kind == StoreErrorKind.DISCONNECTED
        assert exc_info.value.command == "INCR"
        assert fake_store.commands == []

    @pytest.mark.asyncio
    async def test_transport_error_disconnects(self, connection, fake_store):
        await connection.connect()
        fake_store.fail_command("SET")

        with pytest.raises(StoreError) as exc_info:
            await connection.execute("SET", "k", "v")

        assert exc_info.value.kind == StoreErrorKind.DISCONNECTED
        assert not connection.is_connected
        assert fake_store.connections[0].connected is False

    @pytest.mark.asyncio
    async def test_error_reply_is_protocol_error_and_disconnects(self, connection, fake_store):
        await connection.connect()
        fake_store.fail_command("INCR", ResponseError("ERR value is not an integer or out of range"))

        with pytest.raises(StoreError) as exc_info:
            await connection.execute("INCR", "icinga:event.idx")

        assert exc_info.value.kind == StoreErrorKind.PROTOCOL_ERROR
        assert exc_info.value.drops_connection
        assert not connection.is_connected

    @pytest.mark.asyncio
    async def test_malformed_reply_is_protocol_error_and_disconnects(self, connection, fake_store):
        await connection.connect()
        fake_store.fail_command("INCR", InvalidResponse("Protocol Error: b'?garbage'"))

        with pytest.raises(StoreError) as exc_info:
            await connection.execute("INCR", "icinga:event.idx")

        assert exc_info.value.kind == StoreErrorKind.PROTOCOL_ERROR
        assert not connection.is_connected
        assert fake_store.connections[0].connected is False

        with pytest.raises(StoreError) as exc_info:
            await connection.execute("INCR", "icinga:event.idx")

        assert exc_info.value.kind == StoreErrorKind.DISCONNECTED
        assert fake_store.command_names() == ["INCR"]

    @pytest.mark.asyncio
    async def test_malformed_connect_handshake_is_unreachable(self, connection, fake_store):
        fake_store.refuse_connections(error=InvalidResponse("Protocol Error: b'?'"))

        with pytest.raises(StoreError) as exc_info:
            await connection.connect()

        assert exc_info.value.kind == StoreErrorKind.UNREACHABLE
        assert not connection.is_connected

    @pytest.mark.asyncio
    async def test_unexpected_reply_type_is_protocol_error(self, connection):
        await connection.connect()

        with pytest.raises(StoreError) as exc_info:
            await connection.execute("SET", "k", "v", expect=int)

        assert exc_info.value.kind == StoreErrorKind.PROTOCOL_ERROR
        assert not connection.is_connected

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self, connection, fake_store):
        await connection.connect()
        await connection.close()
        await connection.close()

        stats = connection.get_stats()
        assert stats["state"] == "disconnected"
        assert stats["disconnects"] == 1
        assert fake_store.connections[0].disconnects == 1


class TestStoreTarget:

    def test_describe_tcp(self):
        assert StoreTarget(host="redis", port=6380).describe() == "redis:6380"

    def test_path_wins_over_host(self):
        target = StoreTarget(host="redis", port=6380, path="/run/redis.sock")

        assert target.uses_unix_socket
        assert target.describe() == "unix:///run/redis.sock"

    def test_describe_never_contains_password(self):
        assert "s3cret" not in StoreTarget(password="s3cret").describe()

    def test_create_tcp_connection(self):
        conn = create_redis_connection(StoreTarget(host="redis", port=6380, password="s3cret"))

        assert isinstance(conn, Connection)
        assert conn.host == "redis"
        assert conn.port == 6380
        # AUTH is sent explicitly by StoreConnection
        assert conn.password is None
        # RESP2 without driver info: the handshake sends no HELLO or CLIENT SETINFO
        assert conn.protocol == 2
        assert conn.driver_info is None

    def test_create_unix_connection(self):
        conn = create_redis_connection(StoreTarget(path="/run/redis.sock"))

        assert isinstance(conn, UnixDomainSocketConnection)
        assert conn.path == "/run/redis.sock"
        assert conn.protocol == 2


class RespServer:
    """Local socket server answering RESP2 commands from canned replies."""

    def __init__(self, replies: dict[str, bytes]) -> None:
        self.replies = replies
        self.received: list[bytes] = []
        self.accepts = 0
        self.port = 0
        self._writers: list[asyncio.StreamWriter] = []

    @property
    def wire(self) -> bytes:
        return b"".join(self.received)

    async def handle(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        self.accepts += 1
        self._writers.append(writer)
        while True:
            data = await reader.read(65536)
            if not data:
                break
            self.received.append(data)
            # *<n>\r\n$<len>\r\n<COMMAND>\r\n...
            command = data.split(b"\r\n")[2].decode().upper()
            writer.write(self.replies.get(command, b"-ERR unknown command\r\n"))
            await writer.drain()
        writer.close()

    def close_clients(self) -> None:
        for writer in self._writers:
            writer.close()


@contextlib.asynccontextmanager
async def resp_server(replies: dict[str, bytes]):
    resp = RespServer(replies)
    server = await asyncio.start_server(resp.handle, "127.0.0.1", 0)
    resp.port = server.sockets[0].getsockname()[1]
    try:
        yield resp
    finally:
        resp.close_clients()
        server.close()
        await server.wait_closed()


def local_connection(server: RespServer, password: str = "") -> StoreConnection:
    return StoreConnection(
        StoreTarget(host="127.0.0.1", port=server.port, password=password, socket_timeout=2.0)
    )


class TestRedisWire:
    """StoreConnection with the real redis-py connection over a local socket."""

    @pytest.mark.asyncio
    async def test_handshake_sends_nothing_without_password(self):
        async with resp_server({"INCR": b":1\r\n"}) as server:
            connection = local_connection(server)
            await connection.connect()
            await asyncio.sleep(0.05)

            assert server.received == []

            assert await connection.execute("INCR", "icinga:event.idx", expect=int) == 1
            await connection.close()

        assert server.wire == b"*2\r\n$4\r\nINCR\r\n$16\r\nicinga:event.idx\r\n"

    @pytest.mark.asyncio
    async def test_auth_is_first_command_on_the_wire(self):
        async with resp_server({"AUTH": b"+OK\r\n", "INCR": b":1\r\n"}) as server:
            connection = local_connection(server, password="s3cret")
            await connection.connect()
            await connection.execute("INCR", "icinga:event.idx", expect=int)
            await connection.close()

        assert server.wire.startswith(b"*2\r\n$4\r\nAUTH\r\n$6\r\ns3cret\r\n")
        assert server.wire.count(b"AUTH") == 1

    @pytest.mark.asyncio
    async def test_hgetall_reply_is_flat_list(self):
        reply = b'*2\r\n$8\r\nops-team\r\n$25\r\n{"types":["StateChange"]}\r\n'
        async with resp_server({"HGETALL": reply}) as server:
            connection = local_connection(server)
            await connection.connect()

            result = await connection.execute("HGETALL", "icinga:subscription", expect=list)

            assert result == ["ops-team", '{"types":["StateChange"]}']
            assert connection.is_connected
            await connection.close()

    @pytest.mark.asyncio
    async def test_malformed_reply_disconnects_without_reopening(self):
        async with resp_server({"INCR": b"?garbage\r\n"}) as server:
            connection = local_connection(server)
            await connection.connect()

            with pytest.raises(StoreError) as exc_info:
                await connection.execute("INCR", "icinga:event.idx")
            assert exc_info.value.kind == StoreErrorKind.PROTOCOL_ERROR
            assert not connection.is_connected

            with pytest.raises(StoreError) as exc_info:
                await connection.execute("INCR", "icinga:event.idx")
            assert exc_info.value.kind == StoreErrorKind.DISCONNECTED

        assert server.accepts == 1
