from __future__ import annotations

import asyncio

from dspchat.client.events import EventBus, PayloadReceived, PayloadSent
from dspchat.client.network import NetworkClient, open_connection, receive_payloads
from dspchat.client.state import AppState
from dspchat.config import ClientConfig
from dspchat.protocol import ErrorMessage, JoinMessage, Payload, QuitMessage, TextMessage, read_payload
from dspchat.server import RelayServer


def test_relay_handshake_and_fanout():
    async def scenario():
        server = RelayServer(port=0)
        await server.start()
        address = f"127.0.0.1:{server.bound_port}"
        try:
            alice = await open_connection(ClientConfig(address, "alice"))
            assert await alice.reader.read() == Payload("alice", JoinMessage())

            bob = await open_connection(ClientConfig(address, "bob"))
            assert await bob.reader.read() == Payload("bob", JoinMessage())
            assert await alice.reader.read() == Payload("bob", JoinMessage())

            await alice.writer.write(Payload("alice", TextMessage(text="hi bob")))
            expected = Payload("alice", TextMessage(text="hi bob"))
            assert await alice.reader.read() == expected
            assert await bob.reader.read() == expected

            await bob.writer.write(Payload("bob", QuitMessage()))
            assert await alice.reader.read() == Payload("bob", QuitMessage())

            await alice.writer.close()
            await bob.writer.close()
        finally:
            await server.close()

    asyncio.run(scenario())


def test_relay_rejects_taken_username_and_bad_frames():
    async def scenario():
        server = RelayServer(port=0)
        await server.start()
        address = f"127.0.0.1:{server.bound_port}"
        try:
            first = await open_connection(ClientConfig(address, "carol"))
            await first.reader.read()

            second = await open_connection(ClientConfig(address, "carol"))
            reply = await second.reader.read()
            assert isinstance(reply.message, ErrorMessage)
            assert "taken" in reply.message.text

            reader, writer = await asyncio.open_connection("127.0.0.1", server.bound_port)
            writer.write(b"carol NOPE\0")
            await writer.drain()
            reply = await read_payload(reader)
            assert reply.message == ErrorMessage(text="malformed frame")
            writer.close()

            await first.writer.close()
            await second.writer.close()
        finally:
            await server.close()

    asyncio.run(scenario())


def test_client_state_against_relay():
    network = NetworkClient()
    server = RelayServer(port=0)
    network.submit(server.start()).result(timeout=5)
    config = ClientConfig(f"127.0.0.1:{server.bound_port}", "alice")

    connection = network.connect(config)
    bus = EventBus()
    state = AppState(config, connection.writer, bus, network.submit)
    network.submit(receive_payloads(connection.reader, bus))
    try:
        joined = bus.get(timeout=5)
        assert joined == PayloadReceived(Payload("alice", JoinMessage()))
        state.handle_app_event(joined)

        for char in "hi":
            state.add_active_message(char)
        assert state.send_active_message()

        seen = []
        while len(seen) < 2:
            event = bus.get(timeout=5)
            if isinstance(event, (PayloadSent, PayloadReceived)):
                seen.append(event)
            state.handle_app_event(event)

        assert any(isinstance(event, PayloadSent) for event in seen)
        assert PayloadReceived(Payload("alice", TextMessage(text="hi"))) in seen
        assert state.active_message == ""
        assert state.custody.idle
    finally:
        network.submit(server.close()).result(timeout=5)
        network.close(state.custody.peek())
