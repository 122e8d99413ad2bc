import socket

import pytest

from minichatd.config import ServerRuntimeConfig
from minichatd.service import ChatService


class Client:
    def __init__(self, address) -> None:
        self.sock = socket.create_connection(address, timeout=5.0)
        self.rfile = self.sock.makefile("r", encoding="utf-8", newline="\n")

    def send(self, line: str) -> None:
        self.sock.sendall((line + "\n").encode("utf-8"))

    def recv(self) -> str:
        return self.rfile.readline().rstrip("\n")

    def close(self) -> None:
        self.rfile.close()
        self.sock.close()


@pytest.fixture
def server():
    svc = ChatService(ServerRuntimeConfig(listen_host="127.0.0.1", listen_port=0))
    svc.start()
    yield svc
    svc.stop()


def test_duplicate_username_over_tcp(server: ChatService) -> None:
    first = Client(server.tcp_transport.address)
    second = Client(server.tcp_transport.address)
    try:
        assert first.recv() == "Enter your username:"
        first.send("alice")
        assert first.recv() == "Welcome, alice!"

        assert second.recv() == "Enter your username:"
        second.send("alice")
        assert second.recv() == (
            "Username already taken. Please choose another username."
        )
        assert second.recv() == "Enter your username:"
        second.send("bob")
        assert second.recv() == "Welcome, bob!"

        first.send("/listUsers")
        assert first.recv() == "Connected users: alice, bob"
    finally:
        first.close()
        second.close()


def test_group_round_trip_over_tcp(server: ChatService) -> None:
    alice = Client(server.tcp_transport.address)
    bob = Client(server.tcp_transport.address)
    try:
        for client, name in ((alice, "alice"), (bob, "bob")):
            assert client.recv() == "Enter your username:"
            client.send(name)
            assert client.recv() == f"Welcome, {name}!"

        alice.send("/create g")
        assert alice.recv() == "Group g created."
        bob.send("/join g")
        assert bob.recv() == "You have left the default group."
        assert bob.recv() == "You have joined the group: g"

        bob.send("/sendGroup g hello world")
        assert bob.recv() == "[g] bob: hello world"
        assert alice.recv() == "[g] bob: hello world"

        bob.send("/sendUser carol hi")
        assert bob.recv() == "User not found."

        bob.send("/quit")
        assert bob.recv() == "Goodbye!"
        assert bob.recv() == ""
    finally:
        alice.close()
        bob.close()
