from minichatd.codec import decode, decode_announce, encode, encode_announce
from minichatd.config import ServerRuntimeConfig
from minichatd.reticulum import ReticulumTransport
from minichatd.service import ChatService


def test_announce_round_trip() -> None:
    data = encode_announce("hub")
    assert decode(data) == {"proto": "minichat", "v": 1, "server": "hub"}
    assert decode_announce(data) == {"proto": "minichat", "v": 1, "server": "hub"}


def test_decode_announce_rejects_foreign_data() -> None:
    assert decode_announce(b"\xff\xff") is None
    assert decode_announce(encode(["not", "a", "map"])) is None
    assert decode_announce(encode({"proto": "rrc", "v": 1, "server": "x"})) is None
    assert decode_announce(encode({"proto": "minichat", "v": 2, "server": "x"})) is None


def test_transport_announce_data() -> None:
    svc = ChatService(ServerRuntimeConfig(enable_tcp=False, server_name="lobby-1"))
    transport = ReticulumTransport(svc)
    assert decode_announce(transport.announce_data())["server"] == "lobby-1"
