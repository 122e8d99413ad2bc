from minichatd.config import ServerRuntimeConfig
from minichatd.service import ChatService
from minichatd.stats import StatsManager
from minichatd.util import normalize_username


def test_normalize_username() -> None:
    assert normalize_username("alice") == "alice"
    assert normalize_username("  alice  ") == "alice"
    assert normalize_username("") is None
    assert normalize_username("   ") is None
    assert normalize_username("two words") is None
    assert normalize_username("tab\tname") is None
    assert normalize_username("x" * 33) is None
    assert normalize_username("x" * 33, max_chars=0) == "x" * 33
    assert normalize_username(None) is None


def test_stats_summary() -> None:
    svc = ChatService(ServerRuntimeConfig(enable_tcp=False))
    stats = svc.stats_manager
    stats.set_start_time()
    stats.inc("connections")
    stats.inc("deliveries", 3)

    text = stats.format_stats()
    assert "connections=1" in text
    assert "lines=3" in text
    assert "users=0 groups=1" in text


def test_stats_without_service() -> None:
    stats = StatsManager()
    stats.inc("dropped")
    assert stats.snapshot()["dropped"] == 1
    assert "dropped=1" in stats.format_stats()
