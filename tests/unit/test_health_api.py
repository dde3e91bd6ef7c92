"""
Tests for health probes, Prometheus metrics, user settings and the
WebSocket event channel.
"""
import asyncio
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent.parent / "src"))

from devconsole.api.routes import health
from devconsole.api.websocket import ConnectionManager


class FakeSocket:
    """Collects messages sent by the connection manager."""

    def __init__(self, fail=False):
        self.fail = fail
        self.accepted = False
        self.sent = []

    async def accept(self):
        self.accepted = True

    async def send_json(self, message):
        if self.fail:
            raise RuntimeError("socket closed")
        self.sent.append(message)


class TestConnectionManager:

    def test_unsubscribed_clients_get_everything(self):
        manager = ConnectionManager()
        socket = FakeSocket()
        assert manager.wants(socket, "agent:started") is True
        assert manager.wants(socket, "scan:done") is True

    def test_subscriptions_filter_by_channel_prefix(self):
        manager = ConnectionManager()
        socket = FakeSocket()
        manager.subscribe(socket, "scan")

        assert manager.wants(socket, "scan:completed") is True
        assert manager.wants(socket, "agent:started") is False

        manager.unsubscribe(socket, "scan")
        assert manager.wants(socket, "agent:started") is True

    def test_broadcast_skips_failed_and_uninterested(self):
        manager = ConnectionManager()
        agent_only, everything, broken = FakeSocket(), FakeSocket(), FakeSocket(fail=True)

        async def scenario():
            for socket in (agent_only, everything, broken):
                await manager.connect(socket)
            manager.subscribe(agent_only, "agent")
            await manager.broadcast({"type": "scan:completed", "scan_id": "scan-1"})

        asyncio.run(scenario())

        assert agent_only.sent == []
        assert everything.sent[0]["scan_id"] == "scan-1"
        assert "timestamp" in everything.sent[0]

    def test_disconnect_drops_subscriptions(self):
        manager = ConnectionManager()
        socket = FakeSocket()
        asyncio.run(manager.connect(socket))
        manager.subscribe(socket, "agent")
        manager.disconnect(socket)

        assert manager.active_connections == []
        assert manager.subscriptions == {}


class TestHealth:

    def test_liveness(self, client):
        assert client.get("/api/health").json()["status"] == "ok"

    def test_watcher_health(self, client):
        body = client.get("/api/watcher/health").json()

        assert body["status"] == "healthy"
        assert body["database"]["connected"] is True
        assert body["memory"]["rss_mb"] > 0
        assert body["websocket_clients"] == 0

    def test_watcher_health_database_down(self, client, monkeypatch):
        async def broken_ping():
            raise OSError("disk gone")

        monkeypatch.setattr(health, "ping", broken_ping)
        response = client.get("/api/watcher/health")

        assert response.status_code == 503
        assert response.json()["status"] == "unhealthy"

    def test_metrics_exposition(self, client):
        response = client.get("/metrics")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/plain")
        assert "devconsole_scan_queue_length" in response.text


class TestUserSettings:

    def test_merge_on_update(self, client):
        client.put("/api/settings", json={"theme": "nord", "scan_concurrency": 2})
        merged = client.put("/api/settings", json={"sidebar": "collapsed"}).json()

        assert merged["theme"] == "nord"
        assert merged["sidebar"] == "collapsed"
        assert client.get("/api/settings").json() == merged

    def test_scan_settings_reload_on_change(self, client):
        client.put("/api/settings", json={"scan_timeout_seconds": 42})
        assert client.get("/api/lifecycle/settings").json()["scan_timeout_seconds"] == 42

    def test_empty_update_rejected(self, client):
        response = client.put("/api/settings", json={})
        assert response.status_code == 400
        assert response.json()["detail"] == "No settings provided"


class TestWebSocket:

    def test_ping_pong_and_subscribe(self, client):
        with client.websocket_connect("/ws") as websocket:
            websocket.send_json({"type": "subscribe", "channel": "agent"})
            websocket.send_json({"type": "ping"})
            assert websocket.receive_json() == {"type": "pong"}

            body = client.get("/api/watcher/health").json()
            assert body["websocket_clients"] == 1
