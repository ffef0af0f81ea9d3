"""Unit tests for the HTTP and WebSocket endpoints."""
import base64

import pytest
from fastapi.testclient import TestClient

from app.core.dependencies import get_stream_manager
from app.main import app
from app.services.agent.context import ContextKind


@pytest.fixture
def stream_manager(make_manager, fakes, appointment_context):
    loader = fakes.ContextLoader({(ContextKind.APPOINTMENT, "7"): appointment_context})
    return make_manager(
        context_loader=loader,
        transcriber=fakes.Transcriber(default="yes I confirm"),
        audio_buffer_ms=40,  # 2 carrier frames
    )


@pytest.fixture
def client(stream_manager):
    app.dependency_overrides[get_stream_manager] = lambda: stream_manager
    yield TestClient(app)
    app.dependency_overrides.clear()


class TestHealth:
    """Test health endpoint."""

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy", "active_calls": 0}


class TestMediaStream:
    """Test the carrier WebSocket."""

    def test_call_round_trip(self, client, stream_manager, carrier):
        """Test caller audio comes back as a spoken reply on the same stream."""
        with client.websocket_connect("/media-stream") as websocket:
            websocket.send_text('{"event": "connected", "protocol": "Call", "version": "1.0.0"}')
            websocket.send_text(carrier.start({"appointmentId": "7"}))
            websocket.send_text(carrier.media())
            websocket.send_text(carrier.media())

            reply = websocket.receive_json()
            assert reply["event"] == "media"
            assert reply["streamSid"] == carrier.stream_sid
            assert len(base64.b64decode(reply["media"]["payload"])) == 160

            websocket.send_text(carrier.stop())

        assert len(stream_manager.store) == 0
        assert stream_manager.record_sink.statuses[0][:2] == (carrier.call_sid, "completed")

    def test_disconnect_tears_down(self, client, stream_manager, carrier):
        with client.websocket_connect("/media-stream") as websocket:
            websocket.send_text(carrier.start({"patientId": "42"}))

        assert len(stream_manager.store) == 0
        assert stream_manager.record_sink.statuses == [
            (carrier.call_sid, "completed", stream_manager.record_sink.statuses[0][2])
        ]
