import json
import socket
from unittest.mock import MagicMock, patch

from services.govee_lan import GoveeLanService


def _scan_reply(**data):
    return json.dumps({"msg": {"cmd": "scan", "data": data}}).encode("utf-8")


def test_parse_scan_response():
    reply = _scan_reply(ip="10.0.0.5", device="AA:BB", sku="H6076")
    assert GoveeLanService.parse_scan_response(reply) == {
        "device_id": "AA:BB", "ip": "10.0.0.5", "sku": "H6076",
    }


def test_parse_scan_response_rejects_other_payloads():
    assert GoveeLanService.parse_scan_response(b"not json") is None
    assert GoveeLanService.parse_scan_response(_scan_reply(ip="10.0.0.5")) is None
    other = json.dumps({"msg": {"cmd": "devStatus", "data": {}}}).encode("utf-8")
    assert GoveeLanService.parse_scan_response(other) is None


def test_discovery_is_cached():
    lan = GoveeLanService()
    devices = [{"device_id": "AA", "ip": "10.0.0.5", "sku": ""}]
    with patch.object(lan, "_run_scan", return_value=devices) as scan:
        assert lan.discover_devices() == devices
        assert lan.discover_devices() == devices
        lan.discover_devices(force=True)
    assert scan.call_count == 2


def test_brightness_is_clamped():
    with patch.object(GoveeLanService, "_send") as send:
        lan = GoveeLanService()
        lan.set_brightness("10.0.0.5", 0)
        lan.set_brightness("10.0.0.5", 140.2)
    assert send.call_args_list[0][0] == ("10.0.0.5", "brightness", {"value": 1})
    assert send.call_args_list[1][0] == ("10.0.0.5", "brightness", {"value": 100})


def test_rgb_and_colour_temperature_payloads():
    with patch.object(GoveeLanService, "_send") as send:
        lan = GoveeLanService()
        lan.set_rgb("10.0.0.5", 300, -4, 12.7)
        lan.set_color_temp("10.0.0.5", 12000)
    rgb_data = send.call_args_list[0][0][2]
    assert rgb_data == {"color": {"r": 255, "g": 0, "b": 12}, "colorTemInKelvin": 0}
    temp_data = send.call_args_list[1][0][2]
    assert temp_data["colorTemInKelvin"] == 9000


def test_get_status_returns_data_block():
    sock = MagicMock()
    reply = {"msg": {"cmd": "devStatus", "data": {"onOff": 1, "color": {"r": 1, "g": 2, "b": 3}}}}
    sock.recvfrom.return_value = (json.dumps(reply).encode("utf-8"), ("10.0.0.5", 4003))
    with patch("services.govee_lan.socket.socket", return_value=sock):
        data = GoveeLanService().get_status("10.0.0.5")
    assert data == reply["msg"]["data"]
    sock.close.assert_called_once()


def test_get_status_timeout_is_none():
    sock = MagicMock()
    sock.recvfrom.side_effect = socket.timeout()
    with patch("services.govee_lan.socket.socket", return_value=sock):
        assert GoveeLanService().get_status("10.0.0.5") is None


def test_collect_replies_skips_duplicates_and_junk():
    sock = MagicMock()
    first = _scan_reply(ip="10.0.0.5", device="AA", sku="H6076")
    sock.recvfrom.side_effect = [
        (first, ("10.0.0.5", 4002)),
        (b"garbage", ("10.0.0.9", 4002)),
        (first, ("10.0.0.5", 4002)),
        (_scan_reply(ip="10.0.0.6", device="BB"), ("10.0.0.6", 4002)),
        socket.timeout(),
    ]
    devices = list(GoveeLanService()._collect_replies(sock))
    assert [d["device_id"] for d in devices] == ["AA", "BB"]


def test_scan_without_listener_finds_nothing():
    lan = GoveeLanService()
    with patch.object(GoveeLanService, "_open_listener", side_effect=OSError("in use")), \
            patch.object(GoveeLanService, "_send_scan") as send_scan:
        assert lan._run_scan() == []
    send_scan.assert_not_called()
