"""Tests for state merge precedence."""

from vex_laser_mcp.engine.synchronizer import StateSynchronizer
from vex_laser_mcp.protocol.parser import StateUpdate, UpdateOrigin, decode_line


def _apply_line(sync: StateSynchronizer, line: str) -> list[str]:
    changed = []
    for update in decode_line(line).updates:
        changed.extend(sync.apply(update))
    return changed


def _initialized_at(brightness: int) -> StateSynchronizer:
    sync = StateSynchronizer()
    sync.apply(StateUpdate(origin=UpdateOrigin.INITIAL_STATE, brightness=brightness))
    return sync


def test_defaults():
    state = StateSynchronizer().state
    assert state.power is False
    assert state.brightness == 50
    assert state.firmware_version == "Unknown"
    assert state.brightness_initialized is False


def test_initial_state_hydrates():
    sync = StateSynchronizer()
    _apply_line(sync, '{"type":"initial_state","laser_brightness":77,"laser_state":true}')
    state = sync.state
    assert state.power is True
    assert state.brightness == 77
    assert state.brightness_initialized is True


def test_first_push_accepted_unconditionally():
    """Before initialization even a small heartbeat delta is taken."""
    sync = StateSynchronizer()
    changed = sync.apply(StateUpdate(origin=UpdateOrigin.HEARTBEAT, brightness=51))
    assert sync.state.brightness == 51
    assert sync.state.brightness_initialized is True
    assert "brightness_initialized" in changed


def test_heartbeat_small_delta_suppressed():
    sync = _initialized_at(50)
    sync.apply(StateUpdate(origin=UpdateOrigin.HEARTBEAT, brightness=51))
    assert sync.state.brightness == 50
    sync.apply(StateUpdate(origin=UpdateOrigin.STATUS, brightness=48))
    assert sync.state.brightness == 50


def test_heartbeat_large_delta_applied():
    sync = _initialized_at(50)
    sync.apply(StateUpdate(origin=UpdateOrigin.HEARTBEAT, brightness=10))
    assert sync.state.brightness == 10


def test_threshold_boundary():
    """A delta of exactly the threshold is still suppressed."""
    sync = _initialized_at(50)
    sync.apply(StateUpdate(origin=UpdateOrigin.HEARTBEAT, brightness=52))
    assert sync.state.brightness == 50
    sync.apply(StateUpdate(origin=UpdateOrigin.HEARTBEAT, brightness=53))
    assert sync.state.brightness == 53


def test_custom_threshold():
    sync = StateSynchronizer(threshold=0)
    sync.apply(StateUpdate(origin=UpdateOrigin.INITIAL_STATE, brightness=50))
    sync.apply(StateUpdate(origin=UpdateOrigin.HEARTBEAT, brightness=51))
    assert sync.state.brightness == 51


def test_authoritative_origins_ignore_threshold():
    for origin in (
        UpdateOrigin.INITIAL_STATE,
        UpdateOrigin.STATUS_ECHO,
        UpdateOrigin.LOADED_BRIGHTNESS,
        UpdateOrigin.INIT_BANNER,
    ):
        sync = _initialized_at(50)
        sync.apply(StateUpdate(origin=origin, brightness=51))
        assert sync.state.brightness == 51, origin


def test_power_always_overwritten():
    sync = _initialized_at(50)
    sync.set_local_power(True)
    sync.apply(StateUpdate(origin=UpdateOrigin.HEARTBEAT, power=False))
    assert sync.state.power is False


def test_brightness_clamped():
    sync = StateSynchronizer()
    sync.apply(StateUpdate(origin=UpdateOrigin.LOADED_BRIGHTNESS, brightness=250))
    assert sync.state.brightness == 100
    assert sync.set_local_brightness(-3) == 0


def test_last_writer_wins_for_stats():
    sync = StateSynchronizer()
    sync.apply(StateUpdate(origin=UpdateOrigin.STATUS, firmware_version="1.0", free_heap_bytes=1000))
    sync.apply(StateUpdate(origin=UpdateOrigin.FIRMWARE_BANNER, firmware_version="1.1"))
    sync.apply(StateUpdate(origin=UpdateOrigin.HEARTBEAT, free_heap_bytes=900))
    state = sync.state
    assert state.firmware_version == "1.1"
    assert state.free_heap_bytes == 900


def test_uptime_never_goes_backwards_within_connection():
    sync = StateSynchronizer()
    sync.on_connect()
    sync.apply(StateUpdate(origin=UpdateOrigin.HEARTBEAT, uptime_seconds=100))
    sync.apply(StateUpdate(origin=UpdateOrigin.HEARTBEAT, uptime_seconds=90))
    assert sync.state.uptime_seconds == 100
    sync.apply(StateUpdate(origin=UpdateOrigin.HEARTBEAT, uptime_seconds=105))
    assert sync.state.uptime_seconds == 105


def test_first_uptime_after_reconnect_accepted():
    sync = StateSynchronizer()
    sync.on_connect()
    sync.apply(StateUpdate(origin=UpdateOrigin.HEARTBEAT, uptime_seconds=500))
    sync.on_disconnect()
    sync.on_connect()
    sync.apply(StateUpdate(origin=UpdateOrigin.HEARTBEAT, uptime_seconds=3))
    assert sync.state.uptime_seconds == 3


def test_disconnect_resets_session_fields_only():
    sync = StateSynchronizer()
    sync.apply(
        StateUpdate(
            origin=UpdateOrigin.INITIAL_STATE,
            power=True,
            brightness=77,
            firmware_version="2.0",
        )
    )
    sync.on_disconnect()
    state = sync.state
    assert state.brightness_initialized is False
    assert state.firmware_version == "Unknown"
    assert state.power is True
    assert state.brightness == 77


def test_state_is_a_copy():
    sync = StateSynchronizer()
    snapshot = sync.state
    snapshot.power = True
    assert sync.state.power is False


def test_apply_reports_changes():
    sync = StateSynchronizer()
    changed = sync.apply(StateUpdate(origin=UpdateOrigin.STATUS_ECHO, power=True, brightness=50))
    # brightness equals the default, so only the flag and power change
    assert changed == ["power", "brightness_initialized"]


def test_boot_banner_accepts_lower_uptime():
    """A reboot behind an open USB bridge restarts the uptime count."""
    sync = StateSynchronizer()
    sync.on_connect()
    sync.apply(StateUpdate(origin=UpdateOrigin.HEARTBEAT, uptime_seconds=500))

    _apply_line(sync, "Device initialized. Brightness: 25%, Laser: OFF")
    sync.apply(StateUpdate(origin=UpdateOrigin.HEARTBEAT, uptime_seconds=3))
    assert sync.state.uptime_seconds == 3

    sync.apply(StateUpdate(origin=UpdateOrigin.HEARTBEAT, uptime_seconds=1))
    assert sync.state.uptime_seconds == 3


def test_initial_state_accepts_lower_uptime():
    sync = StateSynchronizer()
    sync.on_connect()
    sync.apply(StateUpdate(origin=UpdateOrigin.HEARTBEAT, uptime_seconds=500))
    _apply_line(sync, '{"type":"initial_state","laser_brightness":40,"laser_state":false}')
    sync.apply(StateUpdate(origin=UpdateOrigin.HEARTBEAT, uptime_seconds=2))
    assert sync.state.uptime_seconds == 2
