from realtime.state import PresenceRegistry


def _recording_registry():
    events = []
    return PresenceRegistry(on_change=lambda user, status: events.append((user, status))), events


def test_last_write_wins():
    reg, events = _recording_registry()
    reg.set_online("u", "c1")
    reg.set_online("u", "c2")

    assert reg.lookup("u") == "c2"
    assert events == [("u", "online"), ("u", "online")]


def test_offline_for_unknown_connection_is_silent():
    reg, events = _recording_registry()
    reg.set_online("u", "c1")
    events.clear()

    assert reg.set_offline("never-announced") is None
    assert reg.online_users() == {"u": "c1"}
    assert events == []


def test_offline_removes_mapping_and_broadcasts():
    reg, events = _recording_registry()
    reg.set_online("u", "c1")

    assert reg.set_offline("c1") == "u"
    assert reg.lookup("u") is None
    assert events[-1] == ("u", "offline")


def test_superseded_connection_disconnect_keeps_newer_mapping():
    reg, events = _recording_registry()
    reg.set_online("u", "c1")
    reg.set_online("u", "c2")
    events.clear()

    assert reg.set_offline("c1") is None
    assert reg.lookup("u") == "c2"
    assert events == []


def test_reannounce_as_other_user_drops_previous_identity():
    reg, events = _recording_registry()
    reg.set_online("alice", "c1")
    reg.set_online("bob", "c1")

    assert reg.lookup("alice") is None
    assert reg.lookup("bob") == "c1"
    assert events == [("alice", "online"), ("alice", "offline"), ("bob", "online")]


def test_broadcast_failure_does_not_corrupt_state():
    def boom(user, status):
        raise RuntimeError("transport gone")

    reg = PresenceRegistry(on_change=boom)
    reg.set_online("u", "c1")
    assert reg.lookup("u") == "c1"
    assert reg.set_offline("c1") == "u"


def test_clear():
    reg, _ = _recording_registry()
    reg.set_online("u", "c1")
    reg.clear()
    assert reg.online_users() == {}
    assert reg.set_offline("c1") is None
