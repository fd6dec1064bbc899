from sigrelay.session import ConnectionState


def _state(hub, conn_id: int) -> ConnectionState:
    sess = hub.session_manager.get_session(conn_id)
    assert sess is not None
    return sess


def test_join_creates_room_and_sets_membership(hub, connect) -> None:
    a, _ = connect(hub)
    outgoing: list = []
    with hub._state_lock:
        hub.room_manager.join(_state(hub, a), "r1", outgoing)

    assert hub.room_manager.rooms == {"r1": {a}}
    assert _state(hub, a).room == "r1"
    assert len(outgoing) == 1


def test_leave_last_member_deletes_room(hub, connect) -> None:
    a, _ = connect(hub)
    b, _ = connect(hub)
    with hub._state_lock:
        hub.room_manager.join(_state(hub, a), "r1", [])
        hub.room_manager.join(_state(hub, b), "r1", [])

        assert hub.room_manager.leave(_state(hub, a)) == "r1"
        assert hub.room_manager.rooms == {"r1": {b}}

        assert hub.room_manager.leave(_state(hub, b)) == "r1"
        assert "r1" not in hub.room_manager.rooms


def test_leave_twice_is_noop(hub, connect) -> None:
    a, _ = connect(hub)
    with hub._state_lock:
        sess = _state(hub, a)
        hub.room_manager.join(sess, "r1", [])
        assert hub.room_manager.leave(sess) == "r1"
        assert hub.room_manager.leave(sess) is None
    assert hub.room_manager.rooms == {}


def test_leave_without_room_is_noop(hub, connect) -> None:
    a, _ = connect(hub)
    with hub._state_lock:
        assert hub.room_manager.leave(_state(hub, a)) is None


def test_rejoin_same_room_keeps_single_membership(hub, connect) -> None:
    a, _ = connect(hub)
    with hub._state_lock:
        sess = _state(hub, a)
        hub.room_manager.join(sess, "r1", [])
        hub.room_manager.join(sess, "r1", [])
    assert hub.room_manager.rooms == {"r1": {a}}


def test_join_other_room_leaves_previous(hub, connect) -> None:
    a, _ = connect(hub)
    b, _ = connect(hub)
    with hub._state_lock:
        hub.room_manager.join(_state(hub, a), "r1", [])
        hub.room_manager.join(_state(hub, b), "r1", [])
        hub.room_manager.join(_state(hub, a), "r2", [])

    assert hub.room_manager.rooms == {"r1": {b}, "r2": {a}}

    with hub._state_lock:
        hub.room_manager.join(_state(hub, b), "r2", [])
    assert hub.room_manager.rooms == {"r2": {a, b}}


def test_broadcast_serializes_once_and_skips_sender(hub, connect) -> None:
    a, _ = connect(hub)
    b, _ = connect(hub)
    c, _ = connect(hub)
    with hub._state_lock:
        for conn_id in (a, b, c):
            hub.room_manager.join(_state(hub, conn_id), "r1", [])

        outgoing: list = []
        n = hub.room_manager.broadcast(_state(hub, a), {"type": "ICE"}, outgoing)

    assert n == 2
    assert {sess.conn_id for sess, _ in outgoing} == {b, c}
    payloads = [payload for _, payload in outgoing]
    assert payloads[0] is payloads[1]


def test_broadcast_skips_closed_peers(hub, connect) -> None:
    a, _ = connect(hub)
    b, tb = connect(hub)
    c, _ = connect(hub)
    with hub._state_lock:
        for conn_id in (a, b, c):
            hub.room_manager.join(_state(hub, conn_id), "r1", [])
    tb.open = False

    outgoing: list = []
    with hub._state_lock:
        hub.room_manager.broadcast(_state(hub, a), {"type": "ICE"}, outgoing)
    assert [sess.conn_id for sess, _ in outgoing] == [c]


def test_broadcast_without_room_is_noop(hub, connect) -> None:
    a, _ = connect(hub)
    outgoing: list = []
    with hub._state_lock:
        assert hub.room_manager.broadcast(_state(hub, a), {"type": "ICE"}, outgoing) == 0
    assert outgoing == []


def test_stats_report_top_rooms(hub, connect) -> None:
    ids = [connect(hub)[0] for _ in range(3)]
    with hub._state_lock:
        hub.room_manager.join(_state(hub, ids[0]), "big", [])
        hub.room_manager.join(_state(hub, ids[1]), "big", [])
        hub.room_manager.join(_state(hub, ids[2]), "small", [])

    stats = hub.room_manager.get_stats()
    assert stats["rooms_total"] == 2
    assert stats["memberships"] == 3
    assert stats["top_rooms"] == [("big", 2), ("small", 1)]
