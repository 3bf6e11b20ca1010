async def test_publish_preserves_order(broadcaster, sockets):
    sock = sockets()
    conn = broadcaster.open(sock)
    broadcaster.associate(conn, "ROOM01", "alice")

    for n in range(50):
        broadcaster.publish("ROOM01", lambda viewer, n=n: {"n": n})
    await broadcaster.drain()

    assert [m["n"] for m in sock.sent] == list(range(50))


async def test_publish_renders_per_recipient(broadcaster, sockets):
    alice, bob = sockets(), sockets()
    broadcaster.associate(broadcaster.open(alice), "ROOM01", "alice")
    broadcaster.associate(broadcaster.open(bob), "ROOM01", "bob")
    seen = []

    def render(viewer):
        seen.append(viewer)
        return {"for": viewer}

    assert broadcaster.publish("ROOM01", render) == 2
    await broadcaster.drain()

    assert sorted(seen) == ["alice", "bob"]
    assert alice.sent == [{"for": "alice"}]
    assert bob.sent == [{"for": "bob"}]


async def test_publish_is_scoped_to_room(broadcaster, sockets):
    here, there = sockets(), sockets()
    broadcaster.associate(broadcaster.open(here), "ROOM01", "a")
    broadcaster.associate(broadcaster.open(there), "ROOM02", "b")

    broadcaster.publish("ROOM01", lambda viewer: {"type": "x"})
    await broadcaster.drain()

    assert here.sent == [{"type": "x"}]
    assert there.sent == []


async def test_publish_exclude_and_skip(broadcaster, sockets):
    alice, bob = sockets(), sockets()
    broadcaster.associate(broadcaster.open(alice), "ROOM01", "alice")
    broadcaster.associate(broadcaster.open(bob), "ROOM01", "bob")

    broadcaster.publish("ROOM01", lambda viewer: {"type": "x"}, exclude="alice")
    broadcaster.publish("ROOM01", lambda viewer: None if viewer == "bob" else {"type": "y"})
    await broadcaster.drain()

    assert alice.sent == [{"type": "y"}]
    assert bob.sent == [{"type": "x"}]


async def test_unassociated_connections_get_nothing(broadcaster, sockets):
    sock = sockets()
    broadcaster.open(sock)
    assert broadcaster.publish("ROOM01", lambda viewer: {"type": "x"}) == 0


async def test_failed_socket_is_dropped(broadcaster, sockets):
    good, bad = sockets(), sockets(fail=True)
    good_conn = broadcaster.open(good)
    bad_conn = broadcaster.open(bad)
    broadcaster.associate(good_conn, "ROOM01", "a")
    broadcaster.associate(bad_conn, "ROOM01", "b")

    broadcaster.publish("ROOM01", lambda viewer: {"type": "x"})
    broadcaster.publish("ROOM01", lambda viewer: {"type": "y"})
    await broadcaster.drain()
    await bad_conn.writer

    assert good.sent == [{"type": "x"}, {"type": "y"}]
    assert broadcaster.connections("ROOM01") == [good_conn]
    assert bad_conn.closed
    assert broadcaster.live_count("ROOM01", "b") == 0


async def test_connection_belongs_to_one_room(broadcaster, sockets):
    conn = broadcaster.open(sockets())
    broadcaster.associate(conn, "ROOM01", "a")
    broadcaster.associate(conn, "ROOM02", "a")

    assert broadcaster.connections("ROOM01") == []
    assert broadcaster.connections("ROOM02") == [conn]


async def test_close_returns_association_and_stops_writer(broadcaster, sockets):
    conn = broadcaster.open(sockets())
    broadcaster.associate(conn, "ROOM01", "a")
    assert broadcaster.live_count("ROOM01", "a") == 1

    assert broadcaster.close(conn) == ("ROOM01", "a")
    await conn.writer

    assert conn.closed
    assert broadcaster.live_count("ROOM01", "a") == 0
    assert broadcaster.close(broadcaster.open(sockets())) is None


async def test_send_queues_behind_published_events(broadcaster, sockets):
    sock = sockets()
    conn = broadcaster.open(sock)
    broadcaster.associate(conn, "ROOM01", "a")

    broadcaster.publish("ROOM01", lambda viewer: {"type": "first"})
    broadcaster.send(conn, "pong")
    broadcaster.send(conn, {"type": "last"})
    await broadcaster.drain()

    assert sock.sent == [{"type": "first"}, "pong", {"type": "last"}]


async def test_shutdown_stops_every_writer(broadcaster, sockets):
    conns = [broadcaster.open(sockets()) for _ in range(3)]
    broadcaster.associate(conns[0], "ROOM01", "a")

    await broadcaster.shutdown()

    assert all(conn.closed for conn in conns)
    assert broadcaster.connections("ROOM01") == []
