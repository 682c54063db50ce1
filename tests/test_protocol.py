import threading

from simplechat.constants import (
    ERR_LOGIN_USAGE,
    ERR_MUST_LOGIN,
)
from simplechat.events import EventKind


def test_login_then_broadcast_reaches_everyone_including_sender(server, transport) -> None:
    alice = transport.connect("c1")
    bob = transport.connect("c2")

    transport.say(alice, "#login alice")
    transport.say(bob, "#login bob")
    transport.say(alice, "hello")

    assert alice.sent == ["Login working! Welcome alice!", "alice> hello"]
    assert bob.sent == ["Login working! Welcome bob!", "alice> hello"]


def test_message_before_login_is_rejected_and_closed(server, transport, events) -> None:
    c1 = transport.connect("c1")
    c2 = transport.connect("c2")
    transport.say(c2, "#login bob")
    c2.sent.clear()

    transport.say(c1, "hi")

    assert c1.sent == [ERR_MUST_LOGIN]
    assert c1.closed
    assert c2.sent == []
    assert server.registry.get(c1) is None

    kinds = [e.kind for e in events]
    assert EventKind.LOGIN_REJECTED in kinds
    assert EventKind.MESSAGE_RELAYED not in kinds


def test_second_login_is_rejected_and_identity_kept(server, transport) -> None:
    c1 = transport.connect("c1")

    transport.say(c1, "#login bob")
    transport.say(c1, "#login carol")
    transport.say(c1, "still me")

    assert c1.sent == [
        "Login working! Welcome bob!",
        "Error: Already logged in as bob",
        "bob> still me",
    ]
    assert server.registry.login_id(c1) == "bob"


def test_login_without_identifier_is_usage_error(server, transport) -> None:
    c1 = transport.connect("c1")

    transport.say(c1, "#login")
    transport.say(c1, "#login     ")

    assert c1.sent == [ERR_LOGIN_USAGE, ERR_LOGIN_USAGE]
    assert server.registry.login_id(c1) is None
    assert not c1.closed


def test_blank_relogin_when_identified_reports_already_logged_in(server, transport) -> None:
    c1 = transport.connect("c1")
    transport.say(c1, "#login bob")
    transport.say(c1, "#login")

    assert c1.sent[-1] == "Error: Already logged in as bob"


def test_identifier_keeps_inner_whitespace_and_case(server, transport) -> None:
    c1 = transport.connect("c1")

    transport.say(c1, "  #login   Mary  Ann Smith  ")
    transport.say(c1, "hi")

    assert server.registry.login_id(c1) == "Mary  Ann Smith"
    assert c1.sent == [
        "Login working! Welcome Mary  Ann Smith!",
        "Mary  Ann Smith> hi",
    ]


def test_login_line_is_never_broadcast(server, transport) -> None:
    c1 = transport.connect("c1")
    c2 = transport.connect("c2")
    transport.say(c2, "#login watcher")
    c2.sent.clear()

    transport.say(c1, "#login alice")
    transport.say(c1, "#login again")

    assert c2.sent == []


def test_empty_and_whitespace_lines_are_relayed(server, transport) -> None:
    c1 = transport.connect("c1")
    transport.say(c1, "#login alice")
    c1.sent.clear()

    transport.say(c1, "")
    transport.say(c1, "   ")

    assert c1.sent == ["alice> ", "alice> "]


def test_relayed_line_is_trimmed(server, transport) -> None:
    c1 = transport.connect("c1")
    transport.say(c1, "#login alice")
    c1.sent.clear()

    transport.say(c1, "   spaced out   ")

    assert c1.sent == ["alice> spaced out"]


def test_anonymous_connection_still_receives_broadcasts(server, transport) -> None:
    anon = transport.connect("anon")
    alice = transport.connect("alice")
    transport.say(alice, "#login alice")

    transport.say(alice, "welcome all")

    assert anon.sent == ["alice> welcome all"]


def test_close_failure_on_rejected_client_is_reported(server, transport, events) -> None:
    c1 = transport.connect("c1")
    c1.fail_close = True

    transport.say(c1, "hi")

    assert c1.sent == [ERR_MUST_LOGIN]
    errors = [e for e in events if e.kind is EventKind.CLIENT_EXCEPTION]
    assert len(errors) == 1
    assert errors[0].connection == "c1"


def test_login_events_are_emitted(server, transport, events) -> None:
    c1 = transport.connect("c1")
    transport.say(c1, "#login alice")
    transport.say(c1, "#login bob")
    transport.say(c1, "hey")

    kinds = [e.kind for e in events]
    assert kinds == [
        EventKind.CLIENT_CONNECTED,
        EventKind.LOGIN_SUCCEEDED,
        EventKind.LOGIN_REJECTED,
        EventKind.MESSAGE_RELAYED,
    ]
    assert events[1].login_id == "alice"
    assert events[3].login_id == "alice"
    assert events[3].text == "hey"


def test_lines_from_unknown_connection_are_ignored(server, transport) -> None:
    c1 = transport.connect("c1")
    transport.close_connection(c1)
    c1.closed = False

    transport.say(c1, "#login ghost")

    assert c1.sent == []


def test_concurrent_logins_on_one_connection_have_one_winner(server, transport) -> None:
    for attempt in range(20):
        conn = transport.connect(f"c{attempt}")
        barrier = threading.Barrier(2)

        def login(name: str) -> None:
            barrier.wait()
            transport.say(conn, f"#login {name}")

        threads = [
            threading.Thread(target=login, args=("left",)),
            threading.Thread(target=login, args=("right",)),
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=5)

        winner = server.registry.login_id(conn)
        assert winner in ("left", "right")
        welcomes = [s for s in conn.sent if s.startswith("Login working!")]
        rejects = [s for s in conn.sent if s.startswith("Error: Already logged in as")]
        assert welcomes == [f"Login working! Welcome {winner}!"]
        assert rejects == [f"Error: Already logged in as {winner}"]
