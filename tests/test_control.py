import threading

import pytest

from simplechat.config import ServerRuntimeConfig, load_config
from simplechat.constants import (
    OP_ALREADY_LISTENING,
    OP_ALREADY_STOPPED,
    OP_ERROR_CLOSING,
    OP_PORT_NOT_NUMBER,
    OP_PORT_OUT_OF_RANGE,
    OP_SETPORT_USAGE,
    OP_SETPORT_WHILE_OPEN,
    OP_START_FAILED,
    OP_UNKNOWN,
)
from simplechat.events import EventKind
from simplechat.service import ChatServer


def test_setport_while_listening_is_rejected(server, transport) -> None:
    server.start()

    result = server.submit("#setport 9000")

    assert result.messages == (OP_SETPORT_WHILE_OPEN,)
    assert server.control.get_port() == 5555


def test_stop_setport_getport_round_trip(server, transport) -> None:
    server.start()

    assert server.submit("#stop").messages == ()
    assert server.submit("#setport 9000").messages == ("Port set to 9000",)
    assert server.submit("#getport").messages == ("Port: 9000",)


@pytest.mark.parametrize("port", [0, 1, 1024, 5555, 65535])
def test_setport_then_getport_while_stopped(server, port) -> None:
    server.submit(f"#setport {port}")
    assert server.control.get_port() == port


@pytest.mark.parametrize(
    "line, expected",
    [
        ("#setport", OP_SETPORT_USAGE),
        ("#setport abc", OP_PORT_NOT_NUMBER),
        ("#setport 12.5", OP_PORT_NOT_NUMBER),
        ("#setport 70000", OP_PORT_OUT_OF_RANGE),
        ("#setport -1", OP_PORT_OUT_OF_RANGE),
    ],
)
def test_setport_input_errors_leave_port_unchanged(server, line, expected) -> None:
    assert server.submit(line).messages == (expected,)
    assert server.control.get_port() == 5555


def test_start_uses_current_port(server, transport, events) -> None:
    server.submit("#setport 6000")
    assert server.submit("#start").messages == ()

    assert transport.listen_calls == [6000]
    assert server.control.is_listening()
    assert events[-1].kind is EventKind.SERVER_STARTED
    assert events[-1].port == 6000


def test_start_while_listening(server) -> None:
    server.start()
    assert server.submit("#start").messages == (OP_ALREADY_LISTENING,)


def test_start_failure_is_reported(server, transport, events) -> None:
    transport.fail_listen = True

    assert server.submit("#start").messages == (OP_START_FAILED,)
    assert not server.control.is_listening()
    assert events[-1].kind is EventKind.LISTENING_EXCEPTION


def test_stop_when_stopped(server) -> None:
    assert server.submit("#stop").messages == (OP_ALREADY_STOPPED,)


def test_stop_keeps_existing_connections(server, transport) -> None:
    server.start()
    a = transport.connect("a")
    transport.say(a, "#login alice")

    server.submit("#stop")
    transport.say(a, "still here")

    assert not a.closed
    assert a.sent[-1] == "alice> still here"


def test_close_terminates_connections(server, transport, events) -> None:
    server.start()
    a = transport.connect("a")
    b = transport.connect("b")

    assert server.submit("#close").messages == ()

    assert a.closed and b.closed
    assert not server.control.is_listening()
    assert server.registry.connections() == []
    assert events[-1].kind is EventKind.SERVER_CLOSED


def test_close_failure_still_closes_other_connections(server, transport, events) -> None:
    server.start()
    a = transport.connect("a")
    b = transport.connect("b")
    c = transport.connect("c")
    a.fail_close = True

    assert server.submit("#close").messages == (OP_ERROR_CLOSING,)

    assert not a.closed
    assert b.closed and c.closed
    assert server.registry.connections() == [a]
    assert not server.control.is_listening()
    kinds = [e.kind for e in events]
    assert kinds.count(EventKind.LISTENING_EXCEPTION) == 1
    assert EventKind.SERVER_CLOSED not in kinds


def test_setport_racing_start_is_rejected(server, transport, monkeypatch) -> None:
    entered = threading.Event()
    release = threading.Event()
    real_listen = transport.listen

    def slow_listen(port: int) -> int:
        entered.set()
        assert release.wait(5)
        return real_listen(port)

    monkeypatch.setattr(transport, "listen", slow_listen)
    start_result: list[str | None] = []
    setport_result: list[str] = []

    starter = threading.Thread(target=lambda: start_result.append(server.control.start()))
    starter.start()
    assert entered.wait(5)

    setter = threading.Thread(
        target=lambda: setport_result.append(server.control.set_port("9000"))
    )
    setter.start()
    setter.join(0.2)
    # Held off until the start completes.
    assert setter.is_alive()

    release.set()
    starter.join(5)
    setter.join(5)

    assert start_result == [None]
    assert setport_result == [OP_SETPORT_WHILE_OPEN]
    assert server.control.get_port() == 5555
    assert transport.listen_calls == [5555]


def test_quit_closes_and_requests_exit(server, transport) -> None:
    server.start()
    a = transport.connect("a")

    result = server.submit("#quit")

    assert result.quit is True
    assert a.closed
    assert server._shutdown.is_set()


def test_commands_are_case_insensitive(server) -> None:
    assert server.submit("#GETPORT").messages == ("Port: 5555",)


def test_unknown_command(server) -> None:
    assert server.submit("#frobnicate").messages == (OP_UNKNOWN,)


def test_free_text_is_broadcast_as_server_message(server, transport) -> None:
    a = transport.connect("a")

    result = server.submit("hello everyone")

    assert result.messages == ("SERVER msg> hello everyone",)
    assert a.sent == ["SERVER msg> hello everyone"]


def test_stats_report(server, transport) -> None:
    a = transport.connect("a")
    transport.say(a, "#login alice")
    transport.say(a, "hi")

    (report,) = server.submit("#stats").messages

    assert "port=5555 listening=False" in report
    assert "clients_total=1 clients_identified=1 clients_anonymous=0" in report
    assert "msgs_relayed=1" in report


def test_setport_is_persisted_when_enabled(tmp_path, transport) -> None:
    path = tmp_path / "simplechat.toml"
    path.write_text('# keep me\n[server]\nport = 5555\npersist_port = true\n', encoding="utf-8")
    cfg = load_config(str(path), ServerRuntimeConfig())
    server = ChatServer(cfg, transport=transport)
    transport.handler = server

    (reply,) = server.submit("#setport 7777").messages

    assert reply.startswith("Port set to 7777")
    text = path.read_text(encoding="utf-8")
    assert "# keep me" in text
    assert "port = 7777" in text
    assert load_config(str(path)).port == 7777


def test_setport_persist_without_config_file(transport) -> None:
    server = ChatServer(ServerRuntimeConfig(persist_port=True), transport=transport)
    transport.handler = server

    (reply,) = server.submit("#setport 7000").messages

    assert reply == "Port set to 7000 (not persisted; no config file)"
    assert server.control.get_port() == 7000
