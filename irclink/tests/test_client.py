import contextlib
import threading
import time
from unittest import mock

import pytest

import irclink.client
from irclink import commands
from irclink.client import ConnectionState
from irclink.fixtures import wait_for


def make_connection(irc_server, **kwargs):
    return irclink.client.ServerConnection(
        'irc.example.com', 6667, connect_factory=irc_server.factory, **kwargs
    )


class TestServerConnection:
    def test_initially_disconnected(self, irc_server):
        conn = make_connection(irc_server)
        assert conn.state is ConnectionState.Disconnected
        assert not conn.is_connected()

    def test_write_before_connect(self):
        factory = mock.Mock()
        conn = irclink.client.ServerConnection('foo', 6667, connect_factory=factory)
        with pytest.raises(irclink.client.ServerNotConnectedError):
            conn.write('NICK {0}', 'bestnick')
        with pytest.raises(irclink.client.ServerNotConnectedError):
            conn.send_raw('NICK bestnick')
        factory.assert_not_called()

    def test_connect_and_write(self, irc_server):
        conn = make_connection(irc_server)
        assert conn.connect()
        assert conn.state is ConnectionState.Connected
        assert irc_server.addresses == [('irc.example.com', 6667)]
        conn.write('PRIVMSG {0} :{1}', '#best-channel', 'You are great')
        assert irc_server.readline() == 'PRIVMSG #best-channel :You are great'
        conn.disconnect()

    def test_write_format_error(self, irc_server):
        conn = make_connection(irc_server)
        conn.connect()
        with pytest.raises(commands.FormatArgumentError):
            conn.write('TOPIC {0} :{1}', '#chan')
        conn.disconnect()

    def test_embedded_newline_rejected(self, irc_server):
        conn = make_connection(irc_server)
        conn.connect()
        with pytest.raises(ValueError):
            conn.write('PRIVMSG {0} :{1}', '#chan', 'You are great\nSo are you')
        conn.disconnect()

    def test_unexpected_connect_error_resets_state(self):
        factory = mock.Mock(side_effect=UnicodeError("label empty or too long"))
        conn = irclink.client.ServerConnection('foo', 6667, connect_factory=factory)
        with pytest.raises(UnicodeError):
            conn.connect()
        assert conn.state is ConnectionState.Disconnected

    def test_overlapping_connects_keep_one_link(self, irc_server):
        barrier = threading.Barrier(2)

        def factory(server_address):
            sock = irc_server.factory(server_address)
            barrier.wait(5)
            return sock

        received = []
        conn = irclink.client.ServerConnection(
            'irc.example.com', 6667, connect_factory=factory, on_line=received.append
        )
        threads = [threading.Thread(target=conn.connect) for _ in range(2)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()
        assert irc_server.connects == 2
        assert conn.is_connected()
        for sock in irc_server.sockets:
            with contextlib.suppress(OSError):
                sock.sendall(b'NOTICE * :hello\r\n')
        assert wait_for(lambda: received)
        time.sleep(0.1)
        assert received == ['NOTICE * :hello']
        conn.disconnect()
        assert [reader.readline() for reader in irc_server.readers] == [b'', b'']

    def test_connect_failure_is_reported(self, irc_server):
        irc_server.refuse = 1
        conn = make_connection(irc_server)
        assert not conn.connect()
        assert conn.state is ConnectionState.Disconnected

    def test_lines_reach_handler(self, irc_server):
        lines = []
        conn = make_connection(irc_server, on_line=lines.append)
        conn.connect()
        irc_server.send(':irc.example.com 001 bestnick :Welcome')
        assert wait_for(lambda: lines)
        assert lines == [':irc.example.com 001 bestnick :Welcome']
        conn.disconnect()

    def test_disconnect_twice(self, irc_server):
        on_disconnect = mock.Mock()
        conn = make_connection(irc_server, on_disconnect=on_disconnect)
        conn.connect()
        conn.disconnect(notify=True)
        conn.disconnect(notify=True)
        on_disconnect.assert_called_once_with(conn)
        assert conn.state is ConnectionState.Disconnected

    def test_explicit_disconnect_does_not_notify(self, irc_server):
        on_disconnect = mock.Mock()
        conn = make_connection(irc_server, on_disconnect=on_disconnect)
        conn.connect()
        listener = conn._link.listener
        conn.disconnect()
        assert wait_for(lambda: listener.exited)
        on_disconnect.assert_not_called()

    def test_server_hangup_notifies_once(self, irc_server):
        disconnected = threading.Event()
        on_disconnect = mock.Mock(side_effect=lambda conn: disconnected.set())
        conn = make_connection(irc_server, on_disconnect=on_disconnect)
        conn.connect()
        irc_server.hangup()
        assert disconnected.wait(5)
        conn.disconnect(notify=True)
        on_disconnect.assert_called_once_with(conn)
        assert not conn.is_connected()

    def test_concurrent_disconnects_collapse(self, irc_server):
        on_disconnect = mock.Mock()
        conn = make_connection(irc_server, on_disconnect=on_disconnect)
        conn.connect()
        threads = [
            threading.Thread(target=conn.disconnect, kwargs=dict(notify=True))
            for _ in range(8)
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()
        on_disconnect.assert_called_once_with(conn)

    def test_write_failure_tears_down(self, irc_server):
        on_disconnect = mock.Mock()
        conn = make_connection(irc_server, on_disconnect=on_disconnect)
        conn.connect()
        link = conn._link
        link.socket = mock.Mock(wraps=link.socket)
        link.socket.sendall.side_effect = BrokenPipeError(32, "Broken pipe")
        with pytest.raises(irclink.client.ServerConnectionError):
            conn.write('NICK {0}', 'bestnick')
        assert conn.state is ConnectionState.Disconnected
        on_disconnect.assert_called_once_with(conn)

    def test_reconnect_replaces_link(self, irc_server):
        on_disconnect = mock.Mock()
        conn = make_connection(irc_server, on_disconnect=on_disconnect)
        conn.connect()
        first = conn._link
        conn.connect()
        assert conn._link is not first
        assert first.closed
        assert wait_for(lambda: first.listener.exited)
        assert conn.is_connected()
        on_disconnect.assert_not_called()
        conn.disconnect()

    def test_keepalive(self, irc_server):
        conn = make_connection(irc_server, keepalive_interval=0.05)
        with mock.patch('irclink.client.utime', return_value=1234567890):
            conn.connect()
            assert irc_server.readline() == 'PING 1234567890'
        conn.disconnect()
        assert conn._link is None

    def test_concurrent_writes_do_not_interleave(self, irc_server):
        conn = make_connection(irc_server)
        conn.connect()
        text = 'x' * 4000

        def send(n):
            for i in range(20):
                conn.write('PRIVMSG #{0} :{1}', n, text)

        threads = [threading.Thread(target=send, args=(n,)) for n in range(4)]
        for thread in threads:
            thread.start()
        lines = [irc_server.readline() for _ in range(80)]
        for thread in threads:
            thread.join()
        assert all(
            line.startswith('PRIVMSG #') and line.endswith(':' + text)
            for line in lines
        )
        conn.disconnect()


def make_reactor(irc_server, **kwargs):
    return irclink.client.Reactor(
        'irc.example.com', 6667, connect_factory=irc_server.factory, **kwargs
    )


class TestReactor:
    def test_ping_answered_without_event(self, irc_server):
        reactor = make_reactor(irc_server)
        handler = mock.Mock()
        reactor.add_global_handler('message', handler)
        reactor.connect()
        irc_server.send('PING :tungsten.libera.chat')
        assert irc_server.readline() == 'PONG :tungsten.libera.chat'
        reactor.send_raw('MARK')
        assert irc_server.readline() == 'MARK'
        handler.assert_not_called()
        reactor.disconnect()

    def test_substantive_messages_raise_events(self, irc_server):
        received = []
        reactor = make_reactor(irc_server)
        reactor.add_global_handler('message', lambda r, msg: received.append(msg))
        reactor.connect()
        irc_server.send(':irc.example.com 020 * :Please wait')
        irc_server.send(':irc.example.com 376 bestnick :End of /MOTD command.')
        irc_server.send(':nick!user@host PRIVMSG #chan :hello there')
        assert wait_for(lambda: len(received) == 2)
        assert [msg.verb for msg in received] == ['376', 'PRIVMSG']
        assert received[1].nick == 'nick'
        assert received[1].text == 'hello there'
        reactor.disconnect()

    def test_no_more_stops_propagation(self, irc_server):
        second = mock.Mock()
        reactor = make_reactor(irc_server)
        reactor.add_global_handler('message', lambda r, msg: "NO MORE", -1)
        reactor.add_global_handler('message', second)
        reactor.connect()
        irc_server.send(':irc.example.com 422 bestnick :MOTD File is missing')
        irc_server.send('PING :sync')
        assert irc_server.readline() == 'PONG :sync'
        second.assert_not_called()
        reactor.disconnect()

    def test_prefixed_ping_answered_with_payload(self, irc_server):
        reactor = make_reactor(irc_server)
        reactor.connect()
        irc_server.send(':irc.example.com PING :token123')
        assert irc_server.readline() == 'PONG :token123'
        reactor.disconnect()

    def test_remove_duplicate_handlers(self):
        reactor = irclink.client.Reactor('foo', 6667)
        handler = mock.Mock()
        reactor.add_global_handler('message', handler)
        reactor.add_global_handler('message', handler)
        assert reactor.remove_global_handler('message', handler) == 1
        assert reactor.handlers['message'] == []

    def test_remove_handler(self):
        reactor = irclink.client.Reactor('foo', 6667)
        handler = mock.Mock()
        reactor.add_global_handler('message', handler)
        assert reactor.remove_global_handler('message', handler) == 1
        assert reactor.remove_global_handler('other', handler) == 0
        assert reactor.handlers['message'] == []

    def test_send_command(self, irc_server):
        reactor = make_reactor(irc_server)
        reactor.connect()
        reactor.send_command('privmsg', '#best-channel', 'You are great')
        assert irc_server.readline() == 'PRIVMSG #best-channel :You are great'
        reactor.disconnect()

    def test_unknown_command(self):
        reactor = irclink.client.Reactor('foo', 6667)
        with mock.patch.object(reactor.connection, 'write') as write:
            with pytest.raises(irclink.client.UnknownCommand):
                reactor.send_command('Bogus')
        write.assert_not_called()

    def test_send_command_while_disconnected(self):
        reactor = irclink.client.Reactor('foo', 6667)
        with pytest.raises(irclink.client.ServerNotConnectedError):
            reactor.send_command('Nick', 'bestnick')

    def test_convenience_senders(self, irc_server):
        reactor = make_reactor(irc_server)
        reactor.connect()
        reactor.join(['#a', '#b'])
        reactor.join('#c', 'key')
        reactor.part('#a')
        reactor.action('#a', 'waves')
        reactor.whois('somebody')
        reactor.motd()
        reactor.set_topic('#a', 'new topic')
        assert [irc_server.readline() for _ in range(7)] == [
            'JOIN #a,#b',
            'JOIN #c key',
            'PART #a',
            'PRIVMSG #a :\x01ACTION waves\x01',
            'WHOIS somebody',
            'MOTD',
            'TOPIC #a :new topic',
        ]
        reactor.disconnect()

    def test_set_topic_requires_channel(self):
        reactor = irclink.client.Reactor('foo', 6667)
        with pytest.raises(ValueError):
            reactor.set_topic('somebody', 'topic')

    def test_disconnect_sends_quit(self, irc_server):
        handler = mock.Mock()
        reactor = make_reactor(irc_server)
        reactor.add_global_handler('disconnect', handler)
        reactor.connect()
        reactor.disconnect()
        assert irc_server.readline() == 'QUIT :Shutting down...Bye!'
        assert not reactor.is_connected()
        handler.assert_not_called()

    def test_disconnect_with_message(self, irc_server):
        reactor = make_reactor(irc_server)
        reactor.connect()
        reactor.disconnect('see you')
        assert irc_server.readline() == 'QUIT :see you'

    def test_unexpected_disconnect_event(self, irc_server):
        disconnected = threading.Event()
        reactor = make_reactor(irc_server)
        reactor.add_global_handler('disconnect', lambda r: disconnected.set())
        reactor.connect()
        irc_server.hangup()
        assert disconnected.wait(5)
        assert not reactor.is_connected()


def test_is_channel():
    assert irclink.client.is_channel('#chan')
    assert irclink.client.is_channel('&local')
    assert not irclink.client.is_channel('nick')
    assert not irclink.client.is_channel('')
