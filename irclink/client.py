# -*- coding: utf-8 -*-

"""
Internet Relay Chat (IRC) protocol client engine.

This module encapsulates a single connection to an IRC server. It
reads from the server on a background thread, parses each line, answers
PINGs, and raises the substantive messages to registered handlers.

The main pieces are:

  * ServerConnection owns the socket (optionally TLS), the writer, the
    background Listener and the keepalive timer of one connection, and
    reports unexpected disconnects exactly once.
  * Reactor owns a ServerConnection, classifies incoming messages and
    sends commands from the template table in irclink.commands.

Here is an example:

    reactor = irclink.client.Reactor('irc.some.where', 6667)
    reactor.add_global_handler('message', on_message)
    if reactor.connect():
        reactor.send_command('NICK', 'my_nickname')
        reactor.send_command('USER', 'my_nickname', 'my_nickname')

Reconnection is not handled here; see irclink.bot.
"""

import bisect
import collections
import enum
import functools
import logging
import socket
import threading
import time

from more_itertools import always_iterable

from . import commands
from . import connection
from . import events
from . import schedule
from .listener import Listener
from .message import ParsedMessage

log = logging.getLogger(__name__)


class IRCError(Exception):
    "An IRC exception"


class InvalidCharacters(ValueError):
    "Invalid characters were encountered in the message"


class ServerConnectionError(IRCError):
    pass


class ServerNotConnectedError(ServerConnectionError):
    pass


class UnknownCommand(IRCError):
    "The command is not in the command table"


class ConnectionState(enum.Enum):
    Disconnected = 'disconnected'
    Connecting = 'connecting'
    Connected = 'connected'


def utime():
    "The current unix time in whole seconds"
    return int(time.time())


class _Link:
    """
    The resources of a single connection attempt: socket, write lock,
    listener and keepalive scheduler. They are released together, once.
    """

    def __init__(self, sock):
        self.socket = sock
        self.write_lock = threading.Lock()
        self.listener = None
        self.keepalive = None
        self._close_lock = threading.Lock()
        self.closed = False

    def send(self, data):
        with self.write_lock:
            self.socket.sendall(data)

    def close(self):
        with self._close_lock:
            if self.closed:
                return False
            self.closed = True
        if self.keepalive is not None:
            self.keepalive.stop()
        if self.listener is not None:
            self.listener.stop()
        try:
            self.socket.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass
        self.socket.close()
        return True


class ServerConnection:
    """
    A connection to an IRC server.

    Arguments:

    * server - Server name
    * port - Port number
    * connect_factory - A callable that takes the server address and
      returns a connected socket (see irclink.connection.Factory)
    * on_line - Called with each line read from the server, on the
      listener thread
    * on_disconnect - Called when the connection drops unexpectedly
    * keepalive_interval - Seconds between keepalive PINGs
    * until - Optional predicate; a line for which it returns true ends
      the read loop as though the server had hung up
    """

    transmit_encoding = 'utf-8'
    "encoding used for transmission"

    keepalive_interval = 120

    def __do_nothing(*args, **kwargs):
        pass

    def __init__(
        self,
        server,
        port,
        connect_factory=connection.Factory(),
        on_line=__do_nothing,
        on_disconnect=__do_nothing,
        keepalive_interval=None,
        until=None,
    ):
        self.server = server
        self.port = port
        self.server_address = (server, port)
        self.connect_factory = connect_factory
        self.on_line = on_line
        self.on_disconnect = on_disconnect
        if keepalive_interval is not None:
            self.keepalive_interval = keepalive_interval
        self.until = until
        self.state = ConnectionState.Disconnected
        self._link = None
        self.mutex = threading.RLock()

    def connect(self):
        """
        Open the connection.

        Returns True on success. Transport and TLS handshake failures are
        logged and reported by returning False.
        Any other error from the connect factory propagates.
        """
        with self.mutex:
            if self.state is not ConnectionState.Disconnected:
                self.disconnect()
            self.state = ConnectionState.Connecting
        log.info("Connecting to %s:%s", self.server, self.port)
        try:
            sock = self.connect_factory(self.server_address)
        except OSError:
            # ssl.SSLError and socket.gaierror are both OSErrors
            log.error(
                "Couldn't connect to %s:%s", self.server, self.port, exc_info=True
            )
            self._connect_failed()
            return False
        except Exception:
            self._connect_failed()
            raise

        link = _Link(sock)
        with self.mutex:
            # an overlapping connect may have installed a link meanwhile
            stale, self._link = self._link, link
            self.state = ConnectionState.Connected
            link.listener = Listener(
                sock,
                self.on_line,
                functools.partial(self._listener_exited, link),
                until=self.until,
            )
            link.keepalive = schedule.ThreadScheduler(name='irclink-keepalive')
            link.keepalive.execute_every(self.keepalive_interval, self._keepalive)
        if stale is not None:
            stale.close()
        log.debug("Listening for messages.")
        link.listener.start()
        return True

    def _connect_failed(self):
        with self.mutex:
            if self._link is None:
                self.state = ConnectionState.Disconnected

    def _keepalive(self):
        if not self.is_connected():
            return
        try:
            self.write("PING {0}", utime())
        except IRCError:
            log.error("Caught exception when sending ping", exc_info=True)

    def _listener_exited(self, link, listener):
        with self.mutex:
            if link is not self._link:
                return
        self.disconnect(notify=True)

    def is_connected(self):
        """Return connection status.

        Returns true if connected, otherwise false.
        """
        return self.state is ConnectionState.Connected

    def encode(self, msg):
        """Encode a message for transmission."""
        return msg.encode(self.transmit_encoding)

    def _prep_message(self, string):
        # The string should not contain any carriage return other than the
        # one added here.
        if '\n' in string or '\r' in string:
            msg = "Carriage returns not allowed in a message"
            raise InvalidCharacters(msg)
        return self.encode(string) + b'\r\n'

    def write(self, text, *args):
        """
        Format text against args and send it to the server.

        text is always treated as a template; use send_raw for lines
        that must go out verbatim. The line is sent in full before this
        method returns. Raises ServerNotConnectedError if not connected,
        FormatArgumentError if args don't satisfy text, and
        ServerConnectionError if the connection fails while sending (the
        connection is then torn down and the disconnect reported).
        """
        if not self.is_connected():
            raise ServerNotConnectedError(
                "Server %s is not connected." % self.server
            )
        return self.send_raw(commands.render(text, map(str, args)))

    def send_raw(self, string):
        """Send raw string to the server.

        The string will be padded with appropriate CR LF.
        """
        link = self._link
        if link is None or not self.is_connected():
            raise ServerNotConnectedError(
                "Server %s is not connected." % self.server
            )
        data = self._prep_message(string)
        try:
            link.send(data)
        except OSError as exc:
            log.error("Error writing to %s", self.server, exc_info=True)
            self._drop(link)
            raise ServerConnectionError("Connection reset by peer.") from exc
        log.debug("TO SERVER: %s", string)

    def _drop(self, link):
        with self.mutex:
            if link is not self._link:
                return
        self.disconnect(notify=True)

    def disconnect(self, notify=False):
        """Hang up the connection.

        Safe to call repeatedly and from several threads at once; the
        resources are released and the disconnect reported (if notify is
        true) only by the first call for a given connection.
        """
        with self.mutex:
            link, self._link = self._link, None
            self.state = ConnectionState.Disconnected
        if link is None or not link.close():
            return
        log.info("Disconnected from %s", self.server)
        if notify:
            self.on_disconnect(self)


class PrioritizedHandler(collections.namedtuple('Base', ('priority', 'callback'))):
    def __lt__(self, other):
        "when sorting prioritized handlers, only use the priority"
        return self.priority < other.priority


class Reactor:
    """
    Drives the IRC protocol over a single ServerConnection.

    Each line from the server is parsed into a ParsedMessage. PINGs are
    answered transparently; the end-of-MOTD and no-MOTD replies, WHOIS
    user replies, PRIVMSG and NOTICE are raised as "message" events;
    everything else is ignored.

    An unexpected loss of the connection raises a "disconnect" event. A
    disconnect requested through :meth:`disconnect` does not.

    The methods of this class are thread-safe; accesses to and
    modifications of its handler registry are guarded by a mutex.
    """

    default_quit_message = "Shutting down...Bye!"
    connection_class = ServerConnection

    def __init__(self, server, port, **connect_params):
        self.handlers = {}
        self.mutex = threading.RLock()
        self.connection = self.connection_class(
            server,
            port,
            on_line=self._process_line,
            on_disconnect=self._on_disconnect,
            **connect_params
        )
        self.add_global_handler("ping", _ping_ponger, -42)

    def connect(self):
        """Connect to the server; returns True on success."""
        return self.connection.connect()

    def is_connected(self):
        return self.connection.is_connected()

    def _process_line(self, line):
        message = ParsedMessage.parse(line)
        verb = message.verb.upper()
        if verb == 'PING':
            self._handle_event("ping", message)
        elif verb in events.substantive:
            log.debug("%s: %s", events.name(verb), message)
            self._handle_event("message", message)

    def _on_disconnect(self, connection):
        self._handle_event("disconnect")

    def add_global_handler(self, event, handler, priority=0):
        """Adds a global handler function for a specific event type.

        Arguments:

            event -- Event type: "message" or "disconnect".

            handler -- Callback function taking the reactor followed by
                       the event arguments ('message' handlers receive
                       the ParsedMessage, 'disconnect' handlers nothing
                       more).

            priority -- A number (the lower number, the higher priority).

        The handler functions are called in priority order (lowest
        number is highest priority).  If a handler function returns
        "NO MORE", no more handlers will be called.
        """
        handler = PrioritizedHandler(priority, handler)
        with self.mutex:
            event_handlers = self.handlers.setdefault(event, [])
            bisect.insort(event_handlers, handler)

    def remove_global_handler(self, event, handler):
        """Removes a global handler function.

        Returns 1 on success, otherwise 0.
        """
        with self.mutex:
            if event not in self.handlers:
                return 0
            for h in list(self.handlers[event]):
                if handler == h.callback:
                    self.handlers[event].remove(h)
        return 1

    def _handle_event(self, event, *args):
        with self.mutex:
            matching_handlers = sorted(self.handlers.get(event, []))
        for handler in matching_handlers:
            result = handler.callback(self, *args)
            if result == "NO MORE":
                return

    def send_command(self, name, *args):
        """
        Send a command from the command table.

        Raises UnknownCommand if name is not in the table; nothing is
        sent in that case.
        """
        template = commands.lookup(name)
        if template is None:
            raise UnknownCommand("Unrecognized command: %s" % name)
        self.connection.write(template, *args)

    command = send_command

    def send_raw(self, string):
        """Send a line to the server as-is."""
        self.connection.send_raw(string)

    def disconnect(self, quit_message=None):
        """
        Send QUIT and hang up.

        This is a deliberate disconnect; no "disconnect" event is raised.
        """
        if self.is_connected():
            try:
                self.send_command('QUIT', quit_message or self.default_quit_message)
            except ServerConnectionError:
                log.warning("Could not send QUIT", exc_info=True)
        self.connection.disconnect()

    def action(self, target, action):
        """Send a CTCP ACTION command."""
        self.send_command('Action', target, action)

    def join(self, channels, key=""):
        """Send a JOIN command."""
        args = [','.join(always_iterable(channels))]
        key and args.append(key)
        self.send_command('Join', *args)

    def motd(self):
        """Send an MOTD command."""
        self.send_command('Motd')

    def nick(self, newnick):
        """Send a NICK command."""
        self.send_command('Nick', newnick)

    def notice(self, target, text):
        """Send a NOTICE command."""
        self.send_command('Notice', target, text)

    def part(self, channels):
        """Send a PART command."""
        self.send_command('Part', ','.join(always_iterable(channels)))

    def privmsg(self, target, text):
        """Send a PRIVMSG command."""
        self.send_command('Privmsg', target, text)

    def set_topic(self, channel, topic):
        """Set the topic of a channel."""
        if not is_channel(channel):
            msg = "Target must be a channel; %s does not start with #." % channel
            raise ValueError(msg)
        self.send_command('Topic', channel, topic)

    def whois(self, targets):
        """Send a WHOIS command."""
        self.send_command('Whois', ','.join(always_iterable(targets)))


def is_channel(string):
    """Check if a string is a channel name.

    Returns true if the argument is a channel name, otherwise false.

    >>> is_channel('#python')
    True
    >>> is_channel('nick')
    False
    """
    return bool(string) and string[0] in "#&+!"


def _ping_ponger(reactor, message):
    "A global handler for PING lines"
    # a prefixed PING carries its payload in the target position
    reactor.send_command('Pong', message.text or message.target)
