# -*- coding: utf-8 -*-

"""
Single-server IRC client with registration and automatic reconnection.
"""

import abc
import functools
import logging
import os
import threading

from . import client
from . import connection
from . import schedule

log = logging.getLogger(__name__)


class ServerSpec:
    """
    An IRC server specification.

    >>> spec = ServerSpec('localhost')
    >>> spec.host
    'localhost'
    >>> spec.port
    6667
    >>> spec.password

    >>> spec = ServerSpec('127.0.0.1', 6697, 'fooP455')
    >>> spec.password
    'fooP455'
    """

    def __init__(self, host, port=6667, password=None):
        self.host = host
        self.port = port
        self.password = password

    def __repr__(self):
        return "<irclink.bot.ServerSpec for server %s:%s %s>" % (
            self.host,
            self.port,
            "with password" if self.password else "without password",
        )

    @classmethod
    def ensure(cls, input):
        spec = cls(*input) if isinstance(input, (list, tuple)) else input
        assert isinstance(spec, cls)
        return spec


class ReconnectStrategy(metaclass=abc.ABCMeta):
    """
    An abstract base class describing the interface used by
    SingleServerBot for handling reconnect following
    disconnect events.
    """

    @abc.abstractmethod
    def run(self, bot):
        """
        Invoked by the bot on disconnect. Here
        a strategy can determine how to react to a
        disconnect.
        """

    def cancel(self):
        """
        Invoked by the bot when told to quit. Any reconnect already
        underway must not go ahead.
        """


class FixedDelay(ReconnectStrategy):
    """
    A ReconnectStrategy that retries the full connect sequence after a
    fixed delay, for as long as it takes.

    Only one retry is ever pending; disconnect notifications that
    arrive while one is scheduled or running are absorbed by it. A
    cancel discards the pending retry.
    """

    delay = 15

    def __init__(self, **attrs):
        vars(self).update(attrs)
        assert self.delay >= 0
        self._check_scheduled = False
        self._generation = 0
        self._lock = threading.Lock()
        self.attempts = 0

    def run(self, bot):
        self.bot = bot

        with self._lock:
            if self._check_scheduled:
                return
            self._check_scheduled = True
            generation = self._generation

        log.info("Reconnecting to %s in %s seconds", bot.server.host, self.delay)
        bot.scheduler.execute_after(
            self.delay, functools.partial(self.check, generation)
        )

    def cancel(self):
        with self._lock:
            self._generation += 1
            self._check_scheduled = False

    def _current(self, generation):
        with self._lock:
            return generation == self._generation

    def check(self, generation):
        with self._lock:
            if generation != self._generation:
                return
            self._check_scheduled = False
        self.attempts += 1
        try:
            succeeded = self.bot.connect()
        except Exception:
            log.exception("Connection attempt to %s raised", self.bot.server.host)
            succeeded = False
        if not self._current(generation):
            log.info("Quit during reconnect to %s", self.bot.server.host)
            if succeeded:
                self.bot.reactor.disconnect()
            return
        if succeeded:
            log.info("Connection attempt to %s succeeded.", self.bot.server.host)
            return
        log.info(
            "Connection attempt to %s failed. Retrying in %s seconds...",
            self.bot.server.host,
            self.delay,
        )
        self.run(self.bot)


class SingleServerBot:
    r"""A single-server IRC client that registers on connect and
    reconnects when the connection drops unexpectedly.

    Arguments:

        server -- A ServerSpec or a tuple of parameters suitable for
            constructing one.

        nickname -- The nickname; also used as the user and real name.

        recon -- A ReconnectStrategy for reconnecting after an
            unexpected disconnect.

        use_tls -- Whether to negotiate TLS after connecting.

        verify -- Whether to validate the server certificate (TLS only).

        ssl_context -- An ssl.SSLContext overriding the validation
            policy and client certificate settings.

        \*\*connect_params -- parameters passed through to
            irclink.client.ServerConnection (connect_factory,
            keepalive_interval, until).
    """

    reactor_class = client.Reactor

    def __init__(
        self,
        server,
        nickname,
        recon=None,
        use_tls=False,
        verify=True,
        ssl_context=None,
        **connect_params
    ):
        self.server = ServerSpec.ensure(server)
        self.nickname = nickname
        self.recon = recon or FixedDelay()
        self.use_tls = use_tls
        self.verify = verify
        self.ssl_context = ssl_context
        self.certfile = None
        self.cert_password = None
        self.scheduler = schedule.ThreadScheduler(name='irclink-reconnect')
        self.reactor = self.reactor_class(
            self.server.host, self.server.port, **connect_params
        )
        self.reactor.add_global_handler("disconnect", self._on_disconnect, -20)
        if use_tls and 'connect_factory' not in connect_params:
            self.reactor.connection.connect_factory = self._tls_factory

    @property
    def connection(self):
        return self.reactor.connection

    def set_certificate(self, path, password=None):
        """
        Present a client certificate on the next TLS connect.

        path must name a PEM file holding the certificate and its
        private key; a file with only a private key is not supported.
        """
        if not path:
            raise ValueError("path is required")
        if not os.path.isfile(path):
            raise FileNotFoundError(path)
        self.certfile = path
        self.cert_password = password

    def _tls_factory(self, server_address):
        wrapper = connection.tls_wrapper(
            self.server.host,
            verify=self.verify,
            certfile=self.certfile,
            password=self.cert_password,
            context=self.ssl_context,
        )
        return connection.Factory(wrapper=wrapper)(server_address)

    def connect(self):
        """
        Connect and register with the server.

        Sends PASS (if the server has a password), NICK and USER without
        waiting for replies. Returns True if all of that succeeded.
        """
        if not self.reactor.connect():
            return False
        try:
            if self.server.password:
                self.reactor.send_command('PASS', self.server.password)
            self.reactor.send_command('NICK', self.nickname)
            self.reactor.send_command('USER', self.nickname, self.nickname)
        except client.ServerConnectionError:
            log.error("Registration with %s failed", self.server.host, exc_info=True)
            return False
        return True

    def is_connected(self):
        return self.reactor.is_connected()

    def _on_disconnect(self, reactor):
        self.recon.run(self)

    def add_global_handler(self, *args):
        """Add global handler.

        See documentation for Reactor.add_global_handler.
        """
        self.reactor.add_global_handler(*args)

    def remove_global_handler(self, *args):
        """Remove global handler.

        See documentation for Reactor.remove_global_handler.
        """
        return self.reactor.remove_global_handler(*args)

    def command(self, name, *args):
        """Send a command from the command table."""
        self.reactor.send_command(name, *args)

    def send_raw(self, data):
        """Send raw data to the server."""
        self.reactor.send_raw(data)

    def disconnect(self, msg=None):
        """Quit the server. This does not trigger a reconnect, and a
        reconnect already pending is abandoned.

        Arguments:

            msg -- Quit message.
        """
        self.recon.cancel()
        self.reactor.disconnect(msg)

    def close(self, msg=None):
        """Quit the server and stop any pending reconnection."""
        self.scheduler.stop()
        self.disconnect(msg)
