"""
Background reader for a connected socket.
"""

import logging
import threading

from jaraco.stream import buffer

log = logging.getLogger(__name__)


class Listener:
    """
    Reads lines from ``sock`` on a dedicated thread and hands each one,
    in arrival order, to ``handler``.

    The loop ends on end-of-stream, on a socket error, when ``until``
    returns true for a line, or when the handler raises. In every case
    ``on_exit`` is called exactly once with the listener, and no line is
    delivered afterwards.

    Stopping is cooperative. :meth:`stop` prevents the next ``recv``
    from starting, but a ``recv`` already in progress is only released
    when the owner closes the socket.
    """

    buffer_class = buffer.LenientDecodingLineBuffer
    chunk_size = 2 ** 14

    def __init__(self, sock, handler, on_exit, until=None):
        self.sock = sock
        self.handler = handler
        self.on_exit = on_exit
        self.until = until
        self.buffer = self.buffer_class()
        self._stopping = threading.Event()
        self._exit_lock = threading.Lock()
        self._exited = False
        self._thread = threading.Thread(
            target=self._read, name='irclink-listener', daemon=True
        )

    def start(self):
        self._thread.start()
        return self

    def stop(self):
        self._stopping.set()

    @property
    def running(self):
        return self._thread.is_alive()

    @property
    def exited(self):
        return self._exited

    def _lines(self):
        while not self._stopping.is_set():
            data = self.sock.recv(self.chunk_size)
            if not data:
                return
            self.buffer.feed(data)
            yield from self.buffer

    def _read(self):
        try:
            for line in self._lines():
                if self._stopping.is_set():
                    break
                log.debug("FROM SERVER: %s", line)
                self.handler(line)
                if self.until and self.until(line):
                    log.info("Stop line received: %s", line)
                    break
        except OSError:
            if not self._stopping.is_set():
                log.error("Error reading from the server", exc_info=True)
        except Exception:
            log.exception("Error handling a line from the server")
        finally:
            self._finish()

    def _finish(self):
        with self._exit_lock:
            if self._exited:
                return
            self._exited = True
            requested = self._stopping.is_set()
            self._stopping.set()
        self.buffer = self.buffer_class()
        if not requested:
            log.warning("Read loop exited, likely disconnected.")
        self.on_exit(self)
