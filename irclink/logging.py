"""
Logging helpers: command-line configuration and a subscribable stream
of log events.
"""

import collections
import logging
import threading

import jaraco.logging


LogEvent = collections.namedtuple('LogEvent', 'severity text cause')
"""
A single log event.

severity -- the level name ('DEBUG', 'INFO', ...)
text -- the formatted message
cause -- the exception being logged, if any
"""


def add_arguments(parser):
    """
    Add arguments to an ArgumentParser for purposes of grabbing a
    logging level.
    """
    jaraco.logging.add_arguments(parser)


def setup(options, **kwargs):
    """
    Setup logging with options from an ArgumentParser. Also pass any
    keyword arguments to the basicConfig call.
    """
    jaraco.logging.setup(options, **kwargs)


class EventHandler(logging.Handler):
    """
    A logging handler that relays records to subscribers as LogEvents.

    The handler level is the verbosity threshold.

    >>> handler = EventHandler(logging.INFO)
    >>> received = []
    >>> handler.subscribe(received.append)
    >>> logger = logging.getLogger('irclink.doctest')
    >>> logger.addHandler(handler)
    >>> logger.setLevel(logging.DEBUG)
    >>> logger.debug("not relayed")
    >>> logger.info("Connecting to %s", 'irc.example.com')
    >>> received
    [LogEvent(severity='INFO', text='Connecting to irc.example.com', cause=None)]
    >>> logger.removeHandler(handler)
    """

    def __init__(self, level=logging.NOTSET):
        super().__init__(level)
        self.subscribers = []
        self._subscribers_lock = threading.Lock()

    def subscribe(self, callback):
        with self._subscribers_lock:
            self.subscribers.append(callback)

    def unsubscribe(self, callback):
        with self._subscribers_lock:
            self.subscribers.remove(callback)

    def emit(self, record):
        cause = record.exc_info[1] if record.exc_info else None
        try:
            event = LogEvent(record.levelname, record.getMessage(), cause)
        except Exception:
            self.handleError(record)
            return
        with self._subscribers_lock:
            subscribers = list(self.subscribers)
        for callback in subscribers:
            callback(event)


def relay(callback, level=logging.DEBUG, logger_name='irclink'):
    """
    Subscribe callback to the log events of logger_name at level and
    return the installed handler.
    """
    handler = EventHandler(level)
    handler.subscribe(callback)
    logger = logging.getLogger(logger_name)
    logger.addHandler(handler)
    if logger.getEffectiveLevel() > level:
        logger.setLevel(level)
    return handler
