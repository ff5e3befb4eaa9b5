import abc
import datetime
import logging
import threading

from tempora import schedule

log = logging.getLogger(__name__)


def _as_delta(period):
    if isinstance(period, datetime.timedelta):
        return period
    return datetime.timedelta(seconds=period)


class IScheduler(metaclass=abc.ABCMeta):
    @abc.abstractmethod
    def execute_every(self, period, func):
        "execute func every period"

    @abc.abstractmethod
    def execute_after(self, delay, func):
        "execute func after delay"

    @abc.abstractmethod
    def stop(self):
        "discard pending functions and stop executing them"


class ThreadScheduler(schedule.InvokeScheduler, IScheduler):
    """
    A scheduler that invokes due functions on its own daemon thread.

    Functions run outside the scheduler lock, so a function may
    schedule further work on the same scheduler.
    """

    def __init__(self, name=None):
        super().__init__()
        self._wakeup = threading.Condition(threading.RLock())
        self._stopped = False
        self._thread = threading.Thread(target=self._run, name=name, daemon=True)
        self._thread.start()

    def add(self, command):
        with self._wakeup:
            if self._stopped:
                return
            super().add(command)
            self._wakeup.notify()

    def execute_every(self, period, func):
        self.add(schedule.PeriodicCommand.after(_as_delta(period), func))

    def execute_after(self, delay, func):
        self.add(schedule.DelayedCommand.after(_as_delta(delay), func))

    @property
    def stopped(self):
        return self._stopped

    def stop(self):
        """
        Stop the scheduler without waiting for a function that is
        currently running; that function may itself be tearing down
        the owner of this scheduler.
        """
        with self._wakeup:
            self._stopped = True
            del self.queue[:]
            self._wakeup.notify()

    def _timeout(self):
        if not self.queue:
            return None
        now = datetime.datetime.now(datetime.timezone.utc)
        return max((self.queue[0] - now).total_seconds(), 0)

    def _take_due(self):
        due = []
        while self.queue and self.queue[0].due():
            command = self.queue.pop(0)
            if isinstance(command, schedule.PeriodicCommand):
                super().add(command.next())
            due.append(command)
        return due

    def _run(self):
        while True:
            with self._wakeup:
                if self._stopped:
                    return
                self._wakeup.wait(self._timeout())
                if self._stopped:
                    return
                due = self._take_due()
            for command in due:
                if self._stopped:
                    return
                try:
                    self.run(command)
                except Exception:
                    log.exception("Scheduled function %r failed", command.target)
