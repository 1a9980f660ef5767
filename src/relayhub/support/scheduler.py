"""
Timers and the run loop that drive the hub and its endpoints.

All protocol state is mutated from a single logical thread. Hosts either drive a ManualScheduler
from their own loop (tests do this, advancing time explicitly), or start a LoopScheduler, which runs every
posted callback and due timer on one background thread.
"""
import heapq
import itertools
import logging
import threading
import time
from abc import abstractmethod

from relayhub.support.futures import FutureValue

logger = logging.getLogger(__name__)


class TimerHandle:
    """ A callback scheduled to run at a given time. Cancelling a handle that already ran has no effect. """

    def __init__(self, when, fn, args=()):
        self.when = when
        self.fn = fn
        self.args = args
        self.cancelled = False

    def cancel(self):
        self.cancelled = True

    def _run(self):
        if not self.cancelled:
            self.fn(*self.args)


class TimerQueue:
    """ Orders timer handles by due time, and by scheduling order for handles due at the same time. """

    def __init__(self):
        self._heap = []
        self._sequence = itertools.count()

    def __len__(self):
        return sum(1 for entry in self._heap if not entry[2].cancelled)

    def push(self, handle: TimerHandle):
        heapq.heappush(self._heap, (handle.when, next(self._sequence), handle))

    def next_when(self):
        """ :return: the due time of the earliest live timer, or None when there are none. """
        heap = self._heap
        while heap and heap[0][2].cancelled:
            heapq.heappop(heap)
        return heap[0][0] if heap else None

    def pop_due(self, now):
        """ removes and returns the earliest live handle due at or before `now`, or None. """
        when = self.next_when()
        if when is None or when > now:
            return None
        return heapq.heappop(self._heap)[2]


class Scheduler:
    """ Schedules callbacks on the protocol's logical thread. """

    @abstractmethod
    def time(self) -> float:
        raise NotImplementedError

    @abstractmethod
    def call_later(self, delay, fn, *args) -> TimerHandle:
        """ arranges for fn(*args) to be called after `delay` seconds. """
        raise NotImplementedError

    def call_soon(self, fn, *args) -> TimerHandle:
        return self.call_later(0, fn, *args)

    def run(self, fn, *args):
        """ calls fn(*args) on the protocol's logical thread and returns its result, raising what it raises. """
        return fn(*args)


class ManualScheduler(Scheduler):
    """
    A scheduler whose clock only moves when advance() is called. Callbacks run on the thread
    calling advance() or run_pending(), and exceptions they raise propagate to that caller.
    """

    def __init__(self, start=0.0):
        self._now = start
        self._timers = TimerQueue()

    def time(self):
        return self._now

    @property
    def pending(self):
        """ the number of timers that are scheduled and not cancelled. """
        return len(self._timers)

    def call_later(self, delay, fn, *args):
        handle = TimerHandle(self._now + max(0, delay), fn, args)
        self._timers.push(handle)
        return handle

    def run_pending(self):
        """ runs every timer due at the current time, including those scheduled by the callbacks themselves.
        :return: the number of callbacks run.
        """
        count = 0
        handle = self._timers.pop_due(self._now)
        while handle is not None:
            handle._run()
            count += 1
            handle = self._timers.pop_due(self._now)
        return count

    def advance(self, seconds):
        """ moves the clock forward, running each timer as its due time is reached. """
        target = self._now + seconds
        count = 0
        when = self._timers.next_when()
        while when is not None and when <= target:
            self._now = max(self._now, when)
            count += self.run_pending()
            when = self._timers.next_when()
        self._now = target
        return count + self.run_pending()


class AsyncLoop:
    """ Continually runs a given function on a background thread.
        Exceptions are logged and posted to exception_handler().
        The background thread is registered as a daemon.
    """

    def __init__(self, fn=None, args=(), log=logger):
        self.fn = fn
        self.args = args
        self.stop_event = threading.Event()
        self.background_thread = None
        self.logger = log

    def start(self):
        if self.background_thread is None:
            self.stop_event.clear()
            t = threading.Thread(target=self._run, daemon=True)
            self.background_thread = t
            t.start()

    def exception_handler(self, e):
        self.logger.exception(e)

    def _run(self):
        self._do(self.startup)
        while self.running():
            self._do(self.loop)
        self._do(self.shutdown)
        self.logger.debug("background thread exiting")

    def _do(self, callme):
        try:
            callme()
        except Exception as e:
            self.exception_handler(e)

    def startup(self):
        """ template method called when the thread starts"""

    def loop(self):
        self.fn(*self.args)

    def shutdown(self):
        """ template method called when the thread exits """

    def running(self):
        return not self.stop_event.is_set()

    def stop(self):
        self.stop_event.set()
        thread = self.background_thread
        self.background_thread = None
        if thread and thread is not threading.current_thread():
            thread.join()


class LoopScheduler(AsyncLoop, Scheduler):
    """
    Runs all scheduled callbacks on one background thread, in due-time order.
    Callbacks may be scheduled from any thread; an exception raised by a callback is logged and
    does not stop the loop.

    :param idle_wait: the longest time the loop sleeps when nothing is scheduled, in seconds.
    """

    def __init__(self, idle_wait=1.0, clock=time.monotonic, log=logger):
        super().__init__(log=log)
        self.idle_wait = idle_wait
        self._clock = clock
        self._timers = TimerQueue()
        self._condition = threading.Condition()

    def time(self):
        return self._clock()

    def call_later(self, delay, fn, *args):
        handle = TimerHandle(self._clock() + max(0, delay), fn, args)
        with self._condition:
            self._timers.push(handle)
            self._condition.notify()
        return handle

    def loop(self):
        """ waits for the next due timer and runs it. """
        with self._condition:
            handle = self._timers.pop_due(self._clock())
            if handle is None:
                when = self._timers.next_when()
                wait = self.idle_wait if when is None else min(self.idle_wait, when - self._clock())
                self._condition.wait(max(0, wait))
                return
        handle._run()

    def stop(self):
        self.stop_event.set()
        with self._condition:
            self._condition.notify()
        super().stop()

    def run(self, fn, *args):
        """
        Calls fn(*args) on the background thread and blocks until it has run. Called on the background
        thread itself, or when the loop is not running, fn is called directly.
        """
        if self.background_thread is threading.current_thread():
            return fn(*args)
        future = FutureValue()

        def call():
            if not future.set_running_or_notify_cancel():
                return
            try:
                future.set_result(fn(*args))
            except Exception as e:
                future.set_exception(e)
        with self._condition:
            posted = self.background_thread is not None and self.running()
            if posted:
                self._timers.push(TimerHandle(self._clock(), call))
                self._condition.notify()
        if not posted:
            return fn(*args)
        return future.value()

    def shutdown(self):
        """ runs the callbacks already due, so callers blocked in run() are released. """
        with self._condition:
            due = []
            handle = self._timers.pop_due(self._clock())
            while handle is not None:
                due.append(handle)
                handle = self._timers.pop_due(self._clock())
        for handle in due:
            self._do(handle._run)
