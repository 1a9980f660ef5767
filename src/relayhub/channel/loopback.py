"""
An in-process implementation of the channel contract: two linked ends that deliver
envelopes to each other synchronously. The hub role uses it to reach the hub living in the same
context; any other in-process host can use LoopbackHost to connect its endpoints.
"""
import logging
import threading

from relayhub.channel.base import Channel, ChannelFactory, ChannelSender
from relayhub.support.events import EventSource
from relayhub.support.scheduler import LoopScheduler, Scheduler

logger = logging.getLogger(__name__)


class LoopbackLink:
    """ The shared state of a channel pair. Ends only reach each other through the link. """

    def __init__(self):
        self.ends = []

    def attach(self, end):
        self.ends.append(end)
        return len(self.ends) - 1

    def far_end(self, index):
        return self.ends[1 - index]


class LoopbackChannel(Channel):

    def __init__(self, name, sender: ChannelSender, link: LoopbackLink, log=logger):
        self._name = name
        self._sender = sender
        self._messages = EventSource()
        self._closed = EventSource()
        self._open = True
        self._link = link
        self._index = link.attach(self)
        self.logger = log

    @property
    def name(self):
        return self._name

    @property
    def sender(self):
        return self._sender

    @property
    def messages(self):
        return self._messages

    @property
    def closed(self):
        return self._closed

    @property
    def open(self):
        return self._open

    def post(self, envelope):
        if not self._open:
            self.logger.warning("post on a closed channel '%s' dropped: %s" % (self._name, envelope))
            return
        self._link.far_end(self._index)._deliver(envelope)

    def close(self):
        """ closes both ends. Only the far end is notified. """
        if not self._open:
            return
        self._open = False
        self._messages.clear()
        self._closed.clear()
        self._link.far_end(self._index)._far_end_closed()

    def _deliver(self, envelope):
        if self._open:
            self._messages.fire(envelope, self)

    def _far_end_closed(self):
        if not self._open:
            return
        self._open = False
        self._closed.fire(self)
        self._messages.clear()
        self._closed.clear()


def channel_pair(name, sender: ChannelSender=None):
    """
    Creates two linked channel ends with the same name and sender descriptor.
    :return: a tuple (near, far). The creator keeps the near end and hands the far end to the party it connects to.
    """
    sender = sender if sender is not None else ChannelSender()
    link = LoopbackLink()
    return LoopbackChannel(name, sender, link), LoopbackChannel(name, sender, link)


class LoopbackHost(ChannelFactory):
    """
    Connects endpoints to whatever is listening on `connections` within this process.
    Each connect() creates a channel pair and fires `connections` with the far end.
    When nothing is listening, the far end is discarded and the near end is never answered.

    :param scheduler: the scheduler shared by the contexts connected through this host. When omitted, a
        LoopScheduler is started on first use and stopped by close().
    """

    def __init__(self, scheduler: Scheduler=None, log=logger):
        self.connections = EventSource()
        self.logger = log
        self._scheduler = scheduler
        self._owns_scheduler = scheduler is None
        self._lock = threading.Lock()

    @property
    def scheduler(self) -> Scheduler:
        with self._lock:
            if self._scheduler is None:
                self._scheduler = LoopScheduler(log=self.logger)
                self._scheduler.start()
            return self._scheduler

    def close(self):
        """ stops the scheduler this host started, if any. """
        if not self._owns_scheduler:
            return
        with self._lock:
            scheduler, self._scheduler = self._scheduler, None
        if scheduler is not None:
            scheduler.stop()

    def connect(self, name, sender: ChannelSender=None) -> Channel:
        near, far = channel_pair(name, sender)
        if not len(self.connections):
            self.logger.debug("no listener for channel '%s'" % name)
        self.connections.fire(far)
        return near

    def __call__(self, name):
        return self.connect(name)

    def factory(self, sender: ChannelSender) -> ChannelFactory:
        """ a channel factory that connects with the given sender descriptor. """
        return _SenderChannelFactory(self, sender)


class _SenderChannelFactory(ChannelFactory):

    def __init__(self, host: LoopbackHost, sender: ChannelSender):
        self.host = host
        self.sender = sender

    def __call__(self, name):
        return self.host.connect(name, self.sender)
