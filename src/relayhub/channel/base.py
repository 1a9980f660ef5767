from abc import abstractmethod

from relayhub.support.mixins import CommonEqualityMixin, StringerMixin


class ChannelSender(CommonEqualityMixin, StringerMixin):
    """
    Describes the party at the other end of a channel.

    :param identity: an opaque identity, e.g. the origin of the sender.
    :param instance_key: the instance the sender runs in. Only present for peers whose instance is
        assigned by the host.
    """

    def __init__(self, identity=None, instance_key=None):
        self.identity = identity
        self.instance_key = instance_key


class Channel:
    """
    A named, duplex connection that carries envelopes between an endpoint and the hub.

    Envelopes posted on one end arrive on the other end in the order posted. Listeners added to
    `messages` are called with (envelope, channel); listeners added to `closed` are called with (channel)
    when the other end closes.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        raise NotImplementedError

    @property
    @abstractmethod
    def sender(self) -> ChannelSender:
        raise NotImplementedError

    @property
    @abstractmethod
    def messages(self):
        """ the event source fired for each envelope that arrives. """
        raise NotImplementedError

    @property
    @abstractmethod
    def closed(self):
        """ the event source fired when the far end closes the channel. """
        raise NotImplementedError

    @property
    @abstractmethod
    def open(self) -> bool:
        raise NotImplementedError

    @abstractmethod
    def post(self, envelope):
        raise NotImplementedError

    @abstractmethod
    def close(self):
        raise NotImplementedError


class ChannelFactory:
    """
    A factory knows how to open a channel to the hub.
    """
    @abstractmethod
    def __call__(self, name) -> Channel:
        """
        Opens a channel with the given (prefixed) name. No check is made that the hub is listening;
        if it is not, envelopes posted on the channel are never answered.
        """
        raise NotImplementedError
