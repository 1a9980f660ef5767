"""
The envelope exchanged over channels, and the roles and message kinds it refers to.

Channel names carry a reserved prefix so the hub can tell protocol channels apart from
other traffic on the same host transport. The prefix is added and removed here; callers only
ever see unprefixed names.
"""
import copy
from enum import Enum

from relayhub.support.mixins import CommonEqualityMixin, StringerMixin

# Identifies channels opened by this library among arbitrary host channels.
CHANNEL_NAME_PREFIX = '__relayhub__'

# Addresses every channel in the target bucket.
WILDCARD = '*'

# The hub role is a singleton, so all of its channels share this instance key.
HUB_INSTANCE_KEY = 'hub'


class Role(str, Enum):
    HUB = 'hub'
    DEVTOOL = 'devtool'
    POPUP = 'popup'
    CONTENT_SCRIPT = 'content_script'

    def __str__(self):
        return self.value

    @property
    def declares_instance_key(self):
        """ peers that stamp their own instance key on the traffic they send. """
        return self in (Role.DEVTOOL, Role.POPUP)

    @property
    def host_assigns_instance_key(self):
        """ peers whose instance key is taken from the sender descriptor of their channel. """
        return self is Role.CONTENT_SCRIPT

    @classmethod
    def parse(cls, value):
        """
        >>> Role.parse('popup')
        <Role.POPUP: 'popup'>
        >>> Role.parse('nonsense') is None
        True
        """
        try:
            return cls(value)
        except ValueError:
            return None


class Kind(str, Enum):
    INIT = 'init'
    INIT_ACK = 'init_ack'
    MESSAGE = 'message'
    RESPONSE = 'response'

    def __str__(self):
        return self.value


def add_name_prefix(name):
    """
    >>> add_name_prefix('main')
    '__relayhub__main'
    >>> add_name_prefix('*')
    '*'
    """
    return name if name == WILDCARD else CHANNEL_NAME_PREFIX + name


def remove_name_prefix(name):
    """
    >>> remove_name_prefix('__relayhub__main')
    'main'
    >>> remove_name_prefix('main')
    'main'
    """
    if name and name.startswith(CHANNEL_NAME_PREFIX):
        return name[len(CHANNEL_NAME_PREFIX):]
    return name


def has_name_prefix(name):
    return bool(name) and name.startswith(CHANNEL_NAME_PREFIX)


class Envelope(CommonEqualityMixin, StringerMixin):
    """
    One protocol message.

    :param kind: the Kind of message.
    :param source: the Role of the sender.
    :param target: the Role addressed. Required for MESSAGE and RESPONSE.
    :param source_name: the prefixed channel name of the sender.
    :param target_names: prefixed channel names (or the wildcard) addressed within the target bucket.
    :param target_instance_key: the peer instance addressed, only set by the hub role when sending to a peer.
    :param instance_key: the sender's own instance key, as declared by the sender.
    :param payload: the user message (MESSAGE) or response value (RESPONSE).
    :param callback_id: set when the sender expects a response.
    :param sender: the sender descriptor of the channel the envelope arrived on, stamped by the hub.
    :param relayed_from_instance_key: the sender's true instance key, stamped by the hub.
    """

    def __init__(self, kind, source, target=None, source_name=None, target_names=None,
                 target_instance_key=None, instance_key=None, payload=None, callback_id=None,
                 sender=None, relayed_from_instance_key=None):
        self.kind = kind
        self.source = source
        self.target = target
        self.source_name = source_name
        self.target_names = list(target_names) if target_names is not None else None
        self.target_instance_key = target_instance_key
        self.instance_key = instance_key
        self.payload = payload
        self.callback_id = callback_id
        self.sender = sender
        self.relayed_from_instance_key = relayed_from_instance_key

    @property
    def is_addressed(self):
        """ MESSAGE and RESPONSE envelopes must name both a target role and at least one target name. """
        return bool(self.target) and bool(self.target_names)

    def stamped(self, **fields):
        """ returns a shallow copy with the given fields replaced. The payload is shared, not copied. """
        result = copy.copy(self)
        for name, value in fields.items():
            if not hasattr(result, name):
                raise AttributeError("Envelope has no field '%s'" % name)
            setattr(result, name, value)
        return result
