"""
The hub is the single relay for one host application instance. Every endpoint opens a channel to it and
performs a handshake; afterwards the hub forwards each MESSAGE and RESPONSE to the channels the envelope
addresses. Channels are registered by (role, instance key) and released when they close.
"""
import logging

from relayhub.address import normalize_instance_key
from relayhub.envelope import HUB_INSTANCE_KEY, Envelope, Kind, Role, WILDCARD, has_name_prefix, \
    remove_name_prefix
from relayhub.registry import Registry
from relayhub.support.events import EventSource

logger = logging.getLogger(__name__)


def is_protocol_channel(channel):
    """ Determines if a channel was opened by an endpoint, from the reserved prefix on its name. """
    return has_name_prefix(channel.name)


class Hub:
    """
    Relays envelopes between endpoint channels.

    `connected` fires (role, name, instance_key) when a channel completes its handshake, and `disconnected`
    fires the same arguments when a registered channel closes. The name is unprefixed and the instance key
    is None for the hub role.

    :param on_connect: optional handler added to `connected`
    :param on_disconnect: optional handler added to `disconnected`
    """

    def __init__(self, on_connect=None, on_disconnect=None, log=logger):
        self.registry = Registry()
        self.connected = EventSource()
        self.disconnected = EventSource()
        self.logger = log
        if on_connect:
            self.connected += on_connect
        if on_disconnect:
            self.disconnected += on_disconnect

    def attach(self, host):
        """ listens for the channels created on a host transport. """
        host.connections.add(self.accept_channel)

    def detach(self, host):
        host.connections.remove(self.accept_channel)

    def accept_channel(self, channel):
        """
        Observes a newly created channel. Channels that were not opened by an endpoint are ignored.
        :return: True if the hub listens to the channel.
        """
        if not is_protocol_channel(channel):
            return False
        self.logger.debug("accepted channel '%s'" % channel.name)
        channel.messages.add(self.on_envelope)
        channel.closed.add(self.on_channel_closed)
        return True

    def on_envelope(self, envelope: Envelope, channel):
        kind = envelope.kind
        if kind == Kind.INIT:
            self._init_channel(envelope, channel)
        elif kind in (Kind.MESSAGE, Kind.RESPONSE):
            if not envelope.target:
                self.logger.warning("dropping %s with missing target: %s" % (kind, envelope))
            elif not envelope.target_names:
                self.logger.warning("dropping %s with missing target names: %s" % (kind, envelope))
            else:
                self._relay(envelope, channel)
        else:
            self.logger.warning("dropping envelope of unknown kind '%s' from channel '%s'" % (kind, channel.name))

    def _sender_instance_key(self, role: Role, envelope: Envelope, channel):
        """
        The instance a sender runs in. Devtool and popup peers declare it, content scripts are
        identified by the host through the channel's sender descriptor.
        """
        if role is Role.HUB:
            return HUB_INSTANCE_KEY
        if role.host_assigns_instance_key:
            sender = channel.sender
            return normalize_instance_key(sender.instance_key) if sender is not None else None
        return normalize_instance_key(envelope.instance_key)

    def _init_channel(self, envelope: Envelope, channel):
        role = Role.parse(envelope.source)
        if role is None:
            self.logger.warning("dropping INIT from unknown role '%s' on channel '%s'" %
                                (envelope.source, channel.name))
            return
        if channel in self.registry:
            self.logger.warning("ignoring repeated INIT on channel '%s'" % channel.name)
            return
        instance_key = self._sender_instance_key(role, envelope, channel)
        if instance_key is None:
            self.logger.warning("dropping INIT from %s channel '%s' with no instance key" % (role, channel.name))
            return

        self.registry.add(role, instance_key, channel)
        name = remove_name_prefix(channel.name)
        self.logger.info("connected %s:%s (instance %s)" % (role, name, instance_key))
        self.connected.fire(role, name, self._reported_key(role, instance_key))
        channel.post(Envelope(Kind.INIT_ACK, Role.HUB))

    def _relay(self, envelope: Envelope, channel):
        source = Role.parse(envelope.source)
        target = Role.parse(envelope.target)
        if source is None or target is None:
            self.logger.warning("dropping %s with unknown role: %s" % (envelope.kind, envelope))
            return

        sender_key = self._sender_instance_key(source, envelope, channel)
        if target is Role.HUB:
            target_key = HUB_INSTANCE_KEY
        elif source is Role.HUB:
            target_key = normalize_instance_key(envelope.target_instance_key)
        else:
            # peers reach other roles within their own instance
            target_key = sender_key

        candidates = self.registry.channels(target, target_key)
        if not candidates:
            self.logger.info("not relaying %s: no channels registered for %s (instance %s)" %
                             (envelope.kind, target, target_key))
            return

        for name in envelope.target_names:
            if name != WILDCARD and not any(c.name == name for c in candidates):
                self.logger.warning("no channel named '%s' registered for %s (instance %s)" %
                                    (remove_name_prefix(name), target, target_key))

        relayed = envelope.stamped(
            relayed_from_instance_key=self._reported_key(source, sender_key),
            sender=channel.sender)
        recipients = self.registry.matching(target, target_key, envelope.target_names)
        self.logger.debug("relaying %s from %s to %d channel(s)" % (envelope.kind, source, len(recipients)))
        for recipient in recipients:
            recipient.post(relayed)

    def on_channel_closed(self, channel):
        channel.messages.remove(self.on_envelope)
        channel.closed.remove(self.on_channel_closed)
        key = self.registry.remove(channel)
        if key is None:
            return
        role, instance_key = key
        name = remove_name_prefix(channel.name)
        self.logger.info("disconnected %s:%s (instance %s)" % (role, name, instance_key))
        self.disconnected.fire(role, name, self._reported_key(role, instance_key))

    @staticmethod
    def _reported_key(role, instance_key):
        return None if role is Role.HUB else instance_key
