"""
The client side of one named channel.

An endpoint opens a channel to the hub and sends INIT, repeating the attempt on a fixed interval
until the hub acknowledges (the hub may start after the endpoint). Messages sent before the
acknowledgement are queued and flushed in order once it arrives. Each message is assigned a callback
id; the future returned to the caller is resolved when a RESPONSE carrying that id comes back.

Opening the channel, sending and disconnecting run through Scheduler.run(), on the same thread as
the retry timer and everything the channel delivers.
"""
import logging
import sys
from enum import Enum

from relayhub.address import format_origin, parse_address, parse_instance_key, validate_target
from relayhub.config.config import configure_module
from relayhub.context import Context
from relayhub.envelope import Envelope, Kind, Role, add_name_prefix
from relayhub.errors import AddressError, EndpointClosedError
from relayhub.support.futures import FutureResponse
from relayhub.support.scheduler import Scheduler

logger = logging.getLogger(__name__)

# seconds between handshake attempts
INIT_RETRY_INTERVAL = 0.5
# the number of pending responses that triggers a sweep
PENDING_CLEANUP_TRIGGER = 100000
# the number of callback ids released by each sweep
PENDING_CLEANUP_AMOUNT = 5000

configure_module(sys.modules[__name__], 'relayhub')


class EndpointState(Enum):
    CONNECTING = 'connecting'
    AWAITING_ACK = 'awaiting_ack'
    READY = 'ready'
    CLOSED = 'closed'


def ignore_message(payload, origin, sender, respond):
    """ the handler used by endpoints that only send. """


class Endpoint:
    """
    One named channel to the hub, bound to the role of the context it runs in.

    :param context: the execution context, which provides the role and, for devtool and popup
        peers, the instance key stamped on each envelope.
    :param name: the unprefixed channel name.
    :param handler: called with (payload, origin, sender, respond) for each MESSAGE received. `origin` is the
        sender's address string, `sender` the sender descriptor stamped by the hub, and `respond(value)`
        sends the response when the sender expects one.
    :param channel_factory: opens a channel given its prefixed name.
    :param scheduler: runs the handshake retry timer.
    """

    def __init__(self, context: Context, name, handler=None, channel_factory=None, scheduler: Scheduler=None,
                 retry_interval=None, cleanup_trigger=None, cleanup_amount=None, log=logger):
        self.context = context
        self.role = context.role
        self.name = name
        self.channel_name = add_name_prefix(name)
        self.handler = handler or ignore_message
        self.channel_factory = channel_factory
        self.scheduler = scheduler
        self.retry_interval = INIT_RETRY_INTERVAL if retry_interval is None else retry_interval
        self.cleanup_trigger = PENDING_CLEANUP_TRIGGER if cleanup_trigger is None else cleanup_trigger
        self.cleanup_amount = PENDING_CLEANUP_AMOUNT if cleanup_amount is None else cleanup_amount
        self.logger = log

        self.attempts = 0           # the number of channels opened so far
        self._state = EndpointState.CONNECTING
        self._channel = None
        self._queue = []            # envelopes waiting for the handshake
        self._pending = dict()      # callback id -> FutureResponse
        self._callback_id = 0
        self._cleanup_index = 1     # the next callback id a sweep releases
        self._retry_timer = None
        self.scheduler.run(self._open_channel)

    @property
    def state(self) -> EndpointState:
        return self._state

    @property
    def ready(self):
        return self._state is EndpointState.READY

    @property
    def channel(self):
        return self._channel

    @property
    def pending(self):
        """ the number of sent messages still waiting for a response. """
        return len(self._pending)

    @property
    def queued(self):
        """ the number of envelopes waiting for the handshake to complete. """
        return len(self._queue)

    def _declared_instance_key(self):
        return self.context.instance_key() if self.role.declares_instance_key else None

    def _open_channel(self):
        self._state = EndpointState.CONNECTING
        channel = self.channel_factory(self.channel_name)
        channel.messages.add(self._on_envelope)
        self._channel = channel
        self.attempts += 1
        self.logger.debug("%s endpoint '%s' sending INIT, attempt %d" % (self.role, self.name, self.attempts))
        # the acknowledgement may arrive before post() returns
        self._state = EndpointState.AWAITING_ACK
        channel.post(Envelope(Kind.INIT, self.role, source_name=self.channel_name,
                              instance_key=self._declared_instance_key()))
        if self._state is EndpointState.AWAITING_ACK:
            self._retry_timer = self.scheduler.call_later(self.retry_interval, self._retry_init)

    def _close_channel(self):
        channel = self._channel
        self._channel = None
        channel.messages.remove(self._on_envelope)
        channel.close()

    def _cancel_retry(self):
        if self._retry_timer is not None:
            self._retry_timer.cancel()
            self._retry_timer = None

    def _retry_init(self):
        """ replaces the channel with a new one if the hub has not acknowledged the current one. """
        self._retry_timer = None
        if self._state is not EndpointState.AWAITING_ACK:
            return
        self._close_channel()
        self._open_channel()

    def send(self, to, payload=None) -> FutureResponse:
        """
        Sends a message to the channels named by an address string `role:name[,name...][:instance_key]`.
        The instance key is required when the hub sends to another role, and ignored otherwise.

        :return: a future resolved with the response payload. It is never resolved when no
            response arrives, and fails with EndpointClosedError when this endpoint is disconnected.
        :raises AddressError: when the address is malformed or incomplete.
        """
        if not to:
            raise AddressError('Missing "to" address')
        if self._state is EndpointState.CLOSED:
            return self._reject(to)
        address = parse_address(to)
        return self.send_to(address.role, address.names, address.instance_key, payload)

    def send_to(self, role, names, instance_key=None, payload=None) -> FutureResponse:
        """ Sends a message to the channels with the given names in the target role. See send(). """
        if isinstance(names, str):
            names = [names]
        return self.scheduler.run(self._send_to, role, names, instance_key, payload)

    def _send_to(self, role, names, instance_key, payload):
        if self._state is EndpointState.CLOSED:
            return self._reject("%s:%s" % (role, names))
        error = validate_target(self.role, role, names, instance_key)
        if error:
            raise AddressError(error)

        target = Role(role)
        self._callback_id += 1
        future = FutureResponse(self._callback_id)
        self._pending[self._callback_id] = future
        self._sweep_pending()

        envelope = Envelope(Kind.MESSAGE, self.role, target=target, source_name=self.channel_name,
                            target_names=[add_name_prefix(name) for name in names],
                            payload=payload, callback_id=future.callback_id)
        if self.role is Role.HUB and target is not Role.HUB:
            envelope.target_instance_key = parse_instance_key(instance_key)
        self._post(envelope)
        return future

    def _reject(self, to):
        self.logger.info("rejecting send to %s: endpoint '%s' is disconnected" % (to, self.name))
        return FutureResponse.failed(
            EndpointClosedError("endpoint '%s' was disconnected and can no longer send" % self.name))

    def _sweep_pending(self):
        """
        Releases a batch of the lowest callback ids once the pending table exceeds its limit.
        Responses are not guaranteed, so without this the table would grow for as long as
        recipients go away without answering.
        """
        if len(self._pending) <= self.cleanup_trigger:
            return
        before = len(self._pending)
        stop = self._cleanup_index + self.cleanup_amount
        while self._cleanup_index < stop:
            self._pending.pop(self._cleanup_index, None)
            self._cleanup_index += 1
        self.logger.info("released pending responses of '%s': %d -> %d" % (self.name, before, len(self._pending)))

    def _post(self, envelope: Envelope):
        if self._state is EndpointState.CLOSED:
            self.logger.info("dropping %s from disconnected endpoint '%s'" % (envelope.kind, self.name))
            return
        if self.role.declares_instance_key:
            envelope.instance_key = self.context.instance_key()
        if self._state is EndpointState.READY:
            self._channel.post(envelope)
        else:
            self._queue.append(envelope)

    def _on_envelope(self, envelope: Envelope, channel):
        kind = envelope.kind
        if kind == Kind.INIT_ACK:
            self._handshake_complete()
        elif kind in (Kind.MESSAGE, Kind.RESPONSE):
            if not envelope.is_addressed:
                self.logger.warning("'%s' dropping %s with missing target: %s" % (self.name, kind, envelope))
            elif kind == Kind.MESSAGE:
                self._handle_message(envelope)
            else:
                self._handle_response(envelope)
        else:
            self.logger.warning("'%s' dropping envelope of unknown kind '%s'" % (self.name, kind))

    def _handshake_complete(self):
        if self._state is not EndpointState.AWAITING_ACK:
            self.logger.debug("'%s' ignoring INIT_ACK in state %s" % (self.name, self._state))
            return
        self._state = EndpointState.READY
        self._cancel_retry()
        queued, self._queue = self._queue, []
        self.logger.info("%s endpoint '%s' connected, sending %d queued" % (self.role, self.name, len(queued)))
        for envelope in queued:
            self._channel.post(envelope)

    def _handle_message(self, envelope: Envelope):
        def respond(value=None):
            if envelope.callback_id is not None:
                self._respond(envelope, value)

        try:
            self.handler(envelope.payload, format_origin(envelope), envelope.sender, respond)
        except Exception as e:
            self.logger.exception("message handler of '%s' failed: %s" % (self.name, e))

    def _respond(self, message: Envelope, value):
        response = Envelope(Kind.RESPONSE, self.role, target=message.source, source_name=self.channel_name,
                            target_names=[message.source_name], payload=value,
                            callback_id=message.callback_id)
        if self.role is Role.HUB:
            response.target_instance_key = message.relayed_from_instance_key
        self._post(response)

    def _handle_response(self, envelope: Envelope):
        future = self._pending.pop(envelope.callback_id, None)
        if future is None:
            self.logger.info("'%s' ignoring response to unknown callback %s (already answered or released)" %
                             (self.name, envelope.callback_id))
            return
        self.logger.debug("'%s' resolving callback %s" % (self.name, envelope.callback_id))
        future.resolve(envelope.payload)

    def disconnect(self):
        """
        Closes the channel. Further sends fail, and responses still pending are never resolved.
        """
        self.scheduler.run(self._disconnect)

    def _disconnect(self):
        if self._state is EndpointState.CLOSED:
            return
        self._cancel_retry()
        if self._channel is not None:
            self._close_channel()
        self._queue = []
        self._state = EndpointState.CLOSED
        self.logger.info("%s endpoint '%s' disconnected" % (self.role, self.name))
