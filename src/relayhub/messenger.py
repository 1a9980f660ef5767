"""
The public entry point: a Messenger is created once per execution context and hands out endpoints.
The hub role also uses it to start the hub.
"""
import logging

from relayhub.channel.base import ChannelSender
from relayhub.channel.loopback import LoopbackHost
from relayhub.context import Context
from relayhub.endpoint import Endpoint
from relayhub.envelope import Role, WILDCARD
from relayhub.errors import ChannelNameError, MessengerError
from relayhub.hub import Hub, is_protocol_channel
from relayhub.support.scheduler import Scheduler

logger = logging.getLogger(__name__)


class Messenger:
    """
    Creates endpoints for one execution context.

    :param context: the context this messenger runs in.
    :param host: the host transport. Its connect(name, sender) opens a channel to the hub and its
        `connections` event source announces the channels the hub should accept. The hub role
        connects its own endpoints through the same host, in process.
    :param scheduler: runs endpoint timers and the protocol work of every call. When omitted, the host's
        scheduler is used, so every context connected through one host shares a thread.
    """

    ROLES = tuple(Role)

    def __init__(self, context: Context, host: LoopbackHost, scheduler: Scheduler=None, log=logger):
        if Role.parse(context.role) is None:
            raise MessengerError('"%s" is not a valid role. Valid roles are: %s' %
                                 (context.role, ", ".join(r.value for r in Role)))
        self.context = context
        self.host = host
        self.logger = log
        self.hub = None
        self.endpoints = []
        self.scheduler = scheduler if scheduler is not None else host.scheduler

    @property
    def role(self) -> Role:
        return self.context.role

    @staticmethod
    def is_protocol_channel(channel):
        return is_protocol_channel(channel)

    def init_hub(self, on_connect=None, on_disconnect=None):
        """
        Starts the hub and attaches it to the host. Only the hub role can start the hub, and only once;
        other calls are logged and ignored.

        :param on_connect: called with (role, name, instance_key) when an endpoint completes its handshake.
        :param on_disconnect: called with (role, name, instance_key) when a registered endpoint goes away.
        :return: the hub, or None when the call was ignored.
        """
        return self.scheduler.run(self._init_hub, on_connect, on_disconnect)

    def _init_hub(self, on_connect, on_disconnect):
        if self.role is not Role.HUB:
            self.logger.warning("ignoring hub init request from the %s role" % self.role)
            return None
        if self.hub is not None:
            self.logger.warning("ignoring hub init request, the hub is already running")
            return None
        self.hub = Hub(on_connect, on_disconnect, log=self.logger)
        self.hub.attach(self.host)
        return self.hub

    def _sender(self):
        """ the sender descriptor the host reports for channels opened from this context. """
        instance_key = self.context.instance_key() if self.role.host_assigns_instance_key else None
        return ChannelSender(self.context.identity, instance_key)

    def create_endpoint(self, name, handler=None, **kwargs) -> Endpoint:
        """
        Opens a named endpoint. Additional keyword arguments are passed to Endpoint.
        :raises ChannelNameError: when the name is empty or the reserved wildcard.
        """
        if not name:
            raise ChannelNameError('Missing channel name')
        if name == WILDCARD:
            raise ChannelNameError('"%s" is reserved as a wildcard, please use another name' % WILDCARD)
        endpoint = Endpoint(self.context, name, handler, channel_factory=self.host.factory(self._sender()),
                            scheduler=self.scheduler, **kwargs)
        self.endpoints.append(endpoint)
        return endpoint

    def close(self):
        """
        Disconnects the endpoints created by this messenger and detaches the hub, if this messenger started it.
        The scheduler is left running, it belongs to the host or the caller.
        """
        endpoints, self.endpoints = self.endpoints, []
        for endpoint in endpoints:
            endpoint.disconnect()
        if self.hub is not None:
            self.scheduler.run(self.hub.detach, self.host)
