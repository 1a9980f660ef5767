import unittest
from unittest.mock import Mock

from hamcrest import assert_that, is_, contains_exactly, empty, has_length, has_properties, none

from relayhub.channel.base import ChannelSender
from relayhub.channel.loopback import LoopbackHost, channel_pair
from relayhub.envelope import Envelope, HUB_INSTANCE_KEY, Kind, Role, add_name_prefix
from relayhub.hub import Hub, is_protocol_channel


class Peer:
    """ the near end of a channel accepted by the hub, recording what arrives. """

    def __init__(self, hub, name, sender=None):
        self.near, self.far = channel_pair(add_name_prefix(name), sender)
        self.received = []
        self.near.messages.add(lambda envelope, channel: self.received.append(envelope))
        hub.accept_channel(self.far)

    def kinds(self):
        return [e.kind for e in self.received]

    def init(self, role, instance_key=None):
        self.near.post(Envelope(Kind.INIT, role, source_name=self.near.name, instance_key=instance_key))

    def send(self, role, target, names, instance_key=None, target_instance_key=None, payload=None, kind=Kind.MESSAGE):
        self.near.post(Envelope(kind, role, target=target, source_name=self.near.name,
                                target_names=[add_name_prefix(n) for n in names], instance_key=instance_key,
                                target_instance_key=target_instance_key, payload=payload, callback_id=1))


class HubTest(unittest.TestCase):

    def setUp(self):
        self.on_connect = Mock()
        self.on_disconnect = Mock()
        self.log = Mock()
        self.sut = Hub(self.on_connect, self.on_disconnect, log=self.log)

    def test_is_protocol_channel(self):
        assert_that(is_protocol_channel(channel_pair(add_name_prefix('a'))[0]), is_(True))
        assert_that(is_protocol_channel(channel_pair('a')[0]), is_(False))

    def test_ignores_foreign_channels(self):
        near, far = channel_pair('other')
        assert_that(self.sut.accept_channel(far), is_(False))
        assert_that(len(far.messages), is_(0))

    def test_attach_and_detach(self):
        host = LoopbackHost()
        self.sut.attach(host)
        assert_that(len(host.connections), is_(1))
        self.sut.detach(host)
        assert_that(len(host.connections), is_(0))

    def test_devtool_init_registers_declared_key(self):
        peer = Peer(self.sut, 'panel')
        peer.init(Role.DEVTOOL, 7)
        assert_that(self.sut.registry.channels(Role.DEVTOOL, 7), contains_exactly(peer.far))
        assert_that(peer.kinds(), contains_exactly(Kind.INIT_ACK))
        self.on_connect.assert_called_once_with(Role.DEVTOOL, 'panel', 7)

    def test_content_script_key_comes_from_sender(self):
        peer = Peer(self.sut, 'page', ChannelSender('https://example.org', 12))
        peer.init(Role.CONTENT_SCRIPT, 99)
        assert_that(self.sut.registry.buckets(), contains_exactly((Role.CONTENT_SCRIPT, 12)))

    def test_hub_role_registered_under_sentinel(self):
        peer = Peer(self.sut, 'server')
        peer.init(Role.HUB)
        assert_that(self.sut.registry.buckets(), contains_exactly((Role.HUB, HUB_INSTANCE_KEY)))
        self.on_connect.assert_called_once_with(Role.HUB, 'server', None)

    def test_init_without_key_is_dropped(self):
        peer = Peer(self.sut, 'panel')
        peer.init(Role.POPUP)
        assert_that(peer.received, is_(empty()))
        assert_that(len(self.sut.registry), is_(0))
        self.log.warning.assert_called_once()

    def test_init_from_unknown_role_is_dropped(self):
        peer = Peer(self.sut, 'panel')
        peer.init('sidebar', 1)
        assert_that(peer.received, is_(empty()))

    def test_repeated_init_is_ignored(self):
        peer = Peer(self.sut, 'panel')
        peer.init(Role.POPUP, 1)
        peer.init(Role.POPUP, 1)
        assert_that(len(self.sut.registry), is_(1))
        assert_that(peer.kinds(), contains_exactly(Kind.INIT_ACK))

    def test_close_unregisters_and_notifies(self):
        peer = Peer(self.sut, 'panel')
        peer.init(Role.POPUP, 4)
        peer.near.close()
        assert_that(len(self.sut.registry), is_(0))
        self.on_disconnect.assert_called_once_with(Role.POPUP, 'panel', 4)

    def test_close_before_init_is_silent(self):
        peer = Peer(self.sut, 'panel')
        peer.near.close()
        self.on_disconnect.assert_not_called()

    def test_peer_to_hub(self):
        server = Peer(self.sut, 'server')
        server.init(Role.HUB)
        panel = Peer(self.sut, 'panel', ChannelSender('devtools'))
        panel.init(Role.DEVTOOL, 7)
        panel.send(Role.DEVTOOL, Role.HUB, ['server'], instance_key=7, payload={'greeting': 'hi'})
        assert_that(server.received[-1], has_properties(kind=Kind.MESSAGE, payload={'greeting': 'hi'},
                                                        relayed_from_instance_key=7,
                                                        sender=ChannelSender('devtools')))

    def test_hub_to_peer_uses_target_instance_key(self):
        server = Peer(self.sut, 'server')
        server.init(Role.HUB)
        one, two = Peer(self.sut, 'panel'), Peer(self.sut, 'panel')
        one.init(Role.DEVTOOL, 1)
        two.init(Role.DEVTOOL, 2)
        server.send(Role.HUB, Role.DEVTOOL, ['panel'], target_instance_key=2)
        assert_that(one.kinds(), contains_exactly(Kind.INIT_ACK))
        assert_that(two.kinds(), contains_exactly(Kind.INIT_ACK, Kind.MESSAGE))
        assert_that(two.received[-1].relayed_from_instance_key, is_(none()))

    def test_peer_to_peer_stays_within_instance(self):
        popup = Peer(self.sut, 'menu')
        popup.init(Role.POPUP, 5)
        here, elsewhere = Peer(self.sut, 'page', ChannelSender(None, 5)), Peer(self.sut, 'page', ChannelSender(None, 6))
        here.init(Role.CONTENT_SCRIPT)
        elsewhere.init(Role.CONTENT_SCRIPT)
        popup.send(Role.POPUP, Role.CONTENT_SCRIPT, ['page'], instance_key=5)
        assert_that(here.kinds(), contains_exactly(Kind.INIT_ACK, Kind.MESSAGE))
        assert_that(elsewhere.kinds(), contains_exactly(Kind.INIT_ACK))

    def test_wildcard_delivers_once_per_channel(self):
        server = Peer(self.sut, 'server')
        server.init(Role.HUB)
        a, b = Peer(self.sut, 'a'), Peer(self.sut, 'b')
        a.init(Role.POPUP, 3)
        b.init(Role.POPUP, 3)
        server.send(Role.HUB, Role.POPUP, ['a', '*'], target_instance_key=3)
        assert_that(a.kinds(), contains_exactly(Kind.INIT_ACK, Kind.MESSAGE))
        assert_that(b.kinds(), contains_exactly(Kind.INIT_ACK, Kind.MESSAGE))

    def test_same_names_only_reach_the_named(self):
        server = Peer(self.sut, 'server')
        server.init(Role.HUB)
        other = Peer(self.sut, 'other')
        other.init(Role.HUB)
        panel = Peer(self.sut, 'panel')
        panel.init(Role.DEVTOOL, 1)
        panel.send(Role.DEVTOOL, Role.HUB, ['server'], instance_key=1)
        assert_that(server.received, has_length(2))
        assert_that(other.received, has_length(1))

    def test_no_bucket_logs_and_drops(self):
        server = Peer(self.sut, 'server')
        server.init(Role.HUB)
        server.send(Role.HUB, Role.DEVTOOL, ['panel'], target_instance_key=42)
        self.log.info.assert_any_call("not relaying message: no channels registered for devtool (instance 42)")

    def test_unmatched_name_warns(self):
        server = Peer(self.sut, 'server')
        server.init(Role.HUB)
        panel = Peer(self.sut, 'panel')
        panel.init(Role.DEVTOOL, 1)
        panel.send(Role.DEVTOOL, Role.HUB, ['server', 'missing'], instance_key=1)
        assert_that(server.received, has_length(2))
        self.log.warning.assert_called_once_with("no channel named 'missing' registered for hub (instance hub)")

    def test_response_is_relayed(self):
        server = Peer(self.sut, 'server')
        server.init(Role.HUB)
        panel = Peer(self.sut, 'panel')
        panel.init(Role.DEVTOOL, 1)
        server.send(Role.HUB, Role.DEVTOOL, ['panel'], target_instance_key=1, payload='ok', kind=Kind.RESPONSE)
        assert_that(panel.received[-1], has_properties(kind=Kind.RESPONSE, payload='ok'))

    def test_unaddressed_and_unknown_kinds_are_dropped(self):
        server = Peer(self.sut, 'server')
        server.init(Role.HUB)
        server.near.post(Envelope(Kind.MESSAGE, Role.HUB, target_names=['x']))
        server.near.post(Envelope(Kind.MESSAGE, Role.HUB, target=Role.HUB, target_names=[]))
        server.near.post(Envelope('ping', Role.HUB))
        assert_that(self.log.warning.call_count, is_(3))

    def test_declared_string_key_matches_integer_address(self):
        server = Peer(self.sut, 'server')
        server.init(Role.HUB)
        panel = Peer(self.sut, 'panel')
        panel.init(Role.DEVTOOL, '42')
        server.send(Role.HUB, Role.DEVTOOL, ['panel'], target_instance_key=42, payload='hello')
        assert_that(self.sut.registry.buckets(), contains_exactly((Role.HUB, HUB_INSTANCE_KEY), (Role.DEVTOOL, 42)))
        assert_that(panel.received[-1], has_properties(kind=Kind.MESSAGE, payload='hello'))
        self.on_connect.assert_any_call(Role.DEVTOOL, 'panel', 42)

    def test_host_string_key_matches_string_target(self):
        server = Peer(self.sut, 'server')
        server.init(Role.HUB)
        page = Peer(self.sut, 'page', ChannelSender(None, '12'))
        page.init(Role.CONTENT_SCRIPT)
        server.send(Role.HUB, Role.CONTENT_SCRIPT, ['page'], target_instance_key='12', payload='hello')
        assert_that(page.received[-1], has_properties(kind=Kind.MESSAGE, payload='hello'))

    def test_opaque_keys_are_kept(self):
        popup = Peer(self.sut, 'menu')
        popup.init(Role.POPUP, 'window-a')
        page = Peer(self.sut, 'page', ChannelSender(None, 'window-a'))
        page.init(Role.CONTENT_SCRIPT)
        popup.send(Role.POPUP, Role.CONTENT_SCRIPT, ['page'], instance_key='window-a')
        assert_that(page.kinds(), contains_exactly(Kind.INIT_ACK, Kind.MESSAGE))
        assert_that(page.received[-1].relayed_from_instance_key, is_('window-a'))
