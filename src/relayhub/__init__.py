"""

Message routing between isolated contexts of one host application

- Role: the kind of context. One privileged singleton, the hub role, and the peer roles devtool, popup
  and content_script. Peers can run as many instances, each identified by an instance key (e.g. a tab id.)
- Channel: a named duplex connection from a context to the hub, provided by the host transport.
  LoopbackHost provides channels within one process.
- Hub: runs in the hub role. Registers channels under (role, instance key) after a handshake and relays
  messages and responses to the channels they address.
- Endpoint: one named channel seen from the context that opened it. Performs the handshake, retrying
  until the hub answers, queues messages sent before then, and correlates responses with the
  futures returned to callers.
- Messenger: creates endpoints for a context, and starts the hub in the hub role.

Addresses are strings of the form `role:name[,name...][:instance_key]`. The name `*` addresses every
channel of the target role and instance.

    host = LoopbackHost()
    hub_side = Messenger(StaticContext(Role.HUB), host, scheduler)
    hub_side.init_hub(on_connect=print)
    server = hub_side.create_endpoint('server', lambda payload, origin, sender, respond: respond({'ack': True}))

    tab = Messenger(StaticContext(Role.DEVTOOL, instance_key=7), host, scheduler)
    panel = tab.create_endpoint('panel')
    panel.send('hub:server', {'greeting': 'hi'}).add_done_callback(...)


## Threading

Everything runs on a single logical thread: channel notifications, handlers and timers. Delivery over
the loopback host is synchronous. The hub and endpoints take no locks. Instead, endpoint and messenger
calls run through Scheduler.run(): a LoopScheduler hands them to its background thread and waits for
the result, so callers on any thread see the same ordering as the timers.

Delivery is best effort. A message to a context that is not running is logged and dropped, and the
future for it is never resolved.
"""
