"""
A simple configuration helper built on top of ConfigObj that allows configuration files to be
layered - neutral / os-specific / user, with a schema to validate the types of the config data.

Used to configure the tunable module-level values of the messenger, such as the handshake retry
interval and the limits of the pending response table.
"""
