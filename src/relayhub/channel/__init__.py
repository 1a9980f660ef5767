"""
The channel package provides the contract for a named, duplex connection that carries envelopes
between an endpoint and the hub, and an in-process loopback implementation of it.

Host transports (window messaging, IPC pipes, ...) implement the same contract.
"""
