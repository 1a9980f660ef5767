class MessengerError(Exception):
    """ Base class for errors raised to callers of the messenger API. """


class AddressError(MessengerError):
    """ The target of a message is malformed or incomplete. """


class ChannelNameError(MessengerError):
    """ A channel name is missing or reserved. """


class EndpointClosedError(MessengerError):
    """ The endpoint was disconnected and can no longer send. """
