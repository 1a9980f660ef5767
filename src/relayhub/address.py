"""
Addresses in their external string form, `role:name[,name2...][:instance_key]`, for example
`devtool:main:1225` or `content_script:panel,sidebar`.
"""
from relayhub.envelope import Role, remove_name_prefix
from relayhub.errors import AddressError
from relayhub.support.mixins import CommonEqualityMixin, StringerMixin


class Address(CommonEqualityMixin, StringerMixin):
    """ The parts of an address string. The parts are not validated, see validate_target(). """

    def __init__(self, role, names, instance_key=None):
        self.role = role
        self.names = list(names)
        self.instance_key = instance_key

    def __str__(self):
        text = "%s:%s" % (self.role, ",".join(self.names))
        return text if self.instance_key is None else "%s:%s" % (text, self.instance_key)


def parse_address(to) -> Address:
    """
    Splits an address string on ':' and then the names on ','.
    Raises AddressError when `to` is not a non-empty string of at most three parts.

    >>> str(parse_address('devtool:main,aux:12'))
    'devtool:main,aux:12'
    >>> parse_address('hub:server').instance_key is None
    True
    """
    if not to or not isinstance(to, str):
        raise AddressError('Missing "to" address: %r' % (to,))
    parts = to.split(':')
    if len(parts) > 3:
        raise AddressError('Invalid format given in "to" address: %s' % to)
    role = parts[0]
    names = parts[1].split(',') if len(parts) > 1 and parts[1] else []
    instance_key = parts[2] if len(parts) > 2 and parts[2] != '' else None
    return Address(role, names, instance_key)


def parse_instance_key(value):
    """
    Converts an instance key to an integer.
    :return: the integer, or None if the value is not an integer.

    >>> parse_instance_key('42')
    42
    >>> parse_instance_key(7)
    7
    >>> parse_instance_key('4.5') is None
    True
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    try:
        return int(str(value).strip())
    except ValueError:
        return None


def validate_target(own_role: Role, role, names, instance_key=None):
    """
    Checks a target can be sent to from an endpoint of the given role.
    :return: a message describing the first problem found, or None when the target is valid.
    """
    if not role:
        return 'Missing role in "to" address'
    target = Role.parse(role)
    if target is None:
        return 'Unknown role in "to" address: %s. Supported roles are: %s' % \
            (role, ", ".join(r.value for r in Role))
    if not names:
        return 'Missing channel name in "to" address'
    for name in names:
        if not name:
            return 'Empty channel name in "to" address'
    if own_role is Role.HUB and target is not Role.HUB:
        if instance_key is None or instance_key == '':
            return 'Messages from the hub to other roles must have an instance key in the "to" address'
        if parse_instance_key(instance_key) is None:
            return 'Instance key to send message to must be an integer: %s' % (instance_key,)
    return None


def format_origin(envelope):
    """
    Describes the sender of an envelope as an address string that can be used to reply to it.
    The instance key is omitted for the hub role.
    """
    origin = "%s:%s" % (envelope.source, remove_name_prefix(envelope.source_name))
    instance_key = envelope.relayed_from_instance_key
    if instance_key is not None and envelope.source != Role.HUB:
        origin = "%s:%s" % (origin, instance_key)
    return origin


def normalize_instance_key(value):
    """
    The form instance keys take in the hub's registry: integer-like keys become integers, so a tab id
    reported as '42' and an address naming 42 refer to the same instance. Other keys are kept as they are.

    >>> normalize_instance_key('42')
    42
    >>> normalize_instance_key('tab-a')
    'tab-a'
    >>> normalize_instance_key(None) is None
    True
    """
    if value is None:
        return None
    key = parse_instance_key(value)
    return value if key is None else key
