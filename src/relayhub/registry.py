"""
The hub's record of which channels are live, grouped into buckets keyed by (role, instance key).
"""
from relayhub.envelope import Role, WILDCARD


class Registry:
    """
    Maps (role, instance_key) to the channels registered for it, in registration order.
    A bucket exists only while it holds at least one channel.
    """

    def __init__(self):
        self._buckets = dict()

    def __len__(self):
        """ the number of registered channels across all buckets. """
        return sum(len(channels) for channels in self._buckets.values())

    def __contains__(self, channel):
        return self.locate(channel) is not None

    def buckets(self):
        """ a snapshot of the bucket keys. """
        return list(self._buckets.keys())

    def add(self, role: Role, instance_key, channel):
        self._buckets.setdefault((role, instance_key), []).append(channel)

    def channels(self, role: Role, instance_key):
        """ the channels registered under the bucket, or an empty list when there is no such bucket. """
        return list(self._buckets.get((role, instance_key), ()))

    def matching(self, role: Role, instance_key, names):
        """
        The channels in a bucket whose name is one of `names`, or all of them when `names` contains
        the wildcard. Each channel appears at most once, in registration order.
        """
        wildcard = WILDCARD in names
        return [channel for channel in self._buckets.get((role, instance_key), ())
                if wildcard or channel.name in names]

    def locate(self, channel):
        """ :return: the (role, instance_key) the channel is registered under, or None. """
        for key, channels in self._buckets.items():
            if channel in channels:
                return key
        return None

    def remove(self, channel):
        """
        Removes a channel from whichever bucket holds it, deleting the bucket if it becomes empty.
        :return: the (role, instance_key) the channel was registered under, or None if it was not registered.
        """
        key = self.locate(channel)
        if key is not None:
            channels = self._buckets[key]
            channels.remove(channel)
            if not channels:
                del self._buckets[key]
        return key
