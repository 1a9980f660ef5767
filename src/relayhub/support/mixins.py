def quote(val):
    return repr(val) if val is not None else "None"


class StringerMixin:
    """ Renders value objects as their class name followed by their attributes, sorted by name. """

    def __str__(self):
        return type(self).__name__ + self._sorted_items_string()

    def __repr__(self):
        return str(self)

    def _sorted_items_string(self):
        return "{" + ", ".join(["%s: %s" % (key, quote(val))
                                for key, val in sorted(self.__dict__.items())]) + "}"


class CommonEqualityMixin(object):
    """  Attribute-wise equality for value objects. Objects of different classes are never equal. """

    def __eq__(self, other):
        return type(other) is type(self) and self.__dict__ == other.__dict__

    def __ne__(self, other):
        return not self.__eq__(other)

    __hash__ = None
