class EventSource(object):
    """
    A list of handlers that are called in registration order each time the source fires.

    Handlers may add or remove handlers (including themselves) while the source is firing;
    the change takes effect from the next call to fire().
    """

    def __init__(self):
        self._handlers = []

    def __iadd__(self, handler):
        return self.add(handler)

    def __isub__(self, handler):
        return self.remove(handler)

    def __len__(self):
        return len(self._handlers)

    def add(self, handler):
        self._handlers.append(handler)
        return self

    def remove(self, handler):
        if handler in self._handlers:
            self._handlers.remove(handler)
        return self

    def clear(self):
        self._handlers = []

    def handlers(self):
        return tuple(self._handlers)

    def fire(self, *args, **kwargs):
        for handler in self.handlers():
            handler(*args, **kwargs)
