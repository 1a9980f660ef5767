"""
Discovery of the execution context an endpoint runs in: its role, and for peers that declare it,
the instance (window/tab) the context is bound to.
"""
from abc import abstractmethod

from relayhub.envelope import Role


class Context:
    """ Describes the current execution context. """

    @property
    @abstractmethod
    def role(self) -> Role:
        raise NotImplementedError

    @property
    def identity(self):
        """ an opaque descriptor of this context, passed to recipients as the sender identity. """
        return None

    @abstractmethod
    def instance_key(self):
        """
        The instance this context is bound to. Called before every send from peers that declare
        their own instance key, since the instance may change during the context's lifetime.
        """
        raise NotImplementedError


class StaticContext(Context):
    """ A context with a fixed role, identity and instance key. """

    def __init__(self, role, instance_key=None, identity=None):
        self._role = Role(role)
        self._instance_key = instance_key
        self._identity = identity

    @property
    def role(self):
        return self._role

    @property
    def identity(self):
        return self._identity

    def instance_key(self):
        return self._instance_key


class CallableContext(StaticContext):
    """ A context whose instance key is looked up on each call, e.g. the currently active tab. """

    def __init__(self, role, instance_key_fn, identity=None):
        super().__init__(role, identity=identity)
        self._instance_key_fn = instance_key_fn

    def instance_key(self):
        return self._instance_key_fn()
