"""
Futures used as response continuations. A future is resolved exactly once, either with the payload
of the matching RESPONSE envelope, or with an exception when the request could not be sent at all.
"""
from concurrent.futures import Future


class FutureValue(Future):
    """ describes a value that may have not yet been computed. Callers can check if the value has arrived,
        register a callback with add_done_callback(), or wait until the value has arrived. """

    def set_result_or_exception(self, value):
        if isinstance(value, BaseException):
            self.set_exception(value)
        else:
            self.set_result(value)

    def resolve(self, value):
        """ sets the result unless the caller has cancelled the future.
        :return: True if the result was set
        """
        if not self.set_running_or_notify_cancel():
            return False
        self.set_result(value)
        return True

    def value(self, timeout=None):
        """ blocks until the value is available. Raises the exception if one was set. """
        return self.result(timeout)


class FutureResponse(FutureValue):
    """ Relates a sent message to its eventual response payload. """

    def __init__(self, callback_id=None):
        """
        :param callback_id: the correlation id carried by the request, or None if the request
            was never assigned one (e.g. it was rejected before it was sent.)
        """
        super().__init__()
        self.callback_id = callback_id

    @classmethod
    def failed(cls, exception: BaseException):
        """ creates a future that has already failed with the given exception. """
        future = cls()
        future.set_result_or_exception(exception)
        return future
