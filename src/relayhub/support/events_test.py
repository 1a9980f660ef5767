import unittest
from unittest.mock import Mock

from hamcrest import assert_that, is_, empty, contains_exactly

from relayhub.support.events import EventSource


class EventSourceTest(unittest.TestCase):

    def test_no_listeners(self):
        sut = EventSource()
        sut.fire(1)

    def test_manage_handlers(self):
        sut = EventSource()
        m1 = Mock()
        sut.add(m1)
        assert_that(sut.handlers(), is_((m1,)))

        sut.remove(m1)
        assert_that(sut.handlers(), is_(empty()))

        sut.remove(m1)
        assert_that(sut.handlers(), is_(empty()))

        sut += m1
        assert_that(len(sut), is_(1))

        sut -= m1
        assert_that(len(sut), is_(0))

    def test_listeners_called_in_order(self):
        sut = EventSource()
        calls = []
        sut += lambda *args, **kwargs: calls.append(('first', args, kwargs))
        sut += lambda *args, **kwargs: calls.append(('second', args, kwargs))
        sut.fire(1, v="hey")
        assert_that(calls, contains_exactly(('first', (1,), {'v': 'hey'}), ('second', (1,), {'v': 'hey'})))

    def test_handler_can_remove_itself_while_firing(self):
        sut = EventSource()
        later = Mock()

        def once(*args):
            sut.remove(once)
        sut += once
        sut += later
        sut.fire('a')
        sut.fire('b')
        assert_that(later.call_count, is_(2))
        assert_that(sut.handlers(), is_((later,)))

    def test_clear(self):
        sut = EventSource()
        handler = Mock()
        sut += handler
        sut.clear()
        sut.fire()
        handler.assert_not_called()
