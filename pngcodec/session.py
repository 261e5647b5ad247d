import threading
from contextlib import contextmanager

from .errors import OptionTypeError, SessionError


class Session:
    """Per-operation state holder shared by the decoder and the encoder.

    A session must not be entered from two threads at once and cannot be
    copied or pickled. Create one per thread.
    """

    def __init__(self):
        self._lock = threading.Lock()

    @contextmanager
    def _busy(self):
        if not self._lock.acquire(blocking=False):
            raise SessionError(f'{type(self).__name__} is already in use')
        try:
            yield
        finally:
            self._lock.release()

    def __copy__(self):
        raise TypeError(f'{type(self).__name__} objects cannot be copied')

    def __deepcopy__(self, memo):
        raise TypeError(f'{type(self).__name__} objects cannot be copied')

    def __reduce_ex__(self, protocol):
        raise TypeError(f'{type(self).__name__} objects cannot be pickled')


def check_bytes(data, what='PNG data'):
    if not isinstance(data, (bytes, bytearray, memoryview)):
        raise OptionTypeError(f'{what} must be bytes, not {type(data).__name__}')
    return bytes(data)
