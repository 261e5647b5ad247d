import logging
import zlib

from .errors import FormatError, RangeError

logger = logging.getLogger(__name__)

#nazwane poziomy kompresji, mapowane 1:1 na poziomy zlib
NO_COMPRESSION = zlib.Z_NO_COMPRESSION          #0 - store
BEST_SPEED = zlib.Z_BEST_SPEED                  #1
BEST_COMPRESSION = zlib.Z_BEST_COMPRESSION      #9
DEFAULT_COMPRESSION = zlib.Z_DEFAULT_COMPRESSION  #-1, zlib sam wybiera (6)


def check_level(level):
    if level == DEFAULT_COMPRESSION:
        return level
    if not 0 <= level <= 9:
        raise RangeError(f'compression level {level} out of range 0..9')
    return level


#rozpakowanie DEFLATE: po operacji mamy caly obraz linia po linii z bajtem filtra na poczatku
def inflate(data: bytes) -> bytes:
    out = []
    pending = bytes(data)
    #niektore enkodery kompresuja kazdy IDAT osobno, wtedy strumieni zlib jest kilka pod rzad
    while True:
        d = zlib.decompressobj()
        try:
            out.append(d.decompress(pending))
            out.append(d.flush())
        except zlib.error as exc:
            raise FormatError(f'malformed zlib stream: {exc}') from exc
        if not d.eof:
            raise FormatError('truncated zlib stream')
        pending = d.unused_data
        if not pending:
            break
    return b''.join(out)


def deflate(data: bytes, level=DEFAULT_COMPRESSION) -> bytes:
    level = check_level(level)
    compressed = zlib.compress(data, level)
    logger.debug('deflate level %d: %d -> %d bytes', level, len(data), len(compressed))
    return compressed


class ZlibAdapter:
    """Default compression engine, a thin wrapper over :mod:`zlib`."""

    def inflate(self, data):
        return inflate(data)

    def deflate(self, data, level=DEFAULT_COMPRESSION):
        return deflate(data, level)


class PassThroughAdapter:
    """Stores the payload in uncompressed zlib blocks.

    Useful for tests where the filtered scanlines should be visible in the
    IDAT payload. The output is still a valid zlib stream, so any PNG reader
    accepts it.
    """

    def inflate(self, data):
        return inflate(data)

    def deflate(self, data, level=DEFAULT_COMPRESSION):
        check_level(level)
        return zlib.compress(data, NO_COMPRESSION)
