import logging
import struct
import zlib
from typing import NamedTuple

from .errors import FormatError, IntegrityError

logger = logging.getLogger(__name__)

#1 stale specyficzne dla formatu PNG
PngSignature: bytes = b'\x89PNG\r\n\x1a\n'   #8 bajtowy naglowek PNG
critical = {b'IHDR', b'PLTE', b'IDAT', b'IEND'}   #4 krytyczne chunki wg RFC 2083

#ancillary ktore moga wystapic najwyzej raz
singleton = {b'gAMA', b'tIME', b'pHYs', b'sBIT', b'bKGD', b'tRNS', b'sRGB', b'cHRM'}
before_plte = {b'gAMA', b'sRGB', b'cHRM', b'sBIT'}   #musza byc przed PLTE i IDAT
after_plte = {b'bKGD', b'tRNS'}                       #po PLTE, przed IDAT


class Chunk(NamedTuple):
    type: bytes
    data: bytes
    crc: int

    @property
    def is_critical(self):
        #bit 5 pierwszej litery: wielka litera = chunk krytyczny
        return not self.type[0] & 0x20

    @property
    def name(self):
        return self.type.decode('ascii')


def chunk_crc(chunk_type: bytes, data: bytes) -> int:
    # CRC liczymy z zlib.crc32(type + data)
    return zlib.crc32(data, zlib.crc32(chunk_type))


def make_chunk(chunk_type, data=b''):
    if isinstance(chunk_type, str):
        chunk_type = chunk_type.encode('ascii')
    data = bytes(data)
    return Chunk(chunk_type, data, chunk_crc(chunk_type, data))


def _check_type(chunk_type):
    if len(chunk_type) != 4 or not all(65 <= c <= 90 or 97 <= c <= 122 for c in chunk_type):
        raise FormatError(f'invalid chunk type {chunk_type!r}')


#2 parser recznie czyta strukture PNG i zwraca liste chunkow + bajty po IEND
def read_chunks(data, stop_at=None):
    """Split a PNG byte stream into chunks.

    Returns ``(chunks, tail)`` where ``tail`` holds whatever follows IEND.
    When ``stop_at`` is given (e.g. ``b'IDAT'``) parsing stops right before
    the first chunk of that type and ``tail`` is empty.
    """
    data = memoryview(data)
    if bytes(data[:len(PngSignature)]) != PngSignature:
        raise FormatError('Invalid PNG Signature')

    chunks = []
    offset = len(PngSignature)
    while True:
        #chunk = [4B length][4B type][payload][4B CRC]
        if offset + 8 > len(data):
            raise FormatError(f'truncated chunk header at offset {offset}')
        length, chunk_type = struct.unpack_from('>I4s', data, offset)
        _check_type(chunk_type)
        if length > 0x7FFFFFFF:
            raise FormatError(f'{chunk_type!r} length {length} exceeds 2^31-1')

        if stop_at is not None and chunk_type == stop_at:
            return chunks, b''

        end = offset + 8 + length
        if end + 4 > len(data):
            raise FormatError(f'truncated {chunk_type.decode()} chunk at offset {offset}')
        payload = bytes(data[offset + 8:end])
        crc, = struct.unpack_from('>I', data, end)

        if crc != chunk_crc(chunk_type, payload):
            raise IntegrityError(f'{chunk_type.decode()} chunk checksum failed')

        logger.debug('[%s] length: %d, offset: %d', chunk_type.decode(), length, offset)
        chunks.append(Chunk(chunk_type, payload, crc))
        offset = end + 4

        if chunk_type == b'IEND':
            break  #koniec specyfikacji PNG dalej tylko ukryte bajty

    tail = bytes(data[offset:])
    if tail:
        logger.warning('%d bytes behind IEND ignored', len(tail))
    return chunks, tail


def write_chunks(chunks):
    out = bytearray(PngSignature)
    for t, d, *_ in chunks:
        out += struct.pack('>I', len(d))
        out += t
        out += d
        out += struct.pack('>I', chunk_crc(t, d))
    return bytes(out)


#3 kolejnosc chunkow: IHDR pierwszy, IEND ostatni, PLTE przed IDAT, IDAT ciagiem
def validate_order(chunks, indexed=False, complete=True):
    if not chunks or chunks[0].type != b'IHDR':
        raise FormatError('IHDR must be the first chunk')

    seen = {}
    idat_done = False
    last = None
    for pos, chunk in enumerate(chunks):
        t = chunk.type
        seen[t] = seen.get(t, 0) + 1

        if t == b'IHDR' and pos != 0:
            raise FormatError('duplicate IHDR chunk')
        if t == b'IEND' and pos != len(chunks) - 1:
            raise FormatError('IEND must be the last chunk')
        if t == b'IEND' and chunk.data:
            raise FormatError('IEND must be empty')
        if chunk.is_critical and t not in critical:
            raise FormatError(f'unknown critical chunk {chunk.name}')

        if t == b'PLTE':
            if seen[t] > 1:
                raise FormatError('duplicate PLTE chunk')
            if b'IDAT' in seen:
                raise FormatError('PLTE after IDAT')
        elif t == b'IDAT':
            if idat_done:
                raise FormatError('IDAT chunks are not consecutive')
            if indexed and b'PLTE' not in seen:
                raise FormatError('missing PLTE before IDAT in indexed image')
        elif t in singleton:
            if seen[t] > 1:
                raise FormatError(f'duplicate {chunk.name} chunk')
            if t in before_plte and (b'PLTE' in seen or b'IDAT' in seen):
                raise FormatError(f'{chunk.name} must precede PLTE and IDAT')
            if t in after_plte and b'IDAT' in seen:
                raise FormatError(f'{chunk.name} must precede IDAT')
            if t in after_plte and indexed and b'PLTE' not in seen:
                raise FormatError(f'{chunk.name} must follow PLTE')

        if last == b'IDAT' and t != b'IDAT':
            idat_done = True
        last = t

    if complete:
        if b'IDAT' not in seen:
            raise FormatError('missing IDAT chunk')
        if seen.get(b'IEND') != 1 or chunks[-1].type != b'IEND':
            raise FormatError('missing IEND chunk')
    elif indexed and b'PLTE' not in seen:
        raise FormatError('missing PLTE in indexed image')
