import logging
from enum import IntEnum

import numpy as np

from .errors import FormatError

logger = logging.getLogger(__name__)


class FilterType(IntEnum):
    NONE = 0
    SUB = 1
    UP = 2
    AVERAGE = 3
    PAETH = 4


#predyktor Paetha RFC 2083 (filtr nr 4)
def paeth_predictor(a: int, b: int, c: int) -> int:
    p = a + b - c
    pa = abs(p - a)
    pb = abs(p - b)
    pc = abs(p - c)
    if pa <= pb and pa <= pc:
        return a
    elif pb <= pc:
        return b
    else:
        return c


#odwracanie filtra jednej linii
# a = bajt piksela po lewej, b = bajt powyzej, c = bajt lewy gorny; brak sasiada = 0
def unfilter_scanline(filter_type, line, prev, fu):
    n = len(line)
    if prev is None:
        prev = bytes(n)

    if filter_type == FilterType.NONE:
        return bytearray(line)

    if filter_type == FilterType.UP:
        out = np.frombuffer(line, np.uint8) + np.frombuffer(prev, np.uint8)
        return bytearray(out.tobytes())

    if filter_type == FilterType.SUB:
        #kazdy kanal osobno to suma prefiksowa modulo 256
        x = np.frombuffer(line, np.uint8).reshape(-1, fu)
        out = np.cumsum(x, axis=0, dtype=np.uint8)
        return bytearray(out.tobytes())

    out = bytearray(line)
    if filter_type == FilterType.AVERAGE:
        for i in range(n):
            left = out[i - fu] if i >= fu else 0
            out[i] = (out[i] + ((left + prev[i]) >> 1)) & 0xFF
    elif filter_type == FilterType.PAETH:
        for i in range(n):
            if i >= fu:
                left, up_left = out[i - fu], prev[i - fu]
            else:
                left = up_left = 0
            out[i] = (out[i] + paeth_predictor(left, prev[i], up_left)) & 0xFF
    else:
        raise FormatError(f'unknown filter type {filter_type}')
    return out


#filtrowanie linii przy zapisie, sasiedzi to bajty jeszcze niefiltrowane
def filter_scanline(filter_type, line, prev, fu):
    x = np.frombuffer(bytes(line), np.uint8).astype(np.int16)
    b = np.zeros_like(x) if prev is None else np.frombuffer(bytes(prev), np.uint8).astype(np.int16)
    a = np.zeros_like(x)
    a[fu:] = x[:-fu] if fu < len(x) else a[fu:]
    c = np.zeros_like(x)
    c[fu:] = b[:-fu] if fu < len(x) else c[fu:]

    if filter_type == FilterType.NONE:
        res = x
    elif filter_type == FilterType.SUB:
        res = x - a
    elif filter_type == FilterType.UP:
        res = x - b
    elif filter_type == FilterType.AVERAGE:
        res = x - ((a + b) >> 1)
    elif filter_type == FilterType.PAETH:
        p = a + b - c
        pa, pb, pc = np.abs(p - a), np.abs(p - b), np.abs(p - c)
        pred = np.where((pa <= pb) & (pa <= pc), a, np.where(pb <= pc, b, c))
        res = x - pred
    else:
        raise ValueError(f'unknown filter type {filter_type}')
    return (res & 0xFF).astype(np.uint8).tobytes()


#heurystyka z RFC: minimalna suma |reszt| traktowanych jako bajty ze znakiem
def choose_filter(line, prev, fu):
    best = None
    for ftype in FilterType:
        res = filter_scanline(ftype, line, prev, fu)
        score = int(np.abs(np.frombuffer(res, np.int8).astype(np.int16)).sum())
        if best is None or score < best[0]:
            best = (score, ftype, res)
    return best[1], best[2]


def unfilter_image(data, width_bytes, height, fu):
    """Reverse the filters of one (sub)image.

    ``data`` holds ``height`` scanlines, each a filter-type byte followed by
    ``width_bytes`` filtered bytes. Returns a ``(height, width_bytes)`` uint8
    array.
    """
    stride = width_bytes + 1
    if len(data) < stride * height:
        raise FormatError(f'image data too short: {len(data)} < {stride * height}')

    out = np.empty((height, width_bytes), np.uint8)
    prev = None
    for r in range(height):
        #pierwszy bajt kazdej linii = kod zastosowanego filtra
        ftype = data[r * stride]
        line = data[r * stride + 1:(r + 1) * stride]
        recon = unfilter_scanline(ftype, line, prev, fu)
        out[r] = np.frombuffer(bytes(recon), np.uint8)
        prev = recon
    return out


def filter_image(rows, fu, filter_type=None):
    """Filter a ``(height, width_bytes)`` array into scanlines with tag bytes."""
    out = bytearray()
    prev = None
    counts = [0] * len(FilterType)
    for row in rows:
        line = row.tobytes()
        if filter_type is None:
            ftype, res = choose_filter(line, prev, fu)
        else:
            ftype, res = filter_type, filter_scanline(filter_type, line, prev, fu)
        counts[ftype] += 1
        out.append(ftype)
        out += res
        prev = line
    logger.debug('filters used: %s', dict(zip((f.name for f in FilterType), counts)))
    return bytes(out)
