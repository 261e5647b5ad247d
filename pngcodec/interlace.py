import logging

import numpy as np

from .convert import pack_samples, unpack_samples
from .errors import FormatError
from .filters import filter_image, unfilter_image
from .header import row_bytes

logger = logging.getLogger(__name__)

#7 przejsc Adam7: (start x, start y, krok x, krok y)
ADAM7 = (
    (0, 0, 8, 8),
    (4, 0, 8, 8),
    (0, 4, 4, 8),
    (2, 0, 4, 4),
    (0, 2, 2, 4),
    (1, 0, 2, 2),
    (0, 1, 1, 2),
)


def pass_sizes(width, height):
    #wymiary podobrazu kazdego przejscia, dla malych obrazow niektore sa puste
    sizes = []
    for x0, y0, dx, dy in ADAM7:
        pw = (width - x0 + dx - 1) // dx if width > x0 else 0
        ph = (height - y0 + dy - 1) // dy if height > y0 else 0
        sizes.append((pw, ph))
    return sizes


def split_passes(data, header):
    """Cut the decompressed stream into per-pass filtered sub-images.

    Returns a list of ``(pass_index, width, height, bytes)``; empty passes
    are left out. Passes are taken strictly in their numeric order.
    """
    passes = []
    pos = 0
    for i, (pw, ph) in enumerate(pass_sizes(header.width, header.height)):
        if pw == 0 or ph == 0:
            continue
        size = (row_bytes(pw, header.bit_depth, header.channels) + 1) * ph
        if pos + size > len(data):
            raise FormatError(f'interlace pass {i + 1} truncated')
        passes.append((i, pw, ph, data[pos:pos + size]))
        pos += size
    if pos < len(data):
        logger.debug('%d extra bytes after last interlace pass', len(data) - pos)
    return passes


#rozrzucenie pikseli z przejsc do pelnego rastra (h, w, kanaly)
def deinterlace(data, header):
    dtype = np.uint16 if header.bit_depth == 16 else np.uint8
    image = np.zeros((header.height, header.width, header.channels), dtype)
    for i, pw, ph, chunk in split_passes(data, header):
        x0, y0, dx, dy = ADAM7[i]
        rows = unfilter_image(chunk, row_bytes(pw, header.bit_depth, header.channels), ph, header.filter_unit)
        image[y0::dy, x0::dx] = unpack_samples(rows, pw, header.bit_depth, header.channels)
        logger.debug('pass %d: %dx%d', i + 1, pw, ph)
    return image


#zebranie pikseli kazdego przejscia i filtrowanie podobrazow niezaleznie
def interlace(samples, header, filter_type=None):
    out = bytearray()
    for i, (pw, ph) in enumerate(pass_sizes(header.width, header.height)):
        if pw == 0 or ph == 0:
            continue
        x0, y0, dx, dy = ADAM7[i]
        sub = samples[y0::dy, x0::dx]
        rows = pack_samples(sub, header.bit_depth)
        out += filter_image(rows, header.filter_unit, filter_type)
    return bytes(out)
