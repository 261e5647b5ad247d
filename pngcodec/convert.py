import logging

import numpy as np

from .errors import ArgumentError, FormatError, RangeError
from .header import ColorType

logger = logging.getLogger(__name__)

#formaty pikseli ktore moze zamowic wywolujacy, nazwa -> (typ koloru, liczba kanalow)
PIXEL_FORMATS = {
    'GRAY': (ColorType.GRAY, 1),
    'GA': (ColorType.GA, 2),
    'RGB': (ColorType.RGB, 3),
    'RGBA': (ColorType.RGBA, 4),
    'INDEXED': (ColorType.INDEXED, 1),
}

#formaty tylko do odczytu: inna kolejnosc kanalow, nazwa -> (format bazowy, permutacja)
CHANNEL_ORDERS = {
    'AG': ('GA', (1, 0)),
    'BGR': ('RGB', (2, 1, 0)),
    'ARGB': ('RGBA', (3, 0, 1, 2)),
    'BGRA': ('RGBA', (2, 1, 0, 3)),
    'ABGR': ('RGBA', (3, 2, 1, 0)),
}

#wagi luminancji (Rec. 709) przy konwersji RGB -> szarosc
LUMA = np.array([0.2126, 0.7152, 0.0722])

DEFAULT_FILE_GAMMA = 0.45455


def unpack_samples(rows, width, bit_depth, channels):
    """Turn ``(height, row_bytes)`` packed rows into a ``(height, width, channels)`` array.

    16-bit samples come back as native ``uint16``, everything else as ``uint8``.
    """
    rows = np.ascontiguousarray(rows, dtype=np.uint8)
    h = rows.shape[0]
    if bit_depth == 8:
        return rows[:, :width * channels].reshape(h, width, channels)
    if bit_depth == 16:
        vals = rows[:, :width * channels * 2].copy().view('>u2').astype(np.uint16)
        return vals.reshape(h, width, channels)

    #glebia < 8: kilka probek w bajcie, najstarsze bity to lewy piksel
    shifts = np.arange(8 - bit_depth, -1, -bit_depth, dtype=np.uint8)
    mask = (1 << bit_depth) - 1
    vals = (rows[:, :, None] >> shifts) & mask
    return vals.reshape(h, -1)[:, :width * channels].reshape(h, width, channels).astype(np.uint8)


def pack_samples(samples, bit_depth):
    h = samples.shape[0]
    if bit_depth == 8:
        return np.ascontiguousarray(samples, dtype=np.uint8).reshape(h, -1)
    if bit_depth == 16:
        return np.ascontiguousarray(samples.reshape(h, -1).astype('>u2')).view(np.uint8)

    flat = samples.reshape(h, -1).astype(np.uint8)
    per = 8 // bit_depth
    pad = -flat.shape[1] % per
    if pad:
        flat = np.concatenate([flat, np.zeros((h, pad), np.uint8)], axis=1)
    shifts = np.arange(8 - bit_depth, -1, -bit_depth, dtype=np.uint8)
    grouped = flat.reshape(h, -1, per) << shifts
    return np.bitwise_or.reduce(grouped, axis=2).astype(np.uint8)


def scale_to_8(samples, bit_depth):
    if bit_depth == 8:
        return samples.astype(np.uint8)
    if bit_depth == 16:
        #to samo zaokraglenie co libpng przy 16 -> 8
        return ((samples.astype(np.uint32) * 255 + 32895) >> 16).astype(np.uint8)
    #1 bit -> x255, 2 bity -> x85, 4 bity -> x17
    return (samples.astype(np.uint16) * (255 // ((1 << bit_depth) - 1))).astype(np.uint8)


def gamma_table(file_gamma, display_gamma):
    exponent = 1.0 / (file_gamma * display_gamma)
    return np.round(255.0 * (np.arange(256) / 255.0) ** exponent).astype(np.uint8)


def _expand_palette(indices, palette, transparency):
    pal = np.array(palette, dtype=np.uint8).reshape(-1, 3)
    if indices.size and int(indices.max()) >= len(pal):
        raise FormatError(f'palette index {int(indices.max())} out of range ({len(pal)} entries)')
    color = pal[indices]
    alpha = None
    if transparency is not None:
        alphas = np.full(256, 255, np.uint8)
        alphas[:len(transparency)] = transparency
        alpha = alphas[indices]
    return color, alpha


def to_output(samples, header, pixel_format, palette=None, transparency=None,
              keep_depth=False, display_gamma=None, file_gamma=None):
    """Convert decoded samples into the caller's pixel layout.

    Returns ``(data, stride, bit_depth, channels)``. Sub-byte rows kept at
    their stored depth come back with the padding bits cleared.
    """
    ct = header.color_type
    depth = header.bit_depth
    base, order = CHANNEL_ORDERS.get(pixel_format, (pixel_format, None))
    target, channels = PIXEL_FORMATS[base]

    #1 bez konwersji: zwracamy probki w glebi i ukladzie z pliku
    if target == ColorType.INDEXED:
        if ct != ColorType.INDEXED:
            raise ArgumentError(f'cannot produce INDEXED pixels from {ct.name} image')
        if not keep_depth:
            return samples.astype(np.uint8).tobytes(), header.width, 8, 1
    if keep_depth and target == ct and order is None:
        return pack_samples(samples, depth).tobytes(), header.row_bytes, depth, channels

    #2 rozpakowanie zrodla do koloru + opcjonalnej alfy
    out_depth = 16 if keep_depth and depth == 16 else 8
    logger.debug('convert %s %d-bit -> %s %d-bit', ct.name, depth, pixel_format, out_depth)
    maxval = (1 << out_depth) - 1
    alpha = None

    if ct == ColorType.INDEXED:
        color, alpha = _expand_palette(samples[..., 0], palette, transparency)
        if out_depth == 16:
            color = color.astype(np.uint16) * 257
            alpha = None if alpha is None else alpha.astype(np.uint16) * 257
    else:
        vals = samples if out_depth == 16 else scale_to_8(samples, depth)
        ncolor = 1 if ct in (ColorType.GRAY, ColorType.GA) else 3
        color = vals[..., :ncolor]
        if ct in (ColorType.GA, ColorType.RGBA):
            alpha = vals[..., ncolor]
        elif transparency is not None:
            #tRNS dla szarosci/RGB: piksel o kolorze klucza jest w pelni przezroczysty
            key = np.array(transparency, dtype=np.uint32)
            hit = np.all(samples[..., :ncolor].astype(np.uint32) == key, axis=-1)
            alpha = np.where(hit, 0, maxval)

    #3 dopasowanie kanalow do zamowionego formatu
    if target in (ColorType.GRAY, ColorType.GA):
        if color.shape[-1] == 3:
            color = np.round(color.astype(np.float64) @ LUMA)[..., None]
    elif color.shape[-1] == 1:
        color = np.repeat(color, 3, axis=-1)

    if display_gamma is not None and out_depth == 8:
        color = gamma_table(file_gamma or DEFAULT_FILE_GAMMA, display_gamma)[color.astype(np.uint8)]

    parts = [color]
    if target in (ColorType.GA, ColorType.RGBA):
        if alpha is None:
            alpha = np.full(color.shape[:2], maxval)   #brakujaca alfa = w pelni nieprzezroczysty
        parts.append(alpha[..., None])

    dtype = '>u2' if out_depth == 16 else np.uint8
    out = np.concatenate([p.astype(np.uint32) for p in parts], axis=-1)
    if order is not None:
        out = out[..., list(order)]
    return out.astype(dtype).tobytes(), header.width * channels * out_depth // 8, out_depth, channels


def from_input(raw, header, stride, palette_size=None):
    """Validate caller bytes and return the stored rows as a ``(height, row_bytes)`` array.

    Padding bits at the end of sub-byte rows are cleared.
    """
    rb = header.row_bytes
    rows = np.frombuffer(bytes(raw), np.uint8).reshape(header.height, stride)[:, :rb].copy()
    pad = rb * 8 - header.width * header.bits_per_pixel
    if pad:
        rows[:, -1] &= (0xFF << pad) & 0xFF

    if header.color_type == ColorType.INDEXED and palette_size is not None:
        idx = unpack_samples(rows, header.width, header.bit_depth, 1)
        if idx.size and int(idx.max()) >= palette_size:
            raise RangeError(f'palette index {int(idx.max())} out of range ({palette_size} entries)')
    return rows
