import struct
from dataclasses import dataclass
from enum import IntEnum

from .chunks import make_chunk
from .errors import FormatError


class ColorType(IntEnum):
    GRAY = 0
    RGB = 2
    INDEXED = 3
    GA = 4
    RGBA = 6


class InterlaceMethod(IntEnum):
    NONE = 0
    ADAM7 = 1


#ile kanalow ma piksel danego typu
CHANNELS = {
    ColorType.GRAY: 1,
    ColorType.RGB: 3,
    ColorType.INDEXED: 1,
    ColorType.GA: 2,
    ColorType.RGBA: 4,
}

#dozwolone glebie bitowe dla typu koloru (tabela z RFC 2083, IHDR)
BIT_DEPTHS = {
    ColorType.GRAY: (1, 2, 4, 8, 16),
    ColorType.RGB: (8, 16),
    ColorType.INDEXED: (1, 2, 4, 8),
    ColorType.GA: (8, 16),
    ColorType.RGBA: (8, 16),
}

MAX_DIMENSION = 2 ** 31 - 1


def row_bytes(width, bit_depth, channels):
    #dla glebi < 8 kilka pikseli siedzi w jednym bajcie, zaokraglamy w gore
    return (width * bit_depth * channels + 7) // 8


@dataclass(frozen=True)
class Header:
    width: int
    height: int
    bit_depth: int
    color_type: ColorType
    compression_method: int = 0
    filter_method: int = 0
    interlace_method: InterlaceMethod = InterlaceMethod.NONE

    @property
    def channels(self):
        return CHANNELS[self.color_type]

    @property
    def bits_per_pixel(self):
        return self.bit_depth * self.channels

    @property
    def filter_unit(self):
        #bpp z RFC: liczba bajtow pelnego piksela, minimum 1
        return max(1, self.bits_per_pixel // 8)

    @property
    def row_bytes(self):
        return row_bytes(self.width, self.bit_depth, self.channels)

    @property
    def interlaced(self):
        return self.interlace_method == InterlaceMethod.ADAM7

    def to_chunk(self):
        data = struct.pack('>IIBBBBB', self.width, self.height, self.bit_depth,
                           int(self.color_type), self.compression_method,
                           self.filter_method, int(self.interlace_method))
        return make_chunk(b'IHDR', data)


#parsowanie IHDR, weryfikacja metod kompresji i filtracji
def parse_header(data: bytes) -> Header:
    if len(data) != 13:
        raise FormatError(f'IHDR must be 13 bytes, got {len(data)}')
    w, h, bitd, colort, compm, filterm, interlacem = struct.unpack('>IIBBBBB', data)

    if not 0 < w <= MAX_DIMENSION or not 0 < h <= MAX_DIMENSION:
        raise FormatError(f'invalid image size {w}x{h}')
    try:
        colort = ColorType(colort)
    except ValueError:
        raise FormatError(f'invalid color type {colort}') from None
    if bitd not in BIT_DEPTHS[colort]:
        raise FormatError(f'bit depth {bitd} not allowed for color type {colort.name}')
    #PNG uzywa tylko jednej metody kompresji (0 = DEFLATE) i filtra (0)
    if compm != 0:
        raise FormatError('invalid compression method')
    if filterm != 0:
        raise FormatError('invalid filter method')
    try:
        interlacem = InterlaceMethod(interlacem)
    except ValueError:
        raise FormatError(f'invalid interlace method {interlacem}') from None

    return Header(w, h, bitd, colort, compm, filterm, interlacem)


#PLTE to paleta kolorow: lista 3-bajtowych kolorow RGB
def parse_palette(data, header=None):
    if not data or len(data) % 3 or len(data) > 768:
        raise FormatError(f'invalid PLTE length {len(data)}')
    palette = tuple(tuple(data[i:i + 3]) for i in range(0, len(data), 3))
    if header is not None and header.color_type == ColorType.INDEXED:
        if len(palette) > 2 ** header.bit_depth:
            raise FormatError(f'{len(palette)} palette entries exceed bit depth {header.bit_depth}')
    return palette


def palette_chunk(palette):
    return make_chunk(b'PLTE', bytes(c for rgb in palette for c in rgb[:3]))
