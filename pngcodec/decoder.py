import logging
from dataclasses import dataclass

import numpy as np
from PIL import Image

from .chunks import read_chunks, validate_order
from .convert import CHANNEL_ORDERS, scale_to_8, to_output, unpack_samples
from .errors import FormatError
from .filters import unfilter_image
from .header import ColorType, parse_header, parse_palette
from .interlace import deinterlace
from .metadata import Metadata, parse_ancillary
from .options import decoder_config
from .session import Session, check_bytes

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PixelBuffer:
    data: bytes
    width: int
    height: int
    stride: int
    pixel_format: str
    bit_depth: int = 8
    num_components: int = 3

    def __len__(self):
        return len(self.data)

    def row(self, y):
        return self.data[y * self.stride:(y + 1) * self.stride]

    def to_array(self) -> np.ndarray:
        """Return the pixels as a ``(height, width, num_components)`` array.

        Packed sub-byte rows are unpacked to one sample per element and
        16-bit samples keep their big-endian byte order.
        """
        h, w, c = self.height, self.width, self.num_components
        if self.bit_depth == 16:
            return np.frombuffer(self.data, '>u2').reshape(h, w, c)
        rows = np.frombuffer(self.data, np.uint8).reshape(h, self.stride)
        if self.bit_depth == 8:
            return rows.reshape(h, w, c)
        return unpack_samples(rows, w, self.bit_depth, c)

    def to_image(self, palette=None) -> Image.Image:
        arr = self.to_array()
        if self.pixel_format in CHANNEL_ORDERS:
            #z powrotem do kolejnosci GA / RGBA
            arr = arr[..., np.argsort(CHANNEL_ORDERS[self.pixel_format][1])]
        if self.pixel_format == 'INDEXED':
            if palette is None:
                raise ValueError('palette is required to build an INDEXED image')
            img = Image.fromarray(arr[..., 0].astype(np.uint8))
            img.putpalette(bytes(c for rgb in palette for c in rgb[:3]))
            return img
        if self.bit_depth == 16:
            if self.num_components == 1:
                return Image.fromarray(arr[..., 0].astype(np.uint16))
            arr = (arr >> 8).astype(np.uint8)
        elif self.bit_depth < 8:
            arr = scale_to_8(arr, self.bit_depth)
        if self.num_components == 1:
            arr = arr[..., 0]
        return Image.fromarray(np.ascontiguousarray(arr, dtype=np.uint8))


def _read_palette(chunks, header):
    for chunk in chunks:
        if chunk.type == b'PLTE':
            if header.color_type in (ColorType.GRAY, ColorType.GA):
                raise FormatError(f'PLTE not allowed for {header.color_type.name}')
            if header.color_type == ColorType.INDEXED:
                return parse_palette(chunk.data, header)
    return None


class Decoder(Session):

    def __init__(self, **opts):
        super().__init__()
        self.config = decoder_config(**opts)

    def _structure(self, chunks, complete):
        if not chunks or chunks[0].type != b'IHDR':
            raise FormatError('IHDR must be the first chunk')
        header = parse_header(chunks[0].data)
        validate_order(chunks, header.color_type == ColorType.INDEXED, complete)
        return header, _read_palette(chunks, header)

    def _metadata(self, chunks, header, palette, trailing):
        if not self.config.skip_ancillary:
            return parse_ancillary(chunks, header, self.config.keep_unknown, palette, trailing)
        #bez metadanych, ale tRNS i gAMA sa potrzebne do konwersji pikseli
        needed = [c for c in chunks if c.type in (b'tRNS', b'gAMA')]
        return parse_ancillary(needed, header, False, palette)

    #odczyt samego naglowka, konczy sie na pierwszym IDAT
    def read_header(self, data):
        data = check_bytes(data)
        with self._busy():
            chunks, _ = read_chunks(data, stop_at=b'IDAT')
            header, palette = self._structure(chunks, complete=False)
            meta = self._metadata(chunks, header, palette, 0)
            if self.config.skip_ancillary:
                meta = Metadata.empty()
            return header, meta

    def decode(self, data):
        data = check_bytes(data)
        with self._busy():
            return self._decode(data)

    def _decode(self, data):
        cfg = self.config

        #1 podzial na chunki + walidacja kolejnosci
        chunks, tail = read_chunks(data)
        header, palette = self._structure(chunks, complete=True)
        meta = self._metadata(chunks, header, palette, len(tail))

        #2 sklejenie IDAT i dekompresja
        idat = b''.join(c.data for c in chunks if c.type == b'IDAT')
        raw = cfg.compressor.inflate(idat)
        logger.debug('IDAT: %d compressed, %d decompressed bytes', len(idat), len(raw))

        #3 odwracanie filtrow (osobno dla kazdego przejscia Adam7)
        if header.interlaced:
            samples = deinterlace(raw, header)
        else:
            rows = unfilter_image(raw, header.row_bytes, header.height, header.filter_unit)
            samples = unpack_samples(rows, header.width, header.bit_depth, header.channels)

        #4 konwersja do zamowionego formatu
        out, stride, depth, channels = to_output(
            samples, header, cfg.pixel_format,
            palette=palette,
            transparency=meta.transparency,
            keep_depth=cfg.keep_depth,
            display_gamma=cfg.display_gamma,
            file_gamma=meta.gamma,
        )

        if cfg.skip_ancillary:
            meta = Metadata.empty()

        pixels = PixelBuffer(out, header.width, header.height, stride,
                             cfg.pixel_format, depth, channels)
        return pixels, meta
