import logging
from dataclasses import replace
from datetime import datetime, timezone

from .chunks import make_chunk, write_chunks
from .convert import from_input, unpack_samples
from .errors import ArgumentError
from .filters import filter_image
from .header import ColorType, Header, InterlaceMethod, palette_chunk
from .interlace import interlace
from .metadata import Metadata, serialize_metadata
from .options import encoder_config
from .session import Session, check_bytes

logger = logging.getLogger(__name__)

#maksymalny rozmiar jednego chunka IDAT przy zapisie
IDAT_SIZE = 65536


class Encoder(Session):

    def __init__(self, width, height, **opts):
        super().__init__()
        self.config = encoder_config(width, height, **opts)

    @property
    def data_size(self):
        return self.config.stride * self.config.height

    def encode(self, raw):
        raw = check_bytes(raw, 'image data')
        if len(raw) < self.data_size:
            raise ArgumentError('image data too short')
        if len(raw) > self.data_size:
            raise ArgumentError('image data too large')
        with self._busy():
            return self._encode(raw)

    def _header(self):
        cfg = self.config
        method = InterlaceMethod.ADAM7 if cfg.interlace else InterlaceMethod.NONE
        return Header(cfg.width, cfg.height, cfg.bit_depth, cfg.color_type,
                      interlace_method=method)

    #metadane do zapisu: przekazany obiekt Metadata nadpisany opcjami text/time/gamma
    def _metadata(self):
        cfg = self.config
        if cfg.skip_ancillary:
            meta = Metadata.empty()
            if cfg.transparency is not None:
                meta = replace(meta, transparency=cfg.transparency)
            return meta

        meta = cfg.metadata if cfg.metadata is not None else Metadata.empty()
        changes = {'trailing_bytes': 0}

        if cfg.text:
            changes['text'] = {**meta.text, **cfg.text}
        stamp = cfg.time
        if stamp is None:
            stamp = meta.time if cfg.metadata is not None else True
        if stamp is True:
            stamp = datetime.now(timezone.utc).replace(microsecond=0)
        changes['time'] = stamp or None
        if cfg.gamma is not None:
            changes['gamma'] = cfg.gamma
        if cfg.transparency is not None:
            changes['transparency'] = cfg.transparency
        return replace(meta, **changes)

    def _encode(self, raw):
        cfg = self.config
        header = self._header()
        palette_size = len(cfg.palette) if cfg.color_type == ColorType.INDEXED else None

        #1 bajty wywolujacego -> wiersze w ukladzie zapisu PNG
        rows = from_input(raw, header, cfg.stride, palette_size)

        #2 filtrowanie (przy Adam7 kazde przejscie osobno)
        if header.interlaced:
            samples = unpack_samples(rows, header.width, header.bit_depth, header.channels)
            filtered = interlace(samples, header, cfg.filter_type)
        else:
            filtered = filter_image(rows, header.filter_unit, cfg.filter_type)

        #3 kompresja
        compressed = cfg.compressor.deflate(filtered, cfg.compression)
        logger.debug('IDAT: %d filtered -> %d compressed bytes', len(filtered), len(compressed))

        #4 skladanie chunkow: IHDR, [gAMA..], PLTE, [tRNS..], IDAT.., IEND
        meta = self._metadata()
        before, after = serialize_metadata(meta, header)

        palette = cfg.palette
        if palette is None and header.color_type in (ColorType.RGB, ColorType.RGBA):
            palette = meta.suggested_palette

        chunks = [header.to_chunk()]
        chunks += before
        if palette is not None:
            chunks.append(palette_chunk(palette))
        chunks += after
        for i in range(0, max(len(compressed), 1), IDAT_SIZE):
            chunks.append(make_chunk(b'IDAT', compressed[i:i + IDAT_SIZE]))
        chunks.append(make_chunk(b'IEND'))

        return write_chunks(chunks)
