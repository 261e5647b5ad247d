import logging

from .chunks import Chunk, PngSignature, read_chunks, write_chunks
from .compression import PassThroughAdapter, ZlibAdapter
from .decoder import Decoder, PixelBuffer
from .encoder import Encoder
from .errors import (ArgumentError, FormatError, IntegrityError, OptionTypeError,
                     PNGError, RangeError, SessionError)
from .filters import FilterType
from .header import ColorType, Header, InterlaceMethod
from .metadata import Metadata, PhysicalDims, TextMap

__version__ = '0.1.0'

logging.getLogger(__name__).addHandler(logging.NullHandler())


def read_header(data, **opt):
    return Decoder(**opt).read_header(data)


def decode(png, **opt):
    return Decoder(**opt).decode(png)


def encode(w, h, raw, **opt):
    return Encoder(w, h, **opt).encode(raw)


__all__ = [
    'ArgumentError', 'Chunk', 'ColorType', 'Decoder', 'Encoder', 'FilterType',
    'FormatError', 'Header', 'IntegrityError', 'InterlaceMethod', 'Metadata',
    'OptionTypeError', 'PNGError', 'PassThroughAdapter', 'PhysicalDims',
    'PixelBuffer', 'PngSignature', 'RangeError', 'SessionError', 'TextMap', 'ZlibAdapter',
    'decode', 'encode', 'read_chunks', 'read_header', 'write_chunks',
]
