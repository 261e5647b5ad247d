import math
import numbers
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

from .compression import (BEST_COMPRESSION, BEST_SPEED, DEFAULT_COMPRESSION,
                          NO_COMPRESSION, ZlibAdapter)
from .convert import CHANNEL_ORDERS, PIXEL_FORMATS
from .errors import ArgumentError, OptionTypeError, RangeError
from .filters import FilterType
from .header import BIT_DEPTHS, MAX_DIMENSION, ColorType, row_bytes
from .metadata import GAMMA_SCALE, Metadata, keyword_of

#1 slowniki wartosci dla obu trybow API
#tryb strict przyjmuje tylko nazwy kanoniczne, permissive dodatkowo aliasy
API_MODES = ('permissive', 'strict')

PIXEL_FORMAT_ALIASES = {
    'GRAYSCALE': 'GRAY',
    'L': 'GRAY',
    'GRAY_ALPHA': 'GA',
    'LA': 'GA',
    'RGB_ALPHA': 'RGBA',
    'P': 'INDEXED',
    'PALETTE': 'INDEXED',
}

COMPRESSION_NAMES = {
    'NO_COMPRESSION': NO_COMPRESSION,
    'BEST_SPEED': BEST_SPEED,
    'BEST_COMPRESSION': BEST_COMPRESSION,
    'DEFAULT': DEFAULT_COMPRESSION,
}

COMPRESSION_ALIASES = {
    'NONE': NO_COMPRESSION,
    'STORE': NO_COMPRESSION,
    'FAST': BEST_SPEED,
    'BEST': BEST_COMPRESSION,
    'DEFAULT_COMPRESSION': DEFAULT_COMPRESSION,
}

FILTER_ALIASES = {
    'AVG': FilterType.AVERAGE,
}

UNKNOWN_CHUNK_POLICIES = {'keep': True, 'drop': False}
UNKNOWN_CHUNK_ALIASES = {'preserve': True, 'discard': False}

DECODER_OPTIONS = ('pixel_format', 'keep_depth', 'skip_ancillary', 'display_gamma',
                   'unknown_chunks', 'api_mode', 'compressor')
DECODER_OPTION_ALIASES = {'color_type': 'pixel_format', 'without_meta': 'skip_ancillary'}

#dekoder dodatkowo zwraca piksele w innej kolejnosci kanalow
DECODER_PIXEL_FORMATS = (*PIXEL_FORMATS, *CHANNEL_ORDERS)

ENCODER_OPTIONS = ('pixel_format', 'bit_depth', 'interlace', 'compression', 'filter',
                   'text', 'time', 'gamma', 'stride', 'palette', 'metadata',
                   'skip_ancillary', 'api_mode', 'compressor')
ENCODER_OPTION_ALIASES = {'color_type': 'pixel_format', 'without_meta': 'skip_ancillary'}


@dataclass(frozen=True)
class DecoderConfig:
    pixel_format: str = 'RGB'
    keep_depth: bool = False
    skip_ancillary: bool = False
    display_gamma: Optional[float] = None
    keep_unknown: bool = True
    api_mode: str = 'permissive'
    compressor: Any = None


@dataclass(frozen=True)
class EncoderConfig:
    width: int
    height: int
    pixel_format: str = 'RGB'
    bit_depth: int = 8
    interlace: bool = False
    compression: int = DEFAULT_COMPRESSION
    filter_type: Optional[FilterType] = None
    text: Optional[dict] = None
    time: Any = None
    gamma: Optional[float] = None
    stride: int = 0
    palette: Optional[tuple] = None
    transparency: Optional[tuple] = None
    metadata: Optional[Metadata] = None
    skip_ancillary: bool = False
    api_mode: str = 'permissive'
    compressor: Any = None

    @property
    def color_type(self):
        return PIXEL_FORMATS[self.pixel_format][0]


def _is_int(value):
    #bool dziedziczy po int, ale jako liczba jest bledem typu
    return isinstance(value, numbers.Integral) and not isinstance(value, bool)


def _is_real(value):
    return isinstance(value, numbers.Real) and not isinstance(value, bool)


def truthy(value):
    return value is not None and value is not False and bool(value)


#2 walidacja pojedynczych opcji, kazda zwraca wartosc kanoniczna albo rzuca
def eval_api_mode(opt):
    if not isinstance(opt, str):
        raise OptionTypeError(':api_mode invalid type')
    if opt not in API_MODES:
        raise ArgumentError(f':api_mode invalid value {opt!r}')
    return opt


def eval_pixel_format(opt, mode, formats=PIXEL_FORMATS):
    if not isinstance(opt, str):
        raise OptionTypeError(':pixel_format invalid type')
    name = opt
    if mode == 'permissive':
        name = PIXEL_FORMAT_ALIASES.get(opt, opt)
    if name not in formats:
        raise ArgumentError(f':pixel_format invalid value {opt!r}')
    return name


def eval_compression(opt, mode):
    if isinstance(opt, str):
        names = dict(COMPRESSION_NAMES)
        if mode == 'permissive':
            names.update(COMPRESSION_ALIASES)
        if opt not in names:
            raise ArgumentError(f':compression invalid value {opt!r}')
        return names[opt]
    if not _is_int(opt):
        raise OptionTypeError(':compression invalid type')
    if not 0 <= opt <= 9:
        raise RangeError(f':compression {opt} out of range 0..9')
    return int(opt)


def eval_filter(opt, mode):
    if opt is None:
        return None
    if isinstance(opt, str):
        name = opt.upper() if mode == 'permissive' else opt
        if name == 'ADAPTIVE':
            return None
        if name in FilterType.__members__:
            return FilterType[name]
        if mode == 'permissive' and name in FILTER_ALIASES:
            return FILTER_ALIASES[name]
        raise ArgumentError(f':filter invalid value {opt!r}')
    if _is_int(opt) and mode == 'permissive':
        if not 0 <= opt <= 4:
            raise RangeError(f':filter {opt} out of range 0..4')
        return FilterType(opt)
    raise OptionTypeError(':filter invalid type')


def eval_unknown_chunks(opt, mode):
    if not isinstance(opt, str):
        raise OptionTypeError(':unknown_chunks invalid type')
    policies = dict(UNKNOWN_CHUNK_POLICIES)
    if mode == 'permissive':
        policies.update(UNKNOWN_CHUNK_ALIASES)
    if opt not in policies:
        raise ArgumentError(f':unknown_chunks invalid value {opt!r}')
    return policies[opt]


def eval_gamma(opt, name=':gamma', fixed_point=True):
    if not _is_real(opt):
        raise OptionTypeError(f'{name} invalid type')
    value = float(opt)
    if not math.isfinite(value) or value <= 0:
        raise RangeError(f'{name} must be a positive number')
    #gAMA trzyma gamma * 100000 w 4 bajtach bez znaku
    if fixed_point and not 0 < round(value * GAMMA_SCALE) <= 0xFFFFFFFF:
        raise RangeError(f'{name} {value} does not fit the gAMA fixed-point range')
    return value


def eval_text(opt):
    if not isinstance(opt, Mapping):
        raise OptionTypeError(':text invalid type')
    text = {}
    for key, val in opt.items():
        if not isinstance(key, str) or not isinstance(val, str):
            raise ArgumentError(':text is invalid structure')
        keyword_of(key)   #dlugosc 1..79 i latin-1
        text[key] = val
    return text


def eval_time(opt):
    if isinstance(opt, datetime):
        return opt
    return truthy(opt)


def eval_dimension(opt, name):
    if not _is_int(opt):
        raise OptionTypeError(f'invalid {name}')
    if not 0 < opt <= MAX_DIMENSION:
        raise RangeError(f'image {name} must be within 1..{MAX_DIMENSION}')
    return int(opt)


def eval_bit_depth(opt, color_type):
    if not _is_int(opt):
        raise OptionTypeError(':bit_depth invalid type')
    if opt not in BIT_DEPTHS[color_type]:
        raise ArgumentError(f':bit_depth {opt} not allowed for {color_type.name}')
    return int(opt)


def eval_stride(opt, minimum):
    if opt is None:
        return minimum
    if not _is_int(opt):
        raise OptionTypeError(':stride invalid type')
    if opt < minimum:
        raise ArgumentError(':stride too little')
    return int(opt)


def eval_palette(opt, bit_depth):
    """Return ``(palette, transparency)``; RGBA entries produce a tRNS table."""
    if isinstance(opt, (bytes, bytearray)):
        if not opt or len(opt) % 3:
            raise ArgumentError(':palette length must be a multiple of 3')
        opt = [tuple(opt[i:i + 3]) for i in range(0, len(opt), 3)]
    if isinstance(opt, str) or not isinstance(opt, Sequence):
        raise OptionTypeError(':palette invalid type')

    limit = min(256, 2 ** bit_depth)
    if not 1 <= len(opt) <= limit:
        raise RangeError(f':palette must have 1..{limit} entries')

    palette, alphas = [], []
    for entry in opt:
        if isinstance(entry, (str, bytes)) or not isinstance(entry, Sequence):
            raise OptionTypeError(':palette entry invalid type')
        if len(entry) not in (3, 4):
            raise ArgumentError(':palette entries must be RGB or RGBA')
        for v in entry:
            if not _is_int(v):
                raise OptionTypeError(':palette component invalid type')
            if not 0 <= v <= 255:
                raise RangeError(':palette component out of range 0..255')
        palette.append(tuple(int(v) for v in entry[:3]))
        alphas.append(int(entry[3]) if len(entry) == 4 else 255)

    #tRNS moze byc krotszy niz paleta: ucinamy koncowe 255
    while alphas and alphas[-1] == 255:
        alphas.pop()
    return tuple(palette), (tuple(alphas) if alphas else None)


def eval_metadata(opt):
    if opt is not None and not isinstance(opt, Metadata):
        raise OptionTypeError(':metadata invalid type')
    return opt


def eval_compressor(opt):
    if opt is None:
        return ZlibAdapter()
    if not callable(getattr(opt, 'inflate', None)) or not callable(getattr(opt, 'deflate', None)):
        raise OptionTypeError(':compressor must provide inflate() and deflate()')
    return opt


def _collect(opts, known, aliases, mode):
    out = {}
    for key, value in opts.items():
        name = key
        if mode == 'permissive' and key in aliases:
            name = aliases[key]
        if name not in known:
            raise ArgumentError(f'unknown option :{key}')
        if name in out:
            raise ArgumentError(f'option :{name} given twice')
        out[name] = value
    return out


#3 zbudowanie konfiguracji sesji, cala walidacja odbywa sie tutaj zanim dotkniemy danych
def decoder_config(**opts):
    mode = eval_api_mode(opts.pop('api_mode', 'permissive'))
    opts = _collect(opts, DECODER_OPTIONS, DECODER_OPTION_ALIASES, mode)

    pixel_format = 'RGB'
    if 'pixel_format' in opts:
        pixel_format = eval_pixel_format(opts['pixel_format'], mode, DECODER_PIXEL_FORMATS)
    display_gamma = opts.get('display_gamma')
    if display_gamma is not None:
        display_gamma = eval_gamma(display_gamma, ':display_gamma', fixed_point=False)
    if 'unknown_chunks' in opts:
        keep_unknown = eval_unknown_chunks(opts['unknown_chunks'], mode)
    else:
        keep_unknown = mode == 'permissive'

    return DecoderConfig(
        pixel_format=pixel_format,
        keep_depth=truthy(opts.get('keep_depth')),
        skip_ancillary=truthy(opts.get('skip_ancillary')),
        display_gamma=display_gamma,
        keep_unknown=keep_unknown,
        api_mode=mode,
        compressor=eval_compressor(opts.get('compressor')),
    )


def encoder_config(width, height, **opts):
    width = eval_dimension(width, 'width')
    height = eval_dimension(height, 'height')
    mode = eval_api_mode(opts.pop('api_mode', 'permissive'))
    opts = _collect(opts, ENCODER_OPTIONS, ENCODER_OPTION_ALIASES, mode)

    pixel_format = eval_pixel_format(opts['pixel_format'], mode) if 'pixel_format' in opts else 'RGB'
    color_type, channels = PIXEL_FORMATS[pixel_format]
    bit_depth = eval_bit_depth(opts.get('bit_depth', 8), color_type)

    palette = transparency = None
    if opts.get('palette') is not None:
        if color_type in (ColorType.GRAY, ColorType.GA):
            raise ArgumentError(f':palette not allowed for {pixel_format}')
        palette, transparency = eval_palette(opts['palette'], bit_depth if color_type == ColorType.INDEXED else 8)
        if color_type != ColorType.INDEXED:
            transparency = None
    elif color_type == ColorType.INDEXED:
        raise ArgumentError(':palette is required for INDEXED')

    text = opts.get('text')
    if text is not None:
        text = eval_text(text)
    gamma = opts.get('gamma')
    if gamma is not None:
        gamma = eval_gamma(gamma)

    return EncoderConfig(
        width=width,
        height=height,
        pixel_format=pixel_format,
        bit_depth=bit_depth,
        interlace=truthy(opts.get('interlace')),
        compression=eval_compression(opts['compression'], mode) if 'compression' in opts else DEFAULT_COMPRESSION,
        filter_type=eval_filter(opts.get('filter'), mode),
        text=text,
        time=eval_time(opts['time']) if 'time' in opts else None,
        gamma=gamma,
        stride=eval_stride(opts.get('stride'), row_bytes(width, bit_depth, channels)),
        palette=palette,
        transparency=transparency,
        metadata=eval_metadata(opts.get('metadata')),
        skip_ancillary=truthy(opts.get('skip_ancillary')),
        api_mode=mode,
        compressor=eval_compressor(opts.get('compressor')),
    )
