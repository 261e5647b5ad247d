import logging
import struct
import zlib
from collections.abc import Mapping
from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from typing import NamedTuple, Optional

from .chunks import make_chunk
from .errors import ArgumentError, FormatError
from .header import ColorType

logger = logging.getLogger(__name__)

GAMMA_SCALE = 100000
ZTXT_THRESHOLD = 1024


class PhysicalDims(NamedTuple):
    x: int
    y: int
    unit: int   #0 = nieznana (tylko proporcje), 1 = metr


#niezmienny slownik tekstow metadanych
class TextMap(Mapping):

    def __init__(self, items=()):
        self._data = dict(items)

    def __getitem__(self, key):
        return self._data[key]

    def __iter__(self):
        return iter(self._data)

    def __len__(self):
        return len(self._data)

    def __hash__(self):
        return hash(frozenset(self._data.items()))

    def __reduce__(self):
        return TextMap, (self._data,)

    def __repr__(self):
        return f'TextMap({self._data!r})'


@dataclass(frozen=True)
class Metadata:
    text: Mapping = field(default_factory=TextMap)
    time: Optional[datetime] = None
    gamma: Optional[float] = None
    physical: Optional[PhysicalDims] = None
    significant_bits: Optional[tuple] = None
    background: Optional[tuple] = None
    transparency: Optional[tuple] = None
    srgb_intent: Optional[int] = None
    chromaticity: Optional[tuple] = None
    suggested_palette: Optional[tuple] = None
    unknown_chunks: tuple = ()
    trailing_bytes: int = 0

    def __post_init__(self):
        if not isinstance(self.text, TextMap):
            object.__setattr__(self, 'text', TextMap(self.text))

    @classmethod
    def empty(cls):
        return cls()

    def has_fields(self):
        if self.text or self.unknown_chunks:
            return True
        return any(getattr(self, f.name) is not None for f in fields(self)
                   if f.default is None)


#slowo kluczowe tekstu: 'Creation Time' <-> 'creation_time'
def normalize_key(keyword):
    return keyword.lower().replace(' ', '_')


def keyword_of(key):
    keyword = ' '.join(part.capitalize() for part in key.split('_'))
    if not 1 <= len(keyword) <= 79:
        raise ArgumentError(f'text keyword {key!r} must be 1..79 characters')
    try:
        keyword.encode('latin-1')
    except UnicodeEncodeError:
        raise ArgumentError(f'text keyword {key!r} is not latin-1') from None
    return keyword


def _split_keyword(d, typ):
    try:
        key, rest = d.split(b'\x00', 1)
    except ValueError:
        raise FormatError(f'malformed {typ} chunk') from None
    if not 1 <= len(key) <= 79:
        raise FormatError(f'{typ} keyword length {len(key)} out of range')
    return key.decode('latin-1'), rest


def _decompress_text(data, typ):
    try:
        return zlib.decompress(data)
    except zlib.error as exc:
        raise FormatError(f'malformed compressed text in {typ}: {exc}') from exc


#niekompresowany tekst: key\0value
def parse_text(typ, d):
    if typ == b'tEXt':
        key, val = _split_keyword(d, 'tEXt')
        return key, val.decode('latin-1')

    if typ == b'zTXt':
        #tekst skompresowany zlib: key\0 [1B metoda] dane
        key, rest = _split_keyword(d, 'zTXt')
        if not rest or rest[0] != 0:
            raise FormatError('zTXt: unsupported compression method')
        return key, _decompress_text(rest[1:], 'zTXt').decode('latin-1')

    #iTXt: key\0 [1B flaga kompresji][1B metoda] jezyk\0 przetlumaczony klucz\0 tekst UTF-8
    key, rest = _split_keyword(d, 'iTXt')
    if len(rest) < 2:
        raise FormatError('malformed iTXt chunk')
    comp_flag, comp_method = rest[0], rest[1]
    try:
        _lang, _tkey, text = rest[2:].split(b'\x00', 2)
    except ValueError:
        raise FormatError('malformed iTXt chunk') from None
    if comp_flag:
        if comp_method != 0:
            raise FormatError('iTXt: unsupported compression method')
        text = _decompress_text(text, 'iTXt')
    try:
        return key, text.decode('utf-8')
    except UnicodeDecodeError as exc:
        raise FormatError(f'iTXt text is not UTF-8: {exc}') from exc


def _unpack(fmt, d, typ):
    try:
        return struct.unpack(fmt, d)
    except struct.error as exc:
        raise FormatError(f'malformed {typ.decode()} chunk: {exc}') from exc


#rozmiar sBIT / bKGD / tRNS zalezy od typu koloru
_SBIT_LEN = {ColorType.GRAY: 1, ColorType.RGB: 3, ColorType.INDEXED: 3, ColorType.GA: 2, ColorType.RGBA: 4}
_KEY_FMT = {ColorType.GRAY: '>H', ColorType.GA: '>H', ColorType.RGB: '>HHH', ColorType.RGBA: '>HHH'}


def parse_ancillary(chunks, header, keep_unknown=True, palette=None, trailing_bytes=0):
    """Collect the ancillary chunks of a stream into a :class:`Metadata`."""
    values = {'text': {}}
    unknown = []

    for chunk in chunks:
        t, d = chunk.type, chunk.data
        if t in (b'tEXt', b'zTXt', b'iTXt'):
            key, val = parse_text(t, d)
            values['text'][normalize_key(key)] = val

        elif t == b'tIME':
            y, mo, day, h, mi, s = _unpack('>HBBBBB', d, t)
            try:
                #sekunda 60 dopuszczalna w PNG (sekunda przestepna)
                values['time'] = datetime(y, mo, day, h, mi, min(s, 59), tzinfo=timezone.utc)
            except ValueError as exc:
                raise FormatError(f'invalid tIME value: {exc}') from exc

        elif t == b'gAMA':
            gamma, = _unpack('>I', d, t)
            if gamma == 0:
                raise FormatError('gAMA value must be positive')
            values['gamma'] = gamma / GAMMA_SCALE

        elif t == b'pHYs':
            values['physical'] = PhysicalDims(*_unpack('>IIB', d, t))

        elif t == b'sBIT':
            if len(d) != _SBIT_LEN[header.color_type]:
                raise FormatError(f'sBIT length {len(d)} invalid for {header.color_type.name}')
            values['significant_bits'] = tuple(d)

        elif t == b'bKGD':
            if header.color_type == ColorType.INDEXED:
                values['background'] = _unpack('>B', d, t)
            else:
                values['background'] = _unpack(_KEY_FMT[header.color_type], d, t)

        elif t == b'tRNS':
            if header.color_type == ColorType.INDEXED:
                if palette is not None and len(d) > len(palette):
                    raise FormatError('tRNS has more entries than PLTE')
                values['transparency'] = tuple(d)
            elif header.color_type in (ColorType.GRAY, ColorType.RGB):
                values['transparency'] = _unpack(_KEY_FMT[header.color_type], d, t)
            else:
                raise FormatError(f'tRNS not allowed for {header.color_type.name}')

        elif t == b'sRGB':
            intent, = _unpack('>B', d, t)
            if intent > 3:
                raise FormatError(f'invalid sRGB rendering intent {intent}')
            values['srgb_intent'] = intent

        elif t == b'cHRM':
            values['chromaticity'] = tuple(v / GAMMA_SCALE for v in _unpack('>8I', d, t))

        elif t == b'PLTE':
            #paleta sugerowana w obrazie truecolor
            if header.color_type != ColorType.INDEXED:
                logger.warning('PLTE in %s image kept as suggested palette', header.color_type.name)
                values['suggested_palette'] = tuple(tuple(d[i:i + 3]) for i in range(0, len(d), 3))

        elif t in (b'IHDR', b'IDAT', b'IEND'):
            continue

        elif keep_unknown:
            unknown.append(chunk)
        else:
            logger.warning('unknown chunk %s dropped', t.decode('ascii'))

    return Metadata(unknown_chunks=tuple(unknown), trailing_bytes=trailing_bytes, **values)


def text_chunk(key, value):
    keyword = keyword_of(key).encode('latin-1')
    try:
        raw = value.encode('latin-1')
    except UnicodeEncodeError:
        #poza latin-1 -> iTXt w UTF-8, bez kompresji i bez jezyka
        return make_chunk(b'iTXt', keyword + b'\x00\x00\x00\x00\x00' + value.encode('utf-8'))
    if len(raw) >= ZTXT_THRESHOLD:
        return make_chunk(b'zTXt', keyword + b'\x00\x00' + zlib.compress(raw))
    return make_chunk(b'tEXt', keyword + b'\x00' + raw)


def time_chunk(value):
    #naiwny datetime traktujemy jako czas lokalny
    value = value.astimezone(timezone.utc)
    return make_chunk(b'tIME', struct.pack('>HBBBBB', value.year, value.month, value.day,
                                           value.hour, value.minute, value.second))


def gamma_chunk(gamma):
    #gAMA zapisywany jako liczba calkowita gamma * 100000
    return _pack('>I', [int(round(gamma * GAMMA_SCALE))], b'gAMA')


def _pack(fmt, values, typ):
    try:
        return make_chunk(typ, struct.pack(fmt, *values))
    except struct.error as exc:
        raise ArgumentError(f'cannot serialize {typ.decode()}: {exc}') from exc


def serialize_metadata(meta, header):
    """Build the ancillary chunks of ``meta``.

    Returns ``(before_plte, after_plte)``: chunks that must precede PLTE and
    chunks that go between PLTE and the first IDAT.
    """
    before, after = [], []
    ct = header.color_type

    if meta.gamma is not None:
        before.append(gamma_chunk(meta.gamma))
    if meta.chromaticity is not None:
        before.append(_pack('>8I', [int(round(v * GAMMA_SCALE)) for v in meta.chromaticity], b'cHRM'))
    if meta.srgb_intent is not None:
        before.append(_pack('>B', [meta.srgb_intent], b'sRGB'))
    if meta.significant_bits is not None:
        before.append(_pack('>%dB' % _SBIT_LEN[ct], meta.significant_bits, b'sBIT'))

    if meta.background is not None:
        after.append(_pack('>B' if ct == ColorType.INDEXED else _KEY_FMT[ct], meta.background, b'bKGD'))
    if meta.transparency is not None:
        if ct == ColorType.INDEXED:
            after.append(_pack('>%dB' % len(meta.transparency), meta.transparency, b'tRNS'))
        elif ct in (ColorType.GRAY, ColorType.RGB):
            after.append(_pack(_KEY_FMT[ct], meta.transparency, b'tRNS'))
        else:
            logger.warning('tRNS dropped for %s image', ct.name)
    if meta.physical is not None:
        after.append(_pack('>IIB', meta.physical, b'pHYs'))
    if meta.time is not None:
        after.append(time_chunk(meta.time))
    for key, value in meta.text.items():
        after.append(text_chunk(key, value))
    after.extend(make_chunk(c.type, c.data) for c in meta.unknown_chunks)

    return before, after
