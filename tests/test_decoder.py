import copy
import pickle
import struct
import threading
import zlib

import numpy as np
import pytest
from PIL import Image

from conftest import pil_open, pil_png
from pngcodec import Decoder, Metadata, PixelBuffer, decode, encode, read_header
from pngcodec.chunks import PngSignature, make_chunk, read_chunks, write_chunks
from pngcodec.errors import FormatError, IntegrityError, OptionTypeError, SessionError
from pngcodec.header import ColorType, InterlaceMethod


def test_rgb_scenario(rgb_sample):
    arr, png = rgb_sample
    pixels, meta = decode(png)
    assert (pixels.width, pixels.height) == (256, 224)
    assert pixels.stride == 768
    assert len(pixels) == 768 * 224
    assert pixels.pixel_format == 'RGB'
    assert pixels.data == arr.tobytes()
    assert np.array_equal(pixels.to_array(), arr)
    assert pixels.row(5) == arr[5].tobytes()


@pytest.mark.parametrize('mode,fmt,channels', [
    ('L', 'GRAY', 1),
    ('LA', 'GA', 2),
    ('RGB', 'RGB', 3),
    ('RGBA', 'RGBA', 4),
])
def test_decode_pil_modes(rng, mode, fmt, channels):
    arr = rng.integers(0, 256, size=(17, 23, channels), dtype=np.uint8)
    img = Image.fromarray(arr[..., 0] if channels == 1 else arr)
    assert img.mode == mode
    pixels, _ = decode(pil_png(img), pixel_format=fmt)
    assert pixels.num_components == channels
    assert pixels.stride == 23 * channels
    assert pixels.data == arr.tobytes()


def test_decode_pil_palette(rng):
    #4 kolory -> PIL zapisuje PLTE z glebia 2 bity
    idx = rng.integers(0, 4, size=(9, 13), dtype=np.uint8)
    img = Image.frombytes('P', (13, 9), idx.tobytes())
    img.putpalette([255, 0, 0, 0, 255, 0, 0, 0, 255, 255, 255, 255])
    png = pil_png(img, bits=2)
    header, _ = read_header(png)
    assert header.color_type == ColorType.INDEXED
    assert header.bit_depth == 2

    pixels, _ = decode(png, pixel_format='INDEXED')
    assert pixels.data == idx.tobytes()
    pixels, _ = decode(png)
    colors = np.array([[255, 0, 0], [0, 255, 0], [0, 0, 255], [255, 255, 255]], np.uint8)
    assert pixels.data == colors[idx].tobytes()


def test_decode_pil_bilevel(rng):
    bits = rng.integers(0, 2, size=(7, 10)).astype(bool)
    png = pil_png(Image.fromarray(bits))
    header, _ = read_header(png)
    assert header.bit_depth == 1
    pixels, _ = decode(png, pixel_format='GRAY')
    assert pixels.data == (bits.astype(np.uint8) * 255).tobytes()
    pixels, _ = decode(png, pixel_format='GRAY', keep_depth=True)
    assert pixels.bit_depth == 1
    assert pixels.stride == 2
    assert np.array_equal(pixels.to_array()[..., 0], bits.astype(np.uint8))


def test_decode_pil_16bit(rng):
    arr = rng.integers(0, 65536, size=(6, 5)).astype(np.uint16)
    png = pil_png(Image.fromarray(arr))
    header, _ = read_header(png)
    assert header.bit_depth == 16
    pixels, _ = decode(png, pixel_format='GRAY', keep_depth=True)
    assert pixels.bit_depth == 16
    assert pixels.stride == 10
    assert pixels.data == arr.astype('>u2').tobytes()
    pixels, _ = decode(png, pixel_format='GRAY')
    assert pixels.bit_depth == 8
    assert pixels.data == ((arr.astype(np.uint32) * 255 + 32895) >> 16).astype(np.uint8).tobytes()


def test_pixel_buffer_to_image(gradient_rgba):
    h, w, _ = gradient_rgba.shape
    pixels, _ = decode(encode(w, h, gradient_rgba.tobytes(), pixel_format='RGBA'), pixel_format='RGBA')
    img = pixels.to_image()
    assert img.mode == 'RGBA' and img.size == (w, h)
    assert np.array_equal(np.asarray(img), gradient_rgba)


def test_read_header_stops_before_idat(rgb_sample):
    _, png = rgb_sample
    header, meta = read_header(png[:100])
    assert (header.width, header.height) == (256, 224)
    assert header.color_type == ColorType.RGB
    assert header.interlace_method == InterlaceMethod.NONE
    assert isinstance(meta, Metadata)


def test_multiple_idat_and_zlib_streams():
    raw = bytes(range(12))
    png = encode(2, 2, raw, time=False)
    chunks, _ = read_chunks(png)
    idat = chunks[1].data
    split = chunks[:1] + [make_chunk(b'IDAT', idat[:5]), make_chunk(b'IDAT', idat[5:])] + chunks[2:]
    assert decode(write_chunks(split))[0].data == raw

    #kazda linia jako osobny strumien zlib
    lines = [b'\x00' + raw[:6], b'\x00' + raw[6:]]
    two = chunks[:1] + [make_chunk(b'IDAT', zlib.compress(l)) for l in lines] + chunks[2:]
    assert decode(write_chunks(two))[0].data == raw


def broken(transform):
    png = encode(3, 3, bytes(27), time=False)
    chunks, _ = read_chunks(png)
    return write_chunks(transform(chunks))


@pytest.mark.parametrize('transform,match', [
    (lambda c: [c[0], make_chunk(b'IDAT', b'not zlib'), c[-1]], 'zlib'),
    (lambda c: [c[0], make_chunk(b'IDAT', zlib.compress(bytes(11))), c[-1]], 'too short'),
    (lambda c: [c[0], make_chunk(b'IDAT', zlib.compress(b'\x07' + bytes(29))), c[-1]], 'filter type 7'),
    (lambda c: [c[0], make_chunk(b'IDAT', zlib.compress(bytes(30))[:-6]), c[-1]], 'zlib'),
    (lambda c: [make_chunk(b'IHDR', c[0].data[:12])] + c[1:], 'IHDR'),
    (lambda c: [make_chunk(b'IHDR', struct.pack('>IIBBBBB', 3, 3, 3, 2, 0, 0, 0))] + c[1:], 'bit depth'),
    (lambda c: [make_chunk(b'IHDR', struct.pack('>IIBBBBB', 3, 3, 8, 5, 0, 0, 0))] + c[1:], 'color type'),
    (lambda c: [make_chunk(b'IHDR', struct.pack('>IIBBBBB', 0, 3, 8, 2, 0, 0, 0))] + c[1:], 'size'),
    (lambda c: [make_chunk(b'IHDR', struct.pack('>IIBBBBB', 3, 3, 8, 2, 1, 0, 0))] + c[1:], 'compression'),
    (lambda c: [make_chunk(b'IHDR', struct.pack('>IIBBBBB', 3, 3, 8, 2, 0, 1, 0))] + c[1:], 'filter'),
    (lambda c: [make_chunk(b'IHDR', struct.pack('>IIBBBBB', 3, 3, 8, 2, 0, 0, 2))] + c[1:], 'interlace'),
    (lambda c: c[:-1], 'truncated chunk header'),
])
def test_malformed_streams(transform, match):
    with pytest.raises(FormatError, match=match):
        decode(broken(transform))


def test_palette_problems():
    raw = bytes([0, 1, 2])
    png = encode(3, 1, raw, pixel_format='INDEXED', palette=[(0, 0, 0)] * 3, time=False)
    chunks, _ = read_chunks(png)
    short = [make_chunk(b'PLTE', bytes(6)) if c.type == b'PLTE' else c for c in chunks]
    with pytest.raises(FormatError, match='palette index 2'):
        decode(write_chunks(short))
    bad = [make_chunk(b'PLTE', bytes(7)) if c.type == b'PLTE' else c for c in chunks]
    with pytest.raises(FormatError, match='PLTE length'):
        decode(write_chunks(bad))
    with pytest.raises(FormatError, match='PLTE'):
        decode(write_chunks([c for c in chunks if c.type != b'PLTE']))


def test_palette_in_gray_image():
    png = encode(1, 1, b'\x00', pixel_format='GRAY', time=False)
    chunks, _ = read_chunks(png)
    with pytest.raises(FormatError, match='PLTE not allowed'):
        decode(write_chunks(chunks[:1] + [make_chunk(b'PLTE', bytes(3))] + chunks[1:]))


def test_crc_error_is_integrity_error():
    png = bytearray(encode(1, 1, b'\x00\x00\x00', time=False))
    png[-1] ^= 0xff
    with pytest.raises(IntegrityError):
        decode(bytes(png))


def test_non_bytes_input():
    with pytest.raises(OptionTypeError):
        decode('not bytes')
    with pytest.raises(FormatError):
        decode(b'')
    with pytest.raises(FormatError):
        decode(PngSignature)
    assert decode(bytearray(encode(1, 1, b'abc')))[0].data == b'abc'


def test_decoder_reused():
    dec = Decoder(pixel_format='GRAY')
    a = dec.decode(encode(1, 1, b'\x05', pixel_format='GRAY'))[0]
    b = dec.decode(encode(1, 1, b'\x09', pixel_format='GRAY'))[0]
    assert (a.data, b.data) == (b'\x05', b'\x09')


def test_session_cannot_be_copied_or_pickled():
    dec = Decoder()
    with pytest.raises(TypeError):
        copy.copy(dec)
    with pytest.raises(TypeError):
        copy.deepcopy(dec)
    with pytest.raises(TypeError):
        pickle.dumps(dec)


def test_results_are_plain_values(rgb_sample):
    _, png = rgb_sample
    pixels, meta = decode(png)
    again = pickle.loads(pickle.dumps((pixels, meta)))
    assert again == (pixels, meta)
    assert isinstance(again[0], PixelBuffer)


def test_concurrent_use_rejected(monkeypatch):
    dec = Decoder()
    png = encode(1, 1, b'abc', time=False)
    entered, release = threading.Event(), threading.Event()
    original = dec.config.compressor.inflate

    def slow_inflate(data):
        entered.set()
        release.wait(5)
        return original(data)

    monkeypatch.setattr(dec.config.compressor, 'inflate', slow_inflate)
    worker = threading.Thread(target=dec.decode, args=(png,))
    worker.start()
    try:
        assert entered.wait(5)
        with pytest.raises(SessionError):
            dec.decode(png)
    finally:
        release.set()
        worker.join()
    #po zakonczeniu pierwszego wywolania sesja jest znow wolna
    assert dec.decode(png)[0].data == b'abc'


def test_display_gamma(rng):
    arr = rng.integers(0, 256, size=(4, 4), dtype=np.uint8)
    png = encode(4, 4, arr.tobytes(), pixel_format='GRAY', gamma=1.0, time=False)
    plain, _ = decode(png, pixel_format='GRAY')
    corrected, _ = decode(png, pixel_format='GRAY', display_gamma=1.0)
    assert plain.data == corrected.data == arr.tobytes()
    brighter, _ = decode(png, pixel_format='GRAY', display_gamma=2.2)
    assert all(b >= a for a, b in zip(plain.data, brighter.data))


@pytest.mark.parametrize('fmt,order', [
    ('BGR', [2, 1, 0]),
    ('BGRA', [2, 1, 0, 3]),
    ('ARGB', [3, 0, 1, 2]),
    ('ABGR', [3, 2, 1, 0]),
])
def test_channel_orders_match_pil(gradient_rgba, fmt, order):
    _, w, _ = gradient_rgba.shape
    png = pil_png(Image.fromarray(gradient_rgba))
    expected = np.asarray(pil_open(png).convert('RGBA'))
    if fmt == 'BGR':
        expected = expected[..., :3]
    pixels, _ = decode(png, pixel_format=fmt)
    assert pixels.pixel_format == fmt
    assert pixels.stride == w * len(order)
    assert np.array_equal(pixels.to_array(), expected[..., order])
    assert np.array_equal(np.asarray(pixels.to_image()), expected)


def test_channel_order_ag(rng):
    arr = rng.integers(0, 256, size=(5, 6, 2), dtype=np.uint8)
    pixels, _ = decode(pil_png(Image.fromarray(arr)), pixel_format='AG')
    assert pixels.data == arr[..., ::-1].tobytes()
    assert pixels.to_image().mode == 'LA'
