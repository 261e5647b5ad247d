import io

import numpy as np
import pytest
from PIL import Image

from pngcodec.convert import pack_samples


@pytest.fixture
def rng():
    return np.random.default_rng(2083)


#zapis obrazu przez PIL - niezalezna referencja dla dekodera
def pil_png(img, **params):
    buf = io.BytesIO()
    img.save(buf, 'PNG', **params)
    return buf.getvalue()


def pil_open(data):
    img = Image.open(io.BytesIO(data))
    img.load()
    return img


#losowe probki w zakresie glebi, spakowane jak w pliku PNG (wyzerowane bity dopelnienia)
def random_raw(rng, width, height, channels, bit_depth, limit=None):
    top = limit if limit is not None else 2 ** bit_depth
    dtype = np.uint16 if bit_depth == 16 else np.uint8
    samples = rng.integers(0, top, size=(height, width, channels)).astype(dtype)
    return pack_samples(samples, bit_depth).tobytes(), samples


@pytest.fixture
def gradient_rgba():
    #plynny gradient dobrze sie kompresuje
    h, w = 133, 128
    y, x = np.mgrid[0:h, 0:w]
    arr = np.stack([x * 2, y, (x + y) % 256, np.full_like(x, 200)], axis=-1)
    return arr.astype(np.uint8)


@pytest.fixture
def rgb_sample(rng):
    #256x224 RGB, bez przeplotu
    arr = rng.integers(0, 256, size=(224, 256, 3), dtype=np.uint8)
    return arr, pil_png(Image.fromarray(arr))
