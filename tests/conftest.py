import io
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest

from lc3vm.lc3 import LC3


@pytest.fixture
def lc3():
    return LC3(input=io.BytesIO(), output=io.BytesIO())


@pytest.fixture
def machine():
    """
    Build a machine with a bounded program (x3000 by default) and the
    given keyboard input.
    """
    def build(words, origin=0x3000, input=b""):
        lc3 = LC3(input=io.BytesIO(input), output=io.BytesIO())
        lc3.load_words(origin, words, bounded=True)
        return lc3
    return build
