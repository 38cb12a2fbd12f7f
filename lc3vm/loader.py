"""
Object files: a big-endian origin word followed by big-endian data
words, as written by lc3as.
"""

import struct

from .errors import ImageError


def read_image(filename):
    """ Return (origin, words) from an object file """
    try:
        with open(filename, 'rb') as fp:
            data = fp.read()
    except OSError as exc:
        raise ImageError("cannot read '%s': %s" % (filename, exc))
    count = len(data) // 2
    if count == 0:
        raise ImageError("'%s' has no origin word" % filename)
    words = struct.unpack('>%dH' % count, data[:count * 2])
    return words[0], list(words[1:])


def write_image(filename, origin, words):
    with open(filename, 'wb') as fp:
        fp.write(struct.pack('>H', origin & 0xFFFF))
        fp.write(struct.pack('>%dH' % len(words),
                             *[word & 0xFFFF for word in words]))


def parse_words(text):
    """
    Parse a listing of words, one per token: xFFFF hex or 16-digit
    binary (spaces between groups allowed per line). Comments start
    with ';'.
    """
    words = []
    for line in text.splitlines():
        line = line.split(';')[0].strip()
        if not line:
            continue
        joined = "".join(line.split())
        if is_bin(joined):
            if len(joined) != 16:
                raise ImageError('Not a 16-bit word: "%s"' % line)
            words.append(int(joined, 2))
            continue
        for word in line.split():
            word = word.rstrip(',')
            if not is_hex(word):
                raise ImageError('Not a word: "%s"' % word)
            words.append(int(word[1:], 16) & 0xFFFF)
    return words


def is_composed_of(s, letters):
    return len(s) > 0 and all(c in letters for c in s)


def is_hex(s):
    return (len(s) > 1 and s[0] in "xX" and
            is_composed_of(s[1:].upper(), "0123456789ABCDEF"))


def is_bin(s):
    return is_composed_of(s, "01")
