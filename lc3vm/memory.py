from array import array

from .keyboard import KeyboardCell

MEMORY_SIZE = 1 << 16

OS_KBSR = 0xFE00  # keyboard status
OS_KBDR = 0xFE02  # keyboard data


class Memory(object):
    """
    65536 words of 16-bit memory. Reads of KBSR and KBDR reflect the
    keyboard cell rather than stored content.
    """

    def __init__(self, keyboard=None):
        self.cells = array('H', [0] * MEMORY_SIZE)
        self.keyboard = keyboard if keyboard is not None else KeyboardCell()

    def __len__(self):
        return MEMORY_SIZE

    def read(self, address):
        address &= 0xFFFF
        if address == OS_KBSR:
            self.cells[OS_KBSR] = 0x8000 if self.keyboard.available() else 0
        elif address == OS_KBDR:
            self.cells[OS_KBDR] = self.keyboard.read_data()
        return self.cells[address]

    def write(self, address, value):
        address &= 0xFFFF
        self.cells[address] = value & 0xFFFF
        if address == OS_KBDR:
            # acknowledging input consumes it
            self.keyboard.discard()

    def peek(self, address):
        """ Stored value, without touching the keyboard """
        return self.cells[address & 0xFFFF]

    def load(self, origin, words):
        count = min(len(words), MEMORY_SIZE - origin)
        for i in range(count):
            self.cells[origin + i] = words[i] & 0xFFFF
        return count

    def clear(self):
        self.cells = array('H', [0] * MEMORY_SIZE)
