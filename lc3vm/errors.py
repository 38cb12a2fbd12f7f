"""
Errors raised by the LC-3 machine. Every MachineError is fatal to the
current run and is surfaced unchanged by LC3.run().
"""


class MachineError(Exception):
    def __init__(self, message, pc=None):
        super(MachineError, self).__init__(message)
        self.pc = pc


class FetchError(MachineError):
    pass


class UnknownTrap(MachineError):
    def __init__(self, vector, pc=None):
        super(UnknownTrap, self).__init__(
            "invalid TRAP vector: x%02X" % vector, pc)
        self.vector = vector


class PrivilegedInstruction(MachineError):
    pass


class IllegalOpcode(MachineError):
    pass


class InputExhausted(MachineError):
    pass


class ImageError(ValueError):
    pass
