from ._version import __version__
from .errors import (FetchError, IllegalOpcode, ImageError, InputExhausted,
                     MachineError, PrivilegedInstruction, UnknownTrap)
from .lc3 import LC3, Opcode, Trap
