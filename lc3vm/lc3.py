"""
The LC-3 machine: registers, memory, the fetch-decode-execute loop,
and the TRAP service routines.

TRAP routines run natively rather than through an OS image, and TRAP
does not save the return address in R7. The reserved opcode (x1101)
is a no-op unless strict decoding is on.
"""

import io
import sys
from enum import IntEnum

from .errors import (FetchError, IllegalOpcode, ImageError, MachineError,
                     PrivilegedInstruction, UnknownTrap)
from .keyboard import KeyboardCell, KeyboardPoller
from .loader import parse_words, read_image, write_image
from .memory import Memory

PC_START = 0x3000


class Opcode(IntEnum):
    BR = 0b0000
    ADD = 0b0001
    LD = 0b0010
    ST = 0b0011
    JSR = 0b0100
    AND = 0b0101
    LDR = 0b0110
    STR = 0b0111
    RTI = 0b1000
    NOT = 0b1001
    LDI = 0b1010
    STI = 0b1011
    JMP = 0b1100
    RES = 0b1101
    LEA = 0b1110
    TRAP = 0b1111


class Trap(IntEnum):
    GETC = 0x20
    OUT = 0x21
    PUTS = 0x22
    IN = 0x23
    PUTSP = 0x24
    HALT = 0x25


def ascii_str(i):
    if i < 256:
        if i < 32 or i > 127:
            return "(or %s)" % i
        else:
            return "(or %s, %s)" % (i, repr(chr(i)))
    else:
        return ""


class HEX(int):
    def __repr__(self):
        return lc_hex(self)


def lc_hex(h):
    """ Format the value in the form xFFFF """
    return 'x%04X' % lc_bin(h)


def lc_bin(v):
    """ Truncate any extra bytes """
    return v & 0xFFFF


def sext(binary, bits):
    """
    Sign-extend the low `bits` bits of binary to 16 bits.
    """
    binary &= (1 << bits) - 1
    if binary & (1 << (bits - 1)):
        return (binary | (0xFFFF << bits)) & 0xFFFF
    return binary


def lc_int(v):
    if v & (1 << 15): # negative
        return -((~(v & 0xFFFF) + 1) & 0xFFFF)
    else:
        return v


def plus(v1, v2):
    """
    Add two values together, wrapping at 65536.
    """
    return lc_bin(v1 + v2)


class LC3(object):
    """
    The LC3 Computer. Loads object images and executes them until HALT
    or a MachineError.
    """
    flags = {'n': 1 << 11, 'z': 1 << 10, 'p': 1 << 9}
    # Based on appendix figure C.2 and C.7 states, and 1 cycle for each memory read
    cycles = {
        Opcode.BR:   5 + 1,
        Opcode.ADD:  5 + 1,
        Opcode.LD:   7 + 3, # + 2 memory reads
        Opcode.ST:   7 + 2, # + 1 memory read, one store
        Opcode.JSR:  6 + 1,
        Opcode.AND:  5 + 1,
        Opcode.LDR:  7 + 2,
        Opcode.STR:  7 + 3,
        Opcode.RTI: 12 + 3,
        Opcode.NOT:  5 + 1,
        Opcode.LDI:  9 + 3,
        Opcode.STI:  9 + 3,
        Opcode.JMP:  5 + 1, # and RET
        Opcode.RES:  5 + 1,
        Opcode.LEA:  5 + 1,
        Opcode.TRAP: 7 + 2,
    }

    def __init__(self, kernel=None, input=None, output=None):
        self.kernel = kernel
        self.input = input
        self.output = output
        self.keyboard = KeyboardCell()
        self.poller = None
        # Functions for interpreting instructions:
        self.apply = {
            Opcode.BR: self.BR,
            Opcode.ADD: self.ADD,
            Opcode.LD: self.LD,
            Opcode.ST: self.ST,
            Opcode.JSR: self.JSR,
            Opcode.AND: self.AND,
            Opcode.LDR: self.LDR,
            Opcode.STR: self.STR,
            Opcode.RTI: self.RTI,
            Opcode.NOT: self.NOT,
            Opcode.LDI: self.LDI,
            Opcode.STI: self.STI,
            Opcode.JMP: self.JMP, # and RET
            Opcode.RES: self.RESERVED,
            Opcode.LEA: self.LEA,
            Opcode.TRAP: self.TRAP,
        }
        # Functions for formatting instructions:
        self.format = {
            Opcode.BR: self.BR_format,
            Opcode.ADD: self.ADD_format,
            Opcode.LD: self.LD_format,
            Opcode.ST: self.ST_format,
            Opcode.JSR: self.JSR_format,
            Opcode.AND: self.AND_format,
            Opcode.LDR: self.LDR_format,
            Opcode.STR: self.STR_format,
            Opcode.RTI: self.RTI_format,
            Opcode.NOT: self.NOT_format,
            Opcode.LDI: self.LDI_format,
            Opcode.STI: self.STI_format,
            Opcode.JMP: self.JMP_format,
            Opcode.RES: self.RESERVED_format,
            Opcode.LEA: self.LEA_format,
            Opcode.TRAP: self.TRAP_format,
        }
        self.initialize()

    def initialize(self):
        self.debug = False
        self.warn = True
        self.strict = False
        self.fetch_ranges = None
        self.cycle = 0
        self.instruction_count = 0
        self.halted = False
        self.images = []
        self.orig = HEX(PC_START)
        self.register = {0:0, 1:0, 2:0, 3:0, 4:0, 5:0, 6:0, 7:0}
        self.memory = Memory(self.keyboard)
        self.reset_registers()
        self.set_pc(PC_START)

    #### The following allow different hardware implementations:
    #### memory, register, nzp, and pc can be implemented in different
    #### means.
    def reset_registers(self):
        debug = self.debug
        self.debug = False
        for i in range(8):
            self.set_register(i, 0)
        self.set_nzp(0)
        self.debug = debug

    def set_nzp(self, value):
        value = lc_bin(value)
        self.nzp = (int(value & (1 << 15) > 0),
                    int(value == 0),
                    int((value & (1 << 15) == 0) and value != 0))
        if self.debug:
            self.Print("    NZP <=", self.get_nzp())

    def get_nzp(self, register=None):
        if register is not None:
            return self.nzp[register]
        return self.nzp

    @property
    def cond(self):
        """ The condition code as the 3-bit field nzp """
        n, z, p = self.nzp
        return (n << 2) | (z << 1) | p

    def get_pc(self):
        return self.pc

    def set_pc(self, value):
        self.pc = HEX(lc_bin(value))
        if self.debug:
            self.Print("    PC <= %s" % lc_hex(value))

    def increment_pc(self, value=1):
        self.set_pc(self.get_pc() + value)

    def get_register(self, position):
        return self.register[position]

    def set_register(self, position, value):
        self.register[position] = lc_bin(value)
        if self.debug:
            self.Print("    R%d <= %s" % (position, lc_hex(value)))

    def get_memory(self, location):
        return self.memory.read(location)

    def set_memory(self, location, value):
        self.memory.write(location, value)
        if self.debug:
            self.Print("    memory[%s] <= %s" % (lc_hex(location), lc_hex(value)))

    #### End of overridden methods

    def Print(self, *args, end="\n"):
        if self.kernel:
            self.kernel.Print(*args, end=end)
        else:
            print(*args, end=end, file=sys.stderr)

    def Error(self, string):
        if self.kernel:
            self.kernel.Error(string)
        else:
            sys.stderr.write(string)

    def write_output(self, data):
        if self.output is None and self.kernel:
            self.kernel.Print(data.decode('latin-1'), end="")
            return
        stream = self.output
        if stream is None:
            stream = getattr(sys.stdout, 'buffer', sys.stdout)
        if isinstance(stream, io.TextIOBase):
            stream.write(data.decode('latin-1'))
        else:
            stream.write(data)
        stream.flush()

    def set_input(self, stream):
        """ Replace the keyboard's input stream; drops any pending character """
        self.stop_keyboard()
        self.poller = None
        self.input = stream
        self.keyboard = KeyboardCell()
        self.memory.keyboard = self.keyboard

    def start_keyboard(self):
        if self.poller is None:
            stream = self.input
            if stream is None:
                stream = getattr(sys.stdin, 'buffer', sys.stdin)
            self.poller = KeyboardPoller(stream, self.keyboard)
        self.poller.start()

    def stop_keyboard(self):
        if self.poller is not None:
            self.poller.stop()

    def load_words(self, origin, words, bounded=False):
        """
        Copy words into memory at origin. The first image loaded sets
        the entry point. With bounded=True, the loaded words join the
        fetchable window; fetching outside every bounded load raises
        FetchError.
        """
        origin = lc_bin(origin)
        count = self.memory.load(origin, words)
        if not self.images:
            self.orig = HEX(origin)
            self.set_pc(origin)
        self.images.append((HEX(origin), count))
        if bounded:
            if self.fetch_ranges is None:
                self.fetch_ranges = []
            self.fetch_ranges.append(range(origin, origin + count))
        return count

    def load_image(self, filename):
        origin, words = read_image(filename)
        return self.load_words(origin, words)

    def save(self, filename):
        if not self.images:
            raise ImageError("nothing loaded")
        origin, count = self.images[0]
        write_image(filename, origin,
                    [self.memory.peek(origin + i) for i in range(count)])

    def fetch(self):
        pc = self.get_pc()
        if (self.fetch_ranges is not None and
                not any(pc in window for window in self.fetch_ranges)):
            raise FetchError("no instruction at %s" % lc_hex(pc), HEX(pc))
        return self.get_memory(pc)

    def run(self):
        self.halted = False
        if self.debug:
            self.Print("Tracing Script! PC* is incremented Program Counter")
            self.Print("(Instr/Cycles Count) INSTR (PC*: xHEX)")
            self.Print("----------------------------------------------------")
        self.start_keyboard()
        try:
            while not self.halted:
                self.step()
        finally:
            self.stop_keyboard()

    def step(self):
        pc = self.get_pc()
        instruction = self.fetch()
        instr = Opcode(instruction >> 12)
        self.instruction_count += 1
        self.cycle += self.cycles[instr]
        self.increment_pc()
        if self.debug:
            self.Print("(%s/%s) %s (%s*: %s)" % (
                self.instruction_count,
                self.cycle,
                self.format[instr](instruction, pc),
                lc_hex(self.get_pc()),
                lc_hex(instruction)))
        try:
            self.apply[instr](instruction)
        except MachineError as exc:
            if exc.pc is None:
                exc.pc = HEX(pc)
            raise

    def dump_registers(self):
        self.Print()
        self.Print("=" * 60)
        self.Print("Registers:")
        self.Print("=" * 60)
        self.Print("PC:", lc_hex(self.get_pc()))
        for r, v in zip("NZP", self.get_nzp()):
            self.Print("%s: %s" % (r, v), end=" ")
        self.Print()
        for key in range(8):
            self.Print("R%d: %s" % (key, lc_hex(self.get_register(key))), end=" ")
            if key % 4 == 3:
                self.Print()

    def dump(self, start=None, stop=None, raw=False, header=True):
        if start is None:
            start = self.orig
        if stop is None:
            count = self.images[0][1] if self.images else 10
            stop = start + count
        else:
            stop = stop + 1
        if stop <= start:
            stop = start + 10
        if stop - start > 100:
            stop = start + 100
        stop = min(stop, 0x10000)
        if header:
            self.Print("=" * 60)
            self.Print("Memory dump:" if raw else "Memory disassembled:")
            self.Print("=" * 60)
        for location in range(start, stop):
            instruction = self.memory.peek(location)
            if raw:
                self.Print("%s: %s" % (lc_hex(location), lc_hex(instruction)))
            else:
                instr = Opcode(instruction >> 12)
                self.Print("%s: %s  %s" % (
                    lc_hex(location), lc_hex(instruction),
                    self.format[instr](instruction, location)))

    def report(self):
        self.Print("=" * 60)
        self.Print("Computation completed")
        self.Print("=" * 60)
        self.Print("Instructions:", self.instruction_count)
        self.Print("Cycles: %s (%f milliseconds)" %
                   (self.cycle, self.cycle * 1./2000000))
        self.dump_registers()

    def target(self, offset, bits, location):
        """ Address reached by a PC-relative offset from the instruction at location """
        return lc_hex(plus(location + 1, sext(offset, bits)))

    def ADD(self, instruction):
        dst = (instruction & 0b0000111000000000) >> 9
        sr1 = (instruction & 0b0000000111000000) >> 6
        if (instruction & 0b0000000000100000) == 0:
            sr2 = instruction & 0b0000000000000111
            self.set_register(dst, plus(self.get_register(sr1),
                                        self.get_register(sr2)))
        else:
            imm5 = instruction & 0b0000000000011111
            self.set_register(dst, plus(self.get_register(sr1), sext(imm5, 5)))
        self.set_nzp(self.get_register(dst))

    def ADD_format(self, instruction, location):
        dst = (instruction & 0b0000111000000000) >> 9
        sr1 = (instruction & 0b0000000111000000) >> 6
        if (instruction & 0b0000000000100000):
            imm5 = instruction & 0b0000000000011111
            return "ADD R%d, R%d, #%s" % (dst, sr1, lc_int(sext(imm5, 5)))
        else:
            sr2 = instruction & 0b0000000000000111
            return "ADD R%d, R%d, R%d" % (dst, sr1, sr2)

    def AND(self, instruction):
        dst = (instruction & 0b0000111000000000) >> 9
        sr1 = (instruction & 0b0000000111000000) >> 6
        if (instruction & 0b0000000000100000) == 0:
            sr2 = instruction & 0b0000000000000111
            self.set_register(dst, self.get_register(sr1) & self.get_register(sr2))
        else:
            imm5 = instruction & 0b0000000000011111
            self.set_register(dst, self.get_register(sr1) & sext(imm5, 5))
        self.set_nzp(self.get_register(dst))

    def AND_format(self, instruction, location):
        return self.ADD_format(instruction, location).replace("ADD", "AND", 1)

    def NOT(self, instruction):
        dst = (instruction & 0b0000111000000000) >> 9
        src = (instruction & 0b0000000111000000) >> 6
        self.set_register(dst, ~self.get_register(src))
        self.set_nzp(self.get_register(dst))

    def NOT_format(self, instruction, location):
        dst = (instruction & 0b0000111000000000) >> 9
        src = (instruction & 0b0000000111000000) >> 6
        return "NOT R%d, R%d" % (dst, src)

    def BR(self, instruction):
        n = instruction & self.flags['n']
        z = instruction & self.flags['z']
        p = instruction & self.flags['p']
        pc_offset9 = instruction & 0b0000000111111111
        if not (n or z or p) and self.warn:
            self.Error("Attempting to execute NOOP at %s\n" % lc_hex(self.get_pc() - 1))
        if (n and self.get_nzp(0) or
            z and self.get_nzp(1) or
            p and self.get_nzp(2)):
            self.set_pc(plus(self.get_pc(), sext(pc_offset9, 9)))
            if self.debug:
                self.Print("    True - branching to", lc_hex(self.get_pc()))
        elif self.debug:
            self.Print("    False - continuing...")

    def BR_format(self, instruction, location):
        instr = "BR" + "".join(f for f in "nzp" if instruction & self.flags[f])
        pc_offset9 = instruction & 0b0000000111111111
        if instr == "BR":
            return "NOOP - (no BR to %s) %s" % (
                self.target(pc_offset9, 9, location), ascii_str(pc_offset9))
        return "%s %s" % (instr, self.target(pc_offset9, 9, location))

    def JMP(self, instruction):
        base = (instruction & 0b0000000111000000) >> 6
        self.set_pc(self.get_register(base))

    def JMP_format(self, instruction, location):
        base = (instruction & 0b0000000111000000) >> 6
        if base == 7:
            return "RET"
        else:
            return "JMP R%d" % base

    def JSR(self, instruction):
        temp = self.get_pc()
        if (instruction & 0b0000100000000000): # JSR
            pc_offset11 = instruction & 0b0000011111111111
            self.set_pc(plus(self.get_pc(), sext(pc_offset11, 11)))
        else:                                  # JSRR
            base = (instruction & 0b0000000111000000) >> 6
            self.set_pc(self.get_register(base))
        self.set_register(7, temp)

    def JSR_format(self, instruction, location):
        if (instruction & 0b0000100000000000): # JSR
            pc_offset11 = instruction & 0b0000011111111111
            return "JSR %s" % self.target(pc_offset11, 11, location)
        else:                                  # JSRR
            base = (instruction & 0b0000000111000000) >> 6
            return "JSRR R%d" % base

    def LD(self, instruction):
        dst = (instruction & 0b0000111000000000) >> 9
        pc_offset9 = instruction & 0b0000000111111111
        self.set_register(dst, self.get_memory(plus(self.get_pc(), sext(pc_offset9, 9))))
        self.set_nzp(self.get_register(dst))

    def LD_format(self, instruction, location):
        dst = (instruction & 0b0000111000000000) >> 9
        pc_offset9 = instruction & 0b0000000111111111
        return "LD R%d, %s" % (dst, self.target(pc_offset9, 9, location))

    def LDI(self, instruction):
        dst = (instruction & 0b0000111000000000) >> 9
        pc_offset9 = instruction & 0b0000000111111111
        pointer = self.get_memory(plus(self.get_pc(), sext(pc_offset9, 9)))
        self.set_register(dst, self.get_memory(pointer))
        self.set_nzp(self.get_register(dst))

    def LDI_format(self, instruction, location):
        return "LDI" + self.LD_format(instruction, location)[2:]

    def LDR(self, instruction):
        dst = (instruction & 0b0000111000000000) >> 9
        base = (instruction & 0b0000000111000000) >> 6
        offset6 = instruction & 0b0000000000111111
        self.set_register(dst, self.get_memory(plus(self.get_register(base), sext(offset6, 6))))
        self.set_nzp(self.get_register(dst))

    def LDR_format(self, instruction, location):
        dst = (instruction & 0b0000111000000000) >> 9
        base = (instruction & 0b0000000111000000) >> 6
        offset6 = instruction & 0b0000000000111111
        return "LDR R%d, R%d, #%s" % (dst, base, lc_int(sext(offset6, 6)))

    def LEA(self, instruction):
        dst = (instruction & 0b0000111000000000) >> 9
        pc_offset9 = instruction & 0b0000000111111111
        self.set_register(dst, plus(self.get_pc(), sext(pc_offset9, 9)))
        self.set_nzp(self.get_register(dst))

    def LEA_format(self, instruction, location):
        return "LEA" + self.LD_format(instruction, location)[2:]

    def ST(self, instruction):
        src = (instruction & 0b0000111000000000) >> 9
        pc_offset9 = instruction & 0b0000000111111111
        self.set_memory(plus(self.get_pc(), sext(pc_offset9, 9)), self.get_register(src))

    def ST_format(self, instruction, location):
        return "ST" + self.LD_format(instruction, location)[2:]

    def STI(self, instruction):
        src = (instruction & 0b0000111000000000) >> 9
        pc_offset9 = instruction & 0b0000000111111111
        pointer = self.get_memory(plus(self.get_pc(), sext(pc_offset9, 9)))
        self.set_memory(pointer, self.get_register(src))

    def STI_format(self, instruction, location):
        return "STI" + self.LD_format(instruction, location)[2:]

    def STR(self, instruction):
        src = (instruction & 0b0000111000000000) >> 9
        base = (instruction & 0b0000000111000000) >> 6
        offset6 = instruction & 0b0000000000111111
        self.set_memory(plus(self.get_register(base), sext(offset6, 6)),
                        self.get_register(src))

    def STR_format(self, instruction, location):
        return "STR" + self.LDR_format(instruction, location)[3:]

    def RTI(self, instruction):
        raise PrivilegedInstruction("privilege mode exception: RTI in user mode")

    def RTI_format(self, instruction, location):
        return "RTI"

    def RESERVED(self, instruction):
        if self.strict:
            raise IllegalOpcode("attempt to execute reserved instruction %s" %
                                lc_hex(instruction))
        if self.warn:
            self.Error("Ignoring reserved instruction %s at %s\n" %
                       (lc_hex(instruction), lc_hex(self.get_pc() - 1)))

    def RESERVED_format(self, instruction, location):
        return ";; RESERVED %s %s" % (lc_hex((instruction >> 12) & 0xF),
                                      lc_hex(instruction & 0b0000111111111111))

    def getc(self):
        self.start_keyboard()
        return self.keyboard.take(block=True)

    def TRAP(self, instruction):
        vector = instruction & 0b0000000011111111
        if vector == Trap.GETC:
            self.set_register(0, self.getc())
            self.set_nzp(self.get_register(0))
        elif vector == Trap.OUT:
            self.write_output(bytes([self.get_register(0) & 0xFF]))
        elif vector == Trap.PUTS:
            self.write_output(bytes(self.string_at(self.get_register(0))))
        elif vector == Trap.IN:
            self.write_output(b"\nInput a character> ")
            char = self.getc()
            self.write_output(bytes([char]))
            self.set_register(0, char)
            self.set_nzp(self.get_register(0))
        elif vector == Trap.PUTSP:
            self.write_output(bytes(self.packed_string_at(self.get_register(0))))
        elif vector == Trap.HALT:
            self.halted = True
            if self.debug:
                self.Print("    HALT")
        else:
            raise UnknownTrap(vector)

    def TRAP_format(self, instruction, location):
        vector = instruction & 0b0000000011111111
        try:
            return Trap(vector).name
        except ValueError:
            return ";; Invalid TRAP vector: %s" % lc_hex(vector)

    def string_at(self, location):
        """ One character per word, up to a zero word """
        chars = []
        memory = self.get_memory(location)
        while memory != 0:
            chars.append(memory & 0b0000000011111111)
            location = plus(location, 1)
            memory = self.get_memory(location)
        return chars

    def packed_string_at(self, location):
        """ Two characters per word, low byte first, up to a zero byte """
        chars = []
        while True:
            memory = self.get_memory(location)
            for char in (memory & 0xFF, memory >> 8):
                if char == 0:
                    return chars
                chars.append(char)
            location = plus(location, 1)

    def execute(self, text):
        """
        Run one kernel cell: either a %-directive or a listing of words
        whose first word is the origin. Returns True on success.
        """
        words = text.split()
        if not words:
            return True
        if not words[0].startswith("%"):
            try:
                image = parse_words(text)
                if not image:
                    raise ImageError("no words to load")
                self.load_words(image[0], image[1:])
            except ImageError as exc:
                self.Error("\nLoad error\n%s\n" % exc)
                return False
            self.Print("Loaded %d words at %s. Use %%dis or %%dump to examine; use %%exe to run." %
                       (len(image) - 1, lc_hex(image[0])))
            return True
        command, args = words[0], words[1:]
        try:
            if command == "%load":
                for filename in args:
                    count = self.load_image(filename)
                    self.Print("Loaded %d words from %s" % (count, filename))
            elif command == "%exe":
                self.cycle = 0
                self.instruction_count = 0
                self.set_pc(self.orig)
                self.reset_registers()
                try:
                    self.run()
                except MachineError as exc:
                    self.Error("\nRuntime error:\n    memory %s\n%s\n" %
                               (lc_hex(exc.pc if exc.pc is not None else self.get_pc()), exc))
                    return False
                self.report()
            elif command == "%input":
                data = text.strip()[len("%input"):].strip().replace("\\n", "\n")
                self.set_input(io.BytesIO(data.encode('latin-1')))
            elif command == "%regs":
                self.dump_registers()
            elif command in ("%dump", "%dis"):
                self.dump(*[int("0" + word, 16) for word in args],
                          raw=(command == "%dump"))
            elif command == "%pc":
                self.set_pc(int("0" + args[0], 16))
                self.dump_registers()
            elif command == "%reg":
                self.set_register(int(args[0]), int("0" + args[1], 16))
                self.dump_registers()
            elif command == "%mem":
                location = int("0" + args[0], 16)
                self.set_memory(location, int("0" + args[1], 16))
                self.dump(location, location, raw=True, header=False)
            elif command == "%d":
                self.debug = not self.debug
                self.Print("Debug is now %s" % ["off", "on"][int(self.debug)])
            elif command == "%strict":
                self.strict = not self.strict
                self.Print("Reserved opcodes are now %s" %
                           ["ignored", "an error"][int(self.strict)])
            elif command == "%warn":
                self.warn = bool(int(args[0]))
            elif command == "%reset":
                self.initialize()
                self.dump_registers()
            elif command == "%save":
                self.save(args[0])
                self.Print("Saved %s" % args[0])
            else:
                self.Error("Invalid Interactive Magic Directive\nHint: %help\n")
                return False
        except (ValueError, IndexError, OSError) as exc:
            self.Error("Error in %s: %s\n" % (command, exc))
            return False
        return True
