import pytest

from asm import GETC, HALT, IN, OUT, PUTS, PUTSP, add, br, lea, ldi, trap
from lc3vm.errors import InputExhausted, UnknownTrap

N, Z, P = 0b100, 0b010, 0b001


def test_puts_writes_until_zero_word(machine):
    lc3 = machine([PUTS, HALT])
    lc3.memory.load(0x4000, [ord("H"), ord("I"), 0, ord("X")])
    lc3.set_register(0, 0x4000)
    lc3.run()
    assert lc3.output.getvalue() == b"HI"


def test_puts_truncates_to_low_byte(machine):
    lc3 = machine([lea(0, 2), PUTS, HALT, 0x4141, 0x0142, 0])
    lc3.run()
    assert lc3.output.getvalue() == b"AB"


def test_out(machine):
    lc3 = machine([OUT, HALT])
    lc3.set_register(0, 0x1021)
    lc3.run()
    assert lc3.output.getvalue() == b"!"


def test_putsp_unpacks_low_then_high(machine):
    lc3 = machine([lea(0, 2), PUTSP, HALT,
                   ord("e") << 8 | ord("H"),
                   ord("l") << 8 | ord("l"),
                   ord("o"),
                   ord("!")])
    lc3.run()
    assert lc3.output.getvalue() == b"Hello"


def test_putsp_stops_at_zero_low_byte(machine):
    lc3 = machine([lea(0, 2), PUTSP, HALT, ord("a") << 8, ord("b")])
    lc3.run()
    assert lc3.output.getvalue() == b""


def test_getc_reads_without_echo(machine):
    lc3 = machine([GETC, HALT], input=b"A")
    lc3.run()
    assert lc3.get_register(0) == ord("A")
    assert lc3.cond == P
    assert lc3.output.getvalue() == b""


def test_second_getc_fails_when_input_is_exhausted(machine):
    lc3 = machine([GETC, add(1, 0, imm=0), GETC, HALT], input=b"A")
    with pytest.raises(InputExhausted) as info:
        lc3.run()
    assert lc3.get_register(1) == ord("A")
    assert info.value.pc == 0x3002
    assert not lc3.halted


def test_getc_reads_characters_in_order(machine):
    lc3 = machine([GETC, add(1, 0, imm=0), GETC, add(2, 0, imm=0), HALT],
                  input=b"xy")
    lc3.run()
    assert lc3.get_register(1) == ord("x")
    assert lc3.get_register(2) == ord("y")


def test_in_prompts_and_echoes(machine):
    lc3 = machine([IN, HALT], input=b"q")
    lc3.run()
    assert lc3.get_register(0) == ord("q")
    assert lc3.output.getvalue() == b"\nInput a character> q"


def test_trap_does_not_save_return_address(machine):
    lc3 = machine([OUT, HALT])
    lc3.set_register(0, ord("."))
    lc3.set_register(7, 0x1234)
    lc3.run()
    assert lc3.get_register(7) == 0x1234
    assert lc3.get_pc() == 0x3002


def test_halt_stops_execution(machine):
    lc3 = machine([add(0, 0, imm=1), HALT, add(0, 0, imm=1)])
    lc3.run()
    assert lc3.halted
    assert lc3.get_register(0) == 1
    assert lc3.instruction_count == 2


def test_unknown_trap(machine):
    lc3 = machine([trap(0x26), HALT])
    with pytest.raises(UnknownTrap) as info:
        lc3.run()
    assert info.value.vector == 0x26
    assert info.value.pc == 0x3000
    assert "x26" in str(info.value)


def test_keyboard_polling_through_device_registers(machine):
    program = [
        ldi(0, 3),       # x3000: R0 = M[KBSR]
        br("zp", -2),    # x3001: wait for the ready bit
        ldi(0, 2),       # x3002: R0 = M[KBDR]
        HALT,            # x3003
        0xFE00,          # x3004
        0xFE02,          # x3005
    ]
    lc3 = machine(program, input=b"k")
    lc3.run()
    assert lc3.get_register(0) == ord("k")
    assert lc3.memory.read(0xFE00) == 0


def test_keyboard_reader_is_kept_between_runs(machine):
    lc3 = machine([GETC, HALT], input=b"xy")
    lc3.run()
    poller = lc3.poller
    lc3.set_pc(0x3000)
    lc3.run()
    assert lc3.poller is poller
    assert lc3.get_register(0) == ord("y")
