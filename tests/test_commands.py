import io

from lc3vm.lc3 import LC3
from lc3vm.loader import read_image


def make_lc3():
    return LC3(input=io.BytesIO(), output=io.BytesIO())


def test_cell_of_words_is_loaded(capsys):
    lc3 = make_lc3()
    assert lc3.execute("x3000\nx1021\nxF025")
    assert lc3.memory.read(0x3001) == 0xF025
    assert "Loaded 2 words at x3000" in capsys.readouterr().err


def test_exe_runs_and_reports(capsys):
    lc3 = make_lc3()
    lc3.execute("x3000 x1021 xF025")
    assert lc3.execute("%exe")
    assert lc3.get_register(0) == 1
    err = capsys.readouterr().err
    assert "Computation completed" in err
    assert "Instructions: 2" in err
    assert "R0: x0001" in err


def test_exe_reports_runtime_error(capsys):
    lc3 = make_lc3()
    lc3.execute("x3000 x8000")
    assert not lc3.execute("%exe")
    err = capsys.readouterr().err
    assert "Runtime error" in err
    assert "x3000" in err


def test_input_feeds_getc():
    lc3 = make_lc3()
    lc3.execute("x3000 xF020 xF021 xF025")
    lc3.execute("%input ok")
    lc3.execute("%exe")
    assert lc3.get_register(0) == ord("o")
    assert lc3.output.getvalue() == b"o"


def test_register_memory_and_pc_directives(capsys):
    lc3 = make_lc3()
    assert lc3.execute("%reg 3 x00FF")
    assert lc3.execute("%mem x4000 xBEEF")
    assert lc3.execute("%pc x4000")
    assert lc3.get_register(3) == 0x00FF
    assert lc3.memory.read(0x4000) == 0xBEEF
    assert lc3.get_pc() == 0x4000
    assert "x4000: xBEEF" in capsys.readouterr().err


def test_dis_and_dump(capsys):
    lc3 = make_lc3()
    lc3.execute("x3000 x1021 x0402 xF025")
    lc3.execute("%dis")
    err = capsys.readouterr().err
    assert "ADD R0, R0, #1" in err
    assert "BRz x3004" in err
    assert "HALT" in err
    lc3.execute("%dump x3000 x3001")
    err = capsys.readouterr().err
    assert "x3001: x0402" in err
    assert "x3002" not in err


def test_toggles(capsys):
    lc3 = make_lc3()
    lc3.execute("%d")
    lc3.execute("%strict")
    lc3.execute("%warn 0")
    assert lc3.debug and lc3.strict and not lc3.warn
    lc3.execute("%reset")
    assert not lc3.debug and not lc3.strict and lc3.warn


def test_save(tmp_path):
    lc3 = make_lc3()
    lc3.execute("x3000 x1021 xF025")
    path = str(tmp_path / "out.obj")
    assert lc3.execute("%save " + path)
    assert read_image(path) == (0x3000, [0x1021, 0xF025])


def test_bad_directives(capsys):
    lc3 = make_lc3()
    assert not lc3.execute("%bogus")
    assert not lc3.execute("%reg")
    assert not lc3.execute("%load /nonexistent/file.obj")
    assert not lc3.execute("ADD R0, R0, #1")
