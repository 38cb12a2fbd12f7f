import io

from metakernel import MetaKernel

from .lc3 import LC3, Opcode, Trap
from ._version import __version__

class CalystoLC3VM(MetaKernel):
    implementation = 'LC3VM'
    implementation_version = __version__
    language = 'LC3 machine code'
    language_version = '0.1'
    banner = "LC3 VM - run Little Computer 3 object images"
    language_info = {
        'name': 'lc3vm',
        'mimetype': 'text/plain',
        'file_extension': '.obj',
    }
    directives = ["%d", "%dis", "%dump", "%exe", "%input", "%load", "%mem",
                  "%pc", "%reg", "%regs", "%reset", "%save", "%strict",
                  "%warn"]

    def __init__(self, *args, **kwargs):
        super(CalystoLC3VM, self).__init__(*args, **kwargs)
        self.lc3 = LC3(self, input=io.BytesIO())

    def get_usage(self):
        return """This is the LC3 VM Jupyter kernel.

A cell of words (xHEX or 16-digit binary) is loaded into memory; the
first word is the origin.

LC3 VM Interactive Magic Directives:

 %load FILE [FILE ...]              - load object files
 %exe                               - execute from the first origin
 %input TEXT                        - keyboard input for GETC/IN (\\n for newline)
 %dis [STARTHEX [STOPHEX]]          - dump memory as program
 %dump [STARTHEX [STOPHEX]]         - list memory in hex
 %mem HEXLOCATION HEXVALUE          - set memory
 %pc HEXVALUE                       - set PC
 %reg REG HEXVALUE                  - set register REG to HEXVALUE
 %regs                              - show registers
 %d                                 - toggle instruction trace
 %strict                            - toggle reserved-opcode errors
 %warn 0|1                          - turn warnings off or on
 %save FILE                         - write the first image as an object file
 %reset                             - reset LC3 to start state

HEX values begin with an 'x' and are composed of 4 0-F digits or letters.
"""

    def get_completions(self, info):
        token = info["help_obj"]
        matches = []
        for item in ([op.name for op in Opcode] + [trap.name for trap in Trap] +
                     self.directives):
            if item.startswith(token) and item not in matches:
                matches.append(item)
        return matches

    def get_kernel_help_on(self, info, level=0, none_on_fail=False):
        expr = info["code"]
        help_text = {
            "%load": "%load - Load object files; the first sets the entry point\n",
            "%exe": "%exe - Execute the program\n",
            "%input": "%input - Set the keyboard input read by GETC and IN\n",
            "%dis": "%dis - Disassemble memory\n",
            "%dump": "%dump - Dump memory\n",
            "%mem": "%mem - Set a memory location\n",
            "%pc": "%pc - Set the Program Counter\n",
            "%reg": "%reg - Set a register\n",
            "%regs": "%regs - See the registers\n",
            "%d": "%d - Toggle the instruction trace\n",
            "%strict": "%strict - Toggle whether reserved opcodes are an error\n",
            "%warn": "%warn - Turn warnings on (1) or off (0)\n",
            "%save": "%save - Save the first loaded image as an object file\n",
            "%reset": "%reset - Reset the LC3\n",
        }
        if expr in help_text:
            return help_text[expr]
        elif none_on_fail:
            return None
        else:
            return "No available help on '%s'" % expr

    def do_execute_file(self, filename):
        self.lc3.execute("%load " + filename)
        self.lc3.execute("%exe")

    def do_execute_direct(self, code):
        try:
            self.lc3.execute(code.rstrip())
        except Exception as exc:
            self.Error(str(exc))
        except KeyboardInterrupt:
            self.lc3.stop_keyboard()
            self.Error("Keyboard Interrupt!")

    def repr(self, data):
        return repr(data)
