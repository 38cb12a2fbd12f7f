"""
Command-line runner: lc3vm IMAGE [IMAGE ...]

Exit status is 0 after HALT, 1 on a load or machine error, 2 on a usage
error and 130 when interrupted.
"""

import argparse
import signal
import sys

from .errors import ImageError, MachineError
from .lc3 import LC3, lc_hex


def disable_input_buffering(stream):
    """
    Put a terminal into non-canonical, no-echo mode. Returns the old
    settings, or None when stream is not a terminal.
    """
    try:
        import termios
    except ImportError:
        return None
    if not stream.isatty():
        return None
    fd = stream.fileno()
    old_settings = termios.tcgetattr(fd)
    new_settings = termios.tcgetattr(fd)
    new_settings[3] &= ~(termios.ICANON | termios.ECHO)
    termios.tcsetattr(fd, termios.TCSANOW, new_settings)
    return old_settings


def restore_input_buffering(stream, old_settings):
    if old_settings is None:
        return
    import termios
    termios.tcsetattr(stream.fileno(), termios.TCSANOW, old_settings)


def make_parser():
    parser = argparse.ArgumentParser(
        prog="lc3vm", description="Run LC-3 object files.")
    parser.add_argument("images", nargs="+", metavar="IMAGE",
                        help="object file; the first one's origin is the entry point")
    parser.add_argument("--debug", action="store_true",
                        help="trace every instruction on stderr")
    parser.add_argument("--strict", action="store_true",
                        help="treat the reserved opcode as an error")
    return parser


def run(images, input=None, output=None, debug=False, strict=False):
    """ Load and run images, returning the exit status """
    lc3 = LC3(input=input, output=output)
    lc3.debug = debug
    lc3.strict = strict
    for filename in images:
        try:
            lc3.load_image(filename)
        except ImageError as exc:
            sys.stderr.write("Error: failed to load image file: %s\n" % exc)
            return 1
    try:
        lc3.run()
    except MachineError as exc:
        location = lc_hex(exc.pc) if exc.pc is not None else "unknown"
        sys.stderr.write("\nRuntime error at %s: %s\n" % (location, exc))
        return 1
    return 0


def main(argv=None):
    args = make_parser().parse_args(argv)
    old_settings = disable_input_buffering(sys.stdin)

    def handle_interrupt(signum, frame):
        restore_input_buffering(sys.stdin, old_settings)
        sys.stderr.write("\n")
        sys.exit(130)

    previous = signal.signal(signal.SIGINT, handle_interrupt)
    try:
        status = run(args.images, debug=args.debug, strict=args.strict)
    finally:
        signal.signal(signal.SIGINT, previous)
        restore_input_buffering(sys.stdin, old_settings)
    return status


if __name__ == '__main__':
    sys.exit(main())
