"""
The keyboard device: a one-character mailbox shared between the
execution core and a background poller thread.
"""

import io
import os
import select
import threading

from .errors import InputExhausted


class KeyboardCell(object):
    """
    Holds (available, char) under one lock, so the core never sees the
    ready bit and the character out of step.
    """

    def __init__(self):
        self.condition = threading.Condition()
        self.ready = False
        self.char = 0
        self.closed = False

    def publish(self, char):
        with self.condition:
            self.char = char & 0xFF
            self.ready = True
            self.condition.notify_all()

    def available(self):
        with self.condition:
            return self.ready

    def last(self):
        with self.condition:
            return self.char

    def try_take(self):
        with self.condition:
            if not self.ready:
                return None
            self.ready = False
            self.condition.notify_all()
            return self.char

    def read_data(self):
        """ Consume any pending character and return the data register """
        with self.condition:
            if self.ready:
                self.ready = False
                self.condition.notify_all()
            return self.char

    def take(self, block=True):
        """
        Take the pending character. With block=True, wait until one is
        published; raise InputExhausted if the input closes first.
        """
        with self.condition:
            while block and not self.ready and not self.closed:
                self.condition.wait()
            if not self.ready:
                if self.closed:
                    raise InputExhausted("input stream closed")
                return None
            self.ready = False
            self.condition.notify_all()
            return self.char

    def discard(self):
        with self.condition:
            self.ready = False
            self.condition.notify_all()

    def close(self):
        with self.condition:
            self.closed = True
            self.condition.notify_all()

    def wait_consumed(self, stop):
        with self.condition:
            while self.ready and not stop.is_set():
                self.condition.wait(0.1)


class KeyboardPoller(object):
    """
    Reads the input stream one byte at a time on a daemon thread and
    publishes each byte into the cell, never more than one ahead of the
    core.
    """
    poll_interval = 0.1

    def __init__(self, stream, cell):
        self.stream = stream
        self.cell = cell
        self.stopping = threading.Event()
        self.lock = threading.Lock()
        self.running = False
        self.thread = None
        try:
            self.fd = stream.fileno()
        except (AttributeError, io.UnsupportedOperation, ValueError):
            self.fd = None

    def start(self):
        """
        Start reading, or keep the current thread if it is still running.
        A thread left blocked in read() by stop() is reused, so a stream
        never has two readers.
        """
        with self.lock:
            self.stopping.clear()
            if self.running:
                return
            self.running = True
            self.thread = threading.Thread(target=self.poll, name="lc3-keyboard")
            self.thread.daemon = True
            self.thread.start()

    def stop(self, timeout=1.0):
        self.stopping.set()
        with self.cell.condition:
            self.cell.condition.notify_all()
        if self.thread is not None:
            self.thread.join(timeout)

    def is_alive(self):
        return self.thread is not None and self.thread.is_alive()

    def read_char(self):
        """
        Return one byte as an int, None if nothing arrived within the
        poll interval, or -1 at end of stream.
        """
        if self.fd is not None:
            ready, _, _ = select.select([self.fd], [], [], self.poll_interval)
            if not ready:
                return None
            data = os.read(self.fd, 1)
        else:
            data = self.stream.read(1)
        if not data:
            return -1
        if isinstance(data, str):
            return ord(data) & 0xFF
        return data[0]

    def poll(self):
        while True:
            with self.lock:
                if self.stopping.is_set():
                    self.running = False
                    return
            try:
                char = self.read_char()
            except (OSError, ValueError):
                # a broken input looks like no further input to the core
                char = -1
            if char is None:
                continue
            if char < 0:
                with self.lock:
                    self.running = False
                self.cell.close()
                return
            self.cell.publish(char)
            self.cell.wait_consumed(self.stopping)
