"""Operator terminal of the interactive clients.

The terminal is polled together with the server socket. On a tty it
runs in cbreak mode and keeps the partly typed line itself, so that
messages arriving from the server can be printed above the prompt
without losing what the operator was typing. Piped input is read in
chunks and split into lines.

A window resize raises SIGWINCH; the handler writes to a socket pair
registered with `signal.set_wakeup_fd`, whose reading end the event
loop polls, so a resize interrupts the wait for input.
"""

import os
import signal
import socket
import sys
import termios
import tty
from typing import TextIO

from pyspd import get_logger


log = get_logger(__name__)

CLEAR_LINE = '\r\033[K'
"""Returns to the start of the line and erases it."""

READ_SIZE = 4096

ERASE_CHARS = ('\x7f', '\b')
KILL_LINE = '\x15'
END_OF_INPUT = '\x04'


class Terminal:
    """Operator terminal keeping the line being typed."""

    def __init__(
        self,
        prompt: str = 'NSPD> ',
        stream_in: TextIO | None = None,
        stream_out: TextIO | None = None
    ) -> None:
        self.prompt = prompt
        self.stream_in = stream_in if stream_in is not None else sys.stdin
        self.stream_out = stream_out if stream_out is not None else sys.stdout
        self.resized = False
        """Set by the window-resize signal, cleared by `check_resize`."""

        self.buffer = ''
        """Characters typed since the last complete line."""

        self._eof = False
        self._echo = False
        self._saved_mode = None
        self._previous_handler = None
        self._previous_wakeup_fd = -1
        self._wakeup_pair: tuple[socket.socket, socket.socket] | None = None
        self._installed = False

    def __enter__(self) -> 'Terminal':
        self.enter_cbreak()
        self.install_signal_handler()
        return self

    def __exit__(self, exc_type, exc, exc_tb) -> None:
        self.restore_signal_handler()
        self.restore_mode()

    def enter_cbreak(self) -> None:
        """Takes over echo and line editing when reading from a tty."""
        fd = self.fileno()
        if self._saved_mode is not None or not os.isatty(fd):
            return
        self._saved_mode = termios.tcgetattr(fd)
        tty.setcbreak(fd)
        self._echo = True

    def restore_mode(self) -> None:
        if self._saved_mode is None:
            return
        termios.tcsetattr(self.fileno(), termios.TCSADRAIN, self._saved_mode)
        self._saved_mode = None
        self._echo = False

    def install_signal_handler(self) -> None:
        """Flags window resizes; a no-op on platforms without SIGWINCH."""
        if not hasattr(signal, 'SIGWINCH') or self._installed:
            return
        reader, writer = socket.socketpair()
        reader.setblocking(False)
        writer.setblocking(False)
        self._previous_wakeup_fd = signal.set_wakeup_fd(
            writer.fileno(), warn_on_full_buffer=False
        )
        self._wakeup_pair = (reader, writer)
        self._previous_handler = signal.signal(signal.SIGWINCH, self._on_resize)
        self._installed = True

    def restore_signal_handler(self) -> None:
        if not self._installed:
            return
        signal.signal(signal.SIGWINCH, self._previous_handler or signal.SIG_DFL)
        signal.set_wakeup_fd(self._previous_wakeup_fd)
        for sock in self._wakeup_pair:
            sock.close()
        self._wakeup_pair = None
        self._installed = False

    def _on_resize(self, signum, frame) -> None:
        self.resized = True

    def fileno(self) -> int:
        return self.stream_in.fileno()

    def wakeup_fileno(self) -> int | None:
        """Descriptor that becomes readable when a signal arrives."""
        if self._wakeup_pair is None:
            return None
        return self._wakeup_pair[0].fileno()

    def read_lines(self) -> list[str] | None:
        """Reads what is available and returns the completed lines.

        Returns None once the input has ended and no line is left.
        """
        if self._eof:
            return None
        data = os.read(self.fileno(), READ_SIZE)
        if not data:
            return self._end_of_input([])
        lines = []
        for char in data.decode(errors='replace'):
            if char in '\r\n':
                self._write('\n')
                lines.append(self.buffer)
                self.buffer = ''
            elif char in ERASE_CHARS:
                if self.buffer:
                    self.buffer = self.buffer[:-1]
                    self._write('\b \b')
            elif char == KILL_LINE:
                self.buffer = ''
                self._write(f'{CLEAR_LINE}{self.prompt}')
            elif char == END_OF_INPUT:
                if not self.buffer:
                    return self._end_of_input(lines)
            elif char.isprintable():
                self.buffer += char
                self._write(char)
        if self._echo:
            self.stream_out.flush()
        return lines

    def _end_of_input(self, lines: list[str]) -> list[str] | None:
        self._eof = True
        if self.buffer:
            lines.append(self.buffer)
            self.buffer = ''
        return lines or None

    def _write(self, text: str) -> None:
        if self._echo:
            self.stream_out.write(text)

    def show_prompt(self) -> None:
        self.stream_out.write(f'{self.prompt}{self.buffer}')
        self.stream_out.flush()

    def show_message(self, message: str) -> None:
        """Prints a message above the prompt and redraws the typed line."""
        self.stream_out.write(f'{CLEAR_LINE}{message}\n')
        self.show_prompt()

    def check_resize(self) -> bool:
        """Consumes pending signal wakeups; True after a window resize."""
        if self._wakeup_pair is not None:
            try:
                while self._wakeup_pair[0].recv(READ_SIZE):
                    pass
            except BlockingIOError:
                pass
        if not self.resized:
            return False
        self.resized = False
        log.debug('Terminal was resized')
        self.stream_out.write(CLEAR_LINE)
        return True
