"""
Where interpreter output goes.

`OutputSink.direct()` writes to the process streams (CLI, scripts).
`OutputSink.buffered()` captures lines for front ends that render output
themselves, and for tests.
"""
import sys
from typing import List, Optional, TextIO


class OutputSink:
    def __init__(self, buffered: bool = False,
                 stdout: Optional[TextIO] = None, stderr: Optional[TextIO] = None):
        self._buffered = buffered
        self._stdout = stdout
        self._stderr = stderr
        self._stdout_buf: List[str] = []
        self._stderr_buf: List[str] = []

    @classmethod
    def direct(cls, stdout: Optional[TextIO] = None, stderr: Optional[TextIO] = None) -> 'OutputSink':
        return cls(buffered=False, stdout=stdout, stderr=stderr)

    @classmethod
    def buffered(cls) -> 'OutputSink':
        return cls(buffered=True)

    @property
    def is_buffered(self) -> bool:
        return self._buffered

    # Streams are looked up at write time so redirected sys.stdout is honoured.
    def _out(self) -> TextIO:
        return self._stdout if self._stdout is not None else sys.stdout

    def _err(self) -> TextIO:
        return self._stderr if self._stderr is not None else sys.stderr

    @staticmethod
    def _append_partial(buf: List[str], msg: str):
        if buf:
            buf[-1] += msg
        else:
            buf.append(msg)

    def println(self, msg: str):
        if self._buffered:
            self._stdout_buf.append(msg)
            return
        out = self._out()
        out.write(msg + "\n")
        out.flush()

    def print(self, msg: str):
        """Writes without a line terminator; buffered mode extends the last line."""
        if self._buffered:
            self._append_partial(self._stdout_buf, msg)
            return
        out = self._out()
        out.write(msg)
        out.flush()

    def eprintln(self, msg: str):
        if self._buffered:
            self._stderr_buf.append(msg)
            return
        self._err().write(msg + "\n")

    def eprint(self, msg: str):
        if self._buffered:
            self._append_partial(self._stderr_buf, msg)
            return
        self._err().write(msg)

    def take_stdout(self) -> List[str]:
        """Returns the captured stdout lines and clears the buffer."""
        lines, self._stdout_buf = self._stdout_buf, []
        return lines

    def take_stderr(self) -> List[str]:
        """Returns the captured stderr lines and clears the buffer."""
        lines, self._stderr_buf = self._stderr_buf, []
        return lines

    def __repr__(self) -> str:
        return f"<OutputSink {'buffered' if self._buffered else 'direct'}>"
