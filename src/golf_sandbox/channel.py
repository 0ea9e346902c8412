from __future__ import annotations

OUTPUT_LIMIT_BYTES = 10 * 1024


class BoundedBuffer:
    """Fixed-capacity byte sink; writes past capacity are dropped silently.

    Example:
        ```python
        buf = BoundedBuffer(capacity=2)
        for value in (65, 66, 67):
            buf.write_byte(value)
        assert buf.getvalue() == b"AB"
        ```
    """

    def __init__(self, capacity: int = OUTPUT_LIMIT_BYTES) -> None:
        """Create an empty buffer holding at most `capacity` bytes.

        Example:
            ```python
            buf = BoundedBuffer()
            ```
        """
        if capacity < 0:
            raise ValueError("capacity must be non-negative")
        self._capacity = capacity
        self._data = bytearray()

    def __len__(self) -> int:
        """Return the number of bytes captured so far.

        Example:
            ```python
            assert len(BoundedBuffer()) == 0
            ```
        """
        return len(self._data)

    @property
    def full(self) -> bool:
        """Whether further writes will be dropped.

        Example:
            ```python
            assert BoundedBuffer(capacity=0).full
            ```
        """
        return len(self._data) >= self._capacity

    def write_byte(self, value: int | None) -> None:
        """Store one byte code, accepting signed codes in [-256, -1].

        `None` is the interpreter's flush marker and carries no data.

        Example:
            ```python
            buf = BoundedBuffer()
            buf.write_byte(-191)
            assert buf.getvalue() == b"A"
            ```
        """
        if value is None:
            return
        if self.full:
            return
        if value < 0:
            value += 256
        self._data.append(value)

    def write(self, data: bytes) -> None:
        """Store as much of `data` as still fits.

        Example:
            ```python
            buf = BoundedBuffer(capacity=3)
            buf.write(b"abcdef")
            assert buf.getvalue() == b"abc"
            ```
        """
        room = self._capacity - len(self._data)
        if room > 0:
            self._data.extend(data[:room])

    def getvalue(self) -> bytes:
        """Return a copy of the captured bytes.

        Example:
            ```python
            raw = BoundedBuffer().getvalue()
            ```
        """
        return bytes(self._data)

    def text(self) -> str:
        """Return the captured bytes decoded as UTF-8, invalid sequences replaced.

        Example:
            ```python
            assert BoundedBuffer().text() == ""
            ```
        """
        return self._data.decode("utf-8", errors="replace")


class IOChannel:
    """Byte-level stdin source plus bounded stdout/stderr sinks for one run.

    The method names match the hooks an embedded interpreter calls into.

    Example:
        ```python
        channel = IOChannel("hi")
        channel.write_out(channel.read())
        assert channel.snapshot_out() == "h"
        ```
    """

    def __init__(self, stdin: str, capacity: int = OUTPUT_LIMIT_BYTES) -> None:
        """Seed the channel with the stdin text a submission may read.

        Example:
            ```python
            channel = IOChannel("1 2 3\\n")
            ```
        """
        self._stdin = stdin.encode("utf-8")
        self._stdin_pos = 0
        self._stdout = BoundedBuffer(capacity)
        self._stderr = BoundedBuffer(capacity)

    def read(self) -> int | None:
        """Return the next stdin byte as 0-255, or None once input is exhausted.

        Example:
            ```python
            channel = IOChannel("A")
            assert channel.read() == 65
            assert channel.read() is None
            ```
        """
        if self._stdin_pos >= len(self._stdin):
            return None
        value = self._stdin[self._stdin_pos]
        self._stdin_pos += 1
        return value

    def write_out(self, value: int | None) -> None:
        """Push one byte code to captured stdout.

        Example:
            ```python
            IOChannel("").write_out(72)
            ```
        """
        self._stdout.write_byte(value)

    def write_err(self, value: int | None) -> None:
        """Push one byte code to captured stderr.

        Example:
            ```python
            IOChannel("").write_err(69)
            ```
        """
        self._stderr.write_byte(value)

    def snapshot_out(self) -> str:
        """Return captured stdout as text.

        Example:
            ```python
            out = IOChannel("").snapshot_out()
            ```
        """
        return self._stdout.text()

    def snapshot_err(self) -> str:
        """Return captured stderr as text.

        Example:
            ```python
            err = IOChannel("").snapshot_err()
            ```
        """
        return self._stderr.text()


def open_channel(stdin: str) -> IOChannel:
    """Open a fresh channel for a single sandboxed run.

    Example:
        ```python
        channel = open_channel("input")
        ```
    """
    return IOChannel(stdin)
