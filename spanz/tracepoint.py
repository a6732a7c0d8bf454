"""The otlp_metrics user_events tracepoint: registration and event writing."""

from __future__ import annotations

import array
import errno
import logging
import os
import struct

try:
    import fcntl
except ImportError:  # not available outside POSIX systems
    fcntl = None

_log = logging.getLogger(__name__)

PROTOCOL_FIELD_VALUE = 0
PROTOBUF_VERSION = b"v0.19.00"
METRICS_EVENT_DEF = b"otlp_metrics u32 protocol;char[8] version;__rel_loc u8[] buffer;\0"
MAX_BUFFER_LEN = 0xFFFF
DEFAULT_PATHS = (
    "/sys/kernel/tracing/user_events_data",
    "/sys/kernel/debug/tracing/user_events_data",
)

_DIAG_IOCSREG = 0xC0082A00
_DIAG_IOCSUNREG = 0x40082A02
_USER_REG = struct.Struct("=IBBHQQI")
_USER_UNREG = struct.Struct("=IBBHQ")
_HEADER = struct.Struct("=I")

_NOT_MOUNTED = "Trace/debug file systems are not mounted."
_NO_PERMISSION = (
    "Insufficient permissions. You need read/write/execute permissions "
    "to user_events tracing directory."
)


class TracepointError(Exception):
    """Registering or writing the tracepoint failed; ``errno`` holds the cause."""

    def __init__(self, message: str, code: int) -> None:
        super().__init__(message)
        self.errno = code


def encode_event(buffer: bytes) -> bytes:
    """The event payload: protocol, version, the buffer's rel_loc and the buffer."""
    buffer = bytes(buffer)
    if len(buffer) > MAX_BUFFER_LEN:
        raise ValueError("Buffer exceeds max length.")
    # High 16 bits hold the size, low 16 bits the offset after the rel_loc (0).
    rel_loc = len(buffer) << 16
    return (
        _HEADER.pack(PROTOCOL_FIELD_VALUE)
        + PROTOBUF_VERSION
        + _HEADER.pack(rel_loc)
        + buffer
    )


def _register_error(code: int) -> TracepointError:
    if code in (errno.EOPNOTSUPP, errno.ENOENT):
        return TracepointError(_NOT_MOUNTED, code)
    if code in (errno.EACCES, errno.EPERM):
        return TracepointError(_NO_PERMISSION, code)
    return TracepointError(f"Tracepoint failed to register: {os.strerror(code)}.", code)


class Tracepoint:
    """A user_events tracepoint whose enabled state the kernel keeps up to date."""

    def __init__(self, path: str | None = None) -> None:
        self._path = path
        self._fd: int | None = None
        self._write_index = 0
        # The kernel sets bit 0 of this word while a listener is attached, so
        # the buffer must stay alive and unresized while registered.
        self._enabled = array.array("I", [0])
        self._name = array.array("B", METRICS_EVENT_DEF)

    @property
    def registered(self) -> bool:
        return self._fd is not None

    def _data_path(self) -> str:
        if self._path is not None:
            return self._path
        for candidate in DEFAULT_PATHS:
            if os.path.exists(candidate):
                return candidate
        raise TracepointError(_NOT_MOUNTED, errno.EOPNOTSUPP)

    def register(self) -> None:
        """Register the tracepoint with the kernel, raising TracepointError on failure."""
        if self._fd is not None:
            raise TracepointError("Tracepoint is already registered.", errno.EALREADY)
        if fcntl is None:
            raise TracepointError(_NOT_MOUNTED, errno.EOPNOTSUPP)
        path = self._data_path()
        try:
            fd = os.open(path, os.O_RDWR | getattr(os, "O_CLOEXEC", 0))
        except OSError as err:
            raise _register_error(err.errno or errno.EIO) from err
        enable_addr, _ = self._enabled.buffer_info()
        name_addr, _ = self._name.buffer_info()
        request = bytearray(
            _USER_REG.pack(_USER_REG.size, 0, 4, 0, enable_addr, name_addr, 0)
        )
        try:
            fcntl.ioctl(fd, _DIAG_IOCSREG, request, True)
        except OSError as err:
            os.close(fd)
            raise _register_error(err.errno or errno.EIO) from err
        self._write_index = _HEADER.unpack_from(request, _USER_REG.size - 4)[0]
        self._fd = fd
        _log.info("Tracepoint registered successfully.")

    def enabled(self) -> bool:
        """Whether the tracepoint is registered and a listener is attached."""
        return self._fd is not None and self._enabled[0] != 0

    def write(self, buffer: bytes) -> bool:
        """Write an event if enabled; returns whether one was written."""
        try:
            payload = encode_event(buffer)
        except ValueError as err:
            raise TracepointError(str(err), errno.E2BIG) from err
        if not self.enabled():
            return False
        try:
            os.write(self._fd, _HEADER.pack(self._write_index) + payload)
        except OSError as err:
            raise TracepointError(str(err), err.errno or errno.EIO) from err
        return True

    def close(self) -> None:
        """Unregister the tracepoint; calling it again does nothing."""
        fd, self._fd = self._fd, None
        if fd is None:
            return
        try:
            if fcntl is not None:
                enable_addr, _ = self._enabled.buffer_info()
                request = bytearray(_USER_UNREG.pack(_USER_UNREG.size, 0, 0, 0, enable_addr))
                fcntl.ioctl(fd, _DIAG_IOCSUNREG, request, True)
        except OSError:
            pass
        finally:
            os.close(fd)
            self._enabled[0] = 0

    def __enter__(self) -> Tracepoint:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def __del__(self) -> None:
        try:
            self.close()
        except Exception:
            pass

    def __repr__(self) -> str:
        state = "registered" if self.registered else "unregistered"
        return f"Tracepoint({state})"