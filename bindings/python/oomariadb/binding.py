import ctypes
from ctypes import POINTER, c_ulong

from .errors import LogicError
from .native import (
    MysqlBind, my_bool,
    MYSQL_TYPE_TINY, MYSQL_TYPE_SHORT, MYSQL_TYPE_LONG, MYSQL_TYPE_LONGLONG,
    MYSQL_TYPE_NULL, MYSQL_TYPE_STRING, MYSQL_TYPE_LONG_BLOB,
)

_BIND_SIZE = ctypes.sizeof(MysqlBind)

_INT_TYPES = (
    ctypes.c_int8, ctypes.c_uint8, ctypes.c_int16, ctypes.c_uint16,
    ctypes.c_int32, ctypes.c_uint32, ctypes.c_int64, ctypes.c_uint64,
    ctypes.c_byte, ctypes.c_ubyte, ctypes.c_short, ctypes.c_ushort,
    ctypes.c_int, ctypes.c_uint, ctypes.c_long, ctypes.c_ulong,
    ctypes.c_longlong, ctypes.c_ulonglong,
)


class BindBuffer:
    """Array of MYSQL_BIND descriptors reused across binding passes.

    ``capacity`` is a high-water mark and never shrinks; ``size`` is the
    number of descriptors of the current pass. Every :meth:`resize` zeroes the
    active descriptors and drops the Python buffers kept alive for the previous
    pass, so nothing bound earlier can leak into the next bind.
    """

    def __init__(self):
        self._array = None
        self._capacity = 0
        self._size = 0
        self._keepalive = []

    @property
    def capacity(self):
        return self._capacity

    @property
    def size(self):
        return self._size

    @property
    def array(self):
        """The ctypes array to hand to the client library, or None when empty."""
        return self._array if self._size else None

    def resize(self, count):
        if self._capacity < count:
            self._array = (MysqlBind * count)()
            self._capacity = count
        self._size = count
        self._keepalive = []
        if count:
            ctypes.memset(ctypes.addressof(self._array), 0, _BIND_SIZE * count)

    def keep(self, obj):
        """Keep ``obj`` alive for as long as the current binding pass lasts."""
        self._keepalive.append(obj)
        return obj

    def detach(self):
        """Hand over the buffers kept for the current pass and stop tracking them."""
        kept, self._keepalive = self._keepalive, []
        return kept

    def __len__(self):
        return self._size

    def __getitem__(self, i):
        if not 0 <= i < self._size:
            raise IndexError(f"Bind index {i} out of range 0..{self._size}")
        return self._array[i]

    def __iter__(self):
        for i in range(self._size):
            yield self._array[i]


def _self_pointer(dst, field, ctype):
    # Point an indicator pointer at the descriptor's own *_value member.
    return ctypes.cast(ctypes.addressof(dst) + getattr(MysqlBind, field).offset, POINTER(ctype))


def type_of_int_size(n):
    if n == 1:
        return MYSQL_TYPE_TINY
    if n == 2:
        return MYSQL_TYPE_SHORT
    if n == 4:
        return MYSQL_TYPE_LONG
    if n == 8:
        return MYSQL_TYPE_LONGLONG
    raise LogicError(f"Integer of {n} bytes")


def bind_int(barr, i, value):
    """Bind a ctypes integer in place; the server reads/writes ``value`` directly.

    Width and signedness come from the ctypes type of ``value``.
    """
    if not isinstance(value, _INT_TYPES):
        raise LogicError(f"bind_int() needs a ctypes integer, got {type(value).__name__}")
    dst = barr[i]
    dst.is_null = _self_pointer(dst, "is_null_value", my_bool)
    dst.buffer_type = type_of_int_size(ctypes.sizeof(value))
    dst.is_unsigned = 1 if type(value)(-1).value > 0 else 0
    dst.buffer = ctypes.addressof(value)
    dst.buffer_length = ctypes.sizeof(value)
    barr.keep(value)


def bind_null(barr, i):
    barr[i].buffer_type = MYSQL_TYPE_NULL


def bind_str_param(barr, i, data):
    """Bind ``data`` (bytes or str) as a string parameter."""
    if isinstance(data, str):
        data = data.encode("utf-8")
    buf = barr.keep(ctypes.create_string_buffer(bytes(data), len(data) + 1))
    dst = barr[i]
    dst.length_value = dst.buffer_length = len(data)
    dst.buffer_type = MYSQL_TYPE_STRING
    dst.buffer = ctypes.addressof(buf)


def bind_str_buffer(barr, i, buf, size=None):
    """Bind a writable ctypes buffer to receive a string column."""
    dst = barr[i]
    dst.is_null = _self_pointer(dst, "is_null_value", my_bool)
    dst.length = _self_pointer(dst, "length_value", c_ulong)
    dst.buffer_type = MYSQL_TYPE_STRING
    dst.buffer = ctypes.addressof(buf)
    dst.buffer_length = ctypes.sizeof(buf) if size is None else size
    barr.keep(buf)


def bind_long_blob(barr, i):
    """Bind a zero-length placeholder; read the column later with get_long_blob()."""
    dst = barr[i]
    dst.is_null = _self_pointer(dst, "is_null_value", my_bool)
    dst.length = _self_pointer(dst, "length_value", c_ulong)
    dst.buffer_type = MYSQL_TYPE_LONG_BLOB


def end_str(barr, i):
    """Bytes received into a buffer bound by bind_str_buffer()."""
    dst = barr[i]
    if dst.is_null_value or not dst.buffer:
        return b""
    return ctypes.string_at(dst.buffer, min(dst.length_value, dst.buffer_length))
