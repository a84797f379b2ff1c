
import struct

from abcodec.bitstream.bitstream import BitStream
from abcodec.bitstream.flash_formats import U30, SI24
from abcodec.errors import AbcError, DanglingReference

U32_MAX = 2**32 - 1
S32_MAX = 2**31 - 1
S24_MIN, S24_MAX = -2**23, 2**23 - 1

def serialize_u32(value):
    if value > U32_MAX or value < -2**31:
        raise ValueError("value %d does not fit in a u32" % (value,))
    encoded, value = bytearray(), value & 0xFFFFFFFF
    for i in range(5):
        bits = value & 0b01111111
        value >>= 7
        if not value:
            encoded.append(bits)
            break
        encoded.append(0b10000000 | bits)
    return bytes(encoded)

serialize_u30 = serialize_u32

def serialize_s32(value):
    """
    Serialize a signed integer pool entry. Negative numbers are
    sign-extended to 32 bits first, so they always take five bytes.
    """
    if value > S32_MAX or value < -2**31:
        raise ValueError("value %d does not fit in a s32" % (value,))
    return serialize_u32(value & 0xFFFFFFFF)

def serialize_s24(value):
    """
    Serialize a 3-byte signed S24.
    """
    if value < S24_MIN or value > S24_MAX:
        raise ValueError("value %d does not fit in a s24" % (value,))
    return struct.pack("<l", value)[:3]

def read_u30(data, cursor=0):
    """
    Read one variable-length integer out of data, starting at
    byte cursor. Returns the value and the cursor after it.
    Only the five bytes a varint can span are looked at.

    >>> read_u30(b"\\x80\\x01")
    (128, 2)
    """
    bits = BitStream(data[cursor:cursor+5])
    try:
        value = bits.read(U30)
    except AbcError as e:
        raise e.rebase(cursor)
    return value, cursor + bits.tell() // 8

def write_u30(value):
    return serialize_u30(value)

def read_s24(data, cursor=0):
    bits = BitStream(data[cursor:cursor+3])
    try:
        value = bits.read(SI24)
    except AbcError as e:
        raise e.rebase(cursor)
    return value, cursor + 3

def write_s24(value):
    return serialize_s24(value)

# ======================================
# Typed indices
# ======================================

class Index(int):
    """
    A position in one of the ABC tables. The subclass says which
    table; the value is a plain int and is never dereferenced
    until someone asks the owning pool with value_at.
    """
    table = None

    def __repr__(self):
        return "%s(%d)" % (type(self).__name__, self)

class IntIndex(Index):
    table = "int"

class UIntIndex(Index):
    table = "uint"

class DoubleIndex(Index):
    table = "double"

class StringIndex(Index):
    table = "utf8"

class NamespaceIndex(Index):
    table = "namespace"

class NamespaceSetIndex(Index):
    table = "nsset"

class MultinameIndex(Index):
    table = "multiname"

class MethodIndex(Index):
    table = "methods"

class MetadataIndex(Index):
    table = "metadatas"

class ClassIndex(Index):
    table = "classes"

class ExceptionIndex(Index):
    table = "exceptions"

# table name -> Index class
IndexTypes = dict((cls.table, cls) for cls in Index.__subclasses__())

# ======================================
# Records
# ======================================

def _freeze(value):
    if isinstance(value, list):
        return tuple(_freeze(v) for v in value)
    return value

class Record(object):
    """
    Value semantics for the plain data classes of the ABC model:
    two records are equal when they are the same class and every
    name listed in fields compares equal.
    """
    fields = ()

    def __eq__(self, other):
        if type(self) is not type(other):
            return NotImplemented
        return all(getattr(self, f) == getattr(other, f) for f in self.fields)

    def __ne__(self, other):
        result = self.__eq__(other)
        if result is NotImplemented:
            return result
        return not result

    def __hash__(self):
        return hash((type(self),) + tuple(_freeze(getattr(self, f)) for f in self.fields))

    def __repr__(self):
        return "%s(%s)" % (type(self).__name__,
            ", ".join("%s=%r" % (f, getattr(self, f)) for f in self.fields))

# ======================================
# Pools
# ======================================

def double_key(value):
    return struct.pack("<d", value)

class ValuePool(object):
    """
    One ABC table. The seven constant tables reserve slot 0 as a
    sentinel meaning "absent" or "any" (sentinel=True) and keep their
    real entries at 1..N; the other tables start at 0.

    While a table is being decoded it is open (complete is False), and
    references into it are remembered and only checked once it closes.
    """
    def __init__(self, name, index_type=int, sentinel=True, key=None, default=None):
        self.name = name
        self.index_type = index_type
        self.sentinel = sentinel
        self.key = key or (lambda value: value)
        self.default = default
        self.pool = []
        self.index_map = {}
        self.complete = True
        self.pending = []

        # What an empty constant table was written as, 0 or 1.
        self.empty_count = 0

    def __iter__(self):
        return iter(self.pool)

    def __len__(self):
        if self.sentinel:
            return len(self.pool) + 1
        return len(self.pool)

    def __bool__(self):
        return bool(self.pool)

    def __contains__(self, value):
        return self.key(value) in self.index_map

    def __eq__(self, other):
        if not isinstance(other, ValuePool):
            return NotImplemented
        return (self.sentinel == other.sentinel and
                self.empty_count == other.empty_count and
                [self.key(v) for v in self.pool] == [other.key(v) for v in other.pool])

    def __ne__(self, other):
        result = self.__eq__(other)
        if result is NotImplemented:
            return result
        return not result

    __hash__ = None

    def __repr__(self):
        return "ValuePool(%s, %r)" % (self.name, self.pool)

    def add_value(self, value):
        index = len(self)
        self.pool.append(value)
        try:
            self.index_map.setdefault(self.key(value), index)
        except TypeError:
            pass
        return self.index_type(index)

    def index_for(self, value):
        """
        Return the index of value, adding it to the table if it
        is not there yet.
        """
        if value is None and self.sentinel:
            return self.index_type(0)
        try:
            return self.index_type(self.index_map[self.key(value)])
        except KeyError:
            return self.add_value(value)

    def in_bounds(self, index):
        if self.sentinel and index == 0:
            return True
        return 0 <= index < len(self)

    def check_index(self, index, offset=None, where=None):
        if not self.in_bounds(index):
            raise DanglingReference("%s index %d out of range, table has %d entries"
                                    % (self.name, index, len(self.pool)), offset, where)
        return index

    def value_at(self, index):
        """
        Resolve index against this table. Index 0 of a constant
        table resolves to the table's default, None unless given.
        """
        self.check_index(index)
        if self.sentinel:
            if index == 0:
                return self.default
            index -= 1
        return self.pool[index]

    def open(self):
        self.complete = False

    def close(self):
        self.complete = True
        pending, self.pending = self.pending, []
        for index, offset, where in pending:
            self.check_index(index, offset, where)

    def mark(self):
        return len(self.pending)

    def label_pending(self, mark, where):
        """
        Prefix where onto every reference remembered since mark, so
        a failed check at close names the record that made it.
        """
        self.pending[mark:] = [(index, offset, "%s, %s" % (where, inner) if inner else where)
                               for index, offset, inner in self.pending[mark:]]

    def read_index(self, bitstream, where=None):
        """
        Read a u30 reference into this table from bitstream. If the
        table is complete the reference is checked now, otherwise
        when the table closes.
        """
        offset = bitstream.tell() // 8
        index = bitstream.read(U30)
        if self.complete:
            self.check_index(index, offset, where)
        else:
            self.pending.append((index, offset, where))
        return self.index_type(index)

    def serialize_index(self, index, where=None):
        self.check_index(index, where=where)
        return serialize_u30(index)

    def serialize(self, fn):
        """
        Serialize the table: its count, then fn(entry) for every entry.
        """
        count = len(self)
        if self.sentinel and not self.pool:
            count = self.empty_count
        return serialize_u30(count) + b"".join(fn(value) for value in self.pool)
