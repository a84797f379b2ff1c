
import pytest

from abcodec.bitstream.bitstream import BitStream
from abcodec.avm2.util import serialize_u32, serialize_s32, serialize_s24, \
     read_u30, write_u30, read_s24, write_s24, ValuePool, Record, double_key, \
     StringIndex, MultinameIndex, IndexTypes
from abcodec.errors import DanglingReference, TruncatedInput, Overlong

def test_serialize_u32():
    for i in range(2**7):
        assert serialize_u32(i) == bytes([i])

    for i in range(2**7, 2**14, 7):
        assert serialize_u32(i) == bytes([0x80 | i & 0x7F, i >> 7])

    for i in range(2**14, 2**16, 13):
        assert serialize_u32(i) == bytes([0x80 | i & 0x7F, 0x80 | (i >> 7) & 0x7F, i >> 14])

    for i in range(2**32, 2**32+5):
        pytest.raises(ValueError, serialize_u32, i)

def test_serialize_s32():
    for i in range(-1, -2**16, -97):
        j = i & 0xFFFFFFFF
        assert serialize_s32(i) == bytes([ (j     &0x7F)|0x80,
                                          ((j>>7 )&0x7f)|0x80,
                                          ((j>>14)&0x7f)|0x80,
                                          ((j>>21)&0x7f)|0x80,
                                          ((j>>28)&0x7f)])

    assert serialize_s32(42) == b"\x2a"
    pytest.raises(ValueError, serialize_s32, 2**31)
    pytest.raises(ValueError, serialize_s32, -2**31 - 1)

def test_varint_law():
    for value in [0, 1, 127, 128, 255, 2**14 - 1, 2**14, 2**21, 2**28 - 1,
                  2**28, 2**30 - 1, 2**32 - 1]:
        data = write_u30(value)
        assert read_u30(data) == (value, len(data))

def test_read_u30_cursor():
    data = b"\x05\xac\x02\x07"
    assert read_u30(data, 1) == (300, 3)
    assert read_u30(data, 3) == (7, 4)

def test_read_u30_errors():
    pytest.raises(TruncatedInput, read_u30, b"\xac")
    pytest.raises(TruncatedInput, read_u30, b"")
    with pytest.raises(Overlong) as excinfo:
        read_u30(b"\x00\x80\x80\x80\x80\x80\x00", 1)
    assert excinfo.value.offset == 1

def test_read_u30_large_buffer():
    data = b"\x00" * 2**20 + b"\xac\x02\x80"
    assert read_u30(data, 2**20) == (300, 2**20 + 2)
    assert read_s24(data, 2**20 - 1) == (0x02ac00, 2**20 + 2)
    with pytest.raises(TruncatedInput) as excinfo:
        read_u30(data, 2**20 + 2)
    assert excinfo.value.offset == 2**20 + 3

    # Walking a buffer varint by varint.
    data = b"".join(write_u30(i) for i in range(0, 2**16, 3))
    cursor, values = 0, []
    while cursor < len(data):
        value, cursor = read_u30(data, cursor)
        values.append(value)
    assert values == list(range(0, 2**16, 3))

def test_s24():
    assert write_s24(-1) == b"\xff\xff\xff"
    assert write_s24(2**23 - 1) == b"\xff\xff\x7f"
    assert read_s24(b"\x00\xfb\xff\xff", 1) == (-5, 4)
    assert serialize_s24(0) == b"\x00\x00\x00"
    pytest.raises(ValueError, serialize_s24, 2**23)
    pytest.raises(ValueError, serialize_s24, -2**23 - 1)
    pytest.raises(TruncatedInput, read_s24, b"\x00\x00")

def test_index_types():
    index = StringIndex(3)
    assert index == 3
    assert index + 1 == 4
    assert repr(index) == "StringIndex(3)"
    assert IndexTypes["multiname"] is MultinameIndex
    assert set(IndexTypes) == set(["int", "uint", "double", "utf8", "namespace", "nsset",
                                   "multiname", "methods", "metadatas", "classes",
                                   "exceptions"])

def test_value_pool_sentinel():
    pool = ValuePool("utf8", StringIndex)

    assert pool.value_at(0) is None
    assert pool.index_for(None) == 0
    assert len(pool) == 1

    assert pool.index_for(b"a") == 1
    assert pool.index_for(b"a") == 1
    assert isinstance(pool.index_for(b"a"), StringIndex)

    assert pool.value_at(1) == b"a"
    assert len(pool) == 2
    assert list(pool) == [b"a"]

    with pytest.raises(DanglingReference):
        pool.value_at(2)

def test_value_pool_default():
    test = object()
    pool = ValuePool("namespace", default=test)
    assert pool.value_at(0) is test

def test_value_pool_no_sentinel():
    test1, test2 = object(), object()
    pool = ValuePool("methods", sentinel=False)

    pytest.raises(DanglingReference, pool.value_at, 0)

    assert pool.index_for(test1) == 0
    assert pool.value_at(0) is test1

    assert pool.index_for(test2) == 1
    assert pool.value_at(1) is test2

def test_value_pool_read_index():
    pool = ValuePool("utf8", StringIndex)
    pool.add_value(b"a")

    bits = BitStream(b"\x01\x07")
    assert pool.read_index(bits) == 1
    with pytest.raises(DanglingReference) as excinfo:
        pool.read_index(bits, "somewhere")
    assert excinfo.value.offset == 1
    assert excinfo.value.where == "somewhere"

def test_value_pool_deferred():
    pool = ValuePool("multiname", MultinameIndex)
    pool.open()

    # Not there yet, but the pool is still being read.
    index = pool.read_index(BitStream(b"\x02"))
    assert index == 2
    pool.add_value("first")
    pool.add_value("second")
    pool.close()

    pool.open()
    pool.read_index(BitStream(b"\x09"))
    pytest.raises(DanglingReference, pool.close)

def test_value_pool_label_pending():
    pool = ValuePool("classes", sentinel=False)
    pool.open()
    pool.read_index(BitStream(b"\x00"))

    mark = pool.mark()
    bits = BitStream(b"\x00\x04")
    bits.seek(8)
    pool.read_index(bits)
    pool.label_pending(mark, "trait 1")
    pool.label_pending(mark, "instance 0")

    pool.add_value("only")
    with pytest.raises(DanglingReference) as excinfo:
        pool.close()
    assert excinfo.value.offset == 1
    assert excinfo.value.where == "instance 0, trait 1"

def test_value_pool_serialize():
    pool = ValuePool("int")
    assert pool.serialize(serialize_s32) == b"\x00"
    pool.empty_count = 1
    assert pool.serialize(serialize_s32) == b"\x01"

    pool.add_value(-1)
    assert pool.serialize(serialize_s32) == b"\x02\xff\xff\xff\xff\x0f"

    pytest.raises(DanglingReference, pool.serialize_index, 2)
    assert pool.serialize_index(1) == b"\x01"

def test_value_pool_doubles():
    nan = float("nan")
    pool1 = ValuePool("double", key=double_key)
    pool2 = ValuePool("double", key=double_key)
    pool1.add_value(nan)
    pool2.add_value(float("nan"))
    assert pool1 == pool2
    assert pool1.index_for(nan) == 1

    pool2.add_value(0.0)
    pool1.add_value(-0.0)
    assert pool1 != pool2

class Point(Record):
    fields = ("x", "y")

    def __init__(self, x, y):
        self.x, self.y = x, y

class OtherPoint(Point):
    pass

def test_record():
    assert Point(1, [2]) == Point(1, [2])
    assert Point(1, 2) != Point(2, 1)
    assert Point(1, 2) != OtherPoint(1, 2)
    assert hash(Point(1, [2, 3])) == hash(Point(1, [2, 3]))
    assert repr(Point(1, 2)) == "Point(x=1, y=2)"
