
import pytest
import os

from abcodec.bitstream.bitstream import BitStream, BitStreamParseMixin
from abcodec.bitstream.formats import One, Zero, ByteString, UB
from abcodec.errors import TruncatedInput

def test_constructor():
    bits = BitStream("10")
    assert str(bits) == "10"

    bits = BitStream("10101100")
    assert list(bits) == [True, False, True, False, True, True, False, False]

    bits = BitStream("  1  ")
    assert len(bits) == 1

    bits = BitStream(b"\x06\xff")
    assert len(bits) == 16
    assert str(bits) == "0000011011111111"

def test_cursor():
    bits = BitStream("01001101")
    assert bits.tell() == 0
    bits.seek(1, os.SEEK_END)
    assert bits.bits_available == 1
    assert bits.read_bit() == 1
    pytest.raises(TruncatedInput, bits.read_bit)

    bits.seek(0)
    assert bits.bits_available == 8

    result = bits.read_bit()
    assert result == 0

    result = bits.read_bits(2)
    assert result == [True, False]

    bits.seek(1, os.SEEK_CUR)
    assert bits.bits_available == 4
    assert bits.read_bits(2) == [True, True]

    bits.seek(1, os.SEEK_END)
    assert bits.bits_available == 1

    bits.rewind()
    assert bits.read_byte() == 0b01001101

def test_read_bytes_unaligned():
    bits = BitStream("0" + "11111111" + "00000001" + "0000000")
    bits.read_bit()
    assert bits.read_bytes(2) == b"\xff\x01"

def test_read_past_end():
    bits = BitStream(b"\x01\x02")
    bits.read_byte()
    with pytest.raises(TruncatedInput) as excinfo:
        bits.read_bytes(2)
    assert excinfo.value.offset == 1

def test_write_bytes():
    bits = BitStream()
    bits.write_bytes(b"ABC")
    bits.write_byte(0x44)
    assert bits.serialize() == b"ABCD"
    assert len(bits) == 32

def test_overwrite():
    bits = BitStream(b"\x00\x00\x00")
    bits.seek(8)
    bits.write_byte(0xff)
    assert bits.serialize() == b"\x00\xff\x00"
    assert len(bits) == 24

def test_write_formats():
    bits = BitStream()
    bits.write(Zero[4])
    bits.write(True)
    bits.write(3, UB[3])
    assert str(bits) == "00001011"
    assert bits.serialize() == b"\x0b"

def test_serialize_pads():
    bits = BitStream()
    bits.write(One)
    bits.write(Zero)
    bits.write(One)
    assert bits.serialize() == b"\xa0"

def test_bytestring_read():
    bits = BitStream(b"SWF\x09")
    assert bits.read(ByteString[3]) == b"SWF"
    assert bits.read(ByteString) == b"\x09"
    assert bits.bits_available == 0

class Pair(BitStreamParseMixin):
    def __init__(self, a, b):
        self.a, self.b = a, b

    @classmethod
    def from_bitstream(cls, bitstream):
        return cls(bitstream.read_byte(), bitstream.read_byte())

def test_from_bytestring():
    pair = Pair.from_bytestring(b"\x01\x02")
    assert (pair.a, pair.b) == (1, 2)
    pytest.raises(TruncatedInput, Pair.from_bytestring, b"\x01")
