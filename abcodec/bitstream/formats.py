import struct

from abcodec.bitstream.interfaces import IFormat, IFormatData
from abcodec.errors import Overlong

from zope.interface import implementer
from zope.component import provideAdapter, adapter

@implementer(IFormatData)
class FormatData(object):
    def __init__(self, length, endianness, repr):
        self.length = length
        self.endianness = endianness
        self.repr = repr

class FormatMeta(type):
    """
    The metaclass used to implement formats, so that a format
    class can be specialized with Format[length:endianness:repr].
    """
    def __getitem__(self, item):
        return self.specialize(IFormatData(item))

    def __str__(self):
        return "<FormatMeta '%s'>" % (self.__name__,)

@adapter(type(None))
@implementer(IFormatData)
def none_as_formatdata(none):
    return FormatData(None, None, None)

provideAdapter(none_as_formatdata)

@adapter(slice)
@implementer(IFormatData)
def slice_as_formatdata(slice):
    return FormatData(slice.start, slice.stop, slice.step)

provideAdapter(slice_as_formatdata)

@adapter(int)
@implementer(IFormatData)
def length_as_formatdata(length):
    return FormatData(length, None, None)

provideAdapter(length_as_formatdata)

@adapter(str)
@implementer(IFormatData)
def string_as_formatdata(string):
    if string in ("<", ">"):
        return FormatData(None, string, None)
    raise TypeError("cannot adapt string %r to IFormatData" % (string,))

provideAdapter(string_as_formatdata)

@implementer(IFormat)
class FormatMetaAdaptor(object):
    """
    Lets an unspecialized format class be used directly,
    as in bitstream.read(U32).
    """
    def __init__(self, format):
        self.format = format

    def _read(self, bs):
        return self.format(FormatData(None, None, None))._read(bs)

    def _write(self, bs, argument):
        return self.format(FormatData(None, None, None))._write(bs, argument)

provideAdapter(FormatMetaAdaptor, [FormatMeta], IFormat)

@implementer(IFormat)
class Format(object, metaclass=FormatMeta):
    """
    A single "field" in a BitStream.
    """
    @classmethod
    def specialize(cls, data):
        return cls(data)

    def __init__(self, data=None):
        data = IFormatData(data)
        self.length     = data.length
        self.endianness = data.endianness
        self.repr       = data.repr

    def __repr__(self):
        if self.repr:
            return self.repr
        return "%s[%s]" % (type(self).__name__, self.length)

    def _read(self, bitstream):
        raise NotImplementedError

    def _write(self, bitstream, argument):
        raise NotImplementedError

class Bit(Format):
    """
    One bit, either True or False.
    """
    def _read(self, bs):
        return bs.read_bit()

    def _write(self, bs, bit):
        bs.write_bit(bit)

class BoolFormat(Format):
    VALUE = None
    def _read(self, bs):
        length = 1 if self.length is None else self.length
        return bs.read_bits(length)

    def _write(self, bs, argument):
        length = 1 if self.length is None else self.length
        bs.write_bits([self.VALUE] * length)

class Zero(BoolFormat):
    VALUE = False

class One(BoolFormat):
    VALUE = True

class Byte(Format):
    """
    An unsigned integer made of whole bytes, big-endian unless
    specialized with "<".
    """
    signed = False
    def _read(self, bs):
        length = self.length or 1
        data = bs.read_bytes(length)
        order = "little" if self.endianness == "<" else "big"
        return int.from_bytes(data, order, signed=self.signed)

    def _write(self, bs, value):
        length = self.length or 1
        order = "little" if self.endianness == "<" else "big"
        try:
            data = int(value).to_bytes(length, order, signed=self.signed)
        except OverflowError:
            raise ValueError("%r does not fit in %d bytes" % (value, length))
        bs.write_bytes(data)

class SignedByte(Byte):
    signed = True

class ByteString(Format):
    """
    A raw run of bytes. Without a length, the rest of the stream.
    """
    def _read(self, bs):
        length = self.length
        if length is None:
            length = bs.bits_available // 8
        return bs.read_bytes(length)

    def _write(self, bs, data):
        if self.length is not None and len(data) != self.length:
            raise ValueError("%r is not %d bytes long" % (data, self.length))
        bs.write_bytes(data)

class UB(Format):
    """
    Unsigned Bits, most significant bit first.

    >>> bits = BitStream()
    >>> bits.write(7, UB[4])
    >>> str(bits)
    '0111'
    """
    def _read(self, bs):
        n = 0
        for bit in bs.read_bits(self.length):
            n = (n << 1) | bit
        return n

    def _write(self, bs, argument):
        length = self.length
        argument = int(argument)
        if argument < 0 or argument >> length:
            raise ValueError(("length of %d is not large "
                              "enough to store %d") % (length, argument))
        bs.write_bits(bool(argument & (1 << b)) for b in reversed(range(length)))

class U32(Format):
    """
    A U32, as defined in the ABC file format specification:
    little-endian base 128, at most five bytes, the top bit of each
    byte saying whether another byte follows.

    .. seealso:

       `ABC file format specification
       <http://www.adobe.com/devnet/actionscript/articles/avm2overview.pdf>`_
          Has information on U32.
    """
    signed = False
    def _read(self, bs):
        start = bs.tell() // 8
        n = 0
        for i in range(5):
            byte = bs.read_byte()
            n |= (byte & 0x7F) << 7*i
            if not (byte & 0x80):
                break
        else:
            raise Overlong("variable-length integer longer than five bytes", start)
        n &= 0xFFFFFFFF
        if self.signed and n > 0x7FFFFFFF:
            n -= 0x100000000
        return n

    def _write(self, bs, n):
        if n >= 2**32 or n < -2**31:
            raise ValueError("value %d does not fit in a U32" % (n,))
        n &= 0xFFFFFFFF
        while True:
            cont = bool(n >> 7)
            bs.write_byte((cont << 7) | (n & 0x7F))
            n >>= 7
            if not cont:
                break

class S32(U32):
    signed = True

class FloatFormat(Format):
    """
    An IEEE floating-point number of 32 or 64 bits.
    Packed with struct so that every bit pattern, NaN
    payloads included, survives a read and a write.
    """
    _CODES = {32: "f", 64: "d"}

    def _read(self, bs):
        code = self.endianness + self._CODES[self.length]
        return struct.unpack(code, bs.read_bytes(self.length // 8))[0]

    def _write(self, bs, value):
        code = self.endianness + self._CODES[self.length]
        bs.write_bytes(struct.pack(code, value))

def bool_to_iformat(bit):
    if bit:
        return One()
    return Zero()

provideAdapter(bool_to_iformat, [bool], IFormat)
