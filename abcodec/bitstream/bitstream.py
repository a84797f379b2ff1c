import os

from abcodec.bitstream.interfaces import IBitStream, IFormat
from abcodec.errors import TruncatedInput

from zope.interface import implementer

class BitStreamMixin(object):
    """
    A class that implements various extra BitStream methods
    for those that implement the core methods defined in IBitStream.
    """

    def seek(self, offset, whence=os.SEEK_SET):
        """
        Standard file protocol *seek* method, in bits.

        .. seealso:

           `Built-in Types: File Objects
           <http://docs.python.org/library/stdtypes.html#file-objects>`_
              Standard Python library documentation.
        """
        if whence == os.SEEK_CUR:
            offset += self.tell()
        elif whence == os.SEEK_END:
            offset = len(self) - offset
        self.set_cursor(offset)

    def rewind(self):
        """
        Seek to the beginning of the stream.
        """
        self.seek(0)

    @property
    def bits_available(self):
        """
        The number of bits available in the stream to be
        read.
        """
        return len(self) - self.tell()

    def serialize(self):
        """
        Serialize the stream into a byte string, padding the last
        byte with zero bits on the right.
        """
        cursor = self.tell()
        self.rewind()
        numbytes, leftover = divmod(len(self), 8)
        data = self.read_bytes(numbytes)
        if leftover:
            bits = self.read_bits(leftover) + [False] * (8 - leftover)
            data += bytes([sum(bit << (7 - i) for i, bit in enumerate(bits))])
        self.seek(cursor)
        return data

    def __str__(self):
        return "".join("1" if b else "0" for b in self)

    def __repr__(self):
        return "<BitStream '%s' pos=%d>" % (str(self)[:64], self.tell())

@implementer(IBitStream)
class ByteArrayBitStream(BitStreamMixin):
    """
    A bit-addressable stream backed by a bytearray. Byte-aligned
    reads and writes, which is nearly all of ABC, go straight to
    the array; only flag fields take the bit-at-a-time path.
    """

    def __init__(self, data=b""):
        """
        Constructor.

        >>> b1 = BitStream(b"\\x06\\xff")   # bytes are okay.
        >>> b2 = BitStream("101010")     # So is a string of bits.
        """
        self.bytes = bytearray()
        self.byte, self.bit = 0, 7
        self.len = 0
        if isinstance(data, str):
            self.write_bits(b == "1" for b in data if b in "01")
        else:
            self.bytes[:] = data
            self.len = len(self.bytes) * 8
        self.rewind()

    def read(self, part):
        return IFormat(part)._read(self)

    def write(self, argument, part=None):
        if part is None:
            part = argument
        IFormat(part)._write(self, argument)

    def set_cursor(self, cursor):
        self.byte, bit = divmod(cursor, 8)
        self.bit = 7-bit

    def _ensure(self, nbits):
        if self.tell() + nbits > self.len:
            raise TruncatedInput("unexpected end of data, needed %d more bit(s)"
                                 % (self.tell() + nbits - self.len,), self.byte)

    def read_bit(self):
        self._ensure(1)
        value = bool(self.bytes[self.byte] & (1 << self.bit))
        if self.bit == 0:
            self.bit = 7
            self.byte += 1
        else:
            self.bit -= 1
        return value

    def write_bit(self, v):
        while self.byte >= len(self.bytes):
            self.bytes.append(0)
        if v:
            self.bytes[self.byte] |= 1 << self.bit
        else:
            self.bytes[self.byte] &= ~(1 << self.bit)

        if self.bit == 0:
            self.bit = 7
            self.byte += 1
        else:
            self.bit -= 1
        self.len = max(self.len, self.tell())

    def read_bits(self, length):
        self._ensure(length)
        return [self.read_bit() for _ in range(length)]

    def write_bits(self, bits):
        for b in bits:
            self.write_bit(b)

    def read_byte(self):
        if self.bit == 7:
            self._ensure(8)
            self.byte += 1
            return self.bytes[self.byte-1]
        n = 0
        for bit in self.read_bits(8):
            n = (n << 1) | bit
        return n

    def write_byte(self, byte):
        if byte < 0:
            byte += 256
        if self.bit == 7:
            if self.byte < len(self.bytes):
                self.bytes[self.byte] = byte
            else:
                self.bytes.append(byte)
            self.byte += 1
            self.len = max(self.len, self.tell())
        else:
            self.write_bits(bool(byte & (1 << i)) for i in reversed(range(8)))

    def read_bytes(self, length):
        if self.bit == 7:
            self._ensure(length * 8)
            self.byte += length
            return bytes(self.bytes[self.byte-length:self.byte])
        return bytes(self.read_byte() for _ in range(length))

    def write_bytes(self, data):
        data = bytes(data)
        if self.bit == 7:
            self.bytes[self.byte:self.byte+len(data)] = data
            self.byte += len(data)
            self.len = max(self.len, self.tell())
        else:
            for byte in data:
                self.write_byte(byte)

    def tell(self):
        return self.byte*8 + 7-self.bit

    def __len__(self):
        return self.len

    def __iter__(self):
        for i in range(self.len):
            byte, bit = divmod(i, 8)
            yield bool(self.bytes[byte] & (1 << (7 - bit)))

BitStream = ByteArrayBitStream

class BitStreamParseMixin(object):
    @classmethod
    def from_bitstream(cls, bitstream):
        raise NotImplementedError

    @classmethod
    def from_bytestring(cls, data, *a, **kw):
        return cls.from_bitstream(BitStream(data), *a, **kw)
