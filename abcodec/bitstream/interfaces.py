
from zope.interface import Interface, Attribute

class IBitStream(Interface):
    bits_available = Attribute("The number of bits left in the BitStream")

    def read(format):
        """
        Read a format and return it.
        """

    def write(argument, format=None):
        """
        Write argument as format, which is an IFormat.

        If format is None, argument should be treated as an IFormat
        that doesn't require an argument.
        """

    def read_bit():
        """
        Read a bit.
        """

    def write_bit(bit):
        """
        Write a bit.
        """

    def read_bits(length):
        """
        Read length bits.
        """

    def write_bits(bits):
        """
        Write an iterable of bits.
        """

    def read_byte():
        """
        Read a byte.
        """

    def write_byte(byte):
        """
        Write a byte.
        """

    def read_bytes(length):
        """
        Read length bytes and return them as a bytes object.
        """

    def write_bytes(data):
        """
        Write an iterable of bytes.
        """

    def __len__():
        """
        Return how many bits are in this stream.
        """

    def seek(offset, whence):
        """
        Move the cursor, in bits.
        """

    def tell():
        """
        Return the cursor, in bits.
        """

class IFormat(Interface):
    def _read(bitstream):
        """
        Read and return this format from the IBitStream bitstream.

        This should be called by an IBitStream instance.
        """

    def _write(bitstream, argument):
        """
        Write argument as this format to the IBitStream bitstream.

        This should be called by an IBitStream instance.
        """

class IFormatData(Interface):
    """
    The parameters a format is specialized with: Format[length:endianness].
    """
    length     = Attribute("length")
    endianness = Attribute("endianness")
