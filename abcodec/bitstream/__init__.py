
from abcodec.bitstream.bitstream import BitStream, BitStreamParseMixin

__all__ = ["BitStream", "BitStreamParseMixin"]
