"""
A codec for ABC, the ActionScript Byte Code carried in the
DoABC tags of SWF files.

>>> abc = decode(data)
>>> encode(abc) == data
True
"""

from abcodec.avm2.abc_ import AbcFile

__version__ = "0.5"

def decode(data):
    """
    Decode one ABC payload into an AbcFile.
    """
    return AbcFile.from_bytestring(data)

def encode(abc):
    """
    Encode an AbcFile back into bytes.
    """
    return abc.serialize()

__all__ = ["AbcFile", "decode", "encode"]
