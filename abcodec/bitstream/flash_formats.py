from abcodec.bitstream.formats import FloatFormat, U32, S32, SignedByte, Byte

DOUBLE     = FloatFormat[64:"<":"DOUBLE"]

SI24       = SignedByte[3:"<":"SI24"]

UI8        = Byte[1:"<":"UI8"]
UI16       = Byte[2:"<":"UI16"]

# ABC only ever stores 30 significant bits in a u30,
# but the wire encoding is the same as a U32.
U30        = U32

__all__ = ["DOUBLE", "SI24", "UI8", "UI16", "U30", "U32", "S32"]
