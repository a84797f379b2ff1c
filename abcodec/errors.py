"""
Errors raised while decoding or encoding ABC.

Everything derives from AbcError, which is a ValueError, so callers
that only care about "this payload is bad" can catch either.
"""

class AbcError(ValueError):
    "Generic ABC error - should never be thrown, only subclassed"

    def __init__(self, message, offset=None, where=None):
        super(AbcError, self).__init__(message)
        self.message = message
        self.offset = offset
        self.where = where

    def locate(self, offset=None, where=None):
        """
        Fill in the offset of this error if it is not known yet, and
        prefix where with the enclosing record. Returns the error so
        it can be re-raised.
        """
        if self.offset is None:
            self.offset = offset
        if where and self.where:
            self.where = "%s, %s" % (where, self.where)
        elif where:
            self.where = where
        return self

    def rebase(self, origin):
        """
        Make an offset that was relative to a sub-stream starting at
        origin relative to the whole payload.
        """
        if self.offset is not None:
            self.offset += origin
        return self

    def __str__(self):
        text = self.message
        if self.where:
            text = "%s: %s" % (self.where, text)
        if self.offset is not None:
            text += " (at offset 0x%x)" % (self.offset,)
        return text

class TruncatedInput(AbcError):
    "The stream ended in the middle of a field"

class TruncatedInstruction(TruncatedInput):
    "An instruction operand runs past the end of the method's code"

class Overlong(AbcError):
    "A variable-length integer did not terminate within five bytes"

MalformedVarint = Overlong

class UnknownKind(AbcError):
    "A one-byte kind tag has no known mapping"

class UnknownOpcode(UnknownKind):
    "An instruction byte that is not an AVM2 opcode"

class UnknownMultinameKind(UnknownKind):
    "A multiname kind tag that is not one of the multiname shapes"

class UnknownNamespaceKind(UnknownKind):
    "A namespace kind tag that is not one of the seven namespace kinds"

class UnknownTraitKind(UnknownKind):
    "A trait tag whose kind nibble is not one of the seven trait kinds"

class UnknownValueKind(UnknownKind):
    "A default value kind tag that has no meaning"

class DanglingReference(AbcError):
    "An index that points past the end of the table it refers to"

class OffsetOutOfRange(AbcError):
    "A branch or exception offset that falls outside the method's code"

class CountMismatch(AbcError):
    "Two counts that have to agree do not"
