import io
import logging

from abcodec.bitstream.bitstream import BitStream
from abcodec.avm2.instructions import get_instruction, parse_instruction
from abcodec.avm2.util import ValuePool, ExceptionIndex
from abcodec.errors import AbcError, TruncatedInput, TruncatedInstruction, OffsetOutOfRange

log = logging.getLogger(__name__)

class CodeAssembler(object):
    """
    The instruction stream of one method body.

    Branch targets are held as absolute positions in the code, so
    instructions can be added or moved around without fixing up
    relative offsets by hand; serialize() derives them again.

    The tables that instruction operands refer to are only checked
    when the assembler knows them: abc for methods and classes,
    constants for the constant pool, exceptions for newcatch.
    """
    def __init__(self, instructions=(), abc=None, constants=None, exceptions=None):
        self.instructions = list(instructions)
        self.abc = abc
        self.constants = constants
        self.exceptions = exceptions

    def __eq__(self, other):
        if not isinstance(other, CodeAssembler):
            return NotImplemented
        return self.instructions == other.instructions

    def __ne__(self, other):
        result = self.__eq__(other)
        if result is NotImplemented:
            return result
        return not result

    __hash__ = None

    def __len__(self):
        return len(self.instructions)

    def __iter__(self):
        return iter(self.instructions)

    def __repr__(self):
        return "<CodeAssembler (%d instructions)>" % (len(self.instructions),)

    def table(self, name):
        """
        Return the ValuePool called name that operands refer to,
        or None if this assembler has not been given it.
        """
        if name == "exceptions":
            if self.exceptions is None:
                return None
            pool = ValuePool("exceptions", ExceptionIndex, sentinel=False)
            pool.pool = list(self.exceptions)
            return pool
        if name in ("methods", "classes"):
            return getattr(self.abc, name, None)
        return getattr(self.constants, name, None)

    def emit(self, name, *a):
        """
        Emit an instruction, with given arguments.
        """
        return self.add_instruction(get_instruction(name)(*a))

    def add_instruction(self, instruction):
        """
        Add an instruction to this block.
        """
        self.instructions.append(instruction)
        return instruction

    def add_instructions(self, instructions):
        """
        Iterate over the given argument and add these instructions,
        one by one, to this assembler.
        """
        for i in instructions:
            self.add_instruction(i)

    def addresses(self):
        """
        Return the address of every instruction, in order.
        """
        addresses, offset = [], 0
        for inst in self.instructions:
            addresses.append(offset)
            offset += len(inst)
        return addresses

    def check_targets(self, addresses, code_length, origin=None):
        for inst, address in zip(self.instructions, addresses):
            for target in inst.targets():
                if not 0 <= target <= code_length:
                    offset = None if origin is None else origin + address
                    raise OffsetOutOfRange("%s branches to 0x%x, outside of the code "
                                           "(0x%x bytes)" % (inst.name, target, code_length),
                                           offset, "instruction at 0x%x" % (address,))

    def serialize(self):
        """
        Serialize this code to bytes, resolving the branch
        targets into relative offsets.
        """
        code, addresses = io.BytesIO(), []
        for inst in self.instructions:
            address = code.tell()
            addresses.append(address)
            try:
                code.write(inst.serialize(self, address))
            except AbcError as e:
                raise e.locate(where="instruction at 0x%x" % (address,))

        code = code.getvalue()
        self.check_targets(addresses, len(code))
        return code

    @classmethod
    def parse(cls, data, abc=None, constants=None, exceptions=None, origin=0):
        """
        Decode a whole instruction stream. origin is where data
        starts in the enclosing ABC, and is only used to report
        errors at the right offset.
        """
        asm = cls((), abc, constants, exceptions)
        bitstream, addresses = BitStream(data), []
        finish = len(data)
        while bitstream.tell()//8 < finish:
            address = bitstream.tell()//8
            addresses.append(address)
            try:
                asm.add_instruction(parse_instruction(bitstream, asm))
            except TruncatedInput:
                raise TruncatedInstruction("instruction at 0x%x runs past the end of "
                                           "the code (0x%x bytes)" % (address, finish),
                                           origin + address)
            except AbcError as e:
                raise e.rebase(origin).locate(where="instruction at 0x%x" % (address,))

        asm.check_targets(addresses, finish, origin)

        log.debug("decoded %d instructions from 0x%x bytes of code",
                  len(asm.instructions), finish)
        return asm
