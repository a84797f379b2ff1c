
import pytest

from abcodec.avm2.instructions import OpTable, OpcodeToName, get_instruction, \
     parse_instruction, BaseInstruction, JumpBase, LookupSwitch, Debug, U8Base, \
     CallBase
from abcodec.avm2.assembler import CodeAssembler
from abcodec.avm2.constants import ConstantPool
from abcodec.avm2.abc_ import ExceptionInfo
from abcodec.avm2.util import StringIndex, MultinameIndex
from abcodec.errors import UnknownOpcode, TruncatedInstruction, TruncatedInput, \
     OffsetOutOfRange, DanglingReference

def sample_arguments(cls):
    if issubclass(cls, JumpBase):
        return (0,)
    if issubclass(cls, LookupSwitch):
        return (0, [0, 0])
    if issubclass(cls, Debug):
        return (1, 2, 3, 4)
    if issubclass(cls, U8Base):
        return (200,)
    return (3,) * len(cls.fields)

def test_table():
    assert len(OpTable) == len(OpcodeToName)
    assert len(OpTable) >= 160
    for name, (opcode, base, kw) in OpTable.items():
        assert 0 < opcode < 0x100
        assert OpcodeToName[opcode] == name

@pytest.mark.parametrize("name", sorted(OpTable))
def test_every_opcode(name):
    cls = get_instruction(name)
    assert cls is get_instruction(name)
    assert cls.name == name
    assert issubclass(cls, BaseInstruction)

    inst = cls(*sample_arguments(cls))
    code = CodeAssembler([inst]).serialize()
    assert code[0] == cls.opcode
    assert len(code) == len(inst)

    parsed = CodeAssembler.parse(code)
    assert parsed.instructions == [inst]
    assert parsed.serialize() == code

def test_keyword_names():
    assert get_instruction("not_") is get_instruction("not")
    assert get_instruction("in_").opcode == 0xB4

def test_wrong_argument_count():
    pytest.raises(ValueError, get_instruction("getlocal"))
    pytest.raises(ValueError, get_instruction("returnvoid"), 1)

def test_nothing_function():
    asm = CodeAssembler()
    asm.emit("getlocal0")
    asm.emit("pushscope")
    asm.emit("returnvoid")
    assert asm.serialize() == b"\xd0\x30\x47"

def test_push_pool():
    asm = CodeAssembler()
    asm.emit("getlocal0")
    asm.emit("pushscope")
    asm.emit("pushstring", 1)
    asm.emit("pushint", 1)
    asm.emit("pushuint", 1)
    asm.emit("pushdouble", 1)
    asm.emit("returnvoid")
    assert asm.serialize() == (b"\xd0\x30" # getlocal0, pushscope
                               b"\x2c\x01" # pushstring, index 1
                               b"\x2d\x01" # pushint   , index 1
                               b"\x2e\x01" # pushuint  , index 1
                               b"\x2f\x01" # pushdouble, index 1
                               b"\x47")    # returnvoid

def test_jumping():
    code = (b"\x02"             # 0: nop
            b"\x10\x02\x00\x00" # 1: jump +2 -> 7
            b"\x26"             # 5: pushtrue
            b"\x29"             # 6: pop
            b"\x47")            # 7: returnvoid
    asm = CodeAssembler.parse(code)
    jump = asm.instructions[1]
    assert jump.name == "jump"
    assert jump.target == 7
    assert asm.addresses() == [0, 1, 5, 6, 7]
    assert asm.serialize() == code

def test_branch_offsets_are_absolute():
    jump = get_instruction("jump")
    for padding in range(4):
        asm = CodeAssembler([get_instruction("nop")()] * padding)
        asm.add_instruction(jump(0))
        asm.emit("returnvoid")

        parsed = CodeAssembler.parse(asm.serialize())
        assert parsed.instructions[padding] == jump(0)

def test_backwards_jump():
    asm = CodeAssembler()
    asm.emit("label")
    asm.emit("jump", 0)
    assert asm.serialize() == b"\x09\x10\xfb\xff\xff"

def test_jump_out_of_range():
    with pytest.raises(OffsetOutOfRange) as excinfo:
        CodeAssembler.parse(b"\x02\x10\x10\x00\x00")
    assert excinfo.value.where == "instruction at 0x1"

    pytest.raises(OffsetOutOfRange, CodeAssembler([get_instruction("jump")(100)]).serialize)
    pytest.raises(OffsetOutOfRange, CodeAssembler([get_instruction("iftrue")(-1)]).serialize)

def test_jump_to_end():
    # Branching to the end of the code is allowed.
    asm = CodeAssembler([get_instruction("jump")(4)])
    assert asm.serialize() == b"\x10\x00\x00\x00"

def test_lookupswitch():
    code = (b"\x02"             #  0: nop
            b"\x1b"             #  1: lookupswitch, relative to 1
            b"\xff\xff\xff"     #     default -> 0
            b"\x01"             #     case count 1, so two cases
            b"\x08\x00\x00"     #     case 0 -> 9
            b"\xff\xff\xff"     #     case 1 -> 0
            b"\x47")            # 12: returnvoid
    asm = CodeAssembler.parse(code)
    switch = asm.instructions[1]
    assert switch.default == 0
    assert switch.case_offsets == [9, 0]
    assert switch.targets() == [0, 9, 0]
    assert len(switch) == 11
    assert asm.serialize() == code

def test_lookupswitch_no_cases():
    switch = get_instruction("lookupswitch")(0, [])
    code = CodeAssembler([switch]).serialize()
    assert code == b"\x1b\x00\x00\x00\x00\x00\x00\x00"
    assert len(switch) == len(code)

    parsed = CodeAssembler.parse(code).instructions[0]
    assert parsed.default == 0
    assert parsed.case_offsets == [0]

def test_debug():
    code = b"\xef\x01\x02\x03\x04"
    inst = CodeAssembler.parse(code).instructions[0]
    assert inst.arguments == (1, 2, 3, 4)
    assert (inst.debug_type, inst.register_name, inst.register, inst.extra) == (1, 2, 3, 4)
    assert CodeAssembler([inst]).serialize() == code

def test_pushbyte():
    inst = CodeAssembler.parse(b"\x24\xff").instructions[0]
    assert inst.argument == 0xff
    assert inst.value == -1
    assert CodeAssembler([inst]).serialize() == b"\x24\xff"

def test_hasnext2():
    inst = CodeAssembler.parse(b"\x32\x01\x02").instructions[0]
    assert (inst.object_register, inst.index_register) == (1, 2)
    assert inst.arguments == (1, 2)

def test_callmethod_is_not_a_reference():
    # callmethod takes a dispatch id, which is never checked.
    const = ConstantPool()
    inst = CodeAssembler.parse(b"\x43\x63\x01", constants=const).instructions[0]
    assert (inst.disp_id, inst.num_args) == (99, 1)

def test_unknown_opcode():
    with pytest.raises(UnknownOpcode) as excinfo:
        CodeAssembler.parse(b"\x02\xff")
    assert excinfo.value.offset == 1
    assert excinfo.value.where == "instruction at 0x1"

    with pytest.raises(UnknownOpcode) as excinfo:
        CodeAssembler.parse(b"\x02\xff", origin=0x20)
    assert excinfo.value.offset == 0x21

def test_truncated_instruction():
    for code in [b"\x10\x00", b"\x2c", b"\x2c\x80", b"\x1b\x00\x00\x00\x01\x00\x00\x00",
                 b"\xef\x01\x02"]:
        with pytest.raises(TruncatedInstruction) as excinfo:
            CodeAssembler.parse(code)
        assert isinstance(excinfo.value, TruncatedInput)
        assert excinfo.value.offset == 0

def test_references_checked():
    const = ConstantPool()
    const.utf8.add_value(b"hi")

    asm = CodeAssembler.parse(b"\x2c\x01", constants=const)
    assert asm.instructions[0].index == 1
    assert isinstance(asm.instructions[0].index, StringIndex)

    pytest.raises(DanglingReference, CodeAssembler.parse, b"\x2c\x02", constants=const)

    # Without a constant pool nothing can be checked.
    asm = CodeAssembler.parse(b"\x60\x09")
    assert isinstance(asm.instructions[0].multiname, MultinameIndex)

    asm = CodeAssembler([get_instruction("pushstring")(5)], constants=const)
    pytest.raises(DanglingReference, asm.serialize)

def test_newcatch():
    exc = ExceptionInfo(0, 1, 2)
    asm = CodeAssembler.parse(b"\x5a\x00", exceptions=[exc])
    assert asm.instructions[0].exception == 0
    pytest.raises(DanglingReference, CodeAssembler.parse, b"\x5a\x01", exceptions=[exc])

def test_call_shapes():
    asm = CodeAssembler.parse(b"\x46\x01\x02" b"\x44\x03\x00")
    callprop, callstatic = asm.instructions
    assert isinstance(callprop, CallBase)
    assert (callprop.multiname, callprop.num_args) == (1, 2)
    assert (callstatic.method, callstatic.num_args) == (3, 0)

def test_parse_instruction():
    from abcodec.bitstream import BitStream
    bits = BitStream(b"\xd1\x62\x05")
    assert parse_instruction(bits) == get_instruction("getlocal1")()
    assert parse_instruction(bits) == get_instruction("getlocal")(5)
    assert bits.bits_available == 0

def test_repr():
    assert repr(get_instruction("getlocal")(5)) == "getlocal (0x62, argument=5)"
    assert repr(get_instruction("nop")()) == "nop (0x02)"

def test_classes_built_at_import():
    from abcodec.avm2.instructions import Instructions
    assert set(Instructions) == set(OpTable)
    for name, cls in Instructions.items():
        assert get_instruction(name) is cls

def test_concurrent_decodes_agree():
    import threading

    code = b"\xd0\x30\x24\x05\x2c\x01\x47"
    count = 8
    barrier = threading.Barrier(count)
    results = [None] * count

    def decode(i):
        barrier.wait()
        results[i] = CodeAssembler.parse(code)

    threads = [threading.Thread(target=decode, args=(i,)) for i in range(count)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    for asm in results:
        assert asm == results[0]
        assert [type(i) for i in asm] == [type(i) for i in results[0]]
