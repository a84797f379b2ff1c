from abcodec.bitstream.flash_formats import UI8, SI24, U30
from abcodec.avm2.util import (serialize_u30 as u30, serialize_s24 as s24,
                               Record, IndexTypes, S24_MIN, S24_MAX)
from abcodec.errors import UnknownOpcode, OffsetOutOfRange

## References

def read_ref(bitstream, asm, table):
    """
    Read a u30 reference into table. It is checked right away if the
    assembler knows the table, and otherwise kept as a bare index.
    """
    pool = asm.table(table) if asm is not None else None
    if pool is None:
        return IndexTypes[table](bitstream.read(U30))
    return pool.read_index(bitstream)

def serialize_ref(asm, table, index):
    pool = asm.table(table) if asm is not None else None
    if pool is None:
        return u30(index)
    return pool.serialize_index(index)

def relative_offset(target, base):
    offset = target - base
    if offset < S24_MIN or offset > S24_MAX:
        raise OffsetOutOfRange("branch from 0x%x to 0x%x does not fit in a s24"
                               % (base, target))
    return s24(offset)

## Instructions

class BaseInstruction(Record):
    """
    One decoded instruction. fields names the operands, in the order
    they are stored; an instruction holds nothing else.
    """
    opcode = None
    name   = None
    fields = ()

    def __init__(self, *args):
        if len(self.fields) != len(args):
            raise ValueError("%s takes %d argument(s). "
                             "This instance has %d argument(s)." % \
                             (self.name, len(self.fields), len(args)))
        for field, value in zip(self.fields, args):
            setattr(self, field, value)

    def __repr__(self):
        if self.opcode is None:
            return self.name
        return "%s (0x%02X%s)" % (self.name, self.opcode, self.additional_repr())

    def __len__(self):
        return len(self.serialize())

    @property
    def arguments(self):
        return tuple(getattr(self, f) for f in self.fields)

    def additional_repr(self):
        if not self.fields:
            return ""
        return ", " + ", ".join("%s=%r" % (f, getattr(self, f)) for f in self.fields)

    def targets(self):
        """
        The absolute code positions this instruction can branch to.
        """
        return []

    @classmethod
    def parse_inner(cls, bitstream, asm):
        return cls()

    def serialize(self, asm=None, address=0):
        return bytes([self.opcode]) + self.serialize_arguments(asm, address)

    def serialize_arguments(self, asm, address):
        return b""

class Debug(BaseInstruction):
    fields = ("debug_type", "register_name", "register", "extra")

    def serialize_arguments(self, asm, address):
        buf = bytes([self.debug_type])
        buf += serialize_ref(asm, "utf8", self.register_name)
        buf += bytes([self.register])
        buf += u30(self.extra)
        return buf

    @classmethod
    def parse_inner(cls, bitstream, asm):
        debug_type    = bitstream.read(UI8)
        register_name = read_ref(bitstream, asm, "utf8")
        register      = bitstream.read(UI8)
        extra         = bitstream.read(U30)
        return cls(debug_type, register_name, register, extra)

class U8Base(BaseInstruction):
    fields = ("argument",)

    @classmethod
    def parse_inner(cls, bitstream, asm):
        return cls(bitstream.read(UI8))

    def serialize_arguments(self, asm, address):
        return bytes([self.argument])

class PushByte(U8Base):
    """
    pushbyte keeps its operand as the raw byte; the VM
    sign-extends it, which value does too.
    """
    @property
    def value(self):
        if self.argument > 0x7F:
            return self.argument - 0x100
        return self.argument

class U30Base(BaseInstruction):
    fields = ("argument",)

    @classmethod
    def parse_inner(cls, bitstream, asm):
        return cls(*[bitstream.read(U30) for f in cls.fields])

    def serialize_arguments(self, asm, address):
        return b''.join(u30(i) for i in self.arguments)

class PoolBase(BaseInstruction):
    """
    An instruction whose only operand is a reference into one
    of the tables: the constant pool, methods, classes, or the
    exception table of the method body.
    """
    pool = None
    fields = ("index",)

    @classmethod
    def parse_inner(cls, bitstream, asm):
        return cls(read_ref(bitstream, asm, cls.pool))

    def serialize_arguments(self, asm, address):
        return serialize_ref(asm, self.pool, getattr(self, self.fields[0]))

class MultinameBase(PoolBase):
    pool = "multiname"
    fields = ("multiname",)

class CallBase(BaseInstruction):
    """
    A call: a reference and an argument count. callmethod stores a
    dispatch id, which is not a table reference at all (pool is None).
    """
    pool = None
    fields = ("index", "num_args")

    @classmethod
    def parse_inner(cls, bitstream, asm):
        if cls.pool is None:
            index = bitstream.read(U30)
        else:
            index = read_ref(bitstream, asm, cls.pool)
        num_args = bitstream.read(U30)
        return cls(index, num_args)

    def serialize_arguments(self, asm, address):
        index = getattr(self, self.fields[0])
        if self.pool is None:
            code = u30(index)
        else:
            code = serialize_ref(asm, self.pool, index)
        return code + u30(self.num_args)

class CallMultiname(CallBase):
    pool = "multiname"
    fields = ("multiname", "num_args")

class JumpBase(BaseInstruction):
    """
    A branch. target is the absolute position in the method's code;
    on the wire it is an s24 relative to the end of the instruction.
    """
    fields = ("target",)

    def targets(self):
        return [self.target]

    @classmethod
    def parse_inner(cls, bitstream, asm):
        offset  = bitstream.read(SI24)
        offset += bitstream.tell()//8
        return cls(offset)

    def serialize_arguments(self, asm, address):
        return relative_offset(self.target, address+4)

    def __len__(self):
        return 4

class LookupSwitch(BaseInstruction):
    """
    lookupswitch offsets are relative to the lookupswitch opcode
    itself. case_offsets holds every case target written, which is
    the case count plus one; an empty list is written as a single
    case that goes to the default.
    """
    fields = ("default", "case_offsets")

    def targets(self):
        return [self.default] + list(self.case_offsets)

    @classmethod
    def parse_inner(cls, bitstream, asm):
        base = bitstream.tell()//8 - 1

        # default label
        default = base + bitstream.read(SI24)

        # case label count
        cases, count = [], bitstream.read(U30) + 1

        for i in range(count):
            cases.append(base + bitstream.read(SI24))

        return cls(default, cases)

    def serialize_arguments(self, asm, address):
        cases = list(self.case_offsets) or [self.default]
        code = [relative_offset(self.default, address)]
        code.append(u30(len(cases) - 1))
        code.extend(relative_offset(case, address) for case in cases)
        return b''.join(code)

    def __len__(self):
        cases = len(self.case_offsets) or 1
        return 4 + len(u30(cases - 1)) + 3*cases

## Instruction Table

def OP(opcode, base=BaseInstruction, **kw):
    return opcode, base, kw

OpTable = dict(
    bkpt            = OP(0x01),
    nop             = OP(0x02),
    throw           = OP(0x03),
    getsuper        = OP(0x04, base=MultinameBase),
    setsuper        = OP(0x05, base=MultinameBase),
    dxns            = OP(0x06, base=PoolBase, pool="utf8"),
    dxnslate        = OP(0x07),
    kill            = OP(0x08, base=U30Base),
    label           = OP(0x09),

    pop             = OP(0x29),
    dup             = OP(0x2A),

    pushwith        = OP(0x1C),
    popscope        = OP(0x1D),
    pushscope       = OP(0x30),

    pushnull        = OP(0x20),
    pushundefined   = OP(0x21),
    pushtrue        = OP(0x26),
    pushfalse       = OP(0x27),
    pushnan         = OP(0x28),

    pushbyte        = OP(0x24, base=PushByte),
    pushstring      = OP(0x2C, base=PoolBase, pool="utf8"),
    pushint         = OP(0x2D, base=PoolBase, pool="int"),
    pushuint        = OP(0x2E, base=PoolBase, pool="uint"),
    pushdouble      = OP(0x2F, base=PoolBase, pool="double"),
    pushnamespace   = OP(0x31, base=PoolBase, pool="namespace"),
    pushshort       = OP(0x25, base=U30Base),

    ifnlt           = OP(0x0C, base=JumpBase),
    ifnle           = OP(0x0D, base=JumpBase),
    ifngt           = OP(0x0E, base=JumpBase),
    ifnge           = OP(0x0F, base=JumpBase),

    jump            = OP(0x10, base=JumpBase),
    iftrue          = OP(0x11, base=JumpBase),
    iffalse         = OP(0x12, base=JumpBase),

    ifeq            = OP(0x13, base=JumpBase),
    ifne            = OP(0x14, base=JumpBase),
    iflt            = OP(0x15, base=JumpBase),
    ifle            = OP(0x16, base=JumpBase),
    ifgt            = OP(0x17, base=JumpBase),
    ifge            = OP(0x18, base=JumpBase),
    ifstricteq      = OP(0x19, base=JumpBase),
    ifstrictne      = OP(0x1A, base=JumpBase),
    lookupswitch    = OP(0x1B, base=LookupSwitch),

    nextname        = OP(0x1E),
    nextvalue       = OP(0x23),
    hasnext         = OP(0x1F),
    hasnext2        = OP(0x32, base=U30Base, fields=("object_register", "index_register")),

    # Alchemy domain memory.
    li8             = OP(0x35),
    li16            = OP(0x36),
    li32            = OP(0x37),
    lf32            = OP(0x38),
    lf64            = OP(0x39),
    si8             = OP(0x3A),
    si16            = OP(0x3B),
    si32            = OP(0x3C),
    sf32            = OP(0x3D),
    sf64            = OP(0x3E),
    sxi1            = OP(0x50),
    sxi8            = OP(0x51),
    sxi16           = OP(0x52),

    returnvoid      = OP(0x47),
    returnvalue     = OP(0x48),

    applytype       = OP(0x53, base=U30Base, fields=("num_args",)),
    newobject       = OP(0x55, base=U30Base, fields=("num_args",)),
    newarray        = OP(0x56, base=U30Base, fields=("num_args",)),
    newactivation   = OP(0x57),
    newfunction     = OP(0x40, base=PoolBase, pool="methods", fields=("method",)),
    newclass        = OP(0x58, base=PoolBase, pool="classes", fields=("cls",)),
    newcatch        = OP(0x5A, base=PoolBase, pool="exceptions", fields=("exception",)),
    findproperty    = OP(0x5E, base=MultinameBase),
    findpropstrict  = OP(0x5D, base=MultinameBase),
    finddef         = OP(0x5F, base=MultinameBase),

    coerce          = OP(0x80, base=MultinameBase),
    getlex          = OP(0x60, base=MultinameBase),
    setproperty     = OP(0x61, base=MultinameBase),
    initproperty    = OP(0x68, base=MultinameBase),
    getproperty     = OP(0x66, base=MultinameBase),
    deleteproperty  = OP(0x6A, base=MultinameBase),
    getdescendants  = OP(0x59, base=MultinameBase),

    call            = OP(0x41, base=U30Base, fields=("num_args",)),
    construct       = OP(0x42, base=U30Base, fields=("num_args",)),
    constructsuper  = OP(0x49, base=U30Base, fields=("num_args",)),
    callmethod      = OP(0x43, base=CallBase, fields=("disp_id", "num_args")),
    callstatic      = OP(0x44, base=CallBase, pool="methods", fields=("method", "num_args")),
    callsuper       = OP(0x45, base=CallMultiname),
    callproperty    = OP(0x46, base=CallMultiname),
    constructprop   = OP(0x4A, base=CallMultiname),
    callproplex     = OP(0x4C, base=CallMultiname),
    callsupervoid   = OP(0x4E, base=CallMultiname),
    callpropvoid    = OP(0x4F, base=CallMultiname),

    getlocal        = OP(0x62, base=U30Base),
    setlocal        = OP(0x63, base=U30Base),

    getglobalscope  = OP(0x64),
    getscopeobject  = OP(0x65, base=U8Base),
    getouterscope   = OP(0x67, base=U30Base),
    getslot         = OP(0x6C, base=U30Base),
    setslot         = OP(0x6D, base=U30Base),
    getglobalslot   = OP(0x6E, base=U30Base),
    setglobalslot   = OP(0x6F, base=U30Base),

    getlocal0       = OP(0xD0, register=0),
    getlocal1       = OP(0xD1, register=1),
    getlocal2       = OP(0xD2, register=2),
    getlocal3       = OP(0xD3, register=3),

    setlocal0       = OP(0xD4, register=0),
    setlocal1       = OP(0xD5, register=1),
    setlocal2       = OP(0xD6, register=2),
    setlocal3       = OP(0xD7, register=3),

    esc_xelem       = OP(0x71),
    esc_xattr       = OP(0x72),

    coerce_b        = OP(0x81),
    coerce_a        = OP(0x82),
    coerce_i        = OP(0x83),
    coerce_d        = OP(0x84),
    coerce_s        = OP(0x85),
    coerce_u        = OP(0x88),
    coerce_o        = OP(0x89),
    convert_s       = OP(0x70),
    convert_i       = OP(0x73),
    convert_u       = OP(0x74),
    convert_d       = OP(0x75),
    convert_b       = OP(0x76),
    convert_o       = OP(0x77),
    checkfilter     = OP(0x78),

    swap            = OP(0x2B),
    negate          = OP(0x90),
    negate_i        = OP(0xC4),
    increment       = OP(0x91),
    increment_i     = OP(0xC0),
    decrement       = OP(0x93),
    decrement_i     = OP(0xC1),
    typeof          = OP(0x95),
    not_            = OP(0x96),
    bitnot          = OP(0x97),

    add             = OP(0xA0),
    add_i           = OP(0xC5),
    subtract        = OP(0xA1),
    subtract_i      = OP(0xC6),
    multiply        = OP(0xA2),
    multiply_i      = OP(0xC7),
    divide          = OP(0xA3),
    modulo          = OP(0xA4),
    lshift          = OP(0xA5),
    rshift          = OP(0xA6),
    urshift         = OP(0xA7),
    bitand          = OP(0xA8),
    bitor           = OP(0xA9),
    bitxor          = OP(0xAA),

    equals          = OP(0xAB),
    strictequals    = OP(0xAC),
    lessthan        = OP(0xAD),
    lessequals      = OP(0xAE),
    greaterthan     = OP(0xAF),
    greaterequals   = OP(0xB0),

    astype          = OP(0x86, base=MultinameBase),
    astypelate      = OP(0x87),
    instanceof      = OP(0xB1),
    istype          = OP(0xB2, base=MultinameBase),
    istypelate      = OP(0xB3),
    in_             = OP(0xB4),

    inclocal        = OP(0x92, base=U30Base),
    inclocal_i      = OP(0xC2, base=U30Base),
    declocal        = OP(0x94, base=U30Base),
    declocal_i      = OP(0xC3, base=U30Base),

    debug           = OP(0xEF, base=Debug),
    debugline       = OP(0xF0, base=U30Base, fields=("line",)),
    debugfile       = OP(0xF1, base=PoolBase, pool="utf8", fields=("filename",)),
    bkptline        = OP(0xF2, base=U30Base, fields=("line",)),
    timestamp       = OP(0xF3),
)

# Patch up keyword those keywords.
OpTable["in"] = OpTable.pop("in_")
OpTable["not"] = OpTable.pop("not_")

# Map opcode -> name.
def _make_name_table():
    tbl = {}
    for name, (opcode, _, _2) in OpTable.items():
        assert opcode not in tbl, "opcode 0x%02X used twice" % (opcode,)
        tbl[opcode] = name
    return tbl

OpcodeToName = _make_name_table()

def _make_instruction(name, opcode, base, kw):
    instruction = type(name, (base,), dict(kw))
    instruction.opcode = opcode
    instruction.name = name
    return instruction

# Every instruction class, built once at import.
Instructions = dict((name, _make_instruction(name, *spec)) for name, spec in OpTable.items())

## Public API.

def get_instruction(name):
    return Instructions[name.rstrip("_")]

def parse_instruction(bitstream, asm=None):
    offset = bitstream.tell()//8
    opcode = bitstream.read(UI8)
    if opcode not in OpcodeToName:
        raise UnknownOpcode("unknown opcode 0x%02X" % (opcode,), offset)
    cls = Instructions[OpcodeToName[opcode]]
    return cls.parse_inner(bitstream, asm)

__all__ = ["OpTable", "OpcodeToName", "Instructions", "get_instruction", "parse_instruction"]
