import logging
import struct

from abcodec.bitstream.bitstream import BitStreamParseMixin
from abcodec.bitstream.flash_formats import UI8, U30, U32, S32, DOUBLE
from abcodec.bitstream.formats import ByteString
from abcodec.avm2.interfaces import IMultiname, IAbcRecord
from abcodec.avm2.util import (serialize_u30 as u30, serialize_u32 as u32,
                               serialize_s32 as s32, ValuePool, Record, double_key,
                               IntIndex, UIntIndex, DoubleIndex, StringIndex,
                               NamespaceIndex, NamespaceSetIndex, MultinameIndex)
from abcodec.errors import (AbcError, UnknownMultinameKind,
                            UnknownNamespaceKind, UnknownValueKind)

from zope.interface import implementer

log = logging.getLogger(__name__)

# ======================================
# Method Flags
# ======================================

class MethodFlag(object):
    # Suggest to the run-time that an arguments object (as specified by
    # the ActionScript 3.0 Language Reference) be created. Must not be used
    # together with MethodFlag.NeedRest
    Arguments     = 0x01

    # Must be set if this method uses the newactivation opcode
    Activation    = 0x02

    # This flag creates an ActionScript 3.0 ...rest arguments array.
    # Must not be used with MethodFlag.Arguments
    NeedRest      = 0x04

    # Must be set if this method has optional parameters and the options
    # field is present in this method_info structure.
    HasOptional   = 0x08

    # Undocumented as of now.
    IgnoreRest    = 0x10

    # Undocumented as of now. Assuming this flag is to implement the
    # "native" keyword in AS3.
    Native        = 0x20

    # Must be set if this method uses the dxns or dxnslate opcodes.
    SetsDxns      = 0x40

    # Must be set when the param_names field is present in this method_info
    # structure.
    HasParamNames = 0x80

# ======================================
# Types
# ======================================

class TypeIdentifier(object):
    UTF8        = 0x01

    # Number types
    Int         = 0x03
    UInt        = 0x04
    Double      = 0x06

    # Boolean types
    False_      = 0x0A
    True_       = 0x0B

    # Object types
    Undefined   = 0x00
    Null        = 0x0C

    # Namespace types
    PrivateNamespace   = 0x05
    Namespace          = 0x08
    PackageNamespace   = 0x16
    PackageInternalNs  = 0x17
    ProtectedNamespace = 0x18
    ExplicitNamespace  = 0x19
    StaticProtectedNs  = 0x1A

    # Namespace Set types
    NamespaceSet       = 0x15

    # Multiname types
    QName              = 0x07 # o.ns::name   - fully resolved at compile-time
    QNameA             = 0x0D # o.@ns::name
    Multiname          = 0x09 # o.name       - uses an nsset to resolve at runtime
    MultinameA         = 0x0E # o.@name
    RtqName            = 0x0F # o.ns::name   - namespace on stack
    RtqNameA           = 0x10 # o.@ns::name
    RtqNameL           = 0x11 # o.ns::[name] - namespace and name on stack
    RtqNameLA          = 0x12 # o.@ns::name
    MultinameL         = 0x1B # o.[name]     - name on stack
    MultinameLA        = 0x1C # o.@[name]
    TypeName           = 0x1D # o.ns::name.<types> - used to implement Vector

NamespaceKinds = frozenset([
    TypeIdentifier.Namespace,
    TypeIdentifier.PackageNamespace,
    TypeIdentifier.PackageInternalNs,
    TypeIdentifier.ProtectedNamespace,
    TypeIdentifier.ExplicitNamespace,
    TypeIdentifier.StaticProtectedNs,
    TypeIdentifier.PrivateNamespace,
])

# ======================================
# Namespace
# ======================================

@implementer(IAbcRecord)
class Namespace(Record):
    fields = ("kind", "name")

    def __init__(self, kind, name=0):
        self.kind = kind
        self.name = StringIndex(name)

    @classmethod
    def parse(cls, bitstream, constants):
        offset = bitstream.tell() // 8
        kind = bitstream.read(UI8)
        if kind not in NamespaceKinds:
            raise UnknownNamespaceKind("unknown namespace kind 0x%02x" % (kind,), offset)
        return cls(kind, constants.utf8.read_index(bitstream))

    def serialize(self, constants):
        if self.kind not in NamespaceKinds:
            raise UnknownNamespaceKind("unknown namespace kind 0x%02x" % (self.kind,))
        return bytes([self.kind]) + constants.utf8.serialize_index(self.name)

    def __repr__(self):
        kind = {0x16: "package", 0x08: "normal", 0x05: "private"}
        return "Namespace(name=%r, kind=%r)" % (self.name, kind.get(self.kind, self.kind))

# NamespaceSets
@implementer(IAbcRecord)
class NamespaceSet(Record):
    """
    A "NamespaceSet" provides a list of namespaces, usually with
    a Multiname/MultinameL to search the scope stack.
    """
    fields = ("namespaces",)

    def __init__(self, *namespaces):
        self.namespaces = [NamespaceIndex(ns) for ns in namespaces]

    def __len__(self):
        return len(self.namespaces)

    def __iter__(self):
        return iter(self.namespaces)

    def __repr__(self):
        return 'NamespaceSet(%r)' % (self.namespaces,)

    @classmethod
    def parse(cls, bitstream, constants):
        count = bitstream.read(U30)
        return cls(*[constants.namespace.read_index(bitstream) for i in range(count)])

    def serialize(self, constants):
        return u30(len(self.namespaces)) + b''.join(
            constants.namespace.serialize_index(index) for index in self.namespaces)

# ======================================
# Multinames
# ======================================

def parse_multiname(bitstream, constants):
    offset = bitstream.tell() // 8
    kind = bitstream.read(UI8)
    try:
        cls = MultinameKinds[kind]
    except KeyError:
        raise UnknownMultinameKind("unknown multiname kind 0x%02x" % (kind,), offset)
    return cls.parse(bitstream, constants)

@implementer(IMultiname, IAbcRecord)
class MultinameL(Record):
    kind = TypeIdentifier.MultinameL
    fields = ("ns_set",)

    runtime = True
    runtime_namespace = False

    def __init__(self, ns_set=0):
        self.ns_set = NamespaceSetIndex(ns_set)

    @classmethod
    def parse(cls, bitstream, constants):
        return cls(constants.nsset.read_index(bitstream))

    def serialize(self, constants):
        return bytes([self.kind]) + constants.nsset.serialize_index(self.ns_set)

class MultinameLA(MultinameL):
    kind = TypeIdentifier.MultinameLA

@implementer(IMultiname, IAbcRecord)
class Multiname(Record):
    kind = TypeIdentifier.Multiname
    fields = ("name", "ns_set")

    runtime = False
    runtime_namespace = False

    def __init__(self, name=0, ns_set=0):
        self.name = StringIndex(name)
        self.ns_set = NamespaceSetIndex(ns_set)

    @classmethod
    def parse(cls, bitstream, constants):
        name = constants.utf8.read_index(bitstream)
        nsset = constants.nsset.read_index(bitstream)
        return cls(name, nsset)

    def serialize(self, constants):
        return (bytes([self.kind]) + constants.utf8.serialize_index(self.name) +
                constants.nsset.serialize_index(self.ns_set))

class MultinameA(Multiname):
    kind = TypeIdentifier.MultinameA

@implementer(IMultiname, IAbcRecord)
class QName(Record):
    kind = TypeIdentifier.QName
    fields = ("name", "ns")

    runtime = False
    runtime_namespace = False

    def __init__(self, name=0, ns=0):
        self.name = StringIndex(name)
        self.ns = NamespaceIndex(ns)

    @classmethod
    def parse(cls, bitstream, constants):
        ns = constants.namespace.read_index(bitstream)
        name = constants.utf8.read_index(bitstream)
        return cls(name, ns)

    def serialize(self, constants):
        return (bytes([self.kind]) + constants.namespace.serialize_index(self.ns) +
                constants.utf8.serialize_index(self.name))

class QNameA(QName):
    kind = TypeIdentifier.QNameA

@implementer(IMultiname, IAbcRecord)
class RtqName(Record):
    kind = TypeIdentifier.RtqName
    fields = ("name",)

    runtime = False
    runtime_namespace = True

    def __init__(self, name=0):
        self.name = StringIndex(name)

    @classmethod
    def parse(cls, bitstream, constants):
        return cls(constants.utf8.read_index(bitstream))

    def serialize(self, constants):
        return bytes([self.kind]) + constants.utf8.serialize_index(self.name)

class RtqNameA(RtqName):
    kind = TypeIdentifier.RtqNameA

@implementer(IMultiname, IAbcRecord)
class RtqNameL(Record):
    kind = TypeIdentifier.RtqNameL
    fields = ()

    runtime = True
    runtime_namespace = True

    @classmethod
    def parse(cls, bitstream, constants):
        return cls()

    def serialize(self, constants):
        return bytes([self.kind])

class RtqNameLA(RtqNameL):
    kind = TypeIdentifier.RtqNameLA

@implementer(IMultiname, IAbcRecord)
class TypeName(Record):
    """
    A parameterized type, like Vector.<int>. Both the name and the
    parameters are references to other multinames, which may come
    later in the table.
    """
    kind = TypeIdentifier.TypeName
    fields = ("name", "types")

    runtime = False
    runtime_namespace = False

    def __init__(self, name=0, types=()):
        self.name  = MultinameIndex(name)
        self.types = [MultinameIndex(T) for T in types]

    def __repr__(self):
        return "TypeName(%r.<%s>)" % (self.name, ', '.join(repr(a) for a in self.types))

    @classmethod
    def parse(cls, bitstream, constants):
        name = constants.multiname.read_index(bitstream)
        types_count = bitstream.read(U30)
        types = [constants.multiname.read_index(bitstream) for i in range(types_count)]
        return cls(name, types)

    def serialize(self, constants):
        code = [bytes([self.kind])]
        code.append(constants.multiname.serialize_index(self.name))
        code.append(u30(len(self.types)))
        code.extend(constants.multiname.serialize_index(a) for a in self.types)
        return b''.join(code)

MultinameKinds = {
    TypeIdentifier.QName: QName,
    TypeIdentifier.QNameA: QNameA,
    TypeIdentifier.MultinameL: MultinameL,
    TypeIdentifier.MultinameLA: MultinameLA,
    TypeIdentifier.Multiname: Multiname,
    TypeIdentifier.MultinameA: MultinameA,
    TypeIdentifier.RtqName: RtqName,
    TypeIdentifier.RtqNameA: RtqNameA,
    TypeIdentifier.RtqNameL: RtqNameL,
    TypeIdentifier.RtqNameLA: RtqNameLA,
    TypeIdentifier.TypeName: TypeName,
}

# ======================================
# Default values
# ======================================

# The constant table each kind of default value points into.
ValueKindTables = {
    TypeIdentifier.Int: "int",
    TypeIdentifier.UInt: "uint",
    TypeIdentifier.Double: "double",
    TypeIdentifier.UTF8: "utf8",
}
ValueKindTables.update(dict.fromkeys(NamespaceKinds, "namespace"))

# Kinds that carry no value. Their index is written but means nothing.
NullaryKinds = frozenset([
    TypeIdentifier.Undefined,
    TypeIdentifier.False_,
    TypeIdentifier.True_,
    TypeIdentifier.Null,
])

@implementer(IAbcRecord)
class DefaultValue(Record):
    """
    The value of an optional parameter or of a slot: a kind tag and
    an index into the constant table that kind selects. The nullary
    kinds (undefined, null, true, false) have no table; their index
    is kept as read, and defaults to the kind tag itself.
    """
    fields = ("kind", "index")

    def __init__(self, kind, index=None):
        self.kind = kind
        if index is None:
            if kind not in NullaryKinds:
                raise ValueError("a default value of kind 0x%02x needs an index" % (kind,))
            index = kind
        self.index = index

    @classmethod
    def check_kind(cls, kind, offset=None):
        if kind not in NullaryKinds and kind not in ValueKindTables:
            raise UnknownValueKind("unknown default value kind 0x%02x" % (kind,), offset)

    @classmethod
    def parse(cls, bitstream, constants):
        index_offset = bitstream.tell() // 8
        index = bitstream.read(U30)
        return cls.parse_kind(bitstream, constants, index, index_offset)

    @classmethod
    def parse_kind(cls, bitstream, constants, index, index_offset=None):
        """
        Read the kind byte that follows an already-read value index.
        """
        offset = bitstream.tell() // 8
        kind = bitstream.read(UI8)
        cls.check_kind(kind, offset)
        if kind in ValueKindTables:
            pool = getattr(constants, ValueKindTables[kind])
            index = pool.index_type(pool.check_index(index, index_offset))
        return cls(kind, index)

    def check(self, constants):
        self.check_kind(self.kind)
        if self.kind in ValueKindTables:
            getattr(constants, ValueKindTables[self.kind]).check_index(self.index)

    def serialize(self, constants):
        self.check(constants)
        return u30(self.index) + bytes([self.kind])

    def resolve(self, constants):
        """
        Look the value up. Strings come back as bytes and namespaces
        as Namespace records.
        """
        if self.kind == TypeIdentifier.True_:
            return True
        if self.kind == TypeIdentifier.False_:
            return False
        if self.kind in NullaryKinds:
            return None
        return getattr(constants, ValueKindTables[self.kind]).value_at(self.index)

# ======================================
# Constant Pool
# ======================================

def serialize_double(value):
    return struct.pack("<d", value)

def serialize_utf8(string):
    return u30(len(string)) + bytes(string)

class ConstantPool(Record, BitStreamParseMixin):
    fields = ("int", "uint", "double", "utf8", "namespace", "nsset", "multiname")

    __hash__ = None

    def __init__(self):
        self.int       = ValuePool("int", IntIndex)
        self.uint      = ValuePool("uint", UIntIndex)
        self.double    = ValuePool("double", DoubleIndex, key=double_key)
        self.utf8      = ValuePool("utf8", StringIndex)
        self.namespace = ValuePool("namespace", NamespaceIndex)
        self.nsset     = ValuePool("nsset", NamespaceSetIndex)
        self.multiname = ValuePool("multiname", MultinameIndex)

    def __repr__(self):
        return "ConstantPool(%s)" % (", ".join(
            "%s=%d" % (f, len(getattr(self, f).pool)) for f in self.fields),)

    def pool_for(self, index):
        """
        Return the table a typed index points into.
        """
        return getattr(self, index.table)

    def value_at(self, index):
        return self.pool_for(index).value_at(index)

    def serialize(self):
        def serializable(item):
            return item.serialize(self)

        code = []
        code.append(self.int.serialize(s32))
        code.append(self.uint.serialize(u32))
        code.append(self.double.serialize(serialize_double))
        code.append(self.utf8.serialize(serialize_utf8))
        code.append(self.namespace.serialize(serializable))
        code.append(self.nsset.serialize(serializable))
        code.append(self.multiname.serialize(serializable))
        return b''.join(code)

    @staticmethod
    def read_table(bitstream, pool, parse):
        count = bitstream.read(U30)
        if count < 2:
            pool.empty_count = count
        pool.open()
        for i in range(1, count):
            offset = bitstream.tell() // 8
            mark = pool.mark()
            try:
                pool.add_value(parse(bitstream))
            except AbcError as e:
                raise e.locate(offset, "%s %d" % (pool.name, i))
            pool.label_pending(mark, "%s %d" % (pool.name, i))
        pool.close()

    @classmethod
    def from_bitstream(cls, bitstream):
        pool = cls()

        def string(bitstream):
            return bitstream.read(ByteString[bitstream.read(U30)])

        def namespace(bitstream):
            return Namespace.parse(bitstream, pool)

        def nsset(bitstream):
            return NamespaceSet.parse(bitstream, pool)

        def multiname(bitstream):
            return parse_multiname(bitstream, pool)

        cls.read_table(bitstream, pool.int, lambda bs: bs.read(S32))
        cls.read_table(bitstream, pool.uint, lambda bs: bs.read(U32))
        cls.read_table(bitstream, pool.double, lambda bs: bs.read(DOUBLE))
        cls.read_table(bitstream, pool.utf8, string)
        cls.read_table(bitstream, pool.namespace, namespace)
        cls.read_table(bitstream, pool.nsset, nsset)
        cls.read_table(bitstream, pool.multiname, multiname)

        log.debug("read constant pool: %r", pool)
        return pool
