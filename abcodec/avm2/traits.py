import os

from abcodec.bitstream.bitstream import BitStream
from abcodec.bitstream.formats import Bit, UB
from abcodec.bitstream.flash_formats import U30

from abcodec.avm2.constants import DefaultValue
from abcodec.avm2.interfaces import IAbcRecord
from abcodec.avm2.util import (serialize_u30 as s_u30, Record,
                               MultinameIndex, MethodIndex, ClassIndex, MetadataIndex)
from abcodec.errors import AbcError, UnknownTraitKind

from zope.interface import implementer

class TraitKinds(object):
    Slot     = 0
    Method   = 1
    Getter   = 2
    Setter   = 3
    Class    = 4
    Function = 5
    Const    = 6

class TraitAttr(object):
    # The high nibble of the trait tag.
    Final    = 0x1
    Override = 0x2
    Metadata = 0x4

def parse_trait(bitstream, abc, constants):
    name = constants.multiname.read_index(bitstream)

    tag_offset = bitstream.tell() // 8
    bitstream.seek(1, os.SEEK_CUR)
    has_metadata = bitstream.read(Bit)
    override = bitstream.read(Bit)
    final = bitstream.read(Bit)

    kind = bitstream.read(UB[4])
    if kind >= len(Traits):
        raise UnknownTraitKind("unknown trait kind %d" % (kind,), tag_offset)
    cls = Traits[kind]
    trait = cls.parse(bitstream, abc, constants)
    trait.name     = name
    trait.final    = final
    trait.override = override

    if has_metadata:
        L = range(bitstream.read(U30))
        trait.metadata = [abc.metadatas.read_index(bitstream) for i in L]

    return trait

def parse_traits(bitstream, abc, constants):
    traits = []
    for i in range(bitstream.read(U30)):
        offset = bitstream.tell() // 8
        mark = abc.classes.mark()
        try:
            traits.append(parse_trait(bitstream, abc, constants))
        except AbcError as e:
            raise e.locate(offset, "trait %d" % (i,))
        abc.classes.label_pending(mark, "trait %d" % (i,))
    return traits

def serialize_traits(traits, abc, constants):
    code = [s_u30(len(traits))]
    for i, trait in enumerate(traits):
        try:
            code.append(trait.serialize(abc, constants))
        except AbcError as e:
            raise e.locate(where="trait %d" % (i,))
    return b"".join(code)

@implementer(IAbcRecord)
class TraitBase(Record):
    """
    Traits are things that specify ownership of a specific
    part elsewhere in the ABC file. Scripts, classes,
    instances and method bodies are all 'trait containers'.

    Script traits are usually only used in AS3 to hold
    a class trait, which will usually have the entry
    point of the script.

    Class traits are static traits, like static methods
    and slots.

    metadata is None when the trait has no metadata block at all,
    and a (possibly empty) list of metadata indices when it has one.
    """
    kind = None
    fields = ("name", "final", "override", "metadata")

    def __init__(self, name=0, final=False, override=False, metadata=None):
        self.name = MultinameIndex(name)
        self.final = final
        self.override = override
        if metadata is not None:
            metadata = [MetadataIndex(m) for m in metadata]
        self.metadata = metadata

    @property
    def tag(self):
        attrs = 0
        if self.final:
            attrs |= TraitAttr.Final
        if self.override:
            attrs |= TraitAttr.Override
        if self.metadata is not None:
            attrs |= TraitAttr.Metadata
        return (attrs << 4) | self.kind

    def serialize_inner(self, abc, constants):
        return b""

    def serialize(self, abc, constants):
        code = constants.multiname.serialize_index(self.name)

        flags = BitStream()
        flags.write(False)
        flags.write(self.metadata is not None) # Has Metadata
        flags.write(bool(self.override))       # Is Override
        flags.write(bool(self.final))          # Is Final
        flags.write(self.kind, UB[4])          # kind

        code += flags.serialize()
        code += self.serialize_inner(abc, constants)

        if self.metadata is not None:
            code += s_u30(len(self.metadata))
            for m in self.metadata:
                code += abc.metadatas.serialize_index(m)
        return code

class SlotTrait(TraitBase):
    """
    A `slot` trait is used to hold fields on something,
    like a "var". value is a DefaultValue, or None when the
    slot has no initial value.
    """
    kind = TraitKinds.Slot
    fields = TraitBase.fields + ("slot_id", "type_name", "value")

    def __init__(self, name=0, type_name=0, value=None, slot_id=0, **kwargs):
        super(SlotTrait, self).__init__(name, **kwargs)
        self.slot_id = slot_id
        self.type_name = MultinameIndex(type_name)
        self.value = value

    @classmethod
    def parse(cls, bitstream, abc, constants):
        slot_id   = bitstream.read(U30)
        type_name = constants.multiname.read_index(bitstream)
        offset    = bitstream.tell() // 8
        vindex    = bitstream.read(U30)
        value     = None

        if vindex:
            value = DefaultValue.parse_kind(bitstream, constants, vindex, offset)

        return cls(0, type_name, value, slot_id)

    def serialize_inner(self, abc, constants):
        code = s_u30(self.slot_id)
        code += constants.multiname.serialize_index(self.type_name)
        # An index of 0 means "no value" and is not followed by a kind.
        if self.value is None or not self.value.index:
            code += s_u30(0)
        else:
            code += self.value.serialize(constants)
        return code

class ConstTrait(SlotTrait):
    """
    A `const` trait is like a `slot` trait, but cannot
    be set dynamically, it can only be initialized with
    `initproperty`.
    """
    kind = TraitKinds.Const

class ClassTrait(TraitBase):
    kind = TraitKinds.Class
    fields = TraitBase.fields + ("slot_id", "cls")

    def __init__(self, name=0, cls=0, slot_id=0, **kwargs):
        super(ClassTrait, self).__init__(name, **kwargs)
        self.slot_id = slot_id
        self.cls = ClassIndex(cls)

    @classmethod
    def parse(cls, bitstream, abc, constants):
        slot_id = bitstream.read(U30)
        clazz   = abc.classes.read_index(bitstream)
        return cls(0, clazz, slot_id)

    def serialize_inner(self, abc, constants):
        return s_u30(self.slot_id) + abc.classes.serialize_index(self.cls)

class MethodTrait(TraitBase):
    kind = TraitKinds.Method
    fields = TraitBase.fields + ("disp_id", "method")

    def __init__(self, name=0, method=0, disp_id=0, **kwargs):
        super(MethodTrait, self).__init__(name, **kwargs)
        self.disp_id = disp_id
        self.method = MethodIndex(method)

    @classmethod
    def parse(cls, bitstream, abc, constants):
        disp_id = bitstream.read(U30)
        method = abc.methods.read_index(bitstream)
        return cls(0, method, disp_id)

    def serialize_inner(self, abc, constants):
        return s_u30(self.disp_id) + abc.methods.serialize_index(self.method)

class GetterTrait(MethodTrait):
    kind = TraitKinds.Getter

class SetterTrait(MethodTrait):
    kind = TraitKinds.Setter

class FunctionTrait(TraitBase):
    kind = TraitKinds.Function
    fields = TraitBase.fields + ("slot_id", "function")

    def __init__(self, name=0, function=0, slot_id=0, **kwargs):
        super(FunctionTrait, self).__init__(name, **kwargs)
        self.slot_id = slot_id
        self.function = MethodIndex(function)

    @classmethod
    def parse(cls, bitstream, abc, constants):
        slot_id  = bitstream.read(U30)
        function = abc.methods.read_index(bitstream)
        return cls(0, function, slot_id)

    def serialize_inner(self, abc, constants):
        return s_u30(self.slot_id) + abc.methods.serialize_index(self.function)

Traits = [SlotTrait, MethodTrait, GetterTrait,
          SetterTrait, ClassTrait, FunctionTrait,
          ConstTrait]
