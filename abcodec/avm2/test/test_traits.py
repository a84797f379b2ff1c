
import pytest

from abcodec.bitstream import BitStream
from abcodec.avm2.abc_ import AbcFile, MethodInfo, MetadataInfo, InstanceInfo, ClassInfo
from abcodec.avm2.constants import Namespace, QName, DefaultValue, TypeIdentifier
from abcodec.avm2.traits import parse_traits, serialize_traits, TraitKinds, \
     SlotTrait, ConstTrait, MethodTrait, GetterTrait, SetterTrait, ClassTrait, FunctionTrait
from abcodec.avm2.util import MetadataIndex
from abcodec.errors import UnknownTraitKind, DanglingReference

@pytest.fixture
def abc():
    abc = AbcFile()
    const = abc.constants
    x = const.utf8.index_for(b"x")
    ns = const.namespace.index_for(Namespace(TypeIdentifier.PackageNamespace, x))
    mn = const.multiname.index_for(QName(x, ns))
    const.int.index_for(7)

    abc.methods.add_value(MethodInfo())
    abc.metadatas.add_value(MetadataInfo(x))
    abc.add_class(InstanceInfo(mn), ClassInfo())
    return abc

def parse(abc, data):
    return parse_traits(BitStream(b"\x01" + data), abc, abc.constants)

@pytest.mark.parametrize("data, expected", [
    (b"\x01\x00\x01\x00\x00",         SlotTrait(1, 0, None, 1)),
    (b"\x01\x06\x02\x01\x01\x03",     ConstTrait(1, 1, DefaultValue(TypeIdentifier.Int, 1), 2)),
    (b"\x01\x00\x00\x00\x0c\x0c",     SlotTrait(1, value=DefaultValue(TypeIdentifier.Null))),
    (b"\x01\x46\x00\x00\x00\x00",     ConstTrait(1, metadata=[])),
    (b"\x01\x71\x00\x00\x01\x00",     MethodTrait(1, 0, 0, final=True, override=True, metadata=[0])),
    (b"\x01\x02\x03\x00",             GetterTrait(1, 0, 3)),
    (b"\x01\x23\x00\x00",             SetterTrait(1, 0, 0, override=True)),
    (b"\x01\x04\x01\x00",             ClassTrait(1, 0, 1)),
    (b"\x01\x15\x00\x00",             FunctionTrait(1, 0, 0, final=True)),
])
def test_traits(abc, data, expected):
    traits = parse(abc, data)
    assert traits == [expected]
    assert type(traits[0]) is type(expected)
    assert traits[0].tag == data[1]
    assert serialize_traits(traits, abc, abc.constants) == b"\x01" + data

def test_slot_value(abc):
    trait = parse(abc, b"\x01\x06\x02\x01\x01\x03")[0]
    assert trait.value.resolve(abc.constants) == 7
    assert trait.slot_id == 2

def test_metadata(abc):
    trait = parse(abc, b"\x01\x71\x00\x00\x01\x00")[0]
    assert trait.metadata == [0]
    assert isinstance(trait.metadata[0], MetadataIndex)
    assert abc.metadatas.value_at(trait.metadata[0]).name == 1

    pytest.raises(DanglingReference, parse, abc, b"\x01\x41\x00\x00\x01\x01")

def test_tag():
    assert SlotTrait().tag == 0
    assert ConstTrait(metadata=[]).tag == 0x46
    assert MethodTrait(final=True, override=True, metadata=[0]).tag == 0x71
    assert ClassTrait().tag == TraitKinds.Class

def test_empty_slot_value(abc):
    # An index of 0 is written without a kind byte.
    trait = SlotTrait(1, value=DefaultValue(TypeIdentifier.Int, 0))
    assert serialize_traits([trait], abc, abc.constants) == b"\x01\x01\x00\x00\x00\x00"

    trait = SlotTrait(1, value=DefaultValue(TypeIdentifier.Undefined))
    assert serialize_traits([trait], abc, abc.constants) == b"\x01\x01\x00\x00\x00\x00"

def test_unknown_kind(abc):
    with pytest.raises(UnknownTraitKind) as excinfo:
        parse(abc, b"\x01\x07")
    assert excinfo.value.offset == 2
    assert excinfo.value.where == "trait 0"

def test_dangling(abc):
    with pytest.raises(DanglingReference) as excinfo:
        parse(abc, b"\x01\x01\x00\x05")
    assert excinfo.value.offset == 4
    assert excinfo.value.where == "trait 0"

    pytest.raises(DanglingReference, parse, abc, b"\x01\x04\x00\x01")
    pytest.raises(DanglingReference, parse, abc, b"\x02\x00\x00\x00\x00")

def test_serialize_dangling(abc):
    trait = MethodTrait(1, 4)
    with pytest.raises(DanglingReference) as excinfo:
        serialize_traits([SlotTrait(1), trait], abc, abc.constants)
    assert excinfo.value.where == "trait 1"
