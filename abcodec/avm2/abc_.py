"""
Structures for ABC, ActionScript Byte Code
"""

import logging
import os
import struct

from abcodec.bitstream import BitStream, BitStreamParseMixin
from abcodec.bitstream.formats import Bit, Zero, ByteString
from abcodec.bitstream.flash_formats import UI8, UI16, U30

from abcodec.avm2.constants import ConstantPool, MethodFlag, DefaultValue
from abcodec.avm2.interfaces import IAbcRecord
from abcodec.avm2.traits import parse_traits, serialize_traits
from abcodec.avm2.assembler import CodeAssembler
from abcodec.avm2.util import (serialize_u30 as s_u30, ValuePool, Record,
                               StringIndex, NamespaceIndex, MultinameIndex,
                               MethodIndex, MetadataIndex, ClassIndex)
from abcodec.errors import AbcError, CountMismatch, OffsetOutOfRange

from zope.interface import implementer

log = logging.getLogger(__name__)

MAJOR_VERSION = 46
MINOR_VERSION = 16

class AbcFile(Record, BitStreamParseMixin):
    """
    One decoded ABC payload. Every table is a ValuePool, and every
    reference between tables is a typed index into one of them.
    """
    fields = ("minor_version", "major_version", "constants", "methods", "metadatas",
              "instances", "classes", "scripts", "bodies")

    __hash__ = None

    def __init__(self, constants=None, minor_version=MINOR_VERSION, major_version=MAJOR_VERSION):
        self.minor_version = minor_version
        self.major_version = major_version
        self.constants = constants or ConstantPool()

        self.methods   = ValuePool("methods", MethodIndex, sentinel=False)
        self.metadatas = ValuePool("metadatas", MetadataIndex, sentinel=False)
        self.instances = ValuePool("instances", ClassIndex, sentinel=False)
        self.classes   = ValuePool("classes", ClassIndex, sentinel=False)
        self.scripts   = ValuePool("scripts", sentinel=False)
        self.bodies    = ValuePool("bodies", sentinel=False)

    def __repr__(self):
        return "<AbcFile %d.%d: %d methods, %d classes, %d scripts, %d bodies>" % (
            self.major_version, self.minor_version, len(self.methods),
            len(self.classes), len(self.scripts), len(self.bodies))

    @property
    def named_exceptions(self):
        "Exception records carry a var_name from ABC 46.16 on."
        return (self.major_version, self.minor_version) >= (46, 16)

    def add_class(self, instance, cls):
        """
        Add an instance and its class, which always go in pairs.
        """
        index = self.instances.add_value(instance)
        self.classes.add_value(cls)
        return index

    def body_for(self, method):
        """
        Return the body of the method at index method, or None
        for methods without one (native and interface methods).
        """
        for body in self.bodies:
            if body.method == method:
                return body
        return None

    @classmethod
    def from_bitstream(cls, bitstream):
        minor_version = bitstream.read(UI16)
        major_version = bitstream.read(UI16)
        constants = ConstantPool.from_bitstream(bitstream)
        abc = cls(constants, minor_version, major_version)

        def read_pool(pool, info, name, length=None):
            if length is None:
                length = bitstream.read(U30)
            for i in range(length):
                offset = bitstream.tell() // 8
                mark = abc.classes.mark()
                try:
                    pool.add_value(info.parse(bitstream, abc, constants))
                except AbcError as e:
                    raise e.locate(offset, "%s %d" % (name, i))
                abc.classes.label_pending(mark, "%s %d" % (name, i))
            return length

        read_pool(abc.methods, MethodInfo, "method")
        read_pool(abc.metadatas, MetadataInfo, "metadata")

        # Traits of instances and classes can name classes
        # that have not been read yet.
        abc.classes.open()
        count = read_pool(abc.instances, InstanceInfo, "instance")
        read_pool(abc.classes, ClassInfo, "class", count)
        abc.classes.close()

        read_pool(abc.scripts, ScriptInfo, "script")
        read_pool(abc.bodies, MethodBodyInfo, "method body")

        if bitstream.bits_available:
            log.debug("ignoring %d bytes after the last method body",
                      bitstream.bits_available // 8)

        log.debug("decoded ABC %d.%d: %d methods, %d metadata, %d classes, "
                  "%d scripts, %d method bodies", major_version, minor_version,
                  len(abc.methods), len(abc.metadatas), len(abc.classes),
                  len(abc.scripts), len(abc.bodies))
        return abc

    def serialize(self):
        if len(self.instances) != len(self.classes):
            raise CountMismatch("%d instances but %d classes"
                                % (len(self.instances), len(self.classes)))

        constants = self.constants

        def write_pool(pool, name, prefix_count=True):
            code = []
            if prefix_count:
                code.append(s_u30(len(pool)))
            for i, item in enumerate(pool):
                try:
                    code.append(item.serialize(self, constants))
                except AbcError as e:
                    raise e.locate(where="%s %d" % (name, i))
            return b"".join(code)

        code = struct.pack("<HH", self.minor_version, self.major_version)
        code += constants.serialize()

        code += write_pool(self.methods, "method")
        code += write_pool(self.metadatas, "metadata")
        code += write_pool(self.instances, "instance")
        code += write_pool(self.classes, "class", False)
        code += write_pool(self.scripts, "script")
        code += write_pool(self.bodies, "method body")

        log.debug("encoded ABC %d.%d: %d bytes", self.major_version,
                  self.minor_version, len(code))
        return code

class MethodParam(Record):
    """
    One parameter: its type, its name (None when the method has no
    parameter names) and its default (None when it is required).
    """
    fields = ("type", "name", "default")

    def __init__(self, type=0, name=None, default=None):
        self.type = MultinameIndex(type)
        self.name = None if name is None else StringIndex(name)
        self.default = default

def _method_flag(flag):
    def getter(self):
        return bool(self.flags & flag)

    def setter(self, value):
        if value:
            self.flags |= flag
        else:
            self.flags &= ~flag

    return property(getter, setter)

@implementer(IAbcRecord)
class MethodInfo(Record):
    fields = ("name", "return_type", "params", "flags")

    def __init__(self, name=0, params=(), return_type=0, flags=0):
        self.name = StringIndex(name)
        self.params = list(params)
        self.return_type = MultinameIndex(return_type)
        self.flags = flags

    needs_arguments_object = _method_flag(MethodFlag.Arguments)
    needs_activation       = _method_flag(MethodFlag.Activation)
    needs_rest             = _method_flag(MethodFlag.NeedRest)
    ignore_rest            = _method_flag(MethodFlag.IgnoreRest)
    native                 = _method_flag(MethodFlag.Native)
    needs_dxns             = _method_flag(MethodFlag.SetsDxns)

    @property
    def param_types(self):
        return [p.type for p in self.params]

    @classmethod
    def parse(cls, bitstream, abc, constants):
        PTL = bitstream.read(U30)

        return_type = constants.multiname.read_index(bitstream)
        param_types = [constants.multiname.read_index(bitstream) for i in range(PTL)]
        name = constants.utf8.read_index(bitstream)

        flags = bitstream.read(UI8)

        options = []
        if flags & MethodFlag.HasOptional:
            offset = bitstream.tell() // 8
            L = bitstream.read(U30)
            if L > PTL:
                raise CountMismatch("%d optional parameters but only %d parameters"
                                    % (L, PTL), offset)
            options = [DefaultValue.parse(bitstream, constants) for i in range(L)]

        param_names = [None] * PTL
        if flags & MethodFlag.HasParamNames:
            param_names = [constants.utf8.read_index(bitstream) for i in range(PTL)]

        defaults = [None] * (PTL - len(options)) + options
        params = [MethodParam(*p) for p in zip(param_types, param_names, defaults)]

        return cls(name, params, return_type, flags)

    def serialize(self, abc, constants):
        multiname = constants.multiname

        code = s_u30(len(self.params))
        code += multiname.serialize_index(self.return_type)
        code += b''.join(multiname.serialize_index(p.type) for p in self.params)
        code += constants.utf8.serialize_index(self.name)

        options = []
        for i, param in enumerate(self.params):
            if param.default is not None:
                options.append(param.default)
            elif options:
                raise CountMismatch("parameter %d has no default but an earlier one has"
                                    % (i,))

        flags = self.flags
        if options:
            flags |= MethodFlag.HasOptional

        if any(p.name is not None for p in self.params):
            flags |= MethodFlag.HasParamNames

        code += bytes([flags & 0xFF])

        if flags & MethodFlag.HasOptional:
            code += s_u30(len(options))
            for value in options:
                code += value.serialize(constants)

        if flags & MethodFlag.HasParamNames:
            code += b''.join(constants.utf8.serialize_index(p.name or 0) for p in self.params)

        return code

class MetadataItem(Record):
    """
    A key/value pair of a metadata tag. A key of 0 is a bare
    value, as in [Event("change")].
    """
    fields = ("key", "value")

    def __init__(self, key=0, value=0):
        self.key = StringIndex(key)
        self.value = StringIndex(value)

@implementer(IAbcRecord)
class MetadataInfo(Record):
    fields = ("name", "items")

    def __init__(self, name=0, items=()):
        self.name = StringIndex(name)
        self.items = list(items)

    @classmethod
    def parse(cls, bitstream, abc, constants):
        name = constants.utf8.read_index(bitstream)
        item_count = bitstream.read(U30)
        keys   = [constants.utf8.read_index(bitstream) for i in range(item_count)]
        values = [constants.utf8.read_index(bitstream) for i in range(item_count)]
        return cls(name, [MetadataItem(k, v) for k, v in zip(keys, values)])

    def serialize(self, abc, constants):
        utf8 = constants.utf8
        code = utf8.serialize_index(self.name)
        code += s_u30(len(self.items))

        for item in self.items:
            code += utf8.serialize_index(item.key)

        for item in self.items:
            code += utf8.serialize_index(item.value)

        return code

@implementer(IAbcRecord)
class InstanceInfo(Record):
    fields = ("name", "super_name", "sealed", "final", "interface",
              "protected_ns", "interfaces", "iinit", "traits")

    def __init__(self, name=0, super_name=0, iinit=0, interfaces=(), traits=(),
                 sealed=True, final=False, interface=False, protected_ns=None):
        self.name = MultinameIndex(name)
        self.super_name = MultinameIndex(super_name)

        self.sealed = sealed
        self.final = final
        self.interface = interface

        if protected_ns is not None:
            protected_ns = NamespaceIndex(protected_ns)
        self.protected_ns = protected_ns

        self.interfaces = [MultinameIndex(i) for i in interfaces]
        self.iinit = MethodIndex(iinit)
        self.traits = list(traits)

    @property
    def is_protected(self):
        return self.protected_ns is not None

    @classmethod
    def parse(cls, bitstream, abc, constants):
        name = constants.multiname.read_index(bitstream)
        super_name = constants.multiname.read_index(bitstream)

        bitstream.seek(4, os.SEEK_CUR)
        FlagProtectedNS = bitstream.read(Bit)
        FlagIsInterface = bitstream.read(Bit)
        FlagIsFinal     = bitstream.read(Bit)
        FlagIsSealed    = bitstream.read(Bit)

        protected_ns = None
        if FlagProtectedNS:
            protected_ns = constants.namespace.read_index(bitstream)

        interfaces = [constants.multiname.read_index(bitstream)
                      for i in range(bitstream.read(U30))]
        iinit = abc.methods.read_index(bitstream)

        traits = parse_traits(bitstream, abc, constants)
        return cls(name, super_name, iinit, interfaces, traits,
                   FlagIsSealed, FlagIsFinal, FlagIsInterface, protected_ns)

    def serialize(self, abc, constants):
        multiname = constants.multiname
        code = multiname.serialize_index(self.name)
        code += multiname.serialize_index(self.super_name)

        # Flags
        flags = BitStream()
        flags.write(Zero[4])                       # first four bits = not defined
        flags.write(self.protected_ns is not None) # 1000 = 0x08 = CLASSFLAG_ClassProtectedNs
        flags.write(bool(self.interface))          # 0100 = 0x04 = CLASSFLAG_ClassInterface
        flags.write(bool(self.final))              # 0010 = 0x02 = CLASSFLAG_ClassFinal
        flags.write(bool(self.sealed))             # 0001 = 0x01 = CLASSFLAG_ClassSealed

        code += flags.serialize()

        if self.protected_ns is not None:
            code += constants.namespace.serialize_index(self.protected_ns)

        code += s_u30(len(self.interfaces))
        for index in self.interfaces:
            code += multiname.serialize_index(index)

        code += abc.methods.serialize_index(self.iinit)
        code += serialize_traits(self.traits, abc, constants)
        return code

@implementer(IAbcRecord)
class ClassInfo(Record):
    fields = ("cinit", "traits")

    def __init__(self, cinit=0, traits=()):
        self.cinit = MethodIndex(cinit)
        self.traits = list(traits)

    @classmethod
    def parse(cls, bitstream, abc, constants):
        cinit = abc.methods.read_index(bitstream)
        traits = parse_traits(bitstream, abc, constants)
        return cls(cinit, traits)

    def serialize(self, abc, constants):
        return (abc.methods.serialize_index(self.cinit) +
                serialize_traits(self.traits, abc, constants))

@implementer(IAbcRecord)
class ScriptInfo(Record):
    fields = ("init", "traits")

    def __init__(self, init=0, traits=()):
        self.init = MethodIndex(init)
        self.traits = list(traits)

    @classmethod
    def parse(cls, bitstream, abc, constants):
        init = abc.methods.read_index(bitstream)
        traits = parse_traits(bitstream, abc, constants)
        return cls(init, traits)

    def serialize(self, abc, constants):
        return (abc.methods.serialize_index(self.init) +
                serialize_traits(self.traits, abc, constants))

@implementer(IAbcRecord)
class MethodBodyInfo(Record):
    fields = ("method", "max_stack", "local_count", "init_scope_depth",
              "max_scope_depth", "code", "exceptions", "traits")

    def __init__(self, method=0, code=None, exceptions=(), traits=(), max_stack=0,
                 local_count=0, init_scope_depth=0, max_scope_depth=0):
        self.method = MethodIndex(method)
        self.max_stack = max_stack
        self.local_count = local_count
        self.init_scope_depth = init_scope_depth
        self.max_scope_depth = max_scope_depth

        if code is None:
            code = CodeAssembler()
        elif not isinstance(code, CodeAssembler):
            code = CodeAssembler(code)
        self.code = code
        self.exceptions = list(exceptions)
        self.traits = list(traits)

    @property
    def instructions(self):
        return self.code.instructions

    def check_exceptions(self, code_length, offset=None):
        for i, exc in enumerate(self.exceptions):
            try:
                exc.check_offsets(code_length)
            except AbcError as e:
                raise e.locate(offset, "exception %d" % (i,))

    @classmethod
    def parse(cls, bitstream, abc, constants):
        minfo = abc.methods.read_index(bitstream)
        stack_depth_max  = bitstream.read(U30)
        local_count      = bitstream.read(U30)
        init_scope_depth = bitstream.read(U30)
        scope_depth_max  = bitstream.read(U30)

        codelen = bitstream.read(U30)
        code_offset = bitstream.tell() // 8
        data = bitstream.read(ByteString[codelen])

        exceptions = []
        for i in range(bitstream.read(U30)):
            offset = bitstream.tell() // 8
            try:
                exceptions.append(ExceptionInfo.parse(bitstream, abc, constants))
                exceptions[-1].check_offsets(codelen)
            except AbcError as e:
                raise e.locate(offset, "exception %d" % (i,))

        traits = parse_traits(bitstream, abc, constants)

        # newcatch refers to the exception table, which comes after the code.
        code = CodeAssembler.parse(data, abc, constants, exceptions, code_offset)

        return cls(minfo, code, exceptions, traits, stack_depth_max, local_count,
                   init_scope_depth, scope_depth_max)

    def serialize(self, abc, constants):
        asm = CodeAssembler(self.code.instructions, abc, constants, self.exceptions)
        body = asm.serialize()
        self.check_exceptions(len(body))

        code = abc.methods.serialize_index(self.method)
        code += s_u30(self.max_stack)
        code += s_u30(self.local_count)
        code += s_u30(self.init_scope_depth)
        code += s_u30(self.max_scope_depth)
        code += s_u30(len(body))
        code += body

        code += s_u30(len(self.exceptions))
        for exc in self.exceptions:
            code += exc.serialize(abc, constants)

        code += serialize_traits(self.traits, abc, constants)
        return code

@implementer(IAbcRecord)
class ExceptionInfo(Record):
    """
    An exception handler. The offsets are absolute positions in
    the code of the method body; exc_type and var_name are
    multinames, 0 meaning any type and no variable. Files older
    than 46.16 have no var_name on the wire.
    """
    fields = ("from_offset", "to_offset", "target_offset", "exc_type", "var_name")

    def __init__(self, from_offset, to_offset, target_offset, exc_type=0, var_name=0):
        self.from_offset = from_offset
        self.to_offset = to_offset
        self.target_offset = target_offset
        self.exc_type = MultinameIndex(exc_type)
        self.var_name = MultinameIndex(var_name)

    def check_offsets(self, code_length):
        for field in ("from_offset", "to_offset", "target_offset"):
            value = getattr(self, field)
            if not 0 <= value <= code_length:
                raise OffsetOutOfRange("%s 0x%x is outside of the code (0x%x bytes)"
                                       % (field, value, code_length))

    @classmethod
    def parse(cls, bitstream, abc, constants):
        from_offset = bitstream.read(U30)
        to_offset = bitstream.read(U30)
        target_offset = bitstream.read(U30)
        exc_type = constants.multiname.read_index(bitstream)
        var_name = 0
        if abc.named_exceptions:
            var_name = constants.multiname.read_index(bitstream)
        return cls(from_offset, to_offset, target_offset, exc_type, var_name)

    def serialize(self, abc, constants):
        code = s_u30(self.from_offset)
        code += s_u30(self.to_offset)
        code += s_u30(self.target_offset)
        code += constants.multiname.serialize_index(self.exc_type)
        if abc.named_exceptions:
            code += constants.multiname.serialize_index(self.var_name)
        return code
