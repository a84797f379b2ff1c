from zope.interface import Interface, Attribute

class IMultiname(Interface):
    kind = Attribute("What is the kind of this multiname?")
    runtime = Attribute("Is the name of this multiname supplied at runtime?")
    runtime_namespace = Attribute("Is this multiname runtime-ns-qualified?")
    fields = Attribute("The references this kind of multiname stores.")

class IAbcRecord(Interface):
    """
    A record of the ABC model that knows its own wire encoding.
    """
    fields = Attribute("The names of the values that make up this record.")

    def parse(bitstream, abc, constants):
        """
        Classmethod. Read one record from bitstream and return it.
        Records that only refer to the constant pool leave out abc.
        """

    def serialize(abc, constants):
        """
        Return the wire encoding of this record as bytes, checking
        every reference against the tables it points into.
        """
