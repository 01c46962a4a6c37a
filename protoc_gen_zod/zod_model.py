"""
Descriptor model for the Zod schema generator.

protoc hands the generator a flat list of ``FileDescriptorProto`` messages in
which field types are referenced by fully qualified name. This module turns
them into a small object graph that is convenient for code generation:

- every field carries a *shape* (scalar, enum, message, repeated variants of
  those, or map) instead of the raw label/type pair,
- enum and message references point directly at the resolved ``ProtoEnum`` /
  ``ProtoMessage`` objects, which know the file that owns them,
- map fields have their synthetic ``*Entry`` message folded into key and
  value information.

The model is read-only once built and is rebuilt for every request.
"""

from collections import OrderedDict
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Dict, Iterable, List, Optional, Union

from google.protobuf import descriptor_pb2

from .zod_utils import strip_proto_extension

FieldDescriptorProto = descriptor_pb2.FieldDescriptorProto


class ScalarType(IntEnum):
    """Protobuf scalar types, numbered as in FieldDescriptorProto.Type."""
    DOUBLE = FieldDescriptorProto.TYPE_DOUBLE
    FLOAT = FieldDescriptorProto.TYPE_FLOAT
    INT64 = FieldDescriptorProto.TYPE_INT64
    UINT64 = FieldDescriptorProto.TYPE_UINT64
    INT32 = FieldDescriptorProto.TYPE_INT32
    FIXED64 = FieldDescriptorProto.TYPE_FIXED64
    FIXED32 = FieldDescriptorProto.TYPE_FIXED32
    BOOL = FieldDescriptorProto.TYPE_BOOL
    STRING = FieldDescriptorProto.TYPE_STRING
    BYTES = FieldDescriptorProto.TYPE_BYTES
    UINT32 = FieldDescriptorProto.TYPE_UINT32
    SFIXED32 = FieldDescriptorProto.TYPE_SFIXED32
    SFIXED64 = FieldDescriptorProto.TYPE_SFIXED64
    SINT32 = FieldDescriptorProto.TYPE_SINT32
    SINT64 = FieldDescriptorProto.TYPE_SINT64


class FieldShape(str, Enum):
    """Structural shape of a field."""
    SCALAR = 'scalar'
    ENUM = 'enum'
    MESSAGE = 'message'
    REPEATED_SCALAR = 'repeated_scalar'
    REPEATED_ENUM = 'repeated_enum'
    REPEATED_MESSAGE = 'repeated_message'
    MAP = 'map'
    UNKNOWN = 'unknown'

    @property
    def is_list(self) -> bool:
        return self in (FieldShape.REPEATED_SCALAR, FieldShape.REPEATED_ENUM,
                        FieldShape.REPEATED_MESSAGE)

    @property
    def element_shape(self) -> 'FieldShape':
        """Singular shape of a list element; singular shapes map to themselves."""
        return _ELEMENT_SHAPES.get(self, self)


_ELEMENT_SHAPES = {
    FieldShape.REPEATED_SCALAR: FieldShape.SCALAR,
    FieldShape.REPEATED_ENUM: FieldShape.ENUM,
    FieldShape.REPEATED_MESSAGE: FieldShape.MESSAGE,
}

_REPEATED_SHAPES = {v: k for k, v in _ELEMENT_SHAPES.items()}

_SCALAR_TYPES = set(int(t) for t in ScalarType)


@dataclass
class EnumValue:
    name: str
    number: int


@dataclass(eq=False)
class ProtoEnum:
    """An enum definition. ``file`` is the owning file's logical path."""
    name: str
    full_name: str
    file: str
    values: List[EnumValue] = field(default_factory=list)
    deprecated: bool = False


@dataclass(eq=False)
class ProtoField:
    """
    A message field with its type reference resolved.

    For map fields ``scalar``/``enum``/``message`` describe the map value and
    ``map_value_shape`` tells which of them applies; ``map_key`` holds the key
    scalar type. For list fields they describe the element.

    Attributes:
        options: The raw FieldOptions message. Validation rules live in its
                 (buf.validate.field) extension.
    """
    name: str
    number: int
    shape: FieldShape = FieldShape.UNKNOWN
    scalar: Optional[ScalarType] = None
    enum: Optional[ProtoEnum] = field(default=None, repr=False)
    message: Optional['ProtoMessage'] = field(default=None, repr=False)
    map_key: Optional[ScalarType] = None
    map_value_shape: Optional[FieldShape] = None
    deprecated: bool = False
    proto3_optional: bool = False
    options: Optional[descriptor_pb2.FieldOptions] = field(default=None, repr=False)


@dataclass(eq=False)
class ProtoMessage:
    """A message definition. ``file`` is the owning file's logical path."""
    name: str
    full_name: str
    file: str
    fields: List[ProtoField] = field(default_factory=list)
    nested_messages: List['ProtoMessage'] = field(default_factory=list, repr=False)
    deprecated: bool = False
    map_entry: bool = False


@dataclass(eq=False)
class ProtoFile:
    """
    One .proto file.

    Attributes:
        name: Logical path, i.e. the descriptor name without '.proto'
        proto_name: The descriptor name as given by protoc
        package: Protobuf package; also the scope of top-level type names
        messages: Top-level messages in declaration order
        enums: Top-level enums in declaration order
    """
    name: str
    proto_name: str
    package: str
    messages: List[ProtoMessage] = field(default_factory=list)
    enums: List[ProtoEnum] = field(default_factory=list)


ProtoType = Union[ProtoMessage, ProtoEnum]


class DescriptorModel:
    """
    All files of one generation request, with type references resolved.

    Files are keyed by their descriptor name (``foo/bar.proto``). Every type
    referenced by a field must be defined in one of the files given, which
    protoc guarantees for a complete request.
    """

    def __init__(self, file_protos: Iterable[descriptor_pb2.FileDescriptorProto]):
        self.files: 'OrderedDict[str, ProtoFile]' = OrderedDict()
        self._types: Dict[str, ProtoType] = {}
        self._pending = []

        for fdesc in file_protos:
            self._add_file(fdesc)

        # References are resolved only after every file is registered, so
        # the order of the input files does not matter.
        for proto_field, fdesc_field, owner in self._pending:
            self._resolve_reference(proto_field, fdesc_field, owner)
        for proto_field, fdesc_field, owner in self._pending:
            self._assign_shape(proto_field, fdesc_field)
        self._pending = []

    def get_file(self, proto_name: str) -> ProtoFile:
        """Look up a file by descriptor name, with or without '.proto'."""
        if proto_name in self.files:
            return self.files[proto_name]
        for proto_file in self.files.values():
            if proto_file.name == proto_name:
                return proto_file
        raise ValueError("Could not find descriptor for %s" % proto_name)

    def find_type(self, full_name: str) -> Optional[ProtoType]:
        """Look up a message or enum by fully qualified name."""
        return self._types.get(full_name.lstrip('.'))

    # ------------------------------------------------------------------
    # Building
    # ------------------------------------------------------------------

    def _add_file(self, fdesc: descriptor_pb2.FileDescriptorProto) -> None:
        logical_path = strip_proto_extension(fdesc.name)
        proto_file = ProtoFile(
            name=logical_path,
            proto_name=fdesc.name,
            package=fdesc.package,
        )
        scope = proto_file.package

        for enum_desc in fdesc.enum_type:
            proto_file.enums.append(self._add_enum(enum_desc, scope, logical_path))
        for msg_desc in fdesc.message_type:
            proto_file.messages.append(self._add_message(msg_desc, scope, logical_path))

        self.files[fdesc.name] = proto_file

    def _add_enum(self, enum_desc, scope: str, file_name: str) -> ProtoEnum:
        proto_enum = ProtoEnum(
            name=enum_desc.name,
            full_name=_qualify(scope, enum_desc.name),
            file=file_name,
            values=[EnumValue(v.name, v.number) for v in enum_desc.value],
            deprecated=enum_desc.options.deprecated,
        )
        self._types[proto_enum.full_name] = proto_enum
        return proto_enum

    def _add_message(self, msg_desc, scope: str, file_name: str) -> ProtoMessage:
        message = ProtoMessage(
            name=msg_desc.name,
            full_name=_qualify(scope, msg_desc.name),
            file=file_name,
            deprecated=msg_desc.options.deprecated,
            map_entry=msg_desc.options.map_entry,
        )
        self._types[message.full_name] = message

        for enum_desc in msg_desc.enum_type:
            self._add_enum(enum_desc, message.full_name, file_name)
        for nested_desc in msg_desc.nested_type:
            message.nested_messages.append(self._add_message(nested_desc, message.full_name, file_name))

        for fdesc_field in msg_desc.field:
            proto_field = ProtoField(
                name=fdesc_field.name,
                number=fdesc_field.number,
                deprecated=fdesc_field.options.deprecated,
                proto3_optional=fdesc_field.proto3_optional,
                options=fdesc_field.options if fdesc_field.HasField('options') else None,
            )
            message.fields.append(proto_field)
            self._pending.append((proto_field, fdesc_field, message))

        return message

    def _resolve_reference(self, proto_field: ProtoField, fdesc_field, owner: ProtoMessage) -> None:
        if fdesc_field.type == FieldDescriptorProto.TYPE_ENUM:
            proto_field.enum = self._lookup(fdesc_field, owner, ProtoEnum)
        elif fdesc_field.type == FieldDescriptorProto.TYPE_MESSAGE:
            proto_field.message = self._lookup(fdesc_field, owner, ProtoMessage)
        elif fdesc_field.type in _SCALAR_TYPES:
            proto_field.scalar = ScalarType(fdesc_field.type)

    def _lookup(self, fdesc_field, owner: ProtoMessage, expected_class):
        type_name = fdesc_field.type_name
        found = self.find_type(type_name)
        if found is None and not type_name.startswith('.'):
            # Relative reference: search enclosing scopes outwards
            scope = owner.full_name
            while found is None and scope:
                found = self.find_type(_qualify(scope, type_name))
                scope = scope.rpartition('.')[0]

        if not isinstance(found, expected_class):
            raise ValueError("Could not resolve type %s of field %s.%s"
                             % (type_name, owner.full_name, fdesc_field.name))
        return found

    def _assign_shape(self, proto_field: ProtoField, fdesc_field) -> None:
        singular = _singular_shape(proto_field)
        repeated = fdesc_field.label == FieldDescriptorProto.LABEL_REPEATED

        if repeated and singular == FieldShape.MESSAGE and proto_field.message.map_entry:
            self._fold_map_entry(proto_field)
        elif repeated and singular in _REPEATED_SHAPES:
            proto_field.shape = _REPEATED_SHAPES[singular]
        else:
            proto_field.shape = singular

    @staticmethod
    def _fold_map_entry(proto_field: ProtoField) -> None:
        entry = proto_field.message
        key, value = entry.fields[0], entry.fields[1]

        proto_field.shape = FieldShape.MAP
        proto_field.map_key = key.scalar
        proto_field.map_value_shape = _singular_shape(value)
        proto_field.scalar = value.scalar
        proto_field.enum = value.enum
        proto_field.message = value.message


def _singular_shape(proto_field: ProtoField) -> FieldShape:
    if proto_field.enum is not None:
        return FieldShape.ENUM
    if proto_field.message is not None:
        return FieldShape.MESSAGE
    if proto_field.scalar is not None:
        return FieldShape.SCALAR
    return FieldShape.UNKNOWN


def _qualify(scope: str, name: str) -> str:
    return '%s.%s' % (scope, name) if scope else name
