"""
Maps protobuf fields to Zod type expressions.

The mapping has to agree with how the TypeScript message types are generated
(ts-proto with ``forceLong=string`` and ``useDate=true``): 64-bit integers are
strings, Timestamps are Date objects, bytes are Uint8Array.
"""

from dataclasses import dataclass
from typing import Optional

from .zod_model import FieldShape, ProtoEnum, ProtoField, ProtoMessage, ScalarType
from .zod_utils import get_relative_import_path, to_schema_name

# Suffix of the ts-proto generated module that defines enums and message types
PB_IMPORT_SUFFIX = '.js'

# Suffix of the generated Zod modules, as seen from an import statement
ZOD_IMPORT_SUFFIX = '_zod.js'

UNKNOWN_ZOD_TYPE = 'z.unknown()'

SCALAR_ZOD_TYPES = {
    ScalarType.STRING: 'z.string()',
    ScalarType.BOOL: 'z.boolean()',
    ScalarType.INT32: 'z.number().int()',
    ScalarType.SINT32: 'z.number().int()',
    ScalarType.SFIXED32: 'z.number().int()',
    ScalarType.UINT32: 'z.number().int().nonnegative()',
    ScalarType.FIXED32: 'z.number().int().nonnegative()',
    ScalarType.INT64: 'z.string()',
    ScalarType.SINT64: 'z.string()',
    ScalarType.SFIXED64: 'z.string()',
    ScalarType.UINT64: 'z.string()',
    ScalarType.FIXED64: 'z.string()',
    ScalarType.FLOAT: 'z.number()',
    ScalarType.DOUBLE: 'z.number()',
    ScalarType.BYTES: 'z.instanceof(Uint8Array)',
}

SCALAR_TS_TYPES = {
    ScalarType.STRING: 'string',
    ScalarType.BOOL: 'boolean',
    ScalarType.INT32: 'number',
    ScalarType.SINT32: 'number',
    ScalarType.SFIXED32: 'number',
    ScalarType.UINT32: 'number',
    ScalarType.FIXED32: 'number',
    ScalarType.INT64: 'string',
    ScalarType.SINT64: 'string',
    ScalarType.SFIXED64: 'string',
    ScalarType.UINT64: 'string',
    ScalarType.FIXED64: 'string',
    ScalarType.FLOAT: 'number',
    ScalarType.DOUBLE: 'number',
    ScalarType.BYTES: 'Uint8Array',
}

# Well-known types are mapped to plain values, never imported
WELL_KNOWN_TYPES = {
    'google.protobuf.Timestamp': ('z.coerce.date()', 'Date'),
    'google.protobuf.Duration': ('z.string()', 'string'),
    'google.protobuf.Any': ('z.unknown()', 'unknown'),
    'google.protobuf.Struct': ('z.record(z.string(), z.any())', 'Record<string, any>'),
    'google.protobuf.Value': ('z.any()', 'any'),
    'google.protobuf.ListValue': ('z.array(z.any())', 'any[]'),
    'google.protobuf.Empty': ('z.object({})', 'Record<string, never>'),
    'google.protobuf.StringValue': ('z.string()', 'string'),
    'google.protobuf.Int32Value': ('z.number().int()', 'number'),
    'google.protobuf.Int64Value': ('z.number().int()', 'number'),
    'google.protobuf.UInt32Value': ('z.number().int().nonnegative()', 'number'),
    'google.protobuf.UInt64Value': ('z.number().int().nonnegative()', 'number'),
    'google.protobuf.FloatValue': ('z.number()', 'number'),
    'google.protobuf.DoubleValue': ('z.number()', 'number'),
    'google.protobuf.BoolValue': ('z.boolean()', 'boolean'),
    'google.protobuf.BytesValue': ('z.instanceof(Uint8Array)', 'Uint8Array'),
}


@dataclass(frozen=True)
class ImportObligation:
    """A name that the generated file must import from ``path``."""
    name: str
    path: str


@dataclass
class ZodTypeInfo:
    """
    Result of mapping one field.

    Attributes:
        zod_type: The Zod expression, e.g. 'z.string()' or 'UserSchema'
        needs_import: Import required by the expression, if any
        is_nested_message: True if the expression references a message schema
    """
    zod_type: str
    needs_import: Optional[ImportObligation] = None
    is_nested_message: bool = False


@dataclass
class TypeMapperContext:
    """Logical path of the proto file being generated."""
    current_proto_path: str


def map_field_to_zod(field: ProtoField, context: TypeMapperContext) -> ZodTypeInfo:
    """
    Map a field to its base Zod expression, before any validation rules.

    Args:
        field: The field to map
        context: The file being generated, used to decide on imports

    Returns:
        The Zod expression and the import it requires, if any.
    """
    if field.shape == FieldShape.MAP:
        return _map_map_field_to_zod(field, context)

    if field.shape.is_list:
        item = map_list_item_to_zod(field, context)
        return ZodTypeInfo('z.array(%s)' % item.zod_type, item.needs_import,
                           item.is_nested_message)

    return _map_singular_to_zod(field, field.shape, context)


def map_list_item_to_zod(field: ProtoField, context: TypeMapperContext) -> ZodTypeInfo:
    """Map the element of a repeated field."""
    return _map_singular_to_zod(field, field.shape.element_shape, context)


def _map_map_field_to_zod(field: ProtoField, context: TypeMapperContext) -> ZodTypeInfo:
    key_type = map_scalar_to_zod(field.map_key)
    value = _map_singular_to_zod(field, field.map_value_shape, context)
    return ZodTypeInfo('z.record(%s, %s)' % (key_type, value.zod_type),
                       value.needs_import, value.is_nested_message)


def _map_singular_to_zod(field: ProtoField, shape: FieldShape,
                         context: TypeMapperContext) -> ZodTypeInfo:
    if shape == FieldShape.SCALAR:
        return ZodTypeInfo(map_scalar_to_zod(field.scalar))
    if shape == FieldShape.ENUM:
        return _map_enum_to_zod(field.enum, context)
    if shape == FieldShape.MESSAGE:
        return _map_message_to_zod(field.message, context)
    return ZodTypeInfo(UNKNOWN_ZOD_TYPE)


def map_scalar_to_zod(scalar: Optional[ScalarType]) -> str:
    """
    Map a scalar type to its Zod expression.

    Examples:
        >>> map_scalar_to_zod(ScalarType.UINT32)
        'z.number().int().nonnegative()'
        >>> map_scalar_to_zod(ScalarType.INT64)
        'z.string()'
    """
    return SCALAR_ZOD_TYPES.get(scalar, UNKNOWN_ZOD_TYPE)


def _map_enum_to_zod(enum: ProtoEnum, context: TypeMapperContext) -> ZodTypeInfo:
    # The enum object itself comes from the ts-proto module
    import_path = get_relative_import_path(context.current_proto_path, enum.file,
                                           PB_IMPORT_SUFFIX)
    return ZodTypeInfo('z.enum(%s)' % enum.name, ImportObligation(enum.name, import_path))


def _map_message_to_zod(message: ProtoMessage, context: TypeMapperContext) -> ZodTypeInfo:
    well_known = WELL_KNOWN_TYPES.get(message.full_name)
    if well_known is not None:
        return ZodTypeInfo(well_known[0])

    schema_name = to_schema_name(message.name)
    if message.file == context.current_proto_path:
        return ZodTypeInfo(schema_name, is_nested_message=True)

    import_path = get_relative_import_path(context.current_proto_path, message.file,
                                           ZOD_IMPORT_SUFFIX)
    return ZodTypeInfo(schema_name, ImportObligation(schema_name, import_path), True)


def is_field_optional(field: ProtoField) -> bool:
    """
    Check whether a field is optional by proto3 semantics.

    Every proto3 field has a default value (zero, empty string, empty list,
    unset message), so all known shapes are optional. Only buf.validate's
    ``required`` rule makes a field mandatory in the schema.
    """
    if field.proto3_optional:
        return True
    return field.shape != FieldShape.UNKNOWN


def infer_ts_type(field: ProtoField, context: TypeMapperContext) -> str:
    """
    TypeScript type of a field, for explicit declarations of recursive types.

    Must agree with the type Zod infers from ``map_field_to_zod``. Messages of
    the current file are referred to by the type alias generated next to
    their schema; messages of other files through their imported schema.
    """
    if field.shape == FieldShape.MAP:
        key = SCALAR_TS_TYPES.get(field.map_key, 'string')
        value = _singular_ts_type(field, field.map_value_shape, context)
        return 'Record<%s, %s>' % (key, value)

    if field.shape.is_list:
        return '%s[]' % _singular_ts_type(field, field.shape.element_shape, context)

    return _singular_ts_type(field, field.shape, context)


def _singular_ts_type(field: ProtoField, shape: FieldShape, context: TypeMapperContext) -> str:
    if shape == FieldShape.SCALAR:
        return SCALAR_TS_TYPES.get(field.scalar, 'unknown')
    if shape == FieldShape.ENUM:
        return field.enum.name
    if shape == FieldShape.MESSAGE:
        message = field.message
        well_known = WELL_KNOWN_TYPES.get(message.full_name)
        if well_known is not None:
            return well_known[1]
        if message.file != context.current_proto_path:
            return 'z.infer<typeof %s>' % to_schema_name(message.name)
        return message.name
    return 'unknown'
