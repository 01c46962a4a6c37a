"""
Validation Rule Extraction
==========================

This module reads the declarative validation constraints attached to fields
through the ``(buf.validate.field)`` option (protovalidate) and converts them
into Zod method chains.

Architecture Overview
---------------------
1. **ValidationChain**: The normalized result for one field: ordered Zod
   method suffixes, the required flag, and separately tracked constraints
   whose rendering depends on context (regex patterns, array items, enum
   defined-only).

2. **FieldValidator**: Parses the FieldRules option of one field. It
   dispatches on the ``type`` oneof of FieldRules to one parser per rule kind
   (string, bytes, 32-bit numbers, 64-bit numbers, floats, bool, enum,
   repeated, map).

3. **get_validation_chain()**: The entry point used by the generator. It never
   raises: a rule payload that cannot be read produces a warning and an empty
   chain, so one bad annotation does not stop generation of a whole file.

Ordering
--------
Method order matters because each refinement runs on the value already
narrowed by the previous ones:

    bounds (gt/gte, lt/lte) -> const -> in -> not_in -> well-known format

Default values
--------------
Proto3 cannot tell an unset length or count from an explicit zero, so zero
``min_len``/``max_len``/``len``/``min_items``/``max_items``/``min_pairs``/
``max_pairs`` and zero numeric ``const`` values are treated as unset. Boolean
``const`` is the exception: ``const: false`` is honoured.

64-bit integers
---------------
int64 and friends are strings at runtime (ts-proto ``forceLong=string``), so
their comparisons are emitted as refinements over ``BigInt(s)``.
"""

import math
import sys
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, List, Optional, Tuple

from .proto import load_validate_pb2
from .zod_model import EnumValue, ProtoField
from .zod_utils import escape_string

# =============================================================================
# MODULE CONSTANTS
# =============================================================================

INT32_KINDS = ('int32', 'uint32', 'sint32', 'fixed32', 'sfixed32')
INT64_KINDS = ('int64', 'uint64', 'sint64', 'fixed64', 'sfixed64')
FLOAT_KINDS = ('float', 'double')

# Well-known string formats. StringRules holds them in a oneof, so at most one
# applies to a field.
STRING_FORMATS = OrderedDict([
    ('email', '.email()'),
    ('hostname', '.regex(/^[a-zA-Z0-9][a-zA-Z0-9-]*$/)'),
    ('ip', '.ip()'),
    ('ipv4', '.ip({ version: "v4" })'),
    ('ipv6', '.ip({ version: "v6" })'),
    ('uri', '.url()'),
    ('uuid', '.uuid()'),
])

BIGINT_OPERATORS = {
    'gt': '>',
    'gte': '>=',
    'lt': '<',
    'lte': '<=',
}


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def _js_number(value: Any) -> str:
    """
    Render a numeric rule value as a JavaScript number literal.

    Examples:
        >>> _js_number(10)
        '10'
        >>> _js_number(2.0)
        '2'
        >>> _js_number(0.5)
        '0.5'
        >>> _js_number(float('-inf'))
        '-Infinity'
    """
    if isinstance(value, float):
        if math.isnan(value):
            return 'NaN'
        if math.isinf(value):
            return 'Infinity' if value > 0 else '-Infinity'
        if value.is_integer():
            return str(int(value))
        return repr(value)
    return str(int(value))


def _bigint(value: Any) -> str:
    """Render an integer rule value as a JavaScript BigInt literal."""
    return '%dn' % int(value)


def _join(values, render: Callable[[Any], str]) -> str:
    return ', '.join(render(v) for v in values)


def _quoted(value: str) -> str:
    return '"%s"' % escape_string(value)


def _bound_cases(rules: Any) -> List[Tuple[str, Any]]:
    """
    Return the set comparison bounds of a numeric rules message.

    The lower bound (``greater_than`` oneof) comes first, then the upper bound
    (``less_than`` oneof). Each oneof selects at most one comparator.
    """
    result = []
    for oneof in ('greater_than', 'less_than'):
        case = rules.WhichOneof(oneof)
        if case is not None:
            result.append((case, getattr(rules, case)))
    return result


def _number_methods(rules: Any, bounds_only: bool = False) -> List[str]:
    """Zod methods for 32-bit integer and floating point rules."""
    methods = ['.%s(%s)' % (case, _js_number(value)) for case, value in _bound_cases(rules)]
    if bounds_only:
        return methods

    if rules.HasField('const') and rules.const != 0:
        value = _js_number(rules.const)
        methods.append('.refine((n) => n === %s, { message: "Must equal %s" })' % (value, value))

    in_values = list(getattr(rules, 'in'))
    if in_values:
        values = _join(in_values, _js_number)
        methods.append('.refine((n) => [%s].includes(n), { message: "Must be one of: %s" })'
                       % (values, values))

    if rules.not_in:
        values = _join(rules.not_in, _js_number)
        methods.append('.refine((n) => ![%s].includes(n), { message: "Must not be one of: %s" })'
                       % (values, values))

    return methods


def _int64_methods(rules: Any, bounds_only: bool = False) -> List[str]:
    """Zod refinements for 64-bit integer rules, comparing via BigInt."""
    methods = []
    for case, value in _bound_cases(rules):
        op = BIGINT_OPERATORS[case]
        methods.append('.refine((s) => BigInt(s) %s %s, { message: "Must be %s %d" })'
                       % (op, _bigint(value), op, value))
    if bounds_only:
        return methods

    if rules.HasField('const') and rules.const != 0:
        methods.append('.refine((s) => BigInt(s) === %s, { message: "Must equal %d" })'
                       % (_bigint(rules.const), rules.const))

    in_values = list(getattr(rules, 'in'))
    if in_values:
        methods.append('.refine((s) => [%s].includes(BigInt(s)), { message: "Must be one of: %s" })'
                       % (_join(in_values, _bigint), _join(in_values, str)))

    if rules.not_in:
        methods.append('.refine((s) => ![%s].includes(BigInt(s)), { message: "Must not be one of: %s" })'
                       % (_join(rules.not_in, _bigint), _join(rules.not_in, str)))

    return methods


def _string_methods(rules: Any) -> Tuple[List[str], Optional[str]]:
    """
    Zod methods for string rules.

    Returns:
        A tuple of (methods, pattern). The regex pattern is returned
        separately because its rendering depends on whether the field is
        required.
    """
    methods = []
    if rules.min_len > 0:
        methods.append('.min(%d)' % rules.min_len)
    if rules.max_len > 0:
        methods.append('.max(%d)' % rules.max_len)
    if rules.len > 0:
        methods.append('.length(%d)' % rules.len)

    pattern = rules.pattern or None

    if rules.prefix:
        methods.append('.startsWith(%s)' % _quoted(rules.prefix))
    if rules.suffix:
        methods.append('.endsWith(%s)' % _quoted(rules.suffix))
    if rules.contains:
        methods.append('.includes(%s)' % _quoted(rules.contains))

    if rules.const:
        methods.append('.refine((s) => s === %s, { message: "Must equal %s" })'
                       % (_quoted(rules.const), escape_string(rules.const)))

    in_values = list(getattr(rules, 'in'))
    if in_values:
        methods.append('.refine((s) => [%s].includes(s), { message: "Must be one of: %s" })'
                       % (_join(in_values, _quoted), _join(in_values, escape_string)))

    if rules.not_in:
        methods.append('.refine((s) => ![%s].includes(s), { message: "Must not be one of: %s" })'
                       % (_join(rules.not_in, _quoted), _join(rules.not_in, escape_string)))

    well_known = rules.WhichOneof('well_known')
    if well_known in STRING_FORMATS and getattr(rules, well_known):
        methods.append(STRING_FORMATS[well_known])

    return methods, pattern


# =============================================================================
# DATA STRUCTURES
# =============================================================================

@dataclass
class ValidationChain:
    """
    Zod validation derived from the rules of one field.

    Attributes:
        methods: Method suffixes appended to the field expression, in order
        required: Set by the ``required`` rule; suppresses ``.optional()``
        enum_defined_only: Reject the zero (UNSPECIFIED) enum value
        item_methods: Method suffixes for the elements of a repeated field
        item_enum_not_in: Enum numbers rejected for repeated enum elements
        string_pattern: Regex for the field; rendered strictly for required
                        fields and permissively (accepting "") otherwise
        item_string_pattern: Regex for the elements of a repeated field
    """
    methods: List[str] = field(default_factory=list)
    required: bool = False
    enum_defined_only: bool = False
    item_methods: List[str] = field(default_factory=list)
    item_enum_not_in: List[int] = field(default_factory=list)
    string_pattern: Optional[str] = None
    item_string_pattern: Optional[str] = None

    @property
    def has_item_rules(self) -> bool:
        return bool(self.item_methods or self.item_enum_not_in or self.item_string_pattern)


class FieldValidator:
    """
    Parses the buf.validate FieldRules of a single field into a ValidationChain.

    Attributes:
        field: The field the rules belong to
        chain: The resulting ValidationChain
    """

    def __init__(self, field: ProtoField, rules_option: Any):
        """
        Initialize a FieldValidator for a given field.

        Args:
            field: The field descriptor
            rules_option: The FieldRules option from validate.proto (or None)
        """
        self.field = field
        self.chain = ValidationChain()
        self.parse_rules(rules_option)

    def parse_rules(self, rules_option: Any) -> None:
        """
        Parse validation rules from the FieldRules option.

        The ``required`` flag is independent of the type-specific rules;
        both are applied when present.
        """
        if rules_option is None:
            return

        if rules_option.required:
            self.chain.required = True

        kind = rules_option.WhichOneof('type')
        if kind is None:
            return

        handler = self._handlers().get(kind)
        if handler:
            handler(getattr(rules_option, kind))

    def _handlers(self):
        dispatch = {
            'string': self._parse_string_rules,
            'bytes': self._parse_bytes_rules,
            'bool': self._parse_bool_rules,
            'enum': self._parse_enum_rules,
            'repeated': self._parse_repeated_rules,
            'map': self._parse_map_rules,
        }
        for kind in INT32_KINDS:
            dispatch[kind] = self._parse_int32_rules
        for kind in INT64_KINDS:
            dispatch[kind] = self._parse_int64_rules
        for kind in FLOAT_KINDS:
            dispatch[kind] = self._parse_float_rules
        return dispatch

    def _parse_int32_rules(self, rules: Any) -> None:
        self.chain.methods.extend(_number_methods(rules))

    def _parse_int64_rules(self, rules: Any) -> None:
        self.chain.methods.extend(_int64_methods(rules))

    def _parse_float_rules(self, rules: Any) -> None:
        self.chain.methods.extend(_number_methods(rules))
        if getattr(rules, 'finite', False):
            self.chain.methods.append('.finite()')

    def _parse_string_rules(self, rules: Any) -> None:
        methods, pattern = _string_methods(rules)
        self.chain.methods.extend(methods)
        if pattern:
            self.chain.string_pattern = pattern

    def _parse_bytes_rules(self, rules: Any) -> None:
        if rules.min_len > 0:
            self.chain.methods.append(
                '.refine((b) => b.length >= %d, { message: "Bytes must be at least %d bytes" })'
                % (rules.min_len, rules.min_len))
        if rules.max_len > 0:
            self.chain.methods.append(
                '.refine((b) => b.length <= %d, { message: "Bytes must be at most %d bytes" })'
                % (rules.max_len, rules.max_len))

    def _parse_bool_rules(self, rules: Any) -> None:
        # Presence alone counts here: const=false is a real constraint
        if rules.HasField('const'):
            value = 'true' if rules.const else 'false'
            self.chain.methods.append(
                '.refine((b) => b === %s, { message: "Must be %s" })' % (value, value))

    def _parse_enum_rules(self, rules: Any) -> None:
        if rules.defined_only:
            self.chain.enum_defined_only = True
        if rules.HasField('const') and rules.const != 0:
            self.chain.methods.append(
                '.refine((e) => e === %d, { message: "Must equal %d" })' % (rules.const, rules.const))
        in_values = list(getattr(rules, 'in'))
        if in_values:
            values = _join(in_values, str)
            self.chain.methods.append(
                '.refine((e) => [%s].includes(e), { message: "Must be one of: %s" })' % (values, values))
        if rules.not_in:
            values = _join(rules.not_in, str)
            self.chain.methods.append(
                '.refine((e) => ![%s].includes(e), { message: "Must not be one of: %s" })' % (values, values))

    def _parse_repeated_rules(self, rules: Any) -> None:
        if rules.min_items > 0:
            self.chain.methods.append('.min(%d)' % rules.min_items)
        if rules.max_items > 0:
            self.chain.methods.append('.max(%d)' % rules.max_items)
        if rules.unique:
            self.chain.methods.append(
                '.refine((arr) => new Set(arr).size === arr.length, { message: "Items must be unique" })')
        if rules.HasField('items'):
            self._parse_item_rules(rules.items)

    def _parse_item_rules(self, items_rules: Any) -> None:
        """
        Parse the per-item rules of a repeated field.

        Item rules only ever populate the item-level slots of the chain.
        """
        kind = items_rules.WhichOneof('type')
        if kind == 'string':
            methods, pattern = _string_methods(items_rules.string)
            self.chain.item_methods.extend(methods)
            if pattern:
                self.chain.item_string_pattern = pattern
        elif kind == 'enum':
            if items_rules.enum.not_in:
                self.chain.item_enum_not_in = [int(v) for v in items_rules.enum.not_in]
        elif kind in INT32_KINDS or kind in FLOAT_KINDS:
            self.chain.item_methods.extend(
                _number_methods(getattr(items_rules, kind), bounds_only=True))
        elif kind in INT64_KINDS:
            self.chain.item_methods.extend(
                _int64_methods(getattr(items_rules, kind), bounds_only=True))

    def _parse_map_rules(self, rules: Any) -> None:
        if rules.min_pairs > 0:
            self.chain.methods.append(
                '.refine((m) => Object.keys(m).length >= %d, '
                '{ message: "Map must have at least %d entries" })' % (rules.min_pairs, rules.min_pairs))
        if rules.max_pairs > 0:
            self.chain.methods.append(
                '.refine((m) => Object.keys(m).length <= %d, '
                '{ message: "Map must have at most %d entries" })' % (rules.max_pairs, rules.max_pairs))


# =============================================================================
# PUBLIC API
# =============================================================================

def get_field_rules(field: ProtoField) -> Optional[Any]:
    """
    Return the (buf.validate.field) option of a field, or None if not set.
    """
    if field.options is None:
        return None

    validate_pb2 = load_validate_pb2()
    if validate_pb2 is None:
        return None

    if not field.options.HasExtension(validate_pb2.field):
        return None
    return field.options.Extensions[validate_pb2.field]


def get_validation_chain(field: ProtoField) -> ValidationChain:
    """
    Build the ValidationChain of a field.

    Any error while reading the rules is reported as a warning and results in
    an empty chain with ``required=False``.
    """
    try:
        return FieldValidator(field, get_field_rules(field)).chain
    except Exception as e:
        sys.stderr.write("Warning: Could not read validation constraints for field %s: %s\n"
                         % (field.name, e))
        return ValidationChain()


def get_defined_enum_values(values: Iterable[EnumValue]) -> List[EnumValue]:
    """Enum values excluding the zero (UNSPECIFIED) value."""
    return [v for v in values if v.number != 0]
