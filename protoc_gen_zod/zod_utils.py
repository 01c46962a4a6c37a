"""
Naming and path helpers for the Zod schema generator.

All functions here are pure string manipulation. Proto file paths are handled
in their logical form: slash separated and without the ``.proto`` extension,
e.g. ``mirai/v1/auth``.
"""

import re
from typing import List

# Messages with this suffix are omitted unless include_responses is set
RESPONSE_SUFFIX = 'Response'

_SNAKE_SEGMENT_RE = re.compile(r'_([a-z])')
_LOWER_UPPER_RE = re.compile(r'([a-z])([A-Z])')
_ACRONYM_RE = re.compile(r'([A-Z])([A-Z][a-z])')


def to_camel_case(name: str) -> str:
    """
    Convert a snake_case field name to camelCase.

    Matches the field names produced by the TypeScript message generator:
    only a lowercase letter following an underscore is folded.

    Examples:
        >>> to_camel_case('user_id')
        'userId'
        >>> to_camel_case('page_2_token')
        'page_2Token'
    """
    return _SNAKE_SEGMENT_RE.sub(lambda m: m.group(1).upper(), name)


def to_schema_name(message_name: str) -> str:
    """
    Derive the exported schema constant name for a message or enum.

    Examples:
        >>> to_schema_name('RegisterRequest')
        'RegisterRequestSchema'
    """
    return '%sSchema' % message_name


def to_screaming_snake_case(name: str) -> str:
    """
    Convert PascalCase or camelCase to SCREAMING_SNAKE_CASE.

    Examples:
        >>> to_screaming_snake_case('CostType')
        'COST_TYPE'
        >>> to_screaming_snake_case('HTTPMethod')
        'HTTP_METHOD'
    """
    name = _LOWER_UPPER_RE.sub(r'\1_\2', name)
    name = _ACRONYM_RE.sub(r'\1_\2', name)
    return name.upper()


def strip_enum_prefix(value_name: str, enum_name: str) -> str:
    """
    Strip the conventional enum-name prefix from an enum value name.

    Examples:
        >>> strip_enum_prefix('COST_TYPE_TOKEN_INPUT', 'CostType')
        'TOKEN_INPUT'
        >>> strip_enum_prefix('OTHER', 'CostType')
        'OTHER'
    """
    prefix = to_screaming_snake_case(enum_name) + '_'
    if value_name.startswith(prefix):
        return value_name[len(prefix):]
    return value_name


def escape_string(s: str) -> str:
    """Escape a string for use inside a double-quoted TypeScript literal."""
    return (s.replace('\\', '\\\\')
             .replace('"', '\\"')
             .replace('\n', '\\n')
             .replace('\r', '\\r')
             .replace('\t', '\\t'))


def escape_pattern(pattern: str) -> str:
    """Escape a regular expression for a ``new RegExp("...")`` argument."""
    return (pattern.replace('\\', '\\\\')
                   .replace('"', '\\"')
                   .replace('\n', '\\n')
                   .replace('\r', '\\r'))


def strip_proto_extension(file_name: str) -> str:
    """
    Turn a descriptor file name into its logical path.

    Examples:
        >>> strip_proto_extension('mirai/v1/auth.proto')
        'mirai/v1/auth'
    """
    if file_name.endswith('.proto'):
        return file_name[:-len('.proto')]
    return file_name


def get_proto_base_name(proto_path: str) -> str:
    """
    Return the last path component of a logical proto path.

    Examples:
        >>> get_proto_base_name('mirai/v1/auth')
        'auth'
    """
    return proto_path.split('/')[-1]


def _directory_parts(proto_path: str) -> List[str]:
    return [part for part in proto_path.split('/')[:-1] if part]


def get_relative_import_path(from_proto_path: str, to_proto_path: str, suffix: str) -> str:
    """
    Compute the ES module specifier of a sibling generated file.

    Both arguments are logical proto paths. The result points from the
    directory of ``from_proto_path`` to the file generated for
    ``to_proto_path`` with the given suffix.

    Args:
        from_proto_path: Logical path of the file being generated
        to_proto_path: Logical path of the file being imported
        suffix: Generated file suffix, e.g. '.js' or '_zod.js'

    Returns:
        A relative specifier that always starts with './' or '../'.

    Examples:
        >>> get_relative_import_path('mirai/v1/auth', 'mirai/v1/common', '.js')
        './common.js'
        >>> get_relative_import_path('mirai/v1/auth', 'shared/types', '_zod.js')
        '../../shared/types_zod.js'
        >>> get_relative_import_path('mirai/auth', 'mirai/v1/common', '.js')
        './v1/common.js'
    """
    from_parts = _directory_parts(from_proto_path)
    to_parts = _directory_parts(to_proto_path)
    target = get_proto_base_name(to_proto_path) + suffix

    if from_parts == to_parts:
        return './' + target

    common = 0
    for a, b in zip(from_parts, to_parts):
        if a != b:
            break
        common += 1

    up = ['..'] * (len(from_parts) - common)
    relative = up + to_parts[common:] + [target]
    if not up:
        relative.insert(0, '.')
    return '/'.join(relative)


def is_response_message(message_name: str) -> bool:
    """Check whether a message name marks a response payload."""
    return message_name.endswith(RESPONSE_SUFFIX)
