"""
Zod schema generator.

This module turns the messages and enums of .proto files into TypeScript
modules that export Zod validation schemas. Field validation rules declared
with buf.validate annotations are translated into Zod method chains.

The generated modules import the enum objects from the ts-proto output of the
same .proto file (``<name>.js``) and the schemas of other files from their
generated Zod modules (``<name>_zod.js``).

Generation happens in two steps:
- ``ZodGenerator.build_file()`` builds a structured ``ZodFile``: the imports
  and one declaration per enum and message, with every field expression fully
  composed.
- ``ZodGenerator.generate_source()`` renders a ``ZodFile`` as text.

The module can be used as a protoc plugin (``protoc-gen-zod``) or from the
command line (``zod-generator``):

    protoc --plugin=protoc-gen-zod --zod_out=include_responses=true:gen api.proto
    zod-generator -I protos -D gen protos/mirai/v1/auth.proto
"""

import argparse
import os
import os.path
import sys
import traceback
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Dict, Iterable, Iterator, List, Optional, Set, Tuple

from google.protobuf.compiler import plugin_pb2

from .proto import build_descriptor_set, load_validate_pb2, read_descriptor_set
from .zod_dependencies import analyze_message_dependencies
from .zod_model import DescriptorModel, EnumValue, FieldShape, ProtoField, ProtoFile, ProtoMessage
from .zod_type_mapper import (
    PB_IMPORT_SUFFIX,
    TypeMapperContext,
    infer_ts_type,
    is_field_optional,
    map_field_to_zod,
    map_list_item_to_zod,
    map_scalar_to_zod,
)
from .zod_utils import (
    escape_pattern,
    get_relative_import_path,
    is_response_message,
    strip_enum_prefix,
    to_camel_case,
    to_schema_name,
    to_screaming_snake_case,
)
from .zod_validator import ValidationChain, get_defined_enum_values, get_validation_chain

# Files below these prefixes come from dependencies and are never generated
THIRD_PARTY_PREFIXES = ('buf/', 'google/')

OUTPUT_SUFFIX = '_zod.ts'


# =============================================================================
# OPTIONS AND DATA STRUCTURES
# =============================================================================

@dataclass
class GeneratorOptions:
    """
    Attributes:
        include_responses: Also generate schemas for messages named *Response
        verbose: Report generated and skipped files on stderr
    """
    include_responses: bool = False
    verbose: bool = False


@dataclass
class FieldDeclaration:
    """
    One property of a generated z.object().

    Attributes:
        name: Property name in camelCase
        expression: The complete Zod expression of the property
        ts_type: TypeScript type, used in explicit types of recursive messages
        optional: Whether the property may be absent
    """
    name: str
    expression: str
    ts_type: str
    optional: bool
    deprecated: bool = False


@dataclass
class EnumDeclaration:
    name: str
    full_name: str
    values: List[EnumValue]
    deprecated: bool = False


@dataclass
class MessageDeclaration:
    name: str
    full_name: str
    fields: List[FieldDeclaration]
    recursive: bool = False
    deprecated: bool = False


@dataclass
class ZodFile:
    """
    Everything that goes into one generated module.

    Attributes:
        proto_name: Descriptor name of the source file, e.g. 'mirai/v1/auth.proto'
        output_name: Path of the generated module, e.g. 'mirai/v1/auth_zod.ts'
        imports: Import path -> sorted imported names, sorted by path
        enums: Enum declarations in declaration order
        messages: Message declarations in emission order
    """
    proto_name: str
    output_name: str
    imports: 'OrderedDict[str, List[str]]' = field(default_factory=OrderedDict)
    enums: List[EnumDeclaration] = field(default_factory=list)
    messages: List[MessageDeclaration] = field(default_factory=list)


def is_third_party(proto_name: str) -> bool:
    """Check whether a descriptor name belongs to a dependency namespace."""
    return proto_name.startswith(THIRD_PARTY_PREFIXES)


# =============================================================================
# GENERATOR
# =============================================================================

class ZodGenerator:
    """
    Generates Zod schema modules for the files of a DescriptorModel.

    Attributes:
        model: The DescriptorModel holding all files of the request
        options: GeneratorOptions
    """

    def __init__(self, model: DescriptorModel, options: Optional[GeneratorOptions] = None):
        self.model = model
        self.options = options or GeneratorOptions()

    def select_messages(self, proto_file: ProtoFile) -> List[ProtoMessage]:
        """Top-level messages to generate, in declaration order."""
        if self.options.include_responses:
            return list(proto_file.messages)
        return [m for m in proto_file.messages if not is_response_message(m.name)]

    # =========================================================================
    # Structured output
    # =========================================================================

    def build_file(self, proto_file: ProtoFile) -> Optional[ZodFile]:
        """
        Build the ZodFile for one proto file.

        Returns:
            None if the file has no messages or enums to generate.
        """
        messages = self.select_messages(proto_file)
        if not messages and not proto_file.enums:
            return None

        context = TypeMapperContext(proto_file.name)
        zod_file = ZodFile(proto_file.proto_name, proto_file.name + OUTPUT_SUFFIX)

        imports: Dict[str, Set[str]] = {}
        for message in messages:
            self._collect_message_imports(message, context, imports)

        # z.enum() needs the enum objects of this file as well
        own_module = get_relative_import_path(proto_file.name, proto_file.name, PB_IMPORT_SUFFIX)
        for enum in proto_file.enums:
            imports.setdefault(own_module, set()).add(enum.name)

        for path in sorted(imports):
            zod_file.imports[path] = sorted(imports[path])

        for enum in proto_file.enums:
            zod_file.enums.append(EnumDeclaration(enum.name, enum.full_name,
                                                  list(enum.values), enum.deprecated))

        analysis = analyze_message_dependencies(messages, proto_file.name)
        for message in analysis.sorted_messages:
            fields = [self.build_field(f, context, analysis.recursive_types)
                      for f in message.fields]
            zod_file.messages.append(MessageDeclaration(
                name=message.name,
                full_name=message.full_name,
                fields=fields,
                recursive=message.name in analysis.recursive_types,
                deprecated=message.deprecated,
            ))

        return zod_file

    def _collect_message_imports(self, message: ProtoMessage, context: TypeMapperContext,
                                 imports: Dict[str, Set[str]]) -> None:
        for proto_field in message.fields:
            needs_import = map_field_to_zod(proto_field, context).needs_import
            if needs_import is not None:
                imports.setdefault(needs_import.path, set()).add(needs_import.name)

        for nested in message.nested_messages:
            self._collect_message_imports(nested, context, imports)

    def build_field(self, proto_field: ProtoField, context: TypeMapperContext,
                    recursive_types: Set[str]) -> FieldDeclaration:
        """
        Compose the complete Zod expression of a field.

        The parts are appended in this order: base expression (lazy for
        recursive targets), array item rules, validation methods, string
        pattern, enum defined-only check, and finally ``.optional()``.
        """
        chain = get_validation_chain(proto_field)

        if proto_field.shape.is_list:
            info = map_list_item_to_zod(proto_field, context)
        else:
            info = map_field_to_zod(proto_field, context)

        lazy = None
        if info.is_nested_message:
            lazy = self._lazy_reference(proto_field.message, context, recursive_types)

        if proto_field.shape.is_list:
            element = lazy or info.zod_type
            if chain.has_item_rules:
                element = self._apply_item_rules(element, chain)
            expression = 'z.array(%s)' % element
        elif lazy and proto_field.shape == FieldShape.MAP:
            expression = 'z.record(%s, %s)' % (map_scalar_to_zod(proto_field.map_key), lazy)
        elif lazy:
            expression = lazy
        else:
            expression = info.zod_type

        expression += ''.join(chain.methods)

        if chain.string_pattern:
            pattern = escape_pattern(chain.string_pattern)
            if chain.required:
                expression += '.regex(new RegExp("%s"))' % pattern
            else:
                # Proto3 strings default to "", which has to stay valid
                expression += _permissive_pattern_refine(pattern)

        if chain.enum_defined_only and proto_field.shape == FieldShape.ENUM:
            expression += '.refine((v) => v !== 0, "Value is required")'

        optional = is_field_optional(proto_field) and not chain.required
        if optional:
            expression += '.optional()'

        return FieldDeclaration(
            name=to_camel_case(proto_field.name),
            expression=expression,
            ts_type=infer_ts_type(proto_field, context),
            optional=optional,
            deprecated=proto_field.deprecated,
        )

    @staticmethod
    def _lazy_reference(message: ProtoMessage, context: TypeMapperContext,
                        recursive_types: Set[str]) -> Optional[str]:
        """z.lazy() reference if the message is recursive in this file, else None."""
        if message.name not in recursive_types:
            return None
        if message.file != context.current_proto_path:
            return None
        return 'z.lazy(() => %s)' % to_schema_name(message.name)

    @staticmethod
    def _apply_item_rules(element: str, chain: ValidationChain) -> str:
        element += ''.join(chain.item_methods)

        if chain.item_string_pattern:
            element += _permissive_pattern_refine(escape_pattern(chain.item_string_pattern))

        if chain.item_enum_not_in:
            values = ', '.join(str(v) for v in chain.item_enum_not_in)
            element += ('.refine((e) => ![%s].includes(e), { message: "Must not be one of: %s" })'
                        % (values, values))

        return element

    # =========================================================================
    # Text rendering
    # =========================================================================

    def generate_source(self, zod_file: ZodFile) -> Iterator[str]:
        """Generate the TypeScript source of a ZodFile."""
        yield '// @generated from file %s\n' % zod_file.proto_name
        yield '/* eslint-disable */\n'
        yield '\n'
        yield 'import { z } from "zod";\n'
        for path, names in zod_file.imports.items():
            yield 'import { %s } from "%s";\n' % (', '.join(names), path)
        yield '\n'

        for enum in zod_file.enums:
            for line in self._generate_enum(enum):
                yield line

        for message in zod_file.messages:
            for line in self._generate_message(message):
                yield line
            yield '\n'

    def _generate_enum(self, enum: EnumDeclaration) -> Iterator[str]:
        schema_name = to_schema_name(enum.name)
        screaming = to_screaming_snake_case(enum.name)

        yield '/**\n'
        yield ' * Zod schema for %s enum\n' % enum.name
        if enum.deprecated:
            yield ' * @deprecated\n'
        yield ' * @generated from enum %s\n' % enum.full_name
        yield ' */\n'
        yield 'export const %s = z.enum(%s);\n' % (schema_name, enum.name)
        yield 'export type %sType = z.infer<typeof %s>;\n' % (enum.name, schema_name)
        yield '\n'

        yield '/**\n'
        yield ' * Map of %s enum values to string representations\n' % enum.name
        yield ' * @generated from enum %s\n' % enum.full_name
        yield ' */\n'
        yield 'export const %s_MAP: Record<number, string> = {\n' % screaming
        for value in enum.values:
            yield '  %d: "%s",\n' % (value.number, strip_enum_prefix(value.name, enum.name))
        yield '};\n'
        yield '\n'

        yield '/**\n'
        yield ' * Map of string representations to %s enum values\n' % enum.name
        yield ' * @generated from enum %s\n' % enum.full_name
        yield ' */\n'
        yield 'export const STRING_TO_%s: Record<string, %s> = {\n' % (screaming, enum.name)
        for value in get_defined_enum_values(enum.values):
            yield '  %s: %s.%s,\n' % (strip_enum_prefix(value.name, enum.name), enum.name, value.name)
        yield '};\n'
        yield '\n'

    def _generate_message(self, message: MessageDeclaration) -> Iterator[str]:
        schema_name = to_schema_name(message.name)

        yield '/**\n'
        yield ' * Zod schema for %s\n' % message.name
        if message.deprecated:
            yield ' * @deprecated\n'
        yield ' * @generated from message %s\n' % message.full_name
        yield ' */\n'

        if message.recursive:
            # A lazy schema cannot infer its own type, so it is spelled out
            yield 'export type %s = {\n' % message.name
            for f in message.fields:
                yield '  %s%s: %s;\n' % (f.name, '?' if f.optional else '', f.ts_type)
            yield '};\n'
            yield '\n'
            yield 'export const %s: z.ZodType<%s> = z.lazy(() => z.object({\n' % (schema_name, message.name)
            for line in self._generate_fields(message.fields):
                yield line
            yield '}));\n'
        else:
            yield 'export const %s = z.object({\n' % schema_name
            for line in self._generate_fields(message.fields):
                yield line
            yield '});\n'
            yield '\n'
            yield 'export type %s = z.infer<typeof %s>;\n' % (message.name, schema_name)

    @staticmethod
    def _generate_fields(fields: List[FieldDeclaration]) -> Iterator[str]:
        for f in fields:
            if f.deprecated:
                yield '  /** @deprecated */\n'
            yield '  %s: %s,\n' % (f.name, f.expression)

    # =========================================================================
    # Driver
    # =========================================================================

    def generate(self, file_names: Iterable[str]) -> Iterator[Tuple[str, str]]:
        """
        Generate the Zod modules for the given files.

        Args:
            file_names: Descriptor names of the files to generate

        Yields:
            (output path, content) for every file that produces output.
        """
        for file_name in file_names:
            proto_file = self.model.get_file(file_name)

            if is_third_party(proto_file.proto_name):
                if self.options.verbose:
                    sys.stderr.write("Skipping third-party file %s\n" % proto_file.proto_name)
                continue

            zod_file = self.build_file(proto_file)
            if zod_file is None:
                if self.options.verbose:
                    sys.stderr.write("Skipping %s: nothing to generate\n" % proto_file.proto_name)
                continue

            if self.options.verbose:
                sys.stderr.write("Generating %s (package %s)\n"
                                 % (zod_file.output_name, proto_file.package or "<none>"))

            yield zod_file.output_name, ''.join(self.generate_source(zod_file))


def _permissive_pattern_refine(escaped_pattern: str) -> str:
    return ('.refine((v) => v === "" || new RegExp("%s").test(v), { message: "Must match pattern: %s" })'
            % (escaped_pattern, escaped_pattern))


# =============================================================================
# PROTOC PLUGIN
# =============================================================================

def parse_plugin_parameter(parameter: str) -> GeneratorOptions:
    """
    Parse the parameter string given to the plugin with --zod_out=<params>:<dir>.

    Parameters are comma separated ``key=value`` pairs. Only the exact value
    ``true`` switches an option on. Unknown keys are ignored, so options meant
    for other plugins can be shared.

    Examples:
        >>> parse_plugin_parameter('include_responses=true,target=ts').include_responses
        True
        >>> parse_plugin_parameter('').include_responses
        False
    """
    options = GeneratorOptions()
    for item in parameter.split(','):
        key, _, value = item.strip().partition('=')
        key = key.strip()
        if key == 'include_responses':
            options.include_responses = value.strip() == 'true'
    return options


def process_request(request: plugin_pb2.CodeGeneratorRequest) -> plugin_pb2.CodeGeneratorResponse:
    """
    Run the generator on a CodeGeneratorRequest.

    Errors are reported through the ``error`` field of the response, which
    makes protoc print the message and fail.
    """
    response = plugin_pb2.CodeGeneratorResponse()
    response.supported_features = plugin_pb2.CodeGeneratorResponse.FEATURE_PROTO3_OPTIONAL

    try:
        options = parse_plugin_parameter(request.parameter)
        generator = ZodGenerator(DescriptorModel(request.proto_file), options)
        for name, content in generator.generate(request.file_to_generate):
            output = response.file.add()
            output.name = name
            output.content = content
    except Exception as e:
        sys.stderr.write(traceback.format_exc() + "\n")
        del response.file[:]
        response.error = "%s: %s" % (type(e).__name__, e)

    return response


def main_plugin():
    '''Main function when invoked as a protoc plugin.'''
    # The extension must be registered before the request is parsed
    load_validate_pb2()

    data = sys.stdin.buffer.read()
    request = plugin_pb2.CodeGeneratorRequest.FromString(data)

    response = process_request(request)

    sys.stdout.buffer.write(response.SerializeToString())
    sys.stdout.buffer.flush()


# =============================================================================
# COMMAND LINE
# =============================================================================

def _descriptor_name(path: str, include_paths: List[str]) -> str:
    """Name that protoc gives to a .proto file found through include_paths."""
    for include in include_paths:
        relative = os.path.relpath(path, include)
        if not relative.startswith('..'):
            return relative.replace(os.sep, '/')
    return path.replace(os.sep, '/')


def _load_inputs(files: List[str], include_paths: List[str]):
    """
    Load descriptors for the command line inputs.

    Returns:
        A tuple (file_protos, names_to_generate).
    """
    file_protos = OrderedDict()
    to_generate = []

    descriptor_sets = [f for f in files if not f.endswith('.proto')]
    proto_files = [f for f in files if f.endswith('.proto')]

    for path in descriptor_sets:
        file_set = read_descriptor_set(path)
        for fdesc in file_set.file:
            file_protos.setdefault(fdesc.name, fdesc)
            to_generate.append(fdesc.name)

    if proto_files:
        file_set = build_descriptor_set(proto_files, include_paths)
        for fdesc in file_set.file:
            file_protos.setdefault(fdesc.name, fdesc)
        to_generate += [_descriptor_name(f, include_paths) for f in proto_files]

    return list(file_protos.values()), list(OrderedDict.fromkeys(to_generate))


def main_cli(argv: Optional[List[str]] = None) -> int:
    '''Main function when invoked directly from the command line.'''
    parser = argparse.ArgumentParser(
        description='Generate Zod validation schemas from .proto files'
    )
    parser.add_argument('files', nargs='+',
                        help='.proto files, or FileDescriptorSets written by protoc -o')
    parser.add_argument('--include-responses', action='store_true',
                        help='Also generate schemas for messages whose name ends in Response')
    parser.add_argument('-I', '--proto-path', dest='include_paths', action='append', default=[],
                        help='Search path for imports (default: current directory)')
    parser.add_argument('-D', '--output-dir', default='',
                        help='Output directory of the generated files')
    parser.add_argument('-q', '--quiet', action='store_true',
                        help="Don't print anything except errors")
    parser.add_argument('-v', '--verbose', action='store_true',
                        help='Print more information')

    args = parser.parse_args(argv)

    options = GeneratorOptions(include_responses=args.include_responses,
                               verbose=args.verbose and not args.quiet)
    include_paths = args.include_paths or ['.']

    try:
        file_protos, to_generate = _load_inputs(args.files, include_paths)
        generator = ZodGenerator(DescriptorModel(file_protos), options)
        outputs = list(generator.generate(to_generate))
    except Exception as e:
        sys.stderr.write("Error: %s\n" % e)
        if args.verbose:
            sys.stderr.write(traceback.format_exc() + "\n")
        return 1

    for name, content in outputs:
        path = os.path.join(args.output_dir, name)
        dirname = os.path.dirname(path)
        if dirname and not os.path.exists(dirname):
            os.makedirs(dirname)

        if not args.quiet:
            print("Writing to " + path)

        with open(path, 'w', encoding='utf-8') as f:
            f.write(content)

    return 0
