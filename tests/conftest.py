"""
Pytest configuration and shared fixtures for protoc-gen-zod tests.

This module provides fixtures and helper functions for building protobuf
descriptors in memory and running the generator on them.

Key concepts:
    - Descriptors are assembled with google.protobuf.descriptor_pb2, so most
      tests need neither protoc nor .proto files on disk
    - buf.validate rules are set through FieldOptions.Extensions
    - Generated TypeScript is checked against regex pattern files (*.expected)
    - Tests that run a real protoc are marked as integration tests
"""

import re
import shutil
from pathlib import Path
from typing import List, Optional, Tuple

import pytest
from google.protobuf import descriptor_pb2

from protoc_gen_zod.zod_generator import GeneratorOptions, ZodGenerator
from protoc_gen_zod.zod_model import DescriptorModel


# =============================================================================
# Path Constants
# =============================================================================

# Repository root directory
REPO_ROOT = Path(__file__).parent.parent.absolute()

# Tests directory
TESTS_DIR = Path(__file__).parent.absolute()

# .proto files used by the integration tests
PROTOS_DIR = TESTS_DIR / "protos"

# Pattern files for generated output
EXPECTED_DIR = TESTS_DIR / "expected"


# =============================================================================
# Utility Functions
# =============================================================================

def find_protoc() -> Optional[str]:
    """Find a protoc compiler: the grpcio-tools one, else the system one."""
    try:
        import grpc_tools.protoc  # noqa: F401
        return "grpc_tools"
    except ImportError:
        pass

    return shutil.which("protoc")


# =============================================================================
# Descriptor Builders
# =============================================================================

FieldDescriptorProto = descriptor_pb2.FieldDescriptorProto


class ProtoBuilder:
    """
    Assembles a FileDescriptorProto in memory, the way protoc would emit it.

    Example:
        builder = ProtoBuilder('shop/v1/cart.proto', 'shop.v1')
        item = builder.message('Item')
        builder.field(item, 'sku', 'string')
        model = build_model(builder)
    """

    def __init__(self, name: str = 'test/v1/sample.proto', package: str = 'test.v1',
                 dependencies: Tuple[str, ...] = ()):
        self.fdesc = descriptor_pb2.FileDescriptorProto(name=name, package=package,
                                                        syntax='proto3')
        self.fdesc.dependency.extend(dependencies)

    def message(self, name: str, parent: Optional[descriptor_pb2.DescriptorProto] = None,
                deprecated: bool = False) -> descriptor_pb2.DescriptorProto:
        container = parent.nested_type if parent is not None else self.fdesc.message_type
        msg = container.add()
        msg.name = name
        if deprecated:
            msg.options.deprecated = True
        return msg

    def enum(self, name: str, values: List[Tuple[str, int]],
             parent: Optional[descriptor_pb2.DescriptorProto] = None,
             deprecated: bool = False) -> descriptor_pb2.EnumDescriptorProto:
        container = parent.enum_type if parent is not None else self.fdesc.enum_type
        enum = container.add()
        enum.name = name
        for value_name, number in values:
            enum.value.add(name=value_name, number=number)
        if deprecated:
            enum.options.deprecated = True
        return enum

    def field(self, message: descriptor_pb2.DescriptorProto, name: str, field_type: str,
              type_name: Optional[str] = None, repeated: bool = False,
              proto3_optional: bool = False, deprecated: bool = False,
              number: Optional[int] = None) -> FieldDescriptorProto:
        """
        Add a field to a message.

        Args:
            field_type: Lowercase protobuf type, e.g. 'string', 'int64',
                        'enum' or 'message'
            type_name: Referenced type for enum and message fields, fully
                       qualified with a leading dot or relative
        """
        f = message.field.add()
        f.name = name
        f.number = number or len(message.field)
        f.type = getattr(FieldDescriptorProto, 'TYPE_' + field_type.upper())
        f.label = FieldDescriptorProto.LABEL_REPEATED if repeated else FieldDescriptorProto.LABEL_OPTIONAL
        if type_name:
            f.type_name = type_name
        if proto3_optional:
            f.proto3_optional = True
        if deprecated:
            f.options.deprecated = True
        return f

    def map_field(self, message: descriptor_pb2.DescriptorProto, name: str, key_type: str,
                  value_type: str, value_type_name: Optional[str] = None) -> FieldDescriptorProto:
        """Add a map field together with its synthetic *Entry message."""
        entry_name = ''.join(part.capitalize() for part in name.split('_')) + 'Entry'
        entry = message.nested_type.add()
        entry.name = entry_name
        entry.options.map_entry = True
        self.field(entry, 'key', key_type, number=1)
        self.field(entry, 'value', value_type, type_name=value_type_name, number=2)
        return self.field(message, name, 'message', type_name=entry_name, repeated=True)


def well_known_file(pb2_module) -> descriptor_pb2.FileDescriptorProto:
    """FileDescriptorProto of a compiled module, e.g. timestamp_pb2."""
    fdesc = descriptor_pb2.FileDescriptorProto()
    pb2_module.DESCRIPTOR.CopyToProto(fdesc)
    return fdesc


def build_model(*files) -> DescriptorModel:
    """Build a DescriptorModel from ProtoBuilders or FileDescriptorProtos."""
    return DescriptorModel(getattr(f, 'fdesc', f) for f in files)


def generate_text(builder: ProtoBuilder, *extra_files, **options) -> str:
    """Generate the Zod module of ``builder`` and return its text."""
    model = build_model(*(extra_files + (builder,)))
    generator = ZodGenerator(model, GeneratorOptions(**options))
    outputs = dict(generator.generate([builder.fdesc.name]))
    assert len(outputs) == 1, "expected exactly one output file, got %s" % list(outputs)
    return list(outputs.values())[0]


def field_line(content: str, field_name: str) -> str:
    """Return the z.object() property line of a field in generated text."""
    for line in content.splitlines():
        if line.startswith('  %s: ' % field_name):
            return line
    raise AssertionError("field %s not found in:\n%s" % (field_name, content))


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture(scope="session")
def repo_root() -> Path:
    """Return the repository root directory."""
    return REPO_ROOT


@pytest.fixture(scope="session")
def tests_dir() -> Path:
    """Return the tests directory."""
    return TESTS_DIR


@pytest.fixture(scope="session")
def protos_dir() -> Path:
    """Return the directory of the .proto files used by integration tests."""
    return PROTOS_DIR


@pytest.fixture(scope="session")
def validate_pb2():
    """
    The buf.validate Python bindings.

    Tests that set validation rules are skipped when protovalidate is not
    installed.
    """
    return pytest.importorskip("buf.validate.validate_pb2")


@pytest.fixture(scope="session")
def protoc_available() -> bool:
    """Skip the requesting test when no protoc compiler can be found."""
    if find_protoc() is None:
        pytest.skip("protoc is not available")
    return True


@pytest.fixture
def builder() -> ProtoBuilder:
    """A fresh builder for test/v1/sample.proto in package test.v1."""
    return ProtoBuilder()


@pytest.fixture
def temp_dir(tmp_path: Path) -> Path:
    """
    Provide a temporary directory for test-specific files.

    This is automatically cleaned up after each test.
    """
    return tmp_path


# =============================================================================
# File Comparison Helpers
# =============================================================================

def match_patterns(content: str, pattern_file: Path) -> List[str]:
    """
    Check if content matches all patterns in a pattern file.

    Pattern file format:
        - Each line is a regex pattern
        - Lines starting with '! ' are inverted (pattern should NOT match)
        - Empty lines are ignored

    Args:
        content: The content to check
        pattern_file: Path to file containing patterns

    Returns:
        List of failed pattern descriptions (empty if all pass)
    """
    failures = []
    patterns = pattern_file.read_text(encoding='utf-8').splitlines()

    for pattern in patterns:
        pattern = pattern.strip()
        if not pattern:
            continue

        invert = False
        if pattern.startswith('! '):
            invert = True
            pattern = pattern[2:]

        match = re.search(pattern, content, re.MULTILINE)

        if not match and not invert:
            failures.append(f"Pattern not found: {pattern}")
        elif match and invert:
            failures.append(f"Pattern should not exist: {pattern}")

    return failures


# =============================================================================
# Pytest Markers
# =============================================================================

def pytest_configure(config):
    """Configure custom pytest markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests that run a real protoc compiler"
    )
    config.addinivalue_line(
        "markers", "generator: marks tests related to code generation"
    )
    config.addinivalue_line(
        "markers", "validation: marks tests related to buf.validate rule translation"
    )
    config.addinivalue_line(
        "markers", "dependencies: marks tests related to message ordering and recursion"
    )
    config.addinivalue_line(
        "markers", "plugin: marks tests of the protoc plugin and command line front ends"
    )


# =============================================================================
# Pytest Hooks
# =============================================================================

def pytest_collection_modifyitems(config, items):
    """Integration tests are also slow."""
    for item in items:
        if item.get_closest_marker("integration") is not None:
            item.add_marker(pytest.mark.slow)
