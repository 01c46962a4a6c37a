'''This file loads the protobuf runtime modules used by the generator.'''

import os
import os.path
import sys
import traceback
from tempfile import TemporaryDirectory

from google.protobuf import descriptor_pb2

from ._utils import invoke_protoc, print_versions

_validate_pb2 = None
_validate_pb2_loaded = False


def load_validate_pb2():
    '''Import the Python bindings of buf/validate/validate.proto.

    The bindings ship with the protovalidate package. Importing them
    registers the (buf.validate.field) extension with the default descriptor
    pool, so it must happen before any CodeGeneratorRequest or
    FileDescriptorSet is parsed; otherwise the rules stay in unknown fields.

    Returns the validate_pb2 module, or None if it is not installed. In the
    latter case generation still works, but no validation rules are applied.
    '''
    global _validate_pb2, _validate_pb2_loaded

    if _validate_pb2_loaded:
        return _validate_pb2

    _validate_pb2_loaded = True
    try:
        from buf.validate import validate_pb2
        _validate_pb2 = validate_pb2
    except ImportError:
        sys.stderr.write("Warning: buf.validate bindings are not available, "
                         "validation rules will be ignored.\n"
                         "Install them with: pip install protovalidate\n")
        _validate_pb2 = None

    return _validate_pb2


def build_descriptor_set(proto_files, include_paths=None):
    '''Compile .proto files with protoc and return the FileDescriptorSet.

    Imports are included in the set so that cross-file references can be
    resolved. The current directory is used as the include path when none is
    given.
    '''
    # Must be registered before the descriptor set is parsed below
    load_validate_pb2()

    include_paths = list(include_paths or ['.'])

    with TemporaryDirectory(prefix='protoc-gen-zod-') as tmpdir:
        desc_file = os.path.join(tmpdir, 'descriptor.pb')

        cmd = ['protoc', '--descriptor_set_out=' + desc_file, '--include_imports']
        cmd += ['-I' + path for path in include_paths]
        cmd += list(proto_files)

        try:
            status = invoke_protoc(cmd)
        except OSError:
            sys.stderr.write("Failed to run protoc: " + ' '.join(cmd) + "\n")
            sys.stderr.write(traceback.format_exc() + "\n")
            print_versions()
            raise

        if status != 0:
            raise RuntimeError("protoc failed with status %d" % status)

        with open(desc_file, 'rb') as f:
            data = f.read()

    file_set = descriptor_pb2.FileDescriptorSet()
    file_set.ParseFromString(data)
    return file_set


def read_descriptor_set(path):
    '''Load a FileDescriptorSet written by protoc --descriptor_set_out.'''
    load_validate_pb2()

    with open(path, 'rb') as f:
        data = f.read()

    file_set = descriptor_pb2.FileDescriptorSet()
    file_set.ParseFromString(data)
    return file_set
