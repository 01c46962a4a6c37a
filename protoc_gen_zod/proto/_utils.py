'''Helpers for locating and running the protoc compiler.'''

import os
import os.path
import subprocess
import sys


def has_grpcio_protoc():
    '''Check whether the protoc bundled with grpcio-tools is importable.'''
    try:
        import grpc_tools.protoc  # noqa: F401
    except ImportError:
        return False
    return True


def get_grpc_tools_proto_path():
    '''Return the directory of .proto files shipped with grpcio-tools
    (google/protobuf/*.proto).'''
    import grpc_tools
    return os.path.join(os.path.dirname(grpc_tools.__file__), '_proto')


def invoke_protoc(argv):
    '''Run protoc with the given argument list and return its exit status.

    argv[0] is the program name, as for a normal command line. The protoc
    bundled with grpcio-tools is preferred; the system protoc is used when
    grpcio-tools is not installed.
    '''
    argv = list(argv)

    if has_grpcio_protoc():
        import grpc_tools.protoc
        argv.append("-I={}".format(get_grpc_tools_proto_path()))
        return grpc_tools.protoc.main(argv)

    return subprocess.call(argv)


def print_versions():
    '''Print the versions of the protobuf toolchain to stderr.'''
    from importlib import metadata

    sys.stderr.write("Python version " + sys.version + "\n")
    for dist in ('protobuf', 'grpcio-tools', 'protovalidate'):
        try:
            sys.stderr.write("Using %s version %s\n" % (dist, metadata.version(dist)))
        except metadata.PackageNotFoundError:
            sys.stderr.write("%s is not installed\n" % dist)
