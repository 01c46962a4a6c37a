'''Entry point for "python -m protoc_gen_zod".

When the program is invoked under a protoc-gen-* name it acts as a protoc
plugin, otherwise it parses a normal command line.
'''

import os.path
import sys

from .zod_generator import main_cli, main_plugin


def main():
    invoke_as_plugin = os.path.basename(sys.argv[0]).startswith('protoc-gen-')
    if invoke_as_plugin:
        main_plugin()
        return 0
    return main_cli()


if __name__ == '__main__':
    sys.exit(main())
