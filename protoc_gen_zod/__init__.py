'''Generator of Zod validation schemas from protobuf descriptors.'''

__version__ = "0.1.0"
