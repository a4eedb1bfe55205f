"""
The CONTROLLER layer turns raw memory into MODEL values: struct decoding,
normal unpacking, geometry reconstruction, material and entity parsing.
"""
