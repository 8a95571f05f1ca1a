"""
Message transformer: header block parsing, From rewriting, recipient extraction.
The body is never parsed; it is carried through as opaque bytes.
"""
