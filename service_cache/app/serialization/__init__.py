"""
Serialization helpers for cache payloads.
"""

from .codec import decode, decode_document, encode, encode_document

__all__ = ["encode", "decode", "encode_document", "decode_document"]
