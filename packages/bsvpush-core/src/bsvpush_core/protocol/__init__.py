"""Metanet, B://, Bcat:// and DIP payload codec."""

from bsvpush_core.protocol.codec import (
    ChunkedFileBody,
    DecodedNode,
    DirectoryBody,
    FileBody,
    NodeBody,
    Payload,
    decode_chunk,
    decode_node,
    digest_matches,
    encode_chunk,
    encode_node,
)
from bsvpush_core.protocol.constants import (
    B_PROTOCOL,
    BCAT_PART_PROTOCOL,
    BCAT_PROTOCOL,
    DIP_PROTOCOL,
    FILE_PROTOCOLS,
)

__all__ = [
    "BCAT_PART_PROTOCOL",
    "BCAT_PROTOCOL",
    "B_PROTOCOL",
    "ChunkedFileBody",
    "DIP_PROTOCOL",
    "DecodedNode",
    "DirectoryBody",
    "FILE_PROTOCOLS",
    "FileBody",
    "NodeBody",
    "Payload",
    "decode_chunk",
    "decode_node",
    "digest_matches",
    "encode_chunk",
    "encode_node",
]
