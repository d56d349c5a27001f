"""Encode metanet nodes into data-output fields and decode them back.

Every node payload starts with the metanet header (``meta``, the node's
own address, the parent's txid or ``NULL``) followed by a body:

- directory: the directory name
- file (B://): data, media type, encoding, filename, then a DIP trailer
- chunked file (Bcat://): blanks, filename, one chunk txid per chunk,
  then a DIP trailer

Chunks themselves carry ``[Bcat part id, raw bytes]`` with no header.
"""

from __future__ import annotations

import gzip
import hashlib
import logging
import string
import zlib
from dataclasses import dataclass, field

from bsvpush_core.errors import FormatError, UnresolvedReference
from bsvpush_core.protocol.constants import (
    B_PROTOCOL,
    BCAT_PART_PROTOCOL,
    BCAT_PROTOCOL,
    BLANK,
    CHUNK_IDS_FIELD,
    DIP_FIELD_ENCODING,
    DIP_HASHED_FIELD,
    DIP_PROTOCOL,
    DUMMY_TX_ID,
    FILE_PROTOCOLS,
    GZIP_ENCODING,
    GZIP_MEDIA_TYPE,
    HASH_ALGORITHM,
    META_TAG,
    NAME_FIELD,
    NULL_PARENT,
    PARENT_FIELD,
    PIPE,
    PROTOCOL_FIELD,
)
from bsvpush_core.tree.node import ConfirmedId, PlaceholderId, TxRef
from bsvpush_core.tx.script import OP_RETURN, data_script, parse_pushes

logger = logging.getLogger(__name__)

_HEX = frozenset(string.hexdigits)


# ----------------------------------------------------------------------
# Node bodies
# ----------------------------------------------------------------------


@dataclass(frozen=True)
class DirectoryBody:
    name: str


@dataclass(frozen=True)
class FileBody:
    name: str
    content: bytes


@dataclass(frozen=True)
class ChunkedFileBody:
    name: str
    content: bytes
    chunk_size: int

    def chunks(self) -> list[bytes]:
        size = self.chunk_size
        return [self.content[i:i + size] for i in range(0, len(self.content), size)]


NodeBody = DirectoryBody | FileBody | ChunkedFileBody


# ----------------------------------------------------------------------
# Payload
# ----------------------------------------------------------------------


class Payload:
    """The pushes of one data output, excluding the leading OP_RETURN.

    Positions used by the patch methods count the OP_RETURN byte as
    field 0, matching what :func:`parse_pushes` returns.
    """

    def __init__(
        self,
        fields: list[bytes],
        parent: TxRef | None = None,
        chunk_count: int = 0,
    ) -> None:
        self.fields = fields
        self.parent = parent
        self.chunk_count = chunk_count
        self._chunks_resolved = chunk_count == 0

    def field(self, position: int) -> bytes:
        return self.fields[position - 1]

    def script(self) -> bytes:
        return data_script(self.fields)

    @property
    def resolved(self) -> bool:
        return not isinstance(self.parent, PlaceholderId) and self._chunks_resolved

    def set_parent(self, tx_id: ConfirmedId) -> None:
        """Replace the parent reference with the parent's broadcast txid."""
        if not isinstance(tx_id, ConfirmedId):
            raise UnresolvedReference(f"parent reference {tx_id!r} is not a confirmed id")
        self.fields[PARENT_FIELD - 1] = tx_id.encode()
        self.parent = tx_id

    def set_chunk_ids(self, tx_ids: list[ConfirmedId]) -> None:
        """Overwrite the chunk id fields, in emission order."""
        if len(tx_ids) != self.chunk_count:
            raise ValueError(f"expected {self.chunk_count} chunk ids, got {len(tx_ids)}")
        for offset, tx_id in enumerate(tx_ids):
            if not isinstance(tx_id, ConfirmedId):
                raise UnresolvedReference(f"chunk id {tx_id!r} is not a confirmed id")
            self.fields[CHUNK_IDS_FIELD - 1 + offset] = tx_id.encode()
        self._chunks_resolved = True

    def signable_script(self) -> bytes:
        """The script to sign; refuses while any placeholder is left."""
        if isinstance(self.parent, PlaceholderId):
            raise UnresolvedReference(f"payload still references placeholder {self.parent}")
        if not self._chunks_resolved:
            raise UnresolvedReference("payload still holds placeholder chunk ids")
        return self.script()


def _field(value: str | bytes | int) -> bytes:
    if isinstance(value, bytes):
        return value
    if isinstance(value, int):
        return bytes([value])
    return value.encode("utf-8")


def metanet_header(address: str, parent: TxRef | None) -> list[bytes]:
    return [
        _field(META_TAG),
        _field(address),
        _field(parent if parent is not None else NULL_PARENT),
    ]


def dip_trailer(content: bytes) -> list[bytes]:
    digest = hashlib.sha512(content).hexdigest()
    return [
        _field(PIPE),
        _field(DIP_PROTOCOL),
        _field(HASH_ALGORITHM),
        _field(digest),
        _field(DIP_FIELD_ENCODING),
        _field(DIP_HASHED_FIELD),
    ]


# ----------------------------------------------------------------------
# Encoding
# ----------------------------------------------------------------------


def encode_node(
    body: NodeBody,
    address: str,
    parent: TxRef | None,
    gzip_threshold: int = 1000,
) -> Payload:
    """Build the payload for one node."""
    header = metanet_header(address, parent)
    if isinstance(body, DirectoryBody):
        return Payload(header + [_field(body.name)], parent)
    if isinstance(body, FileBody):
        return Payload(header + _file_fields(body, gzip_threshold), parent)
    if isinstance(body, ChunkedFileBody):
        chunk_count = len(body.chunks())
        fields = header + [
            _field(BCAT_PROTOCOL),
            _field(BLANK),  # info
            _field(BLANK),  # MIME type
            _field(BLANK),  # encoding
            _field(body.name),
            _field(BLANK),  # flag
        ]
        fields += [_field(DUMMY_TX_ID)] * chunk_count
        fields += dip_trailer(body.content)
        return Payload(fields, parent, chunk_count=chunk_count)
    raise TypeError(f"unknown node body {type(body).__name__}")


def _file_fields(body: FileBody, gzip_threshold: int) -> list[bytes]:
    data = body.content
    media_type = BLANK
    encoding = BLANK
    if len(data) > gzip_threshold:
        # Only keep the compressed form when it is actually smaller
        compressed = gzip.compress(data, mtime=0)
        if len(compressed) < len(data):
            data = compressed
            media_type = GZIP_MEDIA_TYPE
            encoding = GZIP_ENCODING
    return [
        _field(B_PROTOCOL),
        data,
        _field(media_type),
        _field(encoding),
        _field(body.name),
        *dip_trailer(body.content),
    ]


def encode_chunk(data: bytes) -> Payload:
    return Payload([_field(BCAT_PART_PROTOCOL), data])


# ----------------------------------------------------------------------
# Decoding
# ----------------------------------------------------------------------


@dataclass
class DecodedNode:
    """A node description recovered from a data script."""

    address: str
    parent_tx_id: str | None
    protocol: str
    name: str
    data: bytes | None = None
    media_type: str = ""
    encoding: str = ""
    chunk_ids: list[str] = field(default_factory=list)
    hash_algorithm: str | None = None
    digest: str | None = None

    @property
    def is_file(self) -> bool:
        return self.protocol in FILE_PROTOCOLS


def _text(raw: bytes, what: str) -> str:
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError as e:
        raise FormatError(f"{what} is not valid UTF-8") from e


def _is_tx_id(raw: bytes) -> bool:
    return len(raw) == 64 and all(chr(b) in _HEX for b in raw)


def _check_marker(fields: list[bytes]) -> None:
    if fields[0] != bytes([OP_RETURN]):
        raise FormatError("Script of type nulldata is not an OP_RETURN")


def decode_node(script: bytes) -> DecodedNode:
    """Parse a node payload produced by :func:`encode_node`."""
    fields = parse_pushes(script)
    _check_marker(fields)
    if len(fields) < 2 or _text(fields[1], "tag") != META_TAG:
        raise FormatError("OP_RETURN is not of type metanet")
    if len(fields) <= PROTOCOL_FIELD:
        raise FormatError(f"metanet header has {len(fields)} fields, expected at least 5")

    address = _text(fields[2], "address")
    parent = _text(fields[PARENT_FIELD], "parent txid")
    protocol = _text(fields[PROTOCOL_FIELD], "protocol")
    node = DecodedNode(
        address=address,
        parent_tx_id=None if parent == NULL_PARENT else parent,
        protocol=protocol,
        name=protocol,
    )

    if protocol == B_PROTOCOL:
        if len(fields) <= NAME_FIELD:
            raise FormatError("B:// payload is missing fields")
        stored = fields[5]
        node.media_type = _text(fields[6], "media type").strip()
        node.encoding = _text(fields[7], "encoding").strip()
        node.name = _text(fields[NAME_FIELD], "filename")
        node.data = _gunzip(stored) if node.encoding == GZIP_ENCODING else stored
        _read_trailer(node, fields, NAME_FIELD + 1)
        if node.digest is not None and not (
            digest_matches(node.data, node.hash_algorithm, node.digest)
            or digest_matches(stored, node.hash_algorithm, node.digest)
        ):
            raise FormatError(f"{node.hash_algorithm} digest mismatch for {node.name!r}")
    elif protocol == BCAT_PROTOCOL:
        if len(fields) < CHUNK_IDS_FIELD:
            raise FormatError("Bcat:// payload is missing fields")
        node.name = _text(fields[NAME_FIELD], "filename")
        pos = CHUNK_IDS_FIELD
        while pos < len(fields) and _is_tx_id(fields[pos]):
            node.chunk_ids.append(fields[pos].decode("ascii"))
            pos += 1
        _read_trailer(node, fields, pos)
    return node


def _gunzip(data: bytes) -> bytes:
    try:
        return gzip.decompress(data)
    except (OSError, EOFError, zlib.error) as e:
        raise FormatError(f"invalid gzip data: {e}") from e


def _read_trailer(node: DecodedNode, fields: list[bytes], pos: int) -> None:
    """Pick up ``| DIP algorithm digest`` when present at *pos*."""
    if len(fields) < pos + 4:
        return
    if fields[pos] != PIPE.encode() or fields[pos + 1] != DIP_PROTOCOL.encode():
        return
    node.hash_algorithm = _text(fields[pos + 2], "hash algorithm")
    node.digest = _text(fields[pos + 3], "digest").lower()


def digest_matches(data: bytes, algorithm: str | None, digest: str) -> bool:
    """Check a DIP digest. Unknown algorithms are accepted unchecked."""
    if algorithm is None:
        return True
    try:
        h = hashlib.new(algorithm.lower().replace("-", ""))
    except ValueError:
        logger.debug("Cannot verify unknown hash algorithm %s", algorithm)
        return True
    h.update(data)
    return h.hexdigest() == digest.lower()


def decode_chunk(script: bytes) -> bytes:
    """Return the raw bytes carried by a Bcat part payload."""
    fields = parse_pushes(script)
    _check_marker(fields)
    if len(fields) < 2 or fields[1] != BCAT_PART_PROTOCOL.encode():
        raise FormatError("OP_RETURN is not a Bcat part")
    return fields[2] if len(fields) > 2 else b""
