"""On-chain protocol identifiers and fixed field values."""

META_TAG = "meta"
NULL_PARENT = "NULL"

B_PROTOCOL = "19HxigV4QyBv3tHpQVcUEQyq1pzZVdoAut"  # B:// https://github.com/unwriter/B
BCAT_PROTOCOL = "15DHFxWZJT58f9nhyGnsRBqrgwK4W6h4Up"  # Bcat:// http://bcat.bico.media/
BCAT_PART_PROTOCOL = "1ChDHzdd1H4wSjgGMHyndZm6qxEDGjqpJL"
DIP_PROTOCOL = "1D1PdbxVxcjfovTATC3ginxjj4enTgxLyY"  # https://github.com/torusJKL/BitcoinBIPs/blob/master/DIP.md

FILE_PROTOCOLS = frozenset({B_PROTOCOL, BCAT_PROTOCOL})

PIPE = "|"
BLANK = " "
GZIP_ENCODING = "gzip"
GZIP_MEDIA_TYPE = "application/x-gzip"
HASH_ALGORITHM = "SHA512"
DIP_FIELD_ENCODING = 0x01  # explicit field encoding
DIP_HASHED_FIELD = 0x05  # hash covers the B:// data field

# Field positions within a parsed data script (0 is the OP_RETURN byte)
PARENT_FIELD = 3
PROTOCOL_FIELD = 4
NAME_FIELD = 8
CHUNK_IDS_FIELD = 10

# Stand-in chunk id used while the real chunk transactions do not exist yet
DUMMY_TX_ID = "e29bc8d6c7298e524756ac116bd3fb5355eec1da94666253c3f40810a4000804"
