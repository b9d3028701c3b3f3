"""Project-wide named constants.

Defaults mirror the behaviour of the web3.storage ``put-car`` workflow:
50 MB chunks split with the ``treewalk`` strategy and four uploads in
flight at a time.
"""

import re

UPLOAD_ENDPOINT: str = "https://api.web3.storage/car"
CAR_CONTENT_TYPE: str = "application/vnd.ipld.car"

DEFAULT_CHUNK_SIZE_MB: int = 50
DEFAULT_CONCURRENCY: int = 4
DEFAULT_SPLIT_STRATEGY: str = "treewalk"

# Per-request ceiling. A 50 MB chunk on a slow uplink (~1 Mbit/s) needs
# roughly 400s, so 600s leaves headroom without letting a dead connection
# hold a concurrency slot forever. 0 disables the timeout.
DEFAULT_TIMEOUT_SECONDS: float = 600.0

CARBITES_BIN: str = "carbites"
IPFS_CAR_BIN: str = "ipfs-car"

# Chunks produced by carbites are named ``<base>-<index>.car``.
CHUNK_NAME_PATTERN: re.Pattern[str] = re.compile(r"^.+-\d+\.car$")

# Directory suffixes treated as opaque bundles during discovery.
BUNDLE_SUFFIXES: frozenset[str] = frozenset(
    {".app", ".bundle", ".framework", ".pkg", ".plugin", ".photoslibrary", ".kext"}
)

KEYRING_SERVICE: str = "w3s"
KEYRING_KEY: str = "token"
TOKEN_ENV_VAR: str = "W3S_TOKEN"
