"""dirindex Core - Shared constants, path helpers and filesystem access.

Import specific functions from submodules:
    from dirindex.core.filesystem import LocalFileSystem, path_last_modified
    from dirindex.core.paths import normalize_relative_path
    from dirindex.core import constants
"""

# Re-export main module references for convenience
from dirindex.core import constants, filesystem, paths

__all__ = [
    "constants",
    "filesystem",
    "paths",
]
