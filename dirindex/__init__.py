"""dirindex - Visibility policy and content cache for a self-hosted file index."""

from dirindex.core.constants import DIRINDEX_VERSION

__version__ = DIRINDEX_VERSION
