"""spacedrep: spaced-repetition scheduling and retention modeling."""

from spacedrep.consts import VERSION

__version__ = VERSION
