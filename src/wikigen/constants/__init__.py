"""Default constants.

Re-exports all constants for convenient importing:
    from wikigen.constants import DEFAULT_CACHE_TTL_HOURS, CHARS_PER_TOKEN
"""

from wikigen.constants.retrieval import *  # noqa: F403
from wikigen.constants.generation import *  # noqa: F403
from wikigen.constants.confidence import *  # noqa: F403
from wikigen.constants.cache import *  # noqa: F403
from wikigen.constants.links import *  # noqa: F403
from wikigen.constants.llm import *  # noqa: F403
from wikigen.constants.throttle import *  # noqa: F403
