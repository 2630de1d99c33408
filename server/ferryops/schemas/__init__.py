"""Pydantic schemas for request/response validation."""

from .booking import *  # noqa: F403
from .common import *  # noqa: F403
from .departure import *  # noqa: F403
from .ferry import *  # noqa: F403
from .health import *  # noqa: F403
from .route import *  # noqa: F403
from .schedule import *  # noqa: F403
from .traveling_entity import *  # noqa: F403
