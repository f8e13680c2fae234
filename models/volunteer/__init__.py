from .application import *  # noqa: F403
from .exc import *  # noqa: F403
from .shift import *  # noqa: F403
