"""State reconciliation and command dispatch."""

from .controller import LaserController
from .debounce import DebounceTimer
from .dispatcher import CommandDispatcher
from .synchronizer import StateSynchronizer
