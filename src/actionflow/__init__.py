"""actionflow package.

Declarative action batches: parse, order by cross-reference, execute through
pluggable asset executors, and report cost and progress.
"""

from . import schemas
from .config import ProcessorConfig
from .parser import ParseError, parse_actions
from .processor import ActionProcessor, ProcessorBusyError
from .scheduler import DependencyCycleError

__all__ = [
    "ActionProcessor",
    "DependencyCycleError",
    "ParseError",
    "ProcessorBusyError",
    "ProcessorConfig",
    "parse_actions",
    "schemas",
]
__version__ = "0.1.0"
