"""Protocol definitions for pluggable collaborators."""

from .agent import FixInvoker
from .chat import Notifier
from .llm import AnalysisProvider
from .vcs import Commenter

__all__ = ["AnalysisProvider", "Commenter", "FixInvoker", "Notifier"]
