"""
Small machine-learning algorithms library.

The regression package provides a limited-memory quasi-Newton maximizer with a
safeguarded backtracking line search, and a Poisson regression learner built
on it.
"""

from .regression.src import *  # noqa: F401,F403
from .regression.src import __all__

__version__ = "0.1.0"
