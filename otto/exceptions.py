"""Exception hierarchy for the otto agent core.

Boundary errors and parse errors are retryable inside the control loop; the
``AgentAbort`` family, ``DecompositionError`` and ``PlanningError`` end a run.
"""
from __future__ import annotations


class OttoError(Exception):
	"""Base class for every error raised by otto."""


class BoundaryError(OttoError):
	"""An external collaborator (capture, model, actuator) failed."""


class CaptureError(BoundaryError):
	"""Screen capture or screen description failed."""


class LLMException(BoundaryError):
	"""The reasoning model call failed or returned an unusable payload."""

	def __init__(self, message: str, status_code: int | None = None):
		super().__init__(message)
		self.message = message
		self.status_code = status_code


class ActuationError(BoundaryError):
	"""An OS-level input or app launch failed."""


class ParseError(OttoError):
	"""Model output did not match any accepted grammar tier."""


class DecompositionError(OttoError):
	"""The command could not be turned into any goals."""


class PlanningError(OttoError):
	"""The task could not be turned into any plan steps."""


class AgentAbort(OttoError):
	"""A run ended in a terminal error state."""


class AgentCancelled(AgentAbort):
	"""The run was cancelled from outside the loop."""


class BudgetExhausted(AgentAbort):
	"""The global action or step budget ran out."""


class GoalFailed(AgentAbort):
	"""A goal used up all of its attempts."""
