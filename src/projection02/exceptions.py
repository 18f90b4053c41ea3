"""
Projection engine exceptions.

ConfigurationError lives in utils.config_loader because it is raised
before any simulation state exists.
"""

from datetime import date
from typing import Optional


class InvariantViolation(Exception):
    """
    Raised when the simulation breaks a structural invariant: negative
    opening stock, non-monotonic step windows, or a duplicate record.

    Always fatal. The run is aborted rather than "fixing" the number.
    """

    def __init__(
        self,
        message: str,
        location: Optional[str] = None,
        item: Optional[str] = None,
        step: Optional[date] = None,
    ):
        self.location = location
        self.item = item
        self.step = step

        context = []
        if location is not None:
            context.append(f"location={location}")
        if item is not None:
            context.append(f"item={item}")
        if step is not None:
            context.append(f"step={step}")

        if context:
            message = f"{message} [{', '.join(context)}]"

        super().__init__(message)
