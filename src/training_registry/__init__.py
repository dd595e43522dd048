"""
Training Registry - session lifecycle and capacity-bounded registration

Tracks scheduled training sessions, enrolls and withdraws participants without
ever over-booking a session, derives session and registration status from the
clock, and serves paginated rosters for reporting.

Fun fact: "roster" comes from the Dutch rooster, a gridiron; early duty lists
were ruled into a grid of lines that looked like one.
"""

from training_registry.registry import TrainingRegistry

__version__ = "0.1.0"
__all__ = ["TrainingRegistry", "__version__"]
