"""
Position management feature module.

Positions group roles and are assigned to subjects; a subject's permissions
come from direct grants, direct roles, and the roles of its positions.
"""
# Registers the deferred-assignment and hard-delete listeners on HasPositions
from pbac.features.positions import assignments  # noqa: F401
