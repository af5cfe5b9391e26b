class PositionNotFound(ValueError):
    """A position name or id that does not resolve to a stored position."""

    @classmethod
    def named(cls, name: str) -> "PositionNotFound":
        return cls(f"There is no position named `{name}`.")

    @classmethod
    def with_id(cls, position_id: int) -> "PositionNotFound":
        return cls(f"There is no position with id `{position_id}`.")
