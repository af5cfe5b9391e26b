"""
Wildcard permission matching.

A wildcard permission string is split into parts on ``.`` and each part into
alternatives on ``,``. ``*`` matches any value of a part, and a granted
permission with fewer parts than the requested one implies everything below
it:

    "invoices.*"            implies "invoices.approve"
    "invoices.read,approve" implies "invoices.approve" but not "invoices.delete"
    "invoices"              implies "invoices.approve.bulk"
"""
WILDCARD_TOKEN = "*"
PART_DELIMITER = "."
SUBPART_DELIMITER = ","


class WildcardPermission:
    def __init__(self, permission: str):
        permission = permission.strip()
        if not permission:
            raise ValueError("Wildcard permission must not be empty")
        self.permission = permission
        self.parts = [
            {subpart.strip() for subpart in part.split(SUBPART_DELIMITER) if subpart.strip()}
            for part in permission.split(PART_DELIMITER)
        ]

    def implies(self, permission: "WildcardPermission | str") -> bool:
        if isinstance(permission, str):
            permission = WildcardPermission(permission)

        for index, other_part in enumerate(permission.parts):
            if index >= len(self.parts):
                return True
            part = self.parts[index]
            if WILDCARD_TOKEN not in part and not other_part <= part:
                return False

        for part in self.parts[len(permission.parts):]:
            if WILDCARD_TOKEN not in part:
                return False

        return True

    def __repr__(self) -> str:
        return f"<WildcardPermission({self.permission!r})>"
