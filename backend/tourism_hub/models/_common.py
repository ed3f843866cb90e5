"""Small validators shared by several schema modules."""

import uuid


def stringify_uuid(v):
    return str(v) if isinstance(v, uuid.UUID) else v
