from enum import Enum


class Role(str, Enum):
    admin = "admin"  # Registrant and root of an organization
    member = "member"
