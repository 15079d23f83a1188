from enum import Enum


class UserRole(str, Enum):
    GUEST = "guest"
    STAFF = "staff"
    ADMIN = "admin"

    def __str__(self):
        return self.value
