from pydantic import BaseModel

from enums.user_role import UserRole


class Actor(BaseModel):
    """Authenticated principal as handed over by the auth layer"""

    id: int
    role: UserRole

    @property
    def is_staff(self) -> bool:
        return self.role in (UserRole.STAFF, UserRole.ADMIN)
