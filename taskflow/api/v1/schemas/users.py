# taskflow/api/v1/schemas/users.py
from pydantic import BaseModel, ConfigDict
from typing import Optional


class UserSummary(BaseModel):
    """
    Public view of a user as provided by the auth provider.
    """
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: Optional[str] = None
    email: str
    image: Optional[str] = None
