"""User profile model"""

from typing import Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class UserProfile(BaseModel):
    """Profile returned by login, verify and profile-update responses.

    Always replaced wholesale, never merged field by field.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: Union[int, str]
    email: str
    name: str = ""
    picture_url: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("picture_url", "pictureUrl", "picture"),
    )
