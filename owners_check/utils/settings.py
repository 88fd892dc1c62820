from pydantic import (
    BaseModel,
    Extra,
    Field,
)

from owners_check.owners_bot import (
    GITHUB_CHECKRUN_DELAY,
    GITHUB_GET_MEMBERS_DELAY,
)
from owners_check.ownership.sources import OWNERS_FILE_NAME
from owners_check.utils import config


class GithubSettings(BaseModel):
    repo: str
    token: str

    class Config:
        extra = Extra.forbid


class OwnersSettings(BaseModel):
    ref: str = "main"
    filename: str = OWNERS_FILE_NAME
    ownerless_blocks: bool = False
    request_owners: bool = False
    checkrun_delay: float = Field(GITHUB_CHECKRUN_DELAY, ge=0)
    members_delay: float = Field(GITHUB_GET_MEMBERS_DELAY, ge=0)

    class Config:
        extra = Extra.forbid


class OwnersCheckSettings(BaseModel):
    github: GithubSettings
    owners: OwnersSettings = OwnersSettings()


def get_settings() -> OwnersCheckSettings:
    return OwnersCheckSettings.parse_obj(config.get_config())
