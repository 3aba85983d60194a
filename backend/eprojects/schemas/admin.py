from pydantic import BaseModel, Field


class DowngradedUserOut(BaseModel):
    user_id: int
    username: str
    previous_role: str


class ExpirySweepOut(BaseModel):
    ok: bool = True
    deactivated_purchases: int
    downgraded_count: int
    downgraded_users: list[DowngradedUserOut] = Field(default_factory=list)
