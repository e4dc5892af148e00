from typing import Dict

from pydantic import BaseModel, Field, model_validator

# Ids are caller-supplied unsigned 64-bit integers
MAX_ID = 2**64 - 1

# Current layout of the snapshot file. Files written before the
# version field existed are read as version 1.
SNAPSHOT_VERSION = 1


class Task(BaseModel):
    id: int = Field(ge=0, le=MAX_ID)
    name: str
    completed: bool


# Schema for user registration. The password is kept in cleartext.
class User(BaseModel):
    id: int = Field(ge=0, le=MAX_ID)
    username: str
    password: str


# Schema for a login attempt. Any other fields in the body are ignored.
class Credentials(BaseModel):
    username: str
    password: str


# Serialized image of the whole store, as written to disk
class Snapshot(BaseModel):
    version: int = SNAPSHOT_VERSION
    tasks: Dict[int, Task] = Field(default_factory=dict)
    users: Dict[int, User] = Field(default_factory=dict)

    # Every record must sit under its own id
    @model_validator(mode="after")
    def check_keys_match_ids(self):
        for table, records in (("tasks", self.tasks), ("users", self.users)):
            for key, record in records.items():
                if key != record.id:
                    raise ValueError(f"{table} entry {key} holds a record with id {record.id}")
        return self
