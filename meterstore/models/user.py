"""User model, created lazily the first time an event names the user."""

from sqlalchemy import Column
from sqlmodel import Field, SQLModel

from meterstore.core.identifiers import UserId, user_id_column_type


class User(SQLModel, table=True):
    __tablename__ = "users"

    # Column type follows the configured identifier scheme.
    id: UserId = Field(sa_column=Column(user_id_column_type(), primary_key=True))
