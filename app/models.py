"""Pydantic models describing catalog and account payloads.

Field aliases mirror the catalog service's capitalised wire format so that
responses validate directly and outbound payloads serialise with
``by_alias=True``. Snake-case names are accepted too.
"""

from __future__ import annotations

from datetime import date
from typing import Any, Mapping

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .utils import parse_birthday, pick_field


class Director(BaseModel):
    """Director details embedded in a movie record."""

    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(alias="Name")
    bio: str | None = Field(default=None, alias="Bio")
    birth: str | None = Field(default=None, alias="Birth")
    death: str | None = Field(default=None, alias="Death")
    movies: list[str] = Field(default_factory=list, alias="Movies")


class Genre(BaseModel):
    """Genre details embedded in a movie record."""

    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(alias="Name")
    description: str | None = Field(default=None, alias="Description")


class Movie(BaseModel):
    """A catalog entry. Never mutated by the client."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: str = Field(alias="_id")
    title: str = Field(alias="Title")
    description: str = Field(default="", alias="Description")
    director: Director | None = Field(default=None, alias="Director")
    genre: Genre | None = Field(default=None, alias="Genre")
    image_path: str | None = Field(default=None, alias="ImagePath")
    image_url: str | None = Field(default=None, alias="ImageURL")
    featured: bool = Field(default=False, alias="Featured")

    def image(self) -> str | None:
        """Return the best available artwork reference."""

        return self.image_url or self.image_path


class User(BaseModel):
    """Identity record for the authenticated account."""

    model_config = ConfigDict(populate_by_name=True, validate_assignment=True)

    id: str | None = Field(default=None, alias="_id")
    username: str = Field(alias="Username")
    email: str = Field(default="", alias="Email")
    birthday: date | None = Field(default=None, alias="Birthday")
    favorite_movie_ids: list[str] = Field(default_factory=list, alias="FavoriteMovies")
    # Write-only; excluded from every dump so it can never be persisted.
    password: str | None = Field(default=None, alias="Password", exclude=True)

    @field_validator("birthday", mode="before")
    @classmethod
    def _parse_birthday(cls, value: object) -> date | None:
        return parse_birthday(value)

    @field_validator("favorite_movie_ids", mode="before")
    @classmethod
    def _dedupe_favorites(cls, value: object) -> list[str]:
        if value is None:
            return []
        if isinstance(value, (str, bytes)) or not isinstance(value, (list, tuple, set)):
            raise ValueError("FavoriteMovies must be a list of movie ids")
        cleaned: list[str] = []
        for entry in value:
            movie_id = str(entry)
            if movie_id not in cleaned:
                cleaned.append(movie_id)
        return cleaned

    def has_favorite(self, movie_id: str) -> bool:
        return movie_id in self.favorite_movie_ids

    def with_favorite(self, movie_id: str) -> "User":
        """Return a copy whose favorite set includes ``movie_id``."""

        if self.has_favorite(movie_id):
            return self.model_copy(deep=True)
        return self.model_copy(
            update={"favorite_movie_ids": [*self.favorite_movie_ids, movie_id]},
            deep=True,
        )

    def without_favorite(self, movie_id: str) -> "User":
        """Return a copy whose favorite set excludes ``movie_id``."""

        return self.model_copy(
            update={
                "favorite_movie_ids": [
                    favorite
                    for favorite in self.favorite_movie_ids
                    if favorite != movie_id
                ]
            },
            deep=True,
        )

    def without_password(self) -> "User":
        return self.model_copy(update={"password": None}, deep=True)

    def to_wire(self) -> dict[str, Any]:
        """Serialise using the service's field names, password excluded."""

        return self.model_dump(by_alias=True, mode="json")


class Session(BaseModel):
    """Pairing of the authenticated user and their bearer credential."""

    user: User
    token: str | None = None

    def to_storage(self) -> dict[str, Any]:
        return {"user": self.user.to_wire(), "token": self.token}


class LoginResult(BaseModel):
    """Canonical shape of a login response."""

    user: User
    token: str

    @classmethod
    def from_payload(cls, data: Mapping[str, Any]) -> "LoginResult":
        """Normalise the service's inconsistent ``user``/``User`` casing."""

        user = pick_field(data, "user", "User")
        token = pick_field(data, "token", "Token")
        if not isinstance(user, Mapping) or not isinstance(token, str) or not token:
            raise ValueError("Login response is missing the user or token")
        return cls(user=User.model_validate(user), token=token)


class UserRegistration(BaseModel):
    """Details submitted when creating an account."""

    model_config = ConfigDict(populate_by_name=True)

    username: str = Field(alias="Username")
    password: str = Field(alias="Password")
    email: str = Field(alias="Email")
    birthday: date | None = Field(default=None, alias="Birthday")

    @field_validator("birthday", mode="before")
    @classmethod
    def _parse_birthday(cls, value: object) -> date | None:
        return parse_birthday(value)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json", exclude_none=True)


class ProfileEdit(BaseModel):
    """Fields a caller may change on the profile form."""

    model_config = ConfigDict(populate_by_name=True)

    username: str | None = Field(default=None, alias="Username")
    email: str | None = Field(default=None, alias="Email")
    birthday: date | None = Field(default=None, alias="Birthday")
    password: str | None = Field(default=None, alias="Password")

    @field_validator("birthday", mode="before")
    @classmethod
    def _parse_birthday(cls, value: object) -> date | None:
        return parse_birthday(value)

    def apply_to(self, user: User) -> None:
        """Copy the submitted fields onto ``user`` in place."""

        for name in self.model_fields_set:
            value = getattr(self, name)
            if value is None and name in {"username", "email"}:
                continue
            setattr(user, name, value)
