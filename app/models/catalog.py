"""Read-only views of records owned by the catalog and user directory services."""
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field

from app.models.base import CamelModel


class _CatalogRecord(CamelModel):
    model_config = ConfigDict(extra="ignore")


class CatalogPackage(_CatalogRecord):
    id: str = Field(alias="_id")
    title: str = ""
    price: int = 0
    max_slot_per_period: int | None = None
    category: str | None = None


class CatalogService(_CatalogRecord):
    id: str = Field(alias="_id")
    name: str = ""
    price: int = 0
    duration: int | None = None


class UserIdentity(_CatalogRecord):
    id: str = Field(alias="_id")
    name: str = ""
    phone_number: str | None = None


class UnresolvedRef(BaseModel):
    kind: Literal["unresolved"] = "unresolved"
    id: str


class ResolvedPackage(BaseModel):
    kind: Literal["resolved"] = "resolved"
    id: str
    record: CatalogPackage


PackageRef = Annotated[UnresolvedRef | ResolvedPackage, Field(discriminator="kind")]


class ResolvedUser(BaseModel):
    kind: Literal["resolved"] = "resolved"
    id: str
    record: UserIdentity


UserRef = Annotated[UnresolvedRef | ResolvedUser, Field(discriminator="kind")]
