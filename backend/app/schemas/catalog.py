from pydantic import BaseModel, Field


class CatalogEntry(BaseModel):
    id: int
    name: str | None = None


class CatalogResponse(BaseModel):
    success: bool = True
    products: list[CatalogEntry] = Field(default_factory=list)
    categories: list[CatalogEntry] = Field(default_factory=list)
