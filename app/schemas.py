from pydantic import BaseModel, ConfigDict, EmailStr, Field

from app.models import MAX_ID


# --- Address / Company (nested under User) ---

class Geo(BaseModel):
    lat: str | None = None
    lng: str | None = None


class AddressIn(BaseModel):
    street: str | None = Field(None, max_length=255)
    suite: str | None = Field(None, max_length=255)
    city: str | None = Field(None, max_length=255)
    zipcode: str | None = Field(None, max_length=50)
    geo: Geo | None = None


class CompanyIn(BaseModel):
    name: str | None = Field(None, max_length=255)
    catch_phrase: str | None = Field(None, alias="catchPhrase", max_length=500)
    bs: str | None = Field(None, max_length=500)
    model_config = ConfigDict(populate_by_name=True)


class AddressOut(BaseModel):
    street: str | None
    suite: str | None
    city: str | None
    zipcode: str | None
    geo: Geo


class CompanyOut(BaseModel):
    name: str | None
    catchPhrase: str | None
    bs: str | None


# --- User ---

class UserCreate(BaseModel):
    name: str = Field(min_length=1, max_length=150)
    username: str = Field(min_length=1, max_length=100)
    email: EmailStr
    phone: str | None = Field(None, max_length=50)
    website: str | None = Field(None, max_length=255)
    password: str | None = None
    address: AddressIn | None = None
    company: CompanyIn | None = None


class UserUpdate(BaseModel):
    """PUT body: every supplied field replaces the stored value."""
    name: str | None = Field(None, min_length=1, max_length=150)
    username: str | None = Field(None, min_length=1, max_length=100)
    email: EmailStr | None = None
    phone: str | None = Field(None, max_length=50)
    website: str | None = Field(None, max_length=255)
    address: AddressIn | None = None
    company: CompanyIn | None = None


class UserPatch(BaseModel):
    """PATCH body: top-level user columns only."""
    name: str | None = Field(None, min_length=1, max_length=150)
    username: str | None = Field(None, min_length=1, max_length=100)
    email: EmailStr | None = None
    phone: str | None = Field(None, max_length=50)
    website: str | None = Field(None, max_length=255)
    password: str | None = None


class UserResponse(BaseModel):
    id: int
    name: str
    username: str
    email: str
    address: AddressOut | None
    phone: str | None
    website: str | None
    company: CompanyOut | None


# --- Post ---

class PostCreate(BaseModel):
    title: str = Field(min_length=1, max_length=300)
    body: str
    user_id: int = Field(alias="userId", gt=0, le=MAX_ID)
    model_config = ConfigDict(populate_by_name=True)


class PostReplace(PostCreate):
    """PUT body: a complete post; nothing from the stored row survives."""


class PostPatch(BaseModel):
    title: str | None = Field(None, min_length=1, max_length=300)
    body: str | None = None
    user_id: int | None = Field(None, alias="userId", gt=0, le=MAX_ID)
    model_config = ConfigDict(populate_by_name=True)


class PostResponse(BaseModel):
    userId: int
    id: int
    title: str
    body: str


# --- Metrics ---

class MetricsResponse(BaseModel):
    total_users: int
    active_users: int
    deleted_users: int
    total_posts: int
    avg_posts_per_user: float
    cache_info: dict = {}
