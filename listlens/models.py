"""Item identities and catalog metadata records."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum, IntEnum
from typing import Any, Callable, Iterable, Mapping, TypeVar

from listlens.timestamps import coerce_timestamp, to_epoch_seconds

T = TypeVar("T")
E = TypeVar("E", bound=IntEnum)


class MetadataFormatError(ValueError):
    """Raised when a metadata payload does not match the record schema."""


class IdKind(Enum):
    CATALOG = "catalog"
    OTHER = "other"
    NONE = "none"


_KIND_ORDER = {IdKind.CATALOG: 0, IdKind.OTHER: 1, IdKind.NONE: 2}


@dataclass(frozen=True)
class ItemId:
    """Identity of a list entry.

    The wire form is untagged: a bare integer is a catalog id, a bare string is
    an id from some other source and ``null`` marks an entry without any id.
    """

    kind: IdKind
    value: int | str | None = None

    def __post_init__(self) -> None:
        if self.kind is IdKind.CATALOG and (isinstance(self.value, bool) or not isinstance(self.value, int)):
            raise TypeError(f"catalog ids must be integers, got {self.value!r}")
        if self.kind is IdKind.OTHER and not isinstance(self.value, str):
            raise TypeError(f"other ids must be strings, got {self.value!r}")
        if self.kind is IdKind.NONE and self.value is not None:
            raise TypeError("the empty id carries no value")

    @classmethod
    def catalog(cls, value: int) -> "ItemId":
        return cls(IdKind.CATALOG, value)

    @classmethod
    def other(cls, value: str) -> "ItemId":
        return cls(IdKind.OTHER, value)

    @classmethod
    def none(cls) -> "ItemId":
        return cls(IdKind.NONE)

    @classmethod
    def from_json(cls, token: Any) -> "ItemId":
        # bool is an int subclass and must not decode as a catalog id
        if token is None:
            return cls.none()
        if isinstance(token, bool):
            raise MetadataFormatError(f"Cannot decode item id from boolean {token!r}")
        if isinstance(token, int):
            if token < 0:
                raise MetadataFormatError(f"Catalog ids are unsigned, got {token}")
            return cls.catalog(token)
        if isinstance(token, str):
            return cls.other(token)
        raise MetadataFormatError(f"Cannot decode item id from {type(token).__name__} value {token!r}")

    def to_json(self) -> int | str | None:
        return self.value

    @property
    def is_catalog(self) -> bool:
        return self.kind is IdKind.CATALOG

    def sort_key(self) -> tuple[int, int, str]:
        """Total order over ids: catalog ids numerically, then other ids, then the empty id."""

        if self.kind is IdKind.CATALOG:
            return (0, int(self.value), "")  # type: ignore[arg-type]
        return (_KIND_ORDER[self.kind], 0, str(self.value or ""))

    def __str__(self) -> str:
        return "" if self.value is None else str(self.value)


class AgeRatingCategory(IntEnum):
    ESRB = 1
    PEGI = 2
    CERO = 3
    USK = 4
    GRAC = 5
    CLASS_IND = 6
    ACB = 7


class AgeRatingRating(IntEnum):
    THREE = 1
    SEVEN = 2
    TWELVE = 3
    SIXTEEN = 4
    EIGHTEEN = 5
    RP = 6
    EC = 7
    E = 8
    E10 = 9
    T = 10
    M = 11
    AO = 12
    CERO_A = 13
    CERO_B = 14
    CERO_C = 15
    CERO_D = 16
    CERO_Z = 17
    USK_0 = 18
    USK_6 = 19
    USK_12 = 20
    USK_16 = 21
    USK_18 = 22
    GRAC_ALL = 23
    GRAC_TWELVE = 24
    GRAC_FIFTEEN = 25
    GRAC_EIGHTEEN = 26
    GRAC_TESTING = 27
    CLASS_IND_L = 28
    CLASS_IND_TEN = 29
    CLASS_IND_TWELVE = 30
    CLASS_IND_FOURTEEN = 31
    CLASS_IND_SIXTEEN = 32
    CLASS_IND_EIGHTEEN = 33
    ACB_G = 34
    ACB_PG = 35
    ACB_M = 36
    ACB_MA15 = 37
    ACB_R18 = 38
    ACB_RC = 39


class PlatformCategory(IntEnum):
    CONSOLE = 1
    ARCADE = 2
    PLATFORM = 3
    OPERATING_SYSTEM = 4
    PORTABLE_CONSOLE = 5
    COMPUTER = 6


class RatingKind(Enum):
    """Which catalog rating a ranking is built from."""

    USER = ("rating", "IGDB User Ranking")
    CRITIC = ("aggregated_rating", "IGDB Critic Ranking")
    TOTAL = ("total_rating", "IGDB Ranking")

    def __init__(self, field_name: str, label: str) -> None:
        self.field_name = field_name
        self.label = label

    def value_of(self, record: "MetadataRecord") -> float | None:
        return getattr(record, self.field_name)

    def __str__(self) -> str:
        return self.label


@dataclass(frozen=True)
class UrlField:
    url: str

    def to_dict(self) -> dict[str, Any]:
        return {"url": self.url}

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "UrlField":
        return cls(url=str(_require(payload, "url")))


@dataclass(frozen=True)
class NameField:
    name: str

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name}

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "NameField":
        return cls(name=str(_require(payload, "name")))


@dataclass(frozen=True)
class AgeRating:
    category: AgeRatingCategory
    rating: AgeRatingRating
    rating_cover_url: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return _compact(
            {
                "category": int(self.category),
                "rating": int(self.rating),
                "rating_cover_url": self.rating_cover_url,
            }
        )

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "AgeRating":
        cover = payload.get("rating_cover_url")
        return cls(
            category=_enum(AgeRatingCategory, _require(payload, "category")),
            rating=_enum(AgeRatingRating, _require(payload, "rating")),
            rating_cover_url=None if cover is None else str(cover),
        )


@dataclass(frozen=True)
class GameEngine:
    name: str
    logo: UrlField | None = None

    def to_dict(self) -> dict[str, Any]:
        return _compact({"name": self.name, "logo": _dump_optional(self.logo)})

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "GameEngine":
        return cls(
            name=str(_require(payload, "name")),
            logo=_load_optional(payload.get("logo"), UrlField.from_dict),
        )


@dataclass(frozen=True)
class Company:
    name: str
    country: int | None = None
    logo: UrlField | None = None
    start_date: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return _compact(
            {
                "country": self.country,
                "logo": _dump_optional(self.logo),
                "name": self.name,
                "start_date": None if self.start_date is None else to_epoch_seconds(self.start_date),
            }
        )

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "Company":
        country = payload.get("country")
        start_date = payload.get("start_date")
        return cls(
            name=str(_require(payload, "name")),
            country=None if country is None else int(country),
            logo=_load_optional(payload.get("logo"), UrlField.from_dict),
            start_date=None if start_date is None else coerce_timestamp(start_date),
        )


@dataclass(frozen=True)
class InvolvedCompany:
    company: Company
    developer: bool = False
    porting: bool = False
    publisher: bool = False
    supporting: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "developer": self.developer,
            "porting": self.porting,
            "publisher": self.publisher,
            "supporting": self.supporting,
            "company": self.company.to_dict(),
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "InvolvedCompany":
        company = _require(payload, "company")
        if not isinstance(company, Mapping):
            raise MetadataFormatError("involved company must embed a company object")
        return cls(
            company=Company.from_dict(company),
            developer=bool(payload.get("developer", False)),
            porting=bool(payload.get("porting", False)),
            publisher=bool(payload.get("publisher", False)),
            supporting=bool(payload.get("supporting", False)),
        )


@dataclass(frozen=True)
class MultiplayerMode:
    campaigncoop: bool = False
    lancoop: bool = False
    offlinecoop: bool = False
    onlinecoop: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "campaigncoop": self.campaigncoop,
            "lancoop": self.lancoop,
            "offlinecoop": self.offlinecoop,
            "onlinecoop": self.onlinecoop,
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "MultiplayerMode":
        return cls(
            campaigncoop=bool(payload.get("campaigncoop", False)),
            lancoop=bool(payload.get("lancoop", False)),
            offlinecoop=bool(payload.get("offlinecoop", False)),
            onlinecoop=bool(payload.get("onlinecoop", False)),
        )


@dataclass(frozen=True)
class Platform:
    name: str
    category: PlatformCategory | None = None
    generation: int | None = None
    platform_logo: UrlField | None = None

    def to_dict(self) -> dict[str, Any]:
        return _compact(
            {
                "category": None if self.category is None else int(self.category),
                "name": self.name,
                "generation": self.generation,
                "platform_logo": _dump_optional(self.platform_logo),
            }
        )

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "Platform":
        category = payload.get("category")
        generation = payload.get("generation")
        return cls(
            name=str(_require(payload, "name")),
            category=None if category is None else _enum(PlatformCategory, category),
            generation=None if generation is None else int(generation),
            platform_logo=_load_optional(payload.get("platform_logo"), UrlField.from_dict),
        )


@dataclass(frozen=True)
class DateField:
    date: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return _compact({"date": None if self.date is None else to_epoch_seconds(self.date)})

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "DateField":
        value = payload.get("date")
        return cls(date=None if value is None else coerce_timestamp(value))


@dataclass(frozen=True)
class MetadataRecord:
    """Catalog metadata for one list entry."""

    id: ItemId
    name: str
    first_release_date: datetime
    age_ratings: tuple[AgeRating, ...] = ()
    aggregated_rating: float | None = None
    aggregated_rating_count: int | None = None
    cover: UrlField | None = None
    franchise: NameField | None = None
    game_engines: tuple[GameEngine, ...] = ()
    game_modes: tuple[NameField, ...] = ()
    genres: tuple[NameField, ...] = ()
    involved_companies: tuple[InvolvedCompany, ...] = ()
    keywords: tuple[NameField, ...] = ()
    multiplayer_modes: tuple[MultiplayerMode, ...] = ()
    platforms: tuple[Platform, ...] = ()
    player_perspectives: tuple[NameField, ...] = ()
    release_dates: tuple[DateField, ...] = ()
    themes: tuple[NameField, ...] = ()
    rating: float | None = None
    rating_count: int | None = None
    total_rating: float | None = None
    total_rating_count: int | None = None

    def rating_for(self, kind: RatingKind) -> float | None:
        return kind.value_of(self)

    def to_dict(self) -> dict[str, Any]:
        return _compact(
            {
                "id": self.id.to_json(),
                "age_ratings": [entry.to_dict() for entry in self.age_ratings],
                "aggregated_rating": self.aggregated_rating,
                "aggregated_rating_count": self.aggregated_rating_count,
                "cover": _dump_optional(self.cover),
                "first_release_date": to_epoch_seconds(self.first_release_date),
                "franchise": _dump_optional(self.franchise),
                "game_engines": [entry.to_dict() for entry in self.game_engines],
                "game_modes": [entry.to_dict() for entry in self.game_modes],
                "genres": [entry.to_dict() for entry in self.genres],
                "involved_companies": [entry.to_dict() for entry in self.involved_companies],
                "keywords": [entry.to_dict() for entry in self.keywords],
                "multiplayer_modes": [entry.to_dict() for entry in self.multiplayer_modes],
                "name": self.name,
                "platforms": [entry.to_dict() for entry in self.platforms],
                "player_perspectives": [entry.to_dict() for entry in self.player_perspectives],
                "release_dates": [entry.to_dict() for entry in self.release_dates],
                "themes": [entry.to_dict() for entry in self.themes],
                "rating": self.rating,
                "rating_count": self.rating_count,
                "total_rating": self.total_rating,
                "total_rating_count": self.total_rating_count,
            },
            keep=("id",),
        )

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "MetadataRecord":
        if not isinstance(payload, Mapping):
            raise MetadataFormatError(f"Metadata record must be an object, got {type(payload).__name__}")
        if "id" not in payload:
            raise MetadataFormatError("Metadata record is missing its 'id' field")
        item_id = ItemId.from_json(payload["id"])
        try:
            return cls(
                id=item_id,
                name=str(_require(payload, "name")),
                first_release_date=coerce_timestamp(_require(payload, "first_release_date")),
                age_ratings=_load_many(payload, "age_ratings", AgeRating.from_dict),
                aggregated_rating=_opt_float(payload.get("aggregated_rating")),
                aggregated_rating_count=_opt_int(payload.get("aggregated_rating_count")),
                cover=_load_optional(payload.get("cover"), UrlField.from_dict),
                franchise=_load_optional(payload.get("franchise"), NameField.from_dict),
                game_engines=_load_many(payload, "game_engines", GameEngine.from_dict),
                game_modes=_load_many(payload, "game_modes", NameField.from_dict),
                genres=_load_many(payload, "genres", NameField.from_dict),
                involved_companies=_load_many(payload, "involved_companies", InvolvedCompany.from_dict),
                keywords=_load_many(payload, "keywords", NameField.from_dict),
                multiplayer_modes=_load_many(payload, "multiplayer_modes", MultiplayerMode.from_dict),
                platforms=_load_many(payload, "platforms", Platform.from_dict),
                player_perspectives=_load_many(payload, "player_perspectives", NameField.from_dict),
                release_dates=_load_many(payload, "release_dates", DateField.from_dict),
                themes=_load_many(payload, "themes", NameField.from_dict),
                rating=_opt_float(payload.get("rating")),
                rating_count=_opt_int(payload.get("rating_count")),
                total_rating=_opt_float(payload.get("total_rating")),
                total_rating_count=_opt_int(payload.get("total_rating_count")),
            )
        except (TypeError, ValueError) as exc:
            raise MetadataFormatError(f"Invalid metadata for item {item_id}: {exc}") from exc


def _require(payload: Mapping[str, Any], key: str) -> Any:
    value = payload.get(key)
    if value is None:
        raise MetadataFormatError(f"missing required field '{key}'")
    return value


def _enum(enum_type: type[E], value: Any) -> E:
    try:
        return enum_type(int(value))
    except ValueError as exc:
        raise MetadataFormatError(f"unknown {enum_type.__name__} code {value!r}") from exc


def _opt_float(value: Any) -> float | None:
    return None if value is None else float(value)


def _opt_int(value: Any) -> int | None:
    return None if value is None else int(value)


def _load_optional(value: Any, loader: Callable[[Mapping[str, Any]], T]) -> T | None:
    if value is None:
        return None
    if not isinstance(value, Mapping):
        raise MetadataFormatError(f"expected an object, got {type(value).__name__}")
    return loader(value)


def _load_many(payload: Mapping[str, Any], key: str, loader: Callable[[Mapping[str, Any]], T]) -> tuple[T, ...]:
    values = payload.get(key)
    if values is None:
        return ()
    if not isinstance(values, list):
        raise MetadataFormatError(f"field '{key}' must be a list")
    loaded = []
    for entry in values:
        if not isinstance(entry, Mapping):
            raise MetadataFormatError(f"entries of '{key}' must be objects")
        loaded.append(loader(entry))
    return tuple(loaded)


def _dump_optional(value: UrlField | NameField | None) -> dict[str, Any] | None:
    return None if value is None else value.to_dict()


def _compact(payload: dict[str, Any], keep: Iterable[str] = ()) -> dict[str, Any]:
    """Drop ``None`` scalars and empty collections, mirroring the cache file format."""

    kept = set(keep)
    return {
        key: value
        for key, value in payload.items()
        if key in kept or not (value is None or (isinstance(value, list) and not value))
    }


__all__ = [
    "AgeRating",
    "AgeRatingCategory",
    "AgeRatingRating",
    "Company",
    "DateField",
    "GameEngine",
    "IdKind",
    "InvolvedCompany",
    "ItemId",
    "MetadataFormatError",
    "MetadataRecord",
    "MultiplayerMode",
    "NameField",
    "Platform",
    "PlatformCategory",
    "RatingKind",
    "UrlField",
]
