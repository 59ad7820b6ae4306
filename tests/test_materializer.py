"""Tests for ResultMaterializer conversions."""

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Literal, Optional

import pytest

from typed_docstore.domain.entities import RawDocument
from typed_docstore.domain.exceptions import MappingError
from typed_docstore.domain.value_objects import GeoPoint
from typed_docstore.infrastructure.mapping.materializer import (
    ResultMaterializer,
    _Mismatch,
    convert_value,
    to_storable,
)
from typed_docstore.infrastructure.mapping.registry import TypeRegistry

from tests.conftest import Place, Profile, Role, User


@dataclass
class Address:
    street: str
    number: int = 0


@dataclass
class Customer:
    id: str
    address: Address
    previous: list[Address] = field(default_factory=list)
    scores: dict[str, float] = field(default_factory=dict)
    born: Optional[date] = None
    tier: Literal["free", "paid"] = "free"
    extra: Any = None


@dataclass
class Event:
    id: str
    at: datetime


@dataclass
class Bag:
    id: str
    items: set = field(default_factory=set)


@dataclass
class Lookup:
    id: str
    table: dict[int, str] = field(default_factory=dict)
    weights: dict[float, bool] = field(default_factory=dict)
    flags: dict[bool, str] = field(default_factory=dict)
    by_role: dict[Role, int] = field(default_factory=dict)

@pytest.fixture
def materializer():
    return ResultMaterializer()


def describe(entity_type):
    return TypeRegistry().resolve(entity_type)


class TestMaterialize:
    def test_full_document(self, materializer):
        raw = RawDocument(
            "u1",
            {"name": "Ada", "age": 36, "city": "London", "role": "admin", "tags": ["math"]},
        )
        user = materializer.materialize(raw, describe(User))
        assert user == User(
            id="u1", name="Ada", age=36, city="London", role=Role.ADMIN, tags=["math"]
        )

    def test_identifier_comes_from_store_key(self, materializer):
        raw = RawDocument("u1", {"id": "other", "name": "Ada"})
        assert materializer.materialize(raw, describe(User)).id == "u1"

    def test_marked_identifier(self, materializer):
        raw = RawDocument("oslo", {"title": "Oslo", "location": {"lon": 10.75, "lat": 59.91}})
        place = materializer.materialize(raw, describe(Place))
        assert place.code == "oslo"
        assert place.location == GeoPoint(10.75, 59.91)

    def test_defaults_applied(self, materializer):
        user = materializer.materialize(RawDocument("u9", {"name": "Min"}), describe(User))
        assert user.age == 0
        assert user.tags == []
        assert user.joined is None

    def test_unknown_keys_ignored(self, materializer):
        raw = RawDocument("u1", {"name": "Ada", "shoe_size": 38})
        assert materializer.materialize(raw, describe(User)).name == "Ada"

    def test_missing_required_field(self, materializer):
        with pytest.raises(MappingError) as exc_info:
            materializer.materialize(RawDocument("u1", {"age": 3}), describe(User))
        assert exc_info.value.doc_id == "u1"
        assert exc_info.value.field == "name"

    def test_wrong_field_type(self, materializer):
        with pytest.raises(MappingError) as exc_info:
            materializer.materialize(RawDocument("u1", {"name": "Ada", "age": "old"}), describe(User))
        assert exc_info.value.field == "age"
        assert "u1" in str(exc_info.value)

    def test_unknown_enum_value(self, materializer):
        with pytest.raises(MappingError):
            materializer.materialize(RawDocument("u1", {"name": "Ada", "role": "owner"}), describe(User))

    def test_non_mapping_content(self, materializer):
        with pytest.raises(MappingError, match="expected a mapping"):
            materializer.materialize(RawDocument("u1", ["Ada"]), describe(User))

    @pytest.mark.parametrize("doc_id", ["", None, 7])
    def test_invalid_store_key(self, materializer, doc_id):
        with pytest.raises(MappingError):
            materializer.materialize(RawDocument(doc_id, {"name": "Ada"}), describe(User))

    def test_non_string_stored_identifier(self, materializer):
        with pytest.raises(MappingError):
            materializer.materialize(RawDocument("u1", {"id": 5, "name": "Ada"}), describe(User))

    def test_invalid_nested_geo_point(self, materializer):
        raw = RawDocument("x", {"location": {"lon": 500.0, "lat": 0.0}})
        with pytest.raises(MappingError) as exc_info:
            materializer.materialize(raw, describe(Place))
        assert exc_info.value.field == "location"

    def test_nested_dataclasses(self, materializer):
        raw = RawDocument(
            "c1",
            {
                "address": {"street": "Main", "number": 4},
                "previous": [{"street": "Old"}],
                "scores": {"q1": 3, "q2": 4.5},
                "born": "1990-05-01",
                "tier": "paid",
                "extra": {"anything": [1, 2]},
            },
        )
        customer = materializer.materialize(raw, describe(Customer))
        assert customer.address == Address("Main", 4)
        assert customer.previous == [Address("Old")]
        assert customer.scores == {"q1": 3.0, "q2": 4.5}
        assert customer.born == date(1990, 5, 1)
        assert customer.tier == "paid"
        assert customer.extra == {"anything": [1, 2]}

    def test_literal_mismatch(self, materializer):
        raw = RawDocument("c1", {"address": {"street": "Main"}, "tier": "gold"})
        with pytest.raises(MappingError) as exc_info:
            materializer.materialize(raw, describe(Customer))
        assert exc_info.value.field == "tier"

    @pytest.mark.parametrize("stamp", [10**20, -(10**20), 10**400, float("nan")])
    def test_out_of_range_timestamp(self, materializer, stamp):
        with pytest.raises(MappingError) as exc_info:
            materializer.materialize(RawDocument("e1", {"at": stamp}), describe(Event))
        assert exc_info.value.field == "at"

    def test_unhashable_set_items(self, materializer):
        with pytest.raises(MappingError) as exc_info:
            materializer.materialize(RawDocument("b1", {"items": [[1, 2]]}), describe(Bag))
        assert exc_info.value.field == "items"

    def test_mapping_keys_converted(self, materializer):
        raw = RawDocument("l1", {"table": {"1": "one", "2": "two"}, "by_role": {"admin": 3}})
        lookup = materializer.materialize(raw, describe(Lookup))
        assert lookup.table == {1: "one", 2: "two"}
        assert lookup.by_role == {Role.ADMIN: 3}

    def test_bad_mapping_key(self, materializer):
        with pytest.raises(MappingError) as exc_info:
            materializer.materialize(RawDocument("l1", {"table": {"one": "one"}}), describe(Lookup))
        assert exc_info.value.field == "table"


class TestProjection:
    def test_missing_fields_take_defaults(self, materializer):
        user = materializer.materialize(
            RawDocument("u1", {"name": "Ada"}), describe(User), projection=True
        )
        assert user == User(id="u1", name="Ada")

    def test_required_fields_take_zero_values(self, materializer):
        profile = materializer.materialize(
            RawDocument("p1", {"nickname": "ada"}), describe(Profile), projection=True
        )
        assert profile == Profile(id="p1", nickname="ada", score=0.0, active=False)

    def test_present_fields_still_checked(self, materializer):
        with pytest.raises(MappingError):
            materializer.materialize(
                RawDocument("p1", {"score": "high"}), describe(Profile), projection=True
            )


class TestDematerialize:
    def test_round_trip(self, materializer):
        descriptor = describe(User)
        user = User(
            id="doc-1",
            name="Ada",
            role=Role.ADMIN,
            tags=["a"],
            joined=datetime(2021, 3, 4, 5, 6, 7),
        )
        raw = materializer.dematerialize(user, descriptor)
        assert raw.doc_id == "doc-1"
        assert "id" not in raw.content
        assert raw.content["role"] == "admin"
        assert raw.content["joined"] == "2021-03-04T05:06:07"
        assert materializer.materialize(raw, descriptor) == user

    def test_requires_identifier(self, materializer):
        with pytest.raises(MappingError):
            materializer.dematerialize(User(id="", name="Ada"), describe(User))

    def test_whitespace_identifier_is_kept(self, materializer):
        raw = materializer.dematerialize(User(id=" ", name="Blank"), describe(User))
        assert raw.doc_id == " "

    def test_typed_mapping_keys_round_trip(self, materializer):
        descriptor = describe(Lookup)
        lookup = Lookup(
            id="l1",
            table={1: "one", 20: "twenty"},
            weights={0.5: True},
            flags={True: "yes", False: "no"},
            by_role={Role.ADMIN: 1, Role.MEMBER: 2},
        )
        raw = materializer.dematerialize(lookup, descriptor)
        assert raw.content["table"] == {"1": "one", "20": "twenty"}
        assert raw.content["by_role"] == {"admin": 1, "member": 2}
        assert materializer.materialize(raw, descriptor) == lookup


class TestConvertValue:
    def test_bool_is_not_int(self):
        with pytest.raises(_Mismatch):
            convert_value(True, int)
        with pytest.raises(_Mismatch):
            convert_value(1, bool)

    def test_int_widens_to_float(self):
        assert convert_value(3, float) == 3.0
        assert isinstance(convert_value(3, float), float)

    def test_null_needs_optional(self):
        assert convert_value(None, Optional[int]) is None
        with pytest.raises(_Mismatch):
            convert_value(None, int)

    def test_union_tries_each_member(self):
        assert convert_value("x", int | str) == "x"
        with pytest.raises(_Mismatch):
            convert_value([1], int | str)

    def test_datetimes(self):
        assert convert_value("2020-01-02T03:04:05", datetime) == datetime(2020, 1, 2, 3, 4, 5)
        assert convert_value(0, datetime) == datetime(1970, 1, 1, tzinfo=timezone.utc)
        with pytest.raises(_Mismatch):
            convert_value("yesterday", datetime)
        with pytest.raises(_Mismatch):
            convert_value(10**20, datetime)

    def test_collections(self):
        assert convert_value(["a", "b"], tuple[str, ...]) == ("a", "b")
        assert convert_value(["a", "a"], set[str]) == {"a"}
        with pytest.raises(_Mismatch):
            convert_value("ab", list[str])
        with pytest.raises(_Mismatch):
            convert_value([1, "x"], list[int])
        with pytest.raises(_Mismatch):
            convert_value([[1], [2]], frozenset)

    def test_fixed_tuple_length(self):
        assert convert_value([1, "a"], tuple[int, str]) == (1, "a")
        with pytest.raises(_Mismatch):
            convert_value([1], tuple[int, str])


class TestToStorable:
    def test_nested_values(self):
        value = {"when": date(2020, 1, 2), "roles": (Role.ADMIN,), "addr": Address("Main")}
        assert to_storable(value) == {
            "when": "2020-01-02",
            "roles": ["admin"],
            "addr": {"street": "Main", "number": 0},
        }
